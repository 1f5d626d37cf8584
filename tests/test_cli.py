"""Tests for the CLI module."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner

from hoard import __version__
from hoard.cli import cli

from samples import ACCOUNT_ID, ALLOWED_GROUP


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep HOARD_* variables from the host out of these tests."""
    for name in ("HOARD_VERIFY_KEY", "HOARD_ACCOUNT_ID", "HOARD_ALLOWED_GROUP_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a runnable config file."""
    path = tmp_path / "hoard.yaml"
    path.write_text(
        yaml.dump(
            {
                "log_json": False,
                "gateway": {
                    "host": "gateway.test",
                    "verify_key": "very-secret",
                    "account_id": ACCOUNT_ID,
                    "allowed_group_id": ALLOWED_GROUP,
                },
                "storage": {"root": str(tmp_path / "store")},
            }
        )
    )
    return path


def test_cli_help(cli_runner: CliRunner) -> None:
    """Test that --help works."""
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "run" in result.output
    assert "check-config" in result.output


def test_version(cli_runner: CliRunner) -> None:
    """Test version command."""
    result = cli_runner.invoke(cli, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestCheckConfig:
    """Tests for the check-config command."""

    def test_valid_config(self, cli_runner: CliRunner, config_file: Path) -> None:
        """A complete config passes and the key is masked."""
        result = cli_runner.invoke(cli, ["-c", str(config_file), "check-config"])

        assert result.exit_code == 0
        assert "Configuration OK" in result.output
        assert "very-secret" not in result.output

    def test_missing_credentials(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        """Missing gateway inputs exit with status 1."""
        result = cli_runner.invoke(
            cli, ["-c", str(tmp_path / "absent.yaml"), "check-config"]
        )

        assert result.exit_code == 1
        assert "verify_key" in result.output

    def test_invalid_yaml_values(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        """Invalid values in the file exit with status 1."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"gateway": {"account_id": "not-a-number"}}))

        result = cli_runner.invoke(cli, ["-c", str(path), "check-config"])

        assert result.exit_code == 1

    @pytest.mark.parametrize(
        "content", ["gateway: [unclosed\n", "- gateway\n- storage\n"]
    )
    def test_unreadable_yaml(
        self, cli_runner: CliRunner, tmp_path: Path, content: str
    ) -> None:
        """Broken or non-mapping YAML is reported, not raised."""
        path = tmp_path / "broken.yaml"
        path.write_text(content)

        result = cli_runner.invoke(cli, ["-c", str(path), "check-config"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)


class TestRunCommand:
    """Tests for the run command."""

    def test_run_refuses_invalid_config(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        """run aborts before connecting when config is incomplete."""
        with patch("hoard.session.run_client", new=AsyncMock()) as run_client:
            result = cli_runner.invoke(cli, ["-c", str(tmp_path / "absent.yaml"), "run"])

        assert result.exit_code == 1
        run_client.assert_not_called()

    def test_run_starts_client(self, cli_runner: CliRunner, config_file: Path) -> None:
        """run hands the validated config to the client."""
        with patch("hoard.session.run_client", new=AsyncMock()) as run_client:
            result = cli_runner.invoke(cli, ["-c", str(config_file), "run"])

        assert result.exit_code == 0
        run_client.assert_awaited_once()
        config = run_client.await_args.args[0]
        assert config.gateway.verify_key == "very-secret"

    def test_store_root_override(
        self, cli_runner: CliRunner, config_file: Path, tmp_path: Path
    ) -> None:
        """--store-root replaces the configured storage root."""
        override = tmp_path / "elsewhere"
        with patch("hoard.session.run_client", new=AsyncMock()) as run_client:
            result = cli_runner.invoke(
                cli, ["-c", str(config_file), "run", "--store-root", str(override)]
            )

        assert result.exit_code == 0
        assert run_client.await_args.args[0].storage.root == override
