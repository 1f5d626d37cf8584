"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from hoard.config import Config, GatewayConfig, StorageConfig

from samples import ACCOUNT_ID, ALLOWED_GROUP


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Provide a temporary storage root."""
    return tmp_path / "store"


@pytest.fixture
def config(store_root: Path) -> Config:
    """Provide a runnable configuration pointing at a temp store."""
    return Config(
        log_json=False,
        gateway=GatewayConfig(
            host="gateway.test",
            verify_key="secret",
            account_id=ACCOUNT_ID,
            allowed_group_id=ALLOWED_GROUP,
        ),
        storage=StorageConfig(root=store_root),
    )
