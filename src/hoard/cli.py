"""Command-line interface for Hoard."""

import asyncio
import json
from pathlib import Path

import click

from hoard import __version__
from hoard.config import Config
from hoard.logging import get_logger, setup_logging

log = get_logger("cli")


@click.group()
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
) -> None:
    """Hoard - collects media shared in chat into a dated file tree."""
    ctx.ensure_object(dict)

    try:
        config = Config.load_or_default(config_file)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json

    setup_logging(json_output=effective_log_json, level=effective_log_level)


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"hoard {__version__}")


@cli.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Validate configuration and print the effective values.

    The verify key is masked in the output.
    """
    config: Config = ctx.obj["config"]

    try:
        config.validate_runtime()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(config.redacted(), indent=2))
    click.echo("Configuration OK")


@cli.command()
@click.option(
    "--store-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Storage root directory (overrides config).",
)
@click.pass_context
def run(ctx: click.Context, store_root: Path | None) -> None:
    """Connect to the gateway and collect media until interrupted.

    Reconnects immediately whenever the connection drops. Use Ctrl+C or
    send SIGTERM to stop.
    """
    from hoard.session import run_client

    config: Config = ctx.obj["config"]
    if store_root is not None:
        config.storage.root = store_root

    try:
        config.validate_runtime()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    log.info(
        "run_command_invoked",
        host=config.gateway.host,
        account_id=config.gateway.account_id,
        allowed_group_id=config.gateway.allowed_group_id,
        store_root=str(config.storage.root),
    )

    asyncio.run(run_client(config))
