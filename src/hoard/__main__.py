"""CLI entrypoint for running hoard as a module."""

from hoard.cli import cli
from hoard.logging import setup_logging

if __name__ == "__main__":
    setup_logging()
    cli()
