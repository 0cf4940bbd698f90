"""
vault-sync CLI — entry point ``vault-sync``.

    vault-sync --config vault-sync.yaml            # run continuously
    vault-sync --config vault-sync.yaml --once     # one full sync, then exit
    vault-sync --config vault-sync.yaml --dry-run  # never touch the destination
"""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console

from . import DEFAULT_CONFIG, __version__
from .config import load_config
from .errors import ConfigError, EndpointError

console = Console(stderr=True)
logger = logging.getLogger("vaultsync.cli")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Send all log records to stderr in one consistent format."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())


@click.command()
@click.version_option(version=__version__, prog_name="vault-sync")
@click.option(
    "--config",
    "config_path",
    default=DEFAULT_CONFIG,
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Configuration file.",
)
@click.option("--dry-run", is_flag=True, help="Do not make any changes to the destination Vault.")
@click.option("--once", is_flag=True, help="Run the full sync once, then exit.")
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def main(config_path: str, dry_run: bool, once: bool, log_level: str):
    """Replicate secrets from one Vault to another.

    Runs a full sync every full_sync_interval seconds, applies changes
    from the source audit log as they arrive, and keeps both Vault
    tokens renewed.
    """
    from .daemon import SyncService

    setup_logging(log_level)

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        logger.error("Failed to load configuration file %s", config_path)
        console.print(f"[bold red]Configuration error:[/] {exc}")
        sys.exit(1)

    svc = SyncService(config, dry_run=dry_run, run_once=once)
    try:
        svc.start()
    except EndpointError as exc:
        console.print(f"[bold red]Cannot connect to Vault:[/] {exc}")
        sys.exit(1)
    except OSError as exc:
        console.print(f"[bold red]Cannot listen on {config.bind}:[/] {exc}")
        sys.exit(1)

    if once:
        svc.run_once_and_wait()
    else:
        svc.run_forever()


if __name__ == "__main__":
    main()
