"""Command-line interface for offlinesync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Set the remote server and local store location
- status: Show queue, offline records and last sync
- queue: List pending mutations
- sweep: Delete expired cache entries
- clear: Delete all offline records and pending mutations
- sync: Run one sync pass against the configured server
- download: Fetch a collection for offline use
"""

from __future__ import annotations

import logging

import click

from offlinesync.cli.config import (
    get_config_dir,
    get_config_file,
    get_db_path,
    get_server_config,
    load_config,
    save_config,
)
from offlinesync.cli.local import clear, configure, queue, status, sweep
from offlinesync.cli.remote import download, sync


@click.group()
@click.version_option(package_name="offlinesync")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False),
    envvar="OFFLINESYNC_DB_PATH",
    default=None,
    help="Local store file (default: OFFLINESYNC_DB_PATH or ~/.offlinesync/offline.db).",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def cli(ctx: click.Context, db_path: str | None, verbose: bool) -> None:
    """offlinesync - Offline-first cache and sync queue."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


# Local store commands
cli.add_command(configure)
cli.add_command(status)
cli.add_command(queue)
cli.add_command(sweep)
cli.add_command(clear)

# Remote commands
cli.add_command(sync)
cli.add_command(download)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_db_path",
    "get_server_config",
    "load_config",
    "save_config",
]
