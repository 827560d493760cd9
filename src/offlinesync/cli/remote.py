"""Remote commands for the offlinesync CLI.

Commands:
- sync: Run one sync pass against the configured server
- download: Fetch a collection for offline use
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

import click
import httpx

from offlinesync.cli import config
from offlinesync.cli.local import open_engine
from offlinesync.core.config import ServerConfig
from offlinesync.remote import HTTPRemoteStore, RemoteStoreError
from offlinesync.sync.connectivity import ConnectivityMonitor
from offlinesync.sync.types import NotOnline, SyncPassResult

# Failures reported as "Error: ..." instead of a traceback
COMMAND_ERRORS = (NotOnline, RemoteStoreError, httpx.HTTPError, TimeoutError)


def require_server() -> ServerConfig:
    """Get the server configuration or exit with an error."""
    server_config = config.get_server_config()
    if server_config is None:
        click.echo(
            "Error: No server configured. Run 'offlinesync configure "
            "--server-url URL --token TOKEN' first.",
            err=True,
        )
        sys.exit(1)
    return server_config


async def _run_sync(ctx: click.Context, server_config: ServerConfig) -> SyncPassResult | None:
    async with HTTPRemoteStore(server_config) as remote:
        monitor = ConnectivityMonitor(initial_online=False, probe=remote.health_check)
        if not await monitor.check_now():
            raise NotOnline(f"Server unreachable: {server_config.server_url}")
        with open_engine(ctx, remote, monitor) as engine:
            return await engine.trigger_sync()


@click.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Replay queued changes and unsynced records against the server."""
    server_config = require_server()
    click.echo(f"Syncing with {server_config.server_url}...")

    try:
        result = asyncio.run(_run_sync(ctx, server_config))
    except COMMAND_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if result is None:
        click.echo("Nothing to do.")
        return

    drain = result.drain
    click.echo(
        f"  ✓ {len(drain.succeeded)} applied, {len(result.records_synced)} records pushed"
    )
    if drain.failed or result.records_failed:
        click.echo(
            click.style(
                f"  ! {len(drain.failed) + len(result.records_failed)} failed, "
                "will retry on next sync",
                fg="yellow",
            )
        )
    for exhausted in drain.exhausted:
        click.echo(click.style(f"  ✗ {exhausted}", fg="red"))
    if result.error:
        click.echo(click.style(f"Sync failed: {result.error}", fg="red"), err=True)
        sys.exit(1)


async def _run_download(
    ctx: click.Context,
    server_config: ServerConfig,
    collection: str,
    filters: dict[str, Any] | None,
) -> list[dict[str, Any]]:
    async with HTTPRemoteStore(server_config) as remote:
        monitor = ConnectivityMonitor(initial_online=False, probe=remote.health_check)
        await monitor.check_now()
        with open_engine(ctx, remote, monitor) as engine:
            return await engine.download_for_offline(collection, filters)


@click.command()
@click.argument("collection")
@click.option(
    "--where",
    nargs=3,
    type=str,
    default=None,
    metavar="FIELD OPERATOR VALUE",
    help="Only download documents matching this condition.",
)
@click.pass_context
def download(ctx: click.Context, collection: str, where: tuple[str, str, str] | None) -> None:
    """Download COLLECTION for offline reads."""
    server_config = require_server()
    filters = None
    if where:
        field, operator, value = where
        filters = {"where": {"field": field, "operator": operator, "value": value}}

    try:
        documents = asyncio.run(_run_download(ctx, server_config, collection, filters))
    except COMMAND_ERRORS as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Downloaded {len(documents)} documents from {collection}.")
