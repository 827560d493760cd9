"""Local store commands for the offlinesync CLI.

Commands:
- configure: Set the remote server and local store location
- status: Show queue, offline records and last sync
- queue: List pending mutations
- sweep: Delete expired cache entries
- clear: Delete all offline records and pending mutations
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import click

from offlinesync.cli import config
from offlinesync.core.config import EngineConfig
from offlinesync.engine import OfflineEngine
from offlinesync.remote import RemoteStore
from offlinesync.sync.connectivity import ConnectivityMonitor


def resolve_db_path(ctx: click.Context) -> Path:
    """Get the store path from --db, falling back to the config file."""
    db_path = (ctx.obj or {}).get("db_path")
    if db_path:
        return Path(db_path).expanduser()
    return config.get_db_path()


@contextmanager
def open_engine(
    ctx: click.Context,
    remote: RemoteStore | None = None,
    connectivity: ConnectivityMonitor | None = None,
) -> Iterator[OfflineEngine]:
    """Open an engine on the CLI's local store (timer not started)."""
    engine = OfflineEngine(
        remote,
        EngineConfig(db_path=resolve_db_path(ctx)),
        connectivity=connectivity or ConnectivityMonitor(initial_online=False),
    )
    try:
        yield engine
    finally:
        engine.close()


def format_timestamp(timestamp: float | None) -> str:
    """Format a Unix timestamp for display."""
    if timestamp is None:
        return "never"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


@click.command()
@click.option("--server-url", default=None, help="Base URL of the remote document store.")
@click.option("--token", default=None, help="Authentication token for the server.")
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Location of the local store file.",
)
def configure(server_url: str | None, token: str | None, db_path: str | None) -> None:
    """Save server and local store settings."""
    settings = config.load_config()
    if server_url:
        settings["server_url"] = server_url.rstrip("/")
    if token:
        settings["auth_token"] = token
    if db_path:
        settings["db_path"] = str(Path(db_path).expanduser().resolve())
    config.save_config(settings)
    click.echo(f"Configuration saved to {config.get_config_file()}")


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show queue size, offline records and last sync."""
    with open_engine(ctx) as engine:
        sync_status = engine.get_sync_status()

    click.echo(f"Local store:     {resolve_db_path(ctx)}")
    click.echo(f"Queued changes:  {sync_status.queue_size}")
    click.echo(
        f"Offline records: {sync_status.offline_data_size} "
        f"({sync_status.unsynced_records} unsynced)"
    )
    click.echo(f"Last sync:       {format_timestamp(sync_status.last_sync_at)}")
    if sync_status.exhausted_total:
        click.echo(
            click.style(
                f"Dropped after retries: {sync_status.exhausted_total}", fg="red"
            )
        )


@click.command()
@click.pass_context
def queue(ctx: click.Context) -> None:
    """List pending mutations in the order they will be applied."""
    with open_engine(ctx) as engine:
        items = engine.queue.list_pending()

    if not items:
        click.echo("Sync queue is empty.")
        return

    for item in items:
        line = (
            f"#{item.id:<5} {item.operation.value:<7} {item.collection}/{item.doc_id}"
            f"  queued {format_timestamp(item.enqueued_at)}"
        )
        if item.retry_count:
            line += f"  retries={item.retry_count}"
        click.echo(line)
        if item.last_error:
            click.echo(click.style(f"       last error: {item.last_error}", fg="yellow"))


@click.command()
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Delete expired cache entries."""
    with open_engine(ctx) as engine:
        count = engine.clear_expired_cache()
    click.echo(f"Removed {count} expired cache entries.")


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Delete all offline records and pending mutations."""
    with open_engine(ctx) as engine:
        sync_status = engine.get_sync_status()
        if not yes:
            click.confirm(
                f"Delete {sync_status.offline_data_size} offline records and "
                f"{sync_status.queue_size} queued changes?",
                abort=True,
            )
        engine.clear_all_offline_data()
    click.echo("All offline data cleared.")
