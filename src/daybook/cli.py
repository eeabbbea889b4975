"""CLI for daybook: run calendar syncs and serve the API."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import click

from daybook.calendar.errors import CalendarSyncError
from daybook.calendar.runtime import (
    CalendarServices,
    build_calendar_services,
    build_http_client,
)
from daybook.calendar.store import ensure_schema
from daybook.config import DEFAULT_CONFIG_PATH, ConfigError, DaybookConfig, load_config
from daybook.core.logging import configure_logging, set_user_context
from daybook.db import Database

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to daybook.toml",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path) -> None:
    """Daybook: Google calendar sync for local event stores."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _load(ctx: click.Context) -> DaybookConfig:
    config_path: Path = ctx.obj["config_path"]
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=config.logging.log_root,
    )
    return config


@asynccontextmanager
async def _calendar_services(config: DaybookConfig) -> AsyncIterator[CalendarServices]:
    """Open the pool and HTTP client for one command, then close both."""
    db = (
        Database.from_url(
            config.db.url,
            min_pool_size=config.db.min_pool_size,
            max_pool_size=config.db.max_pool_size,
        )
        if config.db.url
        else Database.from_env()
    )
    pool = await db.connect()
    try:
        await ensure_schema(pool)
        async with build_http_client(config.http) as http_client:
            yield build_calendar_services(config, http_client=http_client, pool=pool)
    finally:
        await db.close()


@cli.command()
@click.option("--user-id", required=True, help="User whose Google calendar to pull")
@click.pass_context
def sync(ctx: click.Context, user_id: str) -> None:
    """Pull the sync window from Google into the local store."""
    config = _load(ctx)
    set_user_context(user_id)

    async def _run():
        async with _calendar_services(config) as services:
            return await services.reconciler.sync_events_for_user(user_id)

    try:
        result = asyncio.run(_run())
    except (CalendarSyncError, OSError) as exc:
        click.echo(f"Sync failed: {exc}", err=True)
        sys.exit(1)

    click.echo(f"synced: {result.synced}")
    click.echo(f"total_from_google: {result.total_from_google}")
    click.echo(f"skipped_cancelled: {result.skipped_cancelled}")
    click.echo(f"skipped_invalid_time: {result.skipped_invalid_time}")


@cli.command()
@click.option("--user-id", required=True, help="User whose connection to describe")
@click.pass_context
def connection(ctx: click.Context, user_id: str) -> None:
    """Show the stored Google token state for a user."""
    config = _load(ctx)
    set_user_context(user_id)

    async def _run():
        async with _calendar_services(config) as services:
            return await services.connection.describe(user_id)

    try:
        status = asyncio.run(_run())
    except (CalendarSyncError, OSError) as exc:
        click.echo(f"Connection check failed: {exc}", err=True)
        sys.exit(1)

    click.echo(f"{'Field':<22} {'Value'}")
    click.echo(f"{'connected':<22} {status.connected}")
    click.echo(f"{'has_refresh_token':<22} {status.has_refresh_token}")
    click.echo(f"{'has_access_token':<22} {status.has_access_token}")
    click.echo(f"{'scope':<22} {status.scope or '-'}")
    click.echo(f"{'expires_at':<22} {status.expires_at if status.expires_at is not None else '-'}")
    click.echo(f"{'google_profile_email':<22} {status.google_profile_email or '-'}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", type=int, default=8000, show_default=True, help="Bind port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the daybook HTTP API under uvicorn."""
    import uvicorn

    from daybook.api.app import create_app

    config = _load(ctx)
    click.echo(f"Serving daybook API on http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
