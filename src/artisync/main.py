"""Entry point: sync destinations, launch the server, restart it when it exits."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import click
import structlog

from artisync.config import LoggingSettings, Settings
from artisync.executor import Executor
from artisync.runner import PreparedDestination, sync_destinations
from artisync.state import build_context, build_http_client
from artisync.status import StatusWriter

if TYPE_CHECKING:
    import httpx

log = structlog.get_logger()


def configure_logging(settings: LoggingSettings) -> None:
    """Route structlog output to stderr with the configured level and format."""
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[settings.level]
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


async def sync_all(
    client: httpx.AsyncClient, settings: Settings, status: StatusWriter
) -> list[PreparedDestination]:
    ctx = build_context(client, settings)
    try:
        return await sync_destinations(ctx, settings.destinations, settings.cache.root, status)
    finally:
        await status.drain()


async def run_once(settings: Settings) -> list[PreparedDestination]:
    """Sync every destination a single time without launching anything."""
    async with build_http_client(settings.http.timeout_seconds) as client:
        return await sync_all(client, settings, StatusWriter(client, settings.status.webhook))


async def supervise() -> None:
    """Sync, run the server, and repeat forever, reloading config every cycle."""
    while True:
        settings = Settings()
        configure_logging(settings.logging)

        async with build_http_client(settings.http.timeout_seconds) as client:
            status = StatusWriter(client, settings.status.webhook)
            await sync_all(client, settings, status)

            status.write("Starting up server...")
            start = time.monotonic()
            try:
                await Executor(settings.run).run()
                log.info("server_closed")
            except OSError:
                log.error("server_exited_with_error", exc_info=True)

            elapsed = time.monotonic() - start
            if elapsed < settings.min_restart_interval_seconds:
                delay = settings.min_restart_interval_seconds - elapsed
                log.warning("server_restarted_quickly", delay_seconds=round(delay))
                status.write(
                    f"Server restarted too quickly! Waiting for {round(delay)} seconds..."
                )
                await status.drain()
                await asyncio.sleep(delay)
            else:
                status.write("Server closed! Restarting...")
                await status.drain()


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to artisync.yaml",
)
@click.option("--once", is_flag=True, help="Sync destinations and exit without launching")
def cli(config_path: Path | None, once: bool) -> None:
    """Keep server input directories in sync with remote artifacts."""
    if config_path is not None:
        os.environ["ARTISYNC_CONFIG"] = str(config_path)

    if once:
        settings = Settings()
        configure_logging(settings.logging)
        asyncio.run(run_once(settings))
        return

    try:
        asyncio.run(supervise())
    except KeyboardInterrupt:
        log.info("shutdown")


if __name__ == "__main__":
    cli()
