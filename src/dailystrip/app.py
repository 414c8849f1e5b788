"""Application entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the lifespan context manager
- Wire the file writer to the service and the service to the scheduler
- Run the requested command (daemon, one-shot fetch, disclaimer acknowledgement)
- Reload settings on SIGHUP while the daemon runs
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import yaml
from pydantic import ValidationError

from dailystrip import __version__
from dailystrip.config import Settings, load_settings, save_settings
from dailystrip.fetcher import StripFetcher, build_http_client
from dailystrip.output import StripFileWriter, write_strip
from dailystrip.schedulers import PeriodicStripFetcher
from dailystrip.service import DailyStripService
from dailystrip.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Sequence

log = structlog.get_logger()

DISCLAIMER = (
    "This program is not affiliated with the cartoon's publisher. Strips are "
    "downloaded for personal viewing only and remain the property of their "
    "copyright holders."
)


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr; stdout carries command output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(
    settings: Settings, config_path: Path | None = None
) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the application's lifetime."""
    http_client = build_http_client(settings.fetcher)
    fetcher = StripFetcher(http_client, settings.fetcher)
    service = DailyStripService(settings, fetcher)
    scheduler = PeriodicStripFetcher(service)
    writer = StripFileWriter(settings.output)
    service.add_listener(writer)

    state = AppState(
        settings=settings,
        http_client=http_client,
        fetcher=fetcher,
        service=service,
        scheduler=scheduler,
        writer=writer,
        config_path=config_path,
    )

    try:
        yield state
    finally:
        await scheduler.aclose()
        await service.aclose()
        service.remove_listener(state.writer)
        await http_client.aclose()
        log.info("app_stopped")


def configure_unattended_downloads(state: AppState) -> None:
    """(Re)arm the scheduler from the current settings."""
    state.scheduler.start(state.settings.effective_download_settings())


def apply_settings(state: AppState, settings: Settings) -> None:
    """Make changed settings live and reschedule downloads to match them.

    Fetcher settings (endpoint, timeouts) are bound to the HTTP client and
    take effect on the next start.
    """
    state.settings = settings
    state.service.settings = settings

    if settings.output != state.writer.settings:
        state.service.remove_listener(state.writer)
        state.writer = StripFileWriter(settings.output)
        state.service.add_listener(state.writer)

    configure_unattended_downloads(state)


def reload_settings(state: AppState) -> None:
    """Re-read the settings file and apply it. Bound to SIGHUP by the daemon.

    A file that fails to parse or validate is logged and the running
    settings stay in effect.
    """
    try:
        if state.config_path is not None:
            settings = load_settings(state.config_path)
        else:
            settings = Settings()
    except (OSError, yaml.YAMLError, ValidationError):
        log.warning("settings_reload_failed", config_path=str(state.config_path), exc_info=True)
        return

    log.info(
        "settings_reloaded",
        disclaimer_acknowledged=settings.disclaimer_acknowledged,
        automatic=settings.downloads.enabled,
    )
    apply_settings(state, settings)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_daemon(settings: Settings, config_path: Path | None = None) -> None:
    """Fetch on startup if configured, then download unattended until cancelled.

    SIGHUP re-reads the settings file and reschedules downloads.
    """
    async with lifespan(settings, config_path) as state:
        log.info(
            "app_started",
            version=__version__,
            disclaimer_acknowledged=settings.disclaimer_acknowledged,
            automatic=settings.downloads.enabled,
        )

        if not settings.disclaimer_acknowledged:
            log.warning("disclaimer_not_acknowledged", hint="run 'dailystrip acknowledge'")

        if settings.fetch_on_startup:
            task = state.service.fetch_daily_strip()
            if task is not None:
                await task

        configure_unattended_downloads(state)

        loop = asyncio.get_running_loop()
        reload_signal = getattr(signal, "SIGHUP", None)
        if reload_signal is not None:
            loop.add_signal_handler(reload_signal, reload_settings, state)
        try:
            await asyncio.Event().wait()
        finally:
            if reload_signal is not None:
                loop.remove_signal_handler(reload_signal)


async def fetch_once(
    settings: Settings,
    *,
    output: Path | None = None,
    previous_token: str | None = None,
) -> int:
    """Fetch the current strip once. Returns a process exit code."""
    async with lifespan(settings) as state:
        task = state.service.fetch_daily_strip(previous_token)
        if task is None:
            print("Disclaimer not acknowledged; run 'dailystrip acknowledge' first.")
            return 2

        strip = await task
        if strip is None:
            print(f"Strip unchanged since {previous_token}")
            return 0
        if strip.is_missing:
            print("Failed to fetch the daily strip")
            return 1

        path = state.writer.last_written
        if output is not None:
            path = write_strip(strip, output)
        print(f"{path}\t{strip.cache_token}")
        return 0


def acknowledge_disclaimer(settings: Settings, config_path: Path | None = None) -> Path:
    print(DISCLAIMER)
    acknowledged = settings.model_copy(update={"disclaimer_acknowledged": True})
    return save_settings(acknowledged, config_path)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dailystrip", description=__doc__.splitlines()[0])
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, help="settings file to load and save")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("run", help="download the strip every day, unattended")

    fetch = commands.add_parser("fetch", help="download the current strip once")
    fetch.add_argument("--output", type=Path, help="also write the strip to this path")
    fetch.add_argument("--token", help="skip the download if the site ETag still matches")

    commands.add_parser("acknowledge", help="acknowledge the disclaimer and enable fetching")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = load_settings(args.config) if args.config is not None else Settings()
    setup_logging(settings)

    if args.command == "acknowledge":
        path = acknowledge_disclaimer(settings, args.config)
        print(f"Saved settings to {path}")
        return 0

    if args.command == "fetch":
        return asyncio.run(fetch_once(settings, output=args.output, previous_token=args.token))

    with suppress(KeyboardInterrupt):
        asyncio.run(run_daemon(settings, args.config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
