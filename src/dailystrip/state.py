"""Application state container.

AppState is created once at startup (inside the app lifespan context
manager) and holds every long-lived component. Components receive their
collaborators from here explicitly; there are no module-level singletons.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    import httpx

    from dailystrip.config import Settings
    from dailystrip.fetcher import StripFetcher
    from dailystrip.output import StripFileWriter
    from dailystrip.schedulers import PeriodicStripFetcher
    from dailystrip.service import DailyStripService


@dataclass
class AppState:
    """Holds all shared runtime state."""

    settings: Settings
    http_client: httpx.AsyncClient
    fetcher: StripFetcher
    service: DailyStripService
    scheduler: PeriodicStripFetcher
    writer: StripFileWriter
    config_path: Path | None = None
