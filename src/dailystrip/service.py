"""Holder for the current strip and the listener channel.

DailyStripService is the single place that turns fetcher results into
notifications. Every fetch, manual or unattended, goes through refresh(),
so listeners see exactly one event per completed fetch that produced a new
strip or failed.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from dailystrip.errors import DailyStripError
from dailystrip.models.strip import MISSING_STRIP, DailyStrip, DailyStripEvent

if TYPE_CHECKING:
    from dailystrip.config import Settings
    from dailystrip.protocols import DailyStripListener, StripFetcherProtocol

log = structlog.get_logger()


class DailyStripService:
    def __init__(self, settings: Settings, fetcher: StripFetcherProtocol) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self._listeners: list[DailyStripListener] = []
        self._current_strip: DailyStrip = MISSING_STRIP
        self._cached_strip: DailyStrip | None = None
        self._background_tasks: set[asyncio.Task[DailyStrip | None]] = set()

    @property
    def settings(self) -> Settings:
        return self._settings

    @settings.setter
    def settings(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def current_strip(self) -> DailyStrip:
        """The strip from the most recent notification, MISSING after a failure."""
        return self._current_strip

    def is_disclaimer_acknowledged(self) -> bool:
        return self._settings.disclaimer_acknowledged

    def add_listener(self, listener: DailyStripListener | None) -> None:
        if listener is not None and listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: DailyStripListener | None) -> None:
        if listener is not None and listener in self._listeners:
            self._listeners.remove(listener)

    def get_cached_strip(self) -> DailyStrip | None:
        """Return the last successfully fetched strip, or None if there is none."""
        return self._cached_strip

    def fetch_daily_strip(
        self, previous_token: str | None = None
    ) -> asyncio.Task[DailyStrip | None] | None:
        """Start a fetch in the background.

        Returns the task, or None without fetching if the disclaimer has not
        been acknowledged.
        """
        if not self.is_disclaimer_acknowledged():
            log.info("strip_fetch_skipped", reason="disclaimer_not_acknowledged")
            return None

        task = asyncio.create_task(self.refresh(previous_token))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def refresh(self, previous_token: str | None = None) -> DailyStrip | None:
        """Fetch now and notify listeners of the outcome.

        Returns the strip that listeners were notified with (MISSING_STRIP on
        failure), or None when nothing changed and no one was notified.
        """
        try:
            strip = await self._fetcher.fetch_strip(previous_token)
        except DailyStripError as exc:
            log.info("strip_fetch_failed", **exc.to_dict())
            self._fire_daily_strip_updated(MISSING_STRIP)
            return MISSING_STRIP

        if strip is None:
            return None

        self._cached_strip = strip
        self._fire_daily_strip_updated(strip)
        return strip

    async def aclose(self) -> None:
        """Cancel any background fetches still in flight."""
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _fire_daily_strip_updated(self, strip: DailyStrip) -> None:
        self._current_strip = strip
        event = DailyStripEvent(source=self, strip=strip)

        # Copy: listeners may unsubscribe themselves while being notified.
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.error("strip_listener_error", listener=repr(listener), exc_info=True)
