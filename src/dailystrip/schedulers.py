"""Unattended daily download scheduling.

Two kinds of background task run on the event loop:

- the due check, armed by PeriodicStripFetcher.start(), wakes every
  CHECK_INTERVAL and works out how long it is until the configured local
  download time. When that is less than one check interval away it starts
  an attempt cycle to begin at exactly that time.
- the attempt cycle makes at most ``max_attempts`` fetches,
  ``retry_interval`` apart, and stops early as soon as a concrete strip is
  delivered to its listener.

At most one of each exists at a time. start() always cancels both before
arming a new due check, and a new attempt cycle cancels the previous one, so
two cycles never race to update the current strip.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from dailystrip.timeutils import delay_before_next_download

if TYPE_CHECKING:
    from dailystrip.config import FetchSettings
    from dailystrip.models.strip import DailyStripEvent
    from dailystrip.protocols import StripSourceProtocol

log = structlog.get_logger()

CHECK_INTERVAL = timedelta(minutes=10)


class SchedulerState(StrEnum):
    IDLE = "idle"
    ARMED = "armed"
    ATTEMPTING = "attempting"


class AttemptCycle:
    """A bounded sequence of fetch attempts that cancels itself on success."""

    def __init__(
        self,
        source: StripSourceProtocol,
        *,
        max_attempts: int,
        retry_interval: timedelta,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1: {max_attempts}")
        self._source = source
        self.max_attempts = max_attempts
        self.retry_interval = retry_interval
        self.attempts_made = 0
        self.succeeded = False
        self._task: asyncio.Task[None] | None = None

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self, initial_delay: timedelta = timedelta()) -> asyncio.Task[None]:
        self._task = asyncio.create_task(self.run(initial_delay))
        return self._task

    def cancel(self) -> None:
        """Unsubscribe and cancel the next scheduled attempt.

        An attempt already in flight on the cycle's own task is allowed to
        finish; the cycle then sees ``succeeded`` and returns.
        """
        self._source.remove_listener(self.daily_strip_updated)
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def run(self, initial_delay: timedelta = timedelta()) -> None:
        if initial_delay > timedelta():
            await asyncio.sleep(initial_delay.total_seconds())

        self._source.add_listener(self.daily_strip_updated)
        try:
            for attempt in range(1, self.max_attempts + 1):
                if attempt > 1:
                    await asyncio.sleep(self.retry_interval.total_seconds())

                self.attempts_made = attempt
                log.info("attempt_cycle_fetch", attempt=attempt, max_attempts=self.max_attempts)

                cached = self._source.get_cached_strip()
                previous_token = cached.cache_token if cached is not None else None
                try:
                    await self._source.refresh(previous_token)
                except Exception:
                    log.warning("attempt_cycle_fetch_error", attempt=attempt, exc_info=True)

                if self.succeeded:
                    log.info("attempt_cycle_complete", attempts=attempt)
                    return

            log.info("attempt_cycle_exhausted", attempts=self.attempts_made)
        finally:
            self._source.remove_listener(self.daily_strip_updated)

    def daily_strip_updated(self, event: DailyStripEvent) -> None:
        strip = event.strip
        if strip is None or strip.is_missing:
            log.info("attempt_cycle_no_strip", attempt=self.attempts_made)
            return

        self.succeeded = True
        log.info(
            "attempt_cycle_got_strip",
            attempt=self.attempts_made,
            token=strip.cache_token,
        )
        self.cancel()


class PeriodicStripFetcher:
    """Owns the due-check task and the active attempt cycle."""

    def __init__(
        self,
        source: StripSourceProtocol,
        *,
        check_interval: timedelta = CHECK_INTERVAL,
    ) -> None:
        self._source = source
        self._check_interval = check_interval
        self._check_task: asyncio.Task[None] | None = None
        self._cycle: AttemptCycle | None = None
        self.next_check_due: datetime | None = None

    @property
    def state(self) -> SchedulerState:
        if self._check_task is None or self._check_task.done():
            return SchedulerState.IDLE
        if self._cycle is not None and self._cycle.task is not None and not self._cycle.task.done():
            return SchedulerState.ATTEMPTING
        return SchedulerState.ARMED

    @property
    def attempt_cycle(self) -> AttemptCycle | None:
        return self._cycle

    def start(self, settings: FetchSettings) -> None:
        """Replace any current schedule with one derived from ``settings``."""
        self._cancel_tasks()

        if not settings.enabled:
            log.info("automatic_fetching_disabled")
            return

        log.info(
            "automatic_fetching_enabled",
            local_time_of_day_minutes=settings.local_time_of_day_minutes,
            max_attempts=settings.max_attempts,
            retry_interval_minutes=settings.retry_interval_minutes,
        )
        self._check_task = asyncio.create_task(self._run_due_check(settings))

    def stop(self) -> None:
        self._cancel_tasks()

    async def aclose(self) -> None:
        """Stop and wait for the cancelled tasks to finish unwinding."""
        tasks = [self._check_task]
        if self._cycle is not None:
            tasks.append(self._cycle.task)
        self.stop()
        for task in tasks:
            if task is not None:
                with suppress(asyncio.CancelledError):
                    await task

    async def _run_due_check(self, settings: FetchSettings) -> None:
        while True:
            delay = delay_before_next_download(settings.local_time_of_day_minutes)
            log.info("next_download_due", delay_seconds=int(delay.total_seconds()))

            if delay < self._check_interval:
                self._start_attempt_cycle(settings, delay)

            self.next_check_due = datetime.now() + self._check_interval
            await asyncio.sleep(self._check_interval.total_seconds())

    def _start_attempt_cycle(self, settings: FetchSettings, initial_delay: timedelta) -> None:
        if self._cycle is not None:
            self._cycle.cancel()

        log.info("attempt_cycle_scheduled", delay_seconds=int(initial_delay.total_seconds()))
        self._cycle = AttemptCycle(
            self._source,
            max_attempts=settings.max_attempts,
            retry_interval=timedelta(minutes=settings.retry_interval_minutes),
        )
        self._cycle.start(initial_delay)

    def _cancel_tasks(self) -> None:
        if self._check_task is None:
            log.debug("due_check_cancel_skipped")
        else:
            self._check_task.cancel()
            log.debug("due_check_cancelled")
        self._check_task = None

        if self._cycle is None:
            log.debug("attempt_cycle_cancel_skipped")
        else:
            self._cycle.cancel()
            log.debug("attempt_cycle_cancelled")
        self.next_check_due = None
