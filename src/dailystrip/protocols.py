"""Protocol interfaces for swappable components.

The scheduler references these protocols, not the concrete service and
fetcher. Tests drive the scheduler with lightweight in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from dailystrip.models.strip import DailyStrip, DailyStripEvent


class DailyStripListener(Protocol):
    """Callback invoked synchronously on the task that completed the fetch."""

    def __call__(self, event: DailyStripEvent) -> None: ...


class StripFetcherProtocol(Protocol):
    """Interface for the conditional HTTP strip fetcher."""

    async def fetch_strip(self, previous_token: str | None = None) -> DailyStrip | None: ...


class StripSourceProtocol(Protocol):
    """The strip holder as seen by the scheduler."""

    def add_listener(self, listener: DailyStripListener) -> None: ...

    def remove_listener(self, listener: DailyStripListener) -> None: ...

    def get_cached_strip(self) -> DailyStrip | None: ...

    async def refresh(self, previous_token: str | None = None) -> DailyStrip | None: ...
