from __future__ import annotations

from dailystrip.models.strip import MISSING_STRIP, DailyStrip, DailyStripEvent

__all__ = [
    "DailyStrip",
    "DailyStripEvent",
    "MISSING_STRIP",
]
