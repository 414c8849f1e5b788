"""Wall-clock helpers for the unattended download schedule."""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60
SECONDS_PER_DAY = MINUTES_PER_DAY * 60

# New strips appear at midnight in the site's home time zone.
STRIP_PUBLICATION_TIME_ZONE = ZoneInfo("America/Los_Angeles")


def delay_before_next_download(
    minutes_past_midnight: int,
    now: datetime | None = None,
) -> timedelta:
    """Return how long to wait until the next local download time.

    The target is today's local midnight plus ``minutes_past_midnight``; if
    that instant has already passed, the same time tomorrow. ``now`` defaults
    to the current local wall-clock time and must be naive local time when
    supplied.

    The delay is the difference between two instants, not two wall-clock
    readings, so it stays correct on days when daylight saving time starts
    or ends. An ambiguous target resolves to its first occurrence.
    """
    if not 0 <= minutes_past_midnight < MINUTES_PER_DAY:
        raise ValueError(
            f"minutes_past_midnight must be in range 0 to {MINUTES_PER_DAY - 1}: "
            f"{minutes_past_midnight}"
        )

    if now is None:
        now = datetime.now()

    current = now.astimezone()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0, fold=0)
    offset = timedelta(minutes=minutes_past_midnight)

    next_download = (midnight + offset).astimezone()
    if next_download < current:
        next_download = (midnight + timedelta(days=1) + offset).astimezone()

    return next_download - current


def default_local_download_time(now: datetime | None = None) -> int:
    """Minutes past local midnight at which it is midnight in the site's time zone.

    This is when a new strip is published, so it is the earliest useful time
    for the daily download.
    """
    if now is None:
        now = datetime.now().astimezone()

    local_offset = now.utcoffset() or timedelta()
    site_offset = now.astimezone(STRIP_PUBLICATION_TIME_ZONE).utcoffset() or timedelta()

    difference = int((local_offset - site_offset).total_seconds())
    if difference < 0:
        difference += SECONDS_PER_DAY

    return (difference // 60) % MINUTES_PER_DAY
