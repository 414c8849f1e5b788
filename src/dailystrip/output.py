"""Listener that writes each new strip to disk."""

from __future__ import annotations

import os
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from dailystrip.config import OutputSettings
    from dailystrip.models.strip import DailyStrip, DailyStripEvent

log = structlog.get_logger()

LATEST_STEM = "latest"


def strip_filename(strip: DailyStrip, stem: str) -> str:
    image_type = strip.image_type
    extension = image_type.extension if image_type is not None else ".img"
    return f"{stem}{extension}"


def write_strip(strip: DailyStrip, path: Path) -> Path:
    """Write the strip bytes to ``path`` with atomic replace semantics."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp_path.write_bytes(strip.image_bytes)
        os.replace(tmp_path, path)
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)
    return path


class StripFileWriter:
    """Saves every concrete strip as ``latest.<ext>`` in the output directory.

    With ``keep_history`` enabled a dated copy is kept alongside it. MISSING
    notifications leave the last saved strip in place.
    """

    def __init__(self, settings: OutputSettings) -> None:
        self.settings = settings
        self._directory = Path(settings.directory).expanduser()
        self._keep_history = settings.keep_history
        self.last_written: Path | None = None

    def __call__(self, event: DailyStripEvent) -> None:
        strip = event.strip
        if strip.is_missing:
            log.info("strip_file_unchanged", reason="missing_strip")
            return

        latest = write_strip(strip, self._directory / strip_filename(strip, LATEST_STEM))
        self.last_written = latest

        if self._keep_history:
            stem = strip.retrieved_at.strftime("%Y-%m-%d")
            write_strip(strip, self._directory / strip_filename(strip, stem))

        log.info("strip_file_written", path=str(latest), token=strip.cache_token)
