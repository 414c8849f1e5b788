from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from dailystrip.imagetypes import ImageFileType, sniff_image_type


class DailyStrip(BaseModel):
    """A downloaded cartoon strip.

    Two strips are equal exactly when their cache tokens are equal. Image
    bytes and source URI take no part in equality, so re-downloading the same
    logical strip never looks like a change.
    """

    model_config = ConfigDict(frozen=True)

    image_bytes: bytes = b""
    cache_token: str | None = None  # Homepage ETag, normalised
    source_uri: str | None = None
    retrieved_at: datetime

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, DailyStrip):
            return NotImplemented
        return self.cache_token == other.cache_token

    def __hash__(self) -> int:
        return hash(self.cache_token)

    @property
    def is_missing(self) -> bool:
        return self == MISSING_STRIP and not self.image_bytes

    @property
    def image_type(self) -> ImageFileType | None:
        return sniff_image_type(self.image_bytes)


MISSING_STRIP = DailyStrip(
    image_bytes=b"",
    cache_token=None,
    source_uri=None,
    retrieved_at=datetime.min.replace(tzinfo=UTC),
)


@dataclass(frozen=True)
class DailyStripEvent:
    """Delivered to every registered listener when a fetch completes."""

    source: object
    strip: DailyStrip
