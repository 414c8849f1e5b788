"""Test data shared across the unit tests."""

from __future__ import annotations

from datetime import UTC, datetime

from dailystrip.models.strip import DailyStrip

HOMEPAGE_URL = "https://strips.example.com/"
IMAGE_URL = "https://assets.amuniversal.com/0123456789abcdef0123456789abcdef"

GIF_BYTES = b"GIF89a" + b"\x01\x00\x01\x00\x80\x00\x00" + b"\x00" * 16
JFIF_BYTES = bytes([0xFF, 0xD8, 0xFF, 0xE0, 0x00, 0x10, 0x4A, 0x46, 0x49, 0x46, 0x00]) + b"\x00" * 16


def homepage_html(image_url: str = IMAGE_URL) -> str:
    return (
        "<html>\n"
        "<head><title>Daily strip</title></head>\n"
        "<body>\n"
        f'<div class="comic"><img class="img-comic" src="{image_url}" alt="Today"/></div>\n'
        "</body>\n"
        "</html>\n"
    )


def make_strip(token: str | None = '"etag-1"', data: bytes = GIF_BYTES) -> DailyStrip:
    return DailyStrip(
        image_bytes=data,
        cache_token=token,
        source_uri=IMAGE_URL,
        retrieved_at=datetime(2026, 10, 19, 8, 0, tzinfo=UTC),
    )
