"""Image type detection by content type and magic-number sniffing.

Only the two formats the cartoon site has ever served are recognised: GIF
(``GIF87a``/``GIF89a`` header) and JPEG/JFIF. The JFIF signature carries the
APP0 segment length at offsets 4-5, which varies between files, so those two
bytes are masked out on both sides before comparing.
"""

from __future__ import annotations

from enum import Enum

_GIF_IDENTIFIERS: frozenset[bytes] = frozenset({b"GIF87a", b"GIF89a"})
_GIF_IDENTIFIER_LENGTH = 6

_JFIF_SIGNATURE = bytes([0xFF, 0xD8, 0xFF, 0xE0, 0x00, 0x00, 0x4A, 0x46, 0x49, 0x46, 0x00])
_JFIF_WILDCARD_OFFSETS = (4, 5)

_GIF_CONTENT_TYPES: frozenset[str] = frozenset({"image/gif"})
_JPEG_CONTENT_TYPES: frozenset[str] = frozenset(
    {"image/jpeg", "image/jpg", "image/jpe", "image/pjpeg"}
)


def may_be_gif(data: bytes) -> bool:
    return data[:_GIF_IDENTIFIER_LENGTH] in _GIF_IDENTIFIERS


def may_be_jfif(data: bytes) -> bool:
    if len(data) < len(_JFIF_SIGNATURE):
        return False
    leading = bytearray(data[: len(_JFIF_SIGNATURE)])
    for offset in _JFIF_WILDCARD_OFFSETS:
        leading[offset] = 0x00
    return bytes(leading) == _JFIF_SIGNATURE


class ImageFileType(Enum):
    GIF = "image/gif"
    JFIF = "image/jpeg"

    @property
    def media_type(self) -> str:
        return self.value

    @property
    def extension(self) -> str:
        return ".gif" if self is ImageFileType.GIF else ".jpg"

    def accepts(self, data: bytes) -> bool:
        if self is ImageFileType.GIF:
            return may_be_gif(data)
        return may_be_jfif(data)

    def accepts_content_type(self, content_type: str) -> bool:
        media_type = _media_type(content_type)
        if self is ImageFileType.GIF:
            return media_type in _GIF_CONTENT_TYPES
        return media_type in _JPEG_CONTENT_TYPES


def sniff_image_type(data: bytes) -> ImageFileType | None:
    """Return the image type whose signature matches *data*, or None."""
    for image_type in ImageFileType:
        if image_type.accepts(data):
            return image_type
    return None


def image_type_for_content_type(content_type: str | None) -> ImageFileType | None:
    """Map a ``Content-Type`` header value to a recognised image type.

    Parameters such as ``; charset=binary`` are ignored and the comparison
    is case-insensitive.
    """
    if not content_type:
        return None
    for image_type in ImageFileType:
        if image_type.accepts_content_type(content_type):
            return image_type
    return None


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()
