"""Conditional HTTP fetcher for the daily strip.

Fetching is a two-step protocol: GET the homepage (conditionally, with the
last known ETag), find the current image URL in its markup, then GET the
image itself. The Fetcher receives an httpx.AsyncClient via constructor
injection; the application owns the client lifecycle.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import httpx
import structlog

from dailystrip.errors import DailyStripError, ErrorCode
from dailystrip.imagetypes import image_type_for_content_type, sniff_image_type
from dailystrip.models.strip import DailyStrip

if TYPE_CHECKING:
    from dailystrip.config import FetcherSettings

log = structlog.get_logger()

# Appended by the origin to ETags of gzip-encoded responses, e.g.
# W/"bcc73e86198ecb0bdeb16541af340c7f-gzip". The server rejects the
# suffixed form in If-None-Match.
ETAG_GZIP_SUFFIX = "-gzip"


def build_http_client(settings: FetcherSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(
            settings.read_timeout_seconds,
            connect=settings.connect_timeout_seconds,
        ),
        headers={"User-Agent": settings.user_agent},
    )


def normalize_etag(etag: str | None) -> str | None:
    """Strip the compression suffix artefact from an ETag header value."""
    if etag is None:
        return None
    return etag.replace(ETAG_GZIP_SUFFIX, "")


def resolve_image_url(url: str, homepage_url: str) -> str:
    """Turn the URL captured from homepage markup into an absolute URL."""
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith(("https://", "http://")):
        return url
    return urljoin(homepage_url, url)


class StripFetcher:
    """Fetches the current strip unless the homepage is unchanged."""

    def __init__(self, client: httpx.AsyncClient, settings: FetcherSettings) -> None:
        self._client = client
        self._homepage_url = settings.homepage_url
        self._image_url_pattern = re.compile(settings.image_url_pattern)

    async def fetch_strip(self, previous_token: str | None = None) -> DailyStrip | None:
        """Fetch the current strip.

        Returns None when the homepage has not changed since ``previous_token``
        (either a 304 response or an identical ETag). Raises DailyStripError
        on network errors, unexpected status codes, a homepage without a
        recognisable image URL, or image data that fails validation.
        """
        log.info("strip_fetch_start", url=self._homepage_url, previous_token=previous_token)

        try:
            homepage = await self._fetch_homepage(previous_token)
            if homepage is None:
                log.info("strip_not_modified", reason="status_304", token=previous_token)
                return None

            image_url, token = homepage
            if token is not None and token == previous_token:
                log.info("strip_not_modified", reason="etag_unchanged", token=token)
                return None

            image_bytes = await self._fetch_image(image_url)
        except DailyStripError:
            raise
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DailyStripError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error fetching daily strip: {exc}",
                suggestion="The cartoon site may be temporarily unavailable.",
                recoverable=True,
            ) from exc

        strip = DailyStrip(
            image_bytes=image_bytes,
            cache_token=token,
            source_uri=image_url,
            retrieved_at=datetime.now(tz=UTC),
        )
        log.info(
            "strip_fetch_complete",
            url=image_url,
            token=token,
            content_length=len(image_bytes),
        )
        return strip

    async def _fetch_homepage(self, previous_token: str | None) -> tuple[str, str | None] | None:
        """Return (image URL, normalised ETag), or None on 304 Not Modified."""
        headers = {}
        if previous_token is not None:
            headers["If-None-Match"] = previous_token

        async with self._client.stream("GET", self._homepage_url, headers=headers) as response:
            log.debug("homepage_response", status_code=response.status_code)

            if response.status_code == httpx.codes.NOT_MODIFIED:
                return None

            if response.status_code != httpx.codes.OK:
                raise _unexpected_status(response.status_code, self._homepage_url)

            token = normalize_etag(response.headers.get("etag"))
            log.debug("homepage_etag", etag=response.headers.get("etag"), token=token)

            async for line in response.aiter_lines():
                match = self._image_url_pattern.fullmatch(line.rstrip("\r\n"))
                if match:
                    return resolve_image_url(match.group(1), self._homepage_url), token

        log.warning(
            "strip_image_url_not_found",
            url=self._homepage_url,
            pattern=self._image_url_pattern.pattern,
        )
        raise DailyStripError(
            code=ErrorCode.NO_IMAGE_URL_FOUND,
            message=(
                f"Didn't match regular expression {self._image_url_pattern.pattern} "
                "to any line in the homepage content"
            ),
            suggestion="The site layout may have changed; update the image URL pattern.",
            recoverable=True,
        )

    async def _fetch_image(self, image_url: str) -> bytes:
        log.debug("image_fetch_start", url=image_url)
        response = await self._client.get(image_url)

        if response.status_code != httpx.codes.OK:
            raise _unexpected_status(response.status_code, image_url)

        content_type = response.headers.get("content-type")
        declared_type = image_type_for_content_type(content_type)
        if declared_type is None:
            raise DailyStripError(
                code=ErrorCode.UNRECOGNIZED_IMAGE_DATA,
                message=f"Unexpected content type for daily strip image: {content_type}",
                suggestion="The image URL may no longer point at a GIF or JPEG image.",
                recoverable=True,
            )

        image_bytes = response.content
        if sniff_image_type(image_bytes) is not declared_type:
            raise DailyStripError(
                code=ErrorCode.UNRECOGNIZED_IMAGE_DATA,
                message=(
                    f"Response body from {image_url} does not look like the declared "
                    f"{declared_type.media_type} image"
                ),
                suggestion="The image URL may no longer point at a GIF or JPEG image.",
                recoverable=True,
            )

        return image_bytes


def _unexpected_status(status_code: int, url: str) -> DailyStripError:
    return DailyStripError(
        code=ErrorCode.UNEXPECTED_STATUS,
        message=f"Got HTTP status code {status_code} when fetching {url}",
        suggestion="The cartoon site may be temporarily unavailable.",
        recoverable=True,
    )
