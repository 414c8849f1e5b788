"""Unit tests for dailystrip.fetcher."""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest
import respx
from helpers import GIF_BYTES, HOMEPAGE_URL, IMAGE_URL, JFIF_BYTES, homepage_html

from dailystrip.config import FetcherSettings
from dailystrip.errors import DailyStripError, ErrorCode
from dailystrip.fetcher import (
    StripFetcher,
    build_http_client,
    normalize_etag,
    resolve_image_url,
)

# ---------------------------------------------------------------------------
# normalize_etag
# ---------------------------------------------------------------------------


class TestNormalizeEtag:
    def test_strips_gzip_suffix(self) -> None:
        assert (
            normalize_etag('W/"bcc73e86198ecb0bdeb16541af340c7f-gzip"')
            == 'W/"bcc73e86198ecb0bdeb16541af340c7f"'
        )

    def test_no_suffix_is_noop(self) -> None:
        assert normalize_etag('"abc123"') == '"abc123"'

    def test_idempotent(self) -> None:
        once = normalize_etag('W/"abc-gzip"')
        assert normalize_etag(once) == once

    def test_none(self) -> None:
        assert normalize_etag(None) is None


# ---------------------------------------------------------------------------
# resolve_image_url
# ---------------------------------------------------------------------------


class TestResolveImageUrl:
    def test_protocol_relative(self) -> None:
        assert resolve_image_url("//assets.example.com/x", HOMEPAGE_URL) == (
            "https://assets.example.com/x"
        )

    def test_absolute(self) -> None:
        assert resolve_image_url("http://assets.example.com/x", HOMEPAGE_URL) == (
            "http://assets.example.com/x"
        )

    def test_relative(self) -> None:
        assert resolve_image_url("/img/today", HOMEPAGE_URL) == (
            "https://strips.example.com/img/today"
        )


# ---------------------------------------------------------------------------
# build_http_client
# ---------------------------------------------------------------------------


class TestBuildHttpClient:
    def test_client_configuration(self) -> None:
        client = build_http_client(FetcherSettings())
        assert isinstance(client, httpx.AsyncClient)
        assert client.timeout.connect == 20.0
        assert client.timeout.read == 5.0
        assert client.headers["User-Agent"] == "dailystrip/1.0"


# ---------------------------------------------------------------------------
# StripFetcher
# ---------------------------------------------------------------------------


def _mock_homepage(etag: str | None = '"home-1"', status: int = 200) -> respx.Route:
    headers = {"ETag": etag} if etag is not None else {}
    return respx.get(HOMEPAGE_URL).mock(
        return_value=httpx.Response(status, text=homepage_html(), headers=headers)
    )


def _mock_image(
    content: bytes = GIF_BYTES, content_type: str = "image/gif", status: int = 200
) -> respx.Route:
    return respx.get(IMAGE_URL).mock(
        return_value=httpx.Response(status, content=content, headers={"Content-Type": content_type})
    )


class TestStripFetcher:
    async def test_successful_fetch(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            home = _mock_homepage(etag='W/"home-1-gzip"')
            _mock_image()
            async with httpx.AsyncClient() as client:
                before = datetime.now(tz=UTC)
                strip = await StripFetcher(client, fetcher_settings).fetch_strip()

        assert strip is not None
        assert strip.image_bytes == GIF_BYTES
        assert strip.cache_token == 'W/"home-1"'
        assert strip.source_uri == IMAGE_URL
        assert strip.retrieved_at >= before
        assert "if-none-match" not in home.calls.last.request.headers

    async def test_jpeg_fetch(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            _mock_homepage()
            _mock_image(content=JFIF_BYTES, content_type="image/jpeg")
            async with httpx.AsyncClient() as client:
                strip = await StripFetcher(client, fetcher_settings).fetch_strip()

        assert strip is not None
        assert strip.image_bytes == JFIF_BYTES

    async def test_sends_if_none_match(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            home = _mock_homepage(etag='"home-2"')
            _mock_image()
            async with httpx.AsyncClient() as client:
                await StripFetcher(client, fetcher_settings).fetch_strip('"home-1"')

        assert home.calls.last.request.headers["if-none-match"] == '"home-1"'

    async def test_304_returns_none(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            respx.get(HOMEPAGE_URL).mock(return_value=httpx.Response(304))
            image = _mock_image()
            async with httpx.AsyncClient() as client:
                result = await StripFetcher(client, fetcher_settings).fetch_strip('"home-1"')

        assert result is None
        assert not image.called

    async def test_unchanged_etag_skips_image_request(
        self, fetcher_settings: FetcherSettings
    ) -> None:
        with respx.mock:
            _mock_homepage(etag='"home-1-gzip"')
            image = _mock_image()
            async with httpx.AsyncClient() as client:
                result = await StripFetcher(client, fetcher_settings).fetch_strip('"home-1"')

        assert result is None
        assert not image.called

    async def test_missing_etag_always_fetches_image(
        self, fetcher_settings: FetcherSettings
    ) -> None:
        with respx.mock:
            _mock_homepage(etag=None)
            image = _mock_image()
            async with httpx.AsyncClient() as client:
                strip = await StripFetcher(client, fetcher_settings).fetch_strip(None)

        assert strip is not None
        assert strip.cache_token is None
        assert image.called

    async def test_homepage_500_raises(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            respx.get(HOMEPAGE_URL).mock(return_value=httpx.Response(500))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.UNEXPECTED_STATUS
        assert "500" in exc_info.value.message
        assert HOMEPAGE_URL in exc_info.value.message

    async def test_image_404_raises(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            _mock_homepage()
            _mock_image(status=404)
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.UNEXPECTED_STATUS
        assert IMAGE_URL in exc_info.value.message

    async def test_network_error_raises(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            respx.get(HOMEPAGE_URL).mock(side_effect=httpx.ConnectError("Connection refused"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert exc_info.value.recoverable is True

    async def test_timeout_raises_network_error(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            _mock_homepage()
            respx.get(IMAGE_URL).mock(side_effect=httpx.ReadTimeout("timed out"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR

    async def test_no_image_url_raises(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            respx.get(HOMEPAGE_URL).mock(
                return_value=httpx.Response(200, text="<html><body>Redesigned!</body></html>")
            )
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.NO_IMAGE_URL_FOUND

    async def test_first_matching_line_wins(self, fetcher_settings: FetcherSettings) -> None:
        second_url = "https://assets.amuniversal.com/ffffffffffffffffffffffffffffffff"
        html = homepage_html() + homepage_html(second_url)
        with respx.mock:
            respx.get(HOMEPAGE_URL).mock(return_value=httpx.Response(200, text=html))
            _mock_image()
            second = respx.get(second_url).mock(return_value=httpx.Response(200))
            async with httpx.AsyncClient() as client:
                strip = await StripFetcher(client, fetcher_settings).fetch_strip()

        assert strip is not None
        assert strip.source_uri == IMAGE_URL
        assert not second.called

    async def test_custom_pattern(self) -> None:
        settings = FetcherSettings(
            homepage_url=HOMEPAGE_URL,
            image_url_pattern=r'.*data-image="([^"]+)".*',
        )
        html = '<div data-image="//cdn.example.com/today.gif"></div>\n'
        with respx.mock:
            respx.get(HOMEPAGE_URL).mock(return_value=httpx.Response(200, text=html))
            respx.get("https://cdn.example.com/today.gif").mock(
                return_value=httpx.Response(
                    200, content=GIF_BYTES, headers={"Content-Type": "image/gif"}
                )
            )
            async with httpx.AsyncClient() as client:
                strip = await StripFetcher(client, settings).fetch_strip()

        assert strip is not None
        assert strip.source_uri == "https://cdn.example.com/today.gif"

    async def test_wrong_content_type_raises(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            _mock_homepage()
            _mock_image(content_type="text/html")
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.UNRECOGNIZED_IMAGE_DATA

    async def test_bad_signature_raises(self, fetcher_settings: FetcherSettings) -> None:
        with respx.mock:
            _mock_homepage()
            _mock_image(content=b"GIF89b" + b"\x00" * 16)
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.UNRECOGNIZED_IMAGE_DATA

    async def test_signature_must_match_declared_type(
        self, fetcher_settings: FetcherSettings
    ) -> None:
        with respx.mock:
            _mock_homepage()
            _mock_image(content=JFIF_BYTES, content_type="image/gif")
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, fetcher_settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.UNRECOGNIZED_IMAGE_DATA

    async def test_malformed_homepage_url_raises(self) -> None:
        settings = FetcherSettings(homepage_url="https://strips.example.com:abc/")
        with respx.mock:
            async with httpx.AsyncClient() as client:
                with pytest.raises(DailyStripError) as exc_info:
                    await StripFetcher(client, settings).fetch_strip()

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert isinstance(exc_info.value.__cause__, httpx.InvalidURL)
