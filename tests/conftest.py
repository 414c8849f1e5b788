"""Shared test fixtures for the dailystrip test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from helpers import HOMEPAGE_URL

from dailystrip.config import FetcherSettings, OutputSettings, Settings

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def fetcher_settings() -> FetcherSettings:
    return FetcherSettings(homepage_url=HOMEPAGE_URL)


@pytest.fixture()
def settings(tmp_path: Path, fetcher_settings: FetcherSettings) -> Settings:
    """Acknowledged settings writing strips under tmp_path."""
    return Settings(
        disclaimer_acknowledged=True,
        fetcher=fetcher_settings,
        output=OutputSettings(directory=str(tmp_path / "strips")),
    )
