"""Pytest fixtures for creator-feed tests."""

from datetime import datetime, timedelta, timezone

import pytest

from src.config.settings import Settings, get_settings
from src.feed.config import FeedConfig
from src.feed.schemas import Item, SourceConfig


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Ensure each test reads settings fresh."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        http_timeout_seconds=5.0,
    )


@pytest.fixture
def base_time() -> datetime:
    """Fixed reference time for cache and sort tests."""
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_item(base_time):
    """Factory for items of a source, `minutes` after base_time."""

    def _make(source_id: str, minutes: int = 0, title: str | None = None) -> Item:
        return Item(
            title=title or f"{source_id} video {minutes}",
            url=f"https://www.bilibili.com/video/BV{source_id}{minutes}",
            thumbnail_url=f"https://i0.hdslb.com/{source_id}_{minutes}.jpg",
            author=f"author {source_id}",
            author_url=f"https://space.bilibili.com/{source_id}",
            published_at=base_time + timedelta(minutes=minutes),
            source_id=source_id,
        )

    return _make


@pytest.fixture
def feed_config() -> FeedConfig:
    """Three sources, 2h default TTL, limit 5, no spacing."""
    return FeedConfig(
        sources=[
            SourceConfig(uid="A"),
            SourceConfig(uid="B"),
            SourceConfig(uid="C"),
        ],
        update_every=timedelta(hours=2),
        limit=5,
        request_interval_seconds=0.0,
    )
