"""Tests for feed data models and configuration."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.feed.config import FeedConfig, FeedMode
from src.feed.schemas import (
    AggregateResult,
    ErrorKind,
    FetchOutcome,
    FetchResult,
    Item,
    SourceConfig,
    parse_duration,
)


class TestParseDuration:
    """Tests for parse_duration()."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("90s", timedelta(seconds=90)),
            ("30m", timedelta(minutes=30)),
            ("2h", timedelta(hours=2)),
            ("1d", timedelta(days=1)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("500ms", timedelta(milliseconds=500)),
            ("3600", timedelta(hours=1)),
            (120, timedelta(minutes=2)),
            (timedelta(minutes=5), timedelta(minutes=5)),
        ],
    )
    def test_valid_values(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_is_none(self, value):
        assert parse_duration(value) is None

    @pytest.mark.parametrize("value", ["soon", "2x", "h", "1h 30m", "-1h"])
    def test_invalid_strings(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestItem:
    """Tests for Item."""

    def test_immutable(self, make_item):
        """Items should not be modifiable after construction."""
        item = make_item("A")

        with pytest.raises(ValidationError):
            item.title = "changed"

    def test_naive_timestamp_becomes_utc(self):
        item = Item(
            title="t",
            url="u",
            published_at=datetime(2026, 1, 1, 8, 0),
            source_id="A",
        )

        assert item.published_at.tzinfo == timezone.utc


class TestSourceConfig:
    """Tests for SourceConfig."""

    def test_parse_uid_only(self):
        source = SourceConfig.parse("946974")

        assert source.uid == "946974"
        assert source.update_every is None

    def test_parse_uid_with_ttl(self):
        source = SourceConfig.parse("946974:30m")

        assert source.uid == "946974"
        assert source.update_every == timedelta(minutes=30)

    def test_yaml_style_alias(self):
        """Should accept the update-every key used by config files."""
        source = SourceConfig.model_validate({"uid": 42, "update-every": "1h"})

        assert source.uid == "42"
        assert source.update_every == timedelta(hours=1)

    def test_empty_uid_rejected(self):
        with pytest.raises(ValidationError):
            SourceConfig(uid="  ")


class TestFetchResult:
    """Tests for FetchResult."""

    def test_items_by_source_skips_failures(self, make_item):
        ok = FetchOutcome(source_id="A", items=[make_item("A", 1)])
        empty = FetchOutcome(source_id="B", items=[])
        failed = FetchOutcome(source_id="C", error=RuntimeError("x"))
        result = FetchResult(outcomes=[ok, empty, failed], items=ok.items, failed=1)

        batches = result.items_by_source()

        assert set(batches) == {"A", "B"}
        assert batches["B"] == []
        assert not failed.ok

    def test_aggregate_result_ok(self):
        assert AggregateResult(items=[]).ok
        assert not AggregateResult(items=[], error_kind=ErrorKind.PARTIAL).ok


class TestFeedConfig:
    """Tests for FeedConfig defaults and normalization."""

    def test_defaults(self):
        config = FeedConfig(sources=[])

        assert config.limit == 25
        assert config.collapse_after == 7
        assert config.collapse_after_rows == 4
        assert config.workers == 2
        assert config.request_interval_seconds == 0.5
        assert config.mode == FeedMode.NORMAL
        assert config.style == "default"

    @pytest.mark.parametrize("limit", [0, -5])
    def test_non_positive_limit_defaults(self, limit):
        assert FeedConfig(limit=limit).limit == 25

    @pytest.mark.parametrize("value,expected", [(0, 7), (-2, 7), (-1, -1), (3, 3)])
    def test_collapse_after_normalized(self, value, expected):
        assert FeedConfig(collapse_after=value).collapse_after == expected

    @pytest.mark.parametrize("value,expected", [(0, 4), (-3, 4), (-1, -1), (2, 2)])
    def test_collapse_after_rows_normalized(self, value, expected):
        assert FeedConfig(collapse_after_rows=value).collapse_after_rows == expected

    def test_sources_from_env(self, monkeypatch):
        """FEED_SOURCES should accept a comma-separated uid[:ttl] list."""
        monkeypatch.setenv("FEED_SOURCES", "946974, 1567748478:30m")
        monkeypatch.setenv("FEED_UPDATE_EVERY", "1h")

        config = FeedConfig()

        assert config.source_ids == ["946974", "1567748478"]
        assert config.sources[1].update_every == timedelta(minutes=30)
        assert config.update_every == timedelta(hours=1)

    def test_development_mode(self):
        config = FeedConfig(mode="development")

        assert config.is_development
