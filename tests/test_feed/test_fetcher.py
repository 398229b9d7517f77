"""Tests for SourceFetcher."""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest
import respx

from src.feed.config import FeedConfig
from src.feed.errors import (
    DecodeError,
    NoContentError,
    PartialContentError,
    TransportError,
    UpstreamStatusError,
    WorkerPoolError,
)
from src.feed.fetcher import SourceFetcher, space_url
from src.ingestion.http_client import RateLimitedClient
from tests.test_feed.conftest import (
    API_URL,
    BASE_EPOCH,
    api_handler,
    error_payload,
    video_payload,
)


async def _fetch(config: FeedConfig, source_ids: list[str]):
    async with RateLimitedClient(min_interval=0) as client:
        return await SourceFetcher(client, config).fetch(source_ids)


class TestRequestBuilding:
    """Tests for the outbound request shape."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_params_and_headers(self, feed_config):
        route = respx.get(API_URL).mock(
            return_value=httpx.Response(200, json=video_payload("A", 1))
        )

        await _fetch(feed_config, ["A"])

        request = route.calls.last.request
        assert dict(request.url.params) == {
            "mid": "A",
            "ps": "30",
            "tid": "0",
            "pn": "1",
            "order": "pubdate",
        }
        assert request.headers["Referer"] == "https://space.bilibili.com/A/video"
        assert request.headers["Origin"] == "https://space.bilibili.com"
        assert "Mozilla" in request.headers["User-Agent"]
        assert request.headers["Accept"].startswith("application/json")

    @pytest.mark.asyncio
    @respx.mock
    async def test_custom_base_url(self):
        config = FeedConfig(api_base_url="https://mirror.example.com/", request_interval_seconds=0)
        route = respx.get("https://mirror.example.com/x/space/arc/search").mock(
            return_value=httpx.Response(200, json=video_payload("A", 1))
        )

        await _fetch(config, ["A"])

        assert route.called


class TestDecode:
    """Tests for SourceFetcher.decode()."""

    def _fetcher(self) -> SourceFetcher:
        return SourceFetcher(RateLimitedClient(min_interval=0), FeedConfig())

    def test_decodes_items(self):
        items = self._fetcher().decode("A", json.dumps(video_payload("A", 2, author="Up")))

        assert [i.title for i in items] == ["A video 0", "A video 1"]
        first = items[0]
        assert first.url == "https://www.bilibili.com/video/BVAx0"
        assert first.thumbnail_url == "//i0.hdslb.com/A_0.jpg"
        assert first.author == "Up"
        assert first.author_url == space_url("A") == "https://space.bilibili.com/A"
        assert first.source_id == "A"
        assert first.published_at == datetime.fromtimestamp(BASE_EPOCH, tz=timezone.utc)

    def test_non_zero_code(self):
        with pytest.raises(UpstreamStatusError) as exc_info:
            self._fetcher().decode("A", json.dumps(error_payload(-352, "risk control")))

        assert exc_info.value.code == -352
        assert exc_info.value.message == "risk control"
        assert exc_info.value.source_id == "A"

    @pytest.mark.parametrize(
        "body",
        [
            b"<html>blocked</html>",
            b'{"message": "no code"}',
            b'{"code": 0, "data": {"list": {"vlist": [{"title": "x"}]}}}',
        ],
    )
    def test_malformed_body(self, body):
        with pytest.raises(DecodeError) as exc_info:
            self._fetcher().decode("A", body)

        assert exc_info.value.source_id == "A"

    def test_missing_data_is_empty(self):
        assert self._fetcher().decode("A", b'{"code": 0, "data": null}') == []

    @pytest.mark.parametrize(
        "body",
        [
            b'{"code": 0, "message": "0", "data": {"list": {"vlist": null}}}',
            b'{"code": 0, "message": "0", "data": {"list": null}}',
        ],
    )
    def test_null_video_list_is_empty(self, body):
        assert self._fetcher().decode("42", body) == []


class TestFetchClassification:
    """Per-source failures and aggregate errors."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_sources_succeed(self, feed_config):
        respx.get(API_URL).mock(
            side_effect=api_handler({
                "A": httpx.Response(200, json=video_payload("A", 2, start=0)),
                "B": httpx.Response(200, json=video_payload("B", 2, start=10)),
            })
        )

        result = await _fetch(feed_config, ["A", "B"])

        assert result.error is None
        assert result.failed == 0
        assert [o.source_id for o in result.outcomes] == ["A", "B"]
        assert [i.title for i in result.items] == [
            "B video 1",
            "B video 0",
            "A video 1",
            "A video 0",
        ]

    @pytest.mark.asyncio
    @respx.mock
    async def test_partial_failure(self, feed_config):
        respx.get(API_URL).mock(
            side_effect=api_handler({
                "A": httpx.Response(200, json=video_payload("A", 3)),
                "B": httpx.Response(200, json=error_payload()),
                "C": httpx.Response(200, content=b"not json"),
            })
        )

        result = await _fetch(feed_config, ["A", "B", "C"])

        assert isinstance(result.error, PartialContentError)
        assert result.error.failed == 2
        assert result.error.total == 3
        assert result.failed == 2
        assert {i.source_id for i in result.items} == {"A"}
        assert isinstance(result.outcomes[1].error, UpstreamStatusError)
        assert isinstance(result.outcomes[2].error, DecodeError)
        assert set(result.items_by_source()) == {"A"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_creator_without_videos_is_not_a_failure(self, feed_config):
        empty = {"code": 0, "message": "0", "data": {"list": {"vlist": None}}}
        respx.get(API_URL).mock(
            side_effect=api_handler({
                "A": httpx.Response(200, json=video_payload("A", 2)),
                "B": httpx.Response(200, json=empty),
            })
        )

        result = await _fetch(feed_config, ["A", "B"])

        assert result.error is None
        assert result.failed == 0
        assert result.outcomes[1].ok
        assert result.outcomes[1].items == []
        assert result.items_by_source()["B"] == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_failure_is_per_source(self, feed_config):
        respx.get(API_URL).mock(
            side_effect=api_handler({
                "A": httpx.ConnectError("refused"),
                "B": httpx.Response(200, json=video_payload("B", 1)),
            })
        )

        result = await _fetch(feed_config, ["A", "B"])

        assert isinstance(result.outcomes[0].error, TransportError)
        assert result.failed == 1
        assert len(result.items) == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_status_is_per_source(self, feed_config):
        respx.get(API_URL).mock(
            side_effect=api_handler({
                "A": httpx.Response(412),
                "B": httpx.Response(200, json=video_payload("B", 1)),
            })
        )

        result = await _fetch(feed_config, ["A", "B"])

        assert result.outcomes[0].error.status_code == 412
        assert result.failed == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_sources_fail(self, feed_config):
        respx.get(API_URL).mock(return_value=httpx.Response(200, json=error_payload()))

        with pytest.raises(NoContentError) as exc_info:
            await _fetch(feed_config, ["A", "B", "C"])

        assert exc_info.value.failed == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_items_at_all(self, feed_config):
        """Successful but empty responses still mean no content."""
        respx.get(API_URL).mock(return_value=httpx.Response(200, json=video_payload("A", 0)))

        with pytest.raises(NoContentError) as exc_info:
            await _fetch(feed_config, ["A", "B"])

        assert exc_info.value.failed == 0

    @pytest.mark.asyncio
    async def test_pool_failure_becomes_no_content(self, feed_config):
        async def failing_run(self, requests, task):
            raise WorkerPoolError("deadline exceeded")

        with patch("src.feed.fetcher.WorkerPool.run", new=failing_run):
            with pytest.raises(NoContentError) as exc_info:
                await _fetch(feed_config, ["A", "B"])

        assert isinstance(exc_info.value.__cause__, WorkerPoolError)


class TestFetchConcurrency:
    """Requests go through a pool of two workers."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_at_most_two_in_flight(self):
        config = FeedConfig(request_interval_seconds=0)
        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            uid = request.url.params["mid"]
            return httpx.Response(200, json=video_payload(uid, 1))

        respx.get(API_URL).mock(side_effect=handler)

        result = await _fetch(config, ["A", "B", "C", "D", "E"])

        assert peak == 2
        assert [o.source_id for o in result.outcomes] == ["A", "B", "C", "D", "E"]
        assert all(o.ok for o in result.outcomes)
