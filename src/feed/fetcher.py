"""
Concurrent fetching of the latest videos of a set of sources.

One request is built per source and the batch is issued through a
WorkerPool over a shared RateLimitedClient, so at most `workers`
requests are in flight and consecutive requests are spaced.

Failures are classified per source:
- TransportError: network, timeout or HTTP status failure
- DecodeError: body is not the expected JSON envelope
- UpstreamStatusError: envelope carries a non-zero code

A failing source contributes no items and never aborts the others. After
the batch the failures are summarized: NoContentError is raised when no
item was obtained at all, PartialContentError is attached to the result
when only some sources failed.
"""

import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from pydantic import ValidationError

from src.config.settings import get_settings
from src.feed.config import FeedConfig
from src.feed.errors import (
    DecodeError,
    NoContentError,
    PartialContentError,
    TransportError,
    UpstreamStatusError,
    WorkerPoolError,
)
from src.feed.schemas import (
    FetchOutcome,
    FetchResult,
    Item,
    SourceID,
    VideoListResponse,
)
from src.ingestion.http_client import RateLimitedClient
from src.ingestion.worker_pool import WorkerPool
from src.observability.metrics import get_metrics
from src.observability.tracing import get_tracer, traced

logger = logging.getLogger(__name__)

VIDEO_LIST_PATH = "/x/space/arc/search"
SPACE_URL = "https://space.bilibili.com/{uid}"
VIDEO_URL = "https://www.bilibili.com/video/{bvid}"


def space_url(source_id: SourceID) -> str:
    """Author URL of a source; items are tagged with it."""
    return SPACE_URL.format(uid=source_id)


def sort_newest_first(items: list[Item]) -> list[Item]:
    """Stable sort by publish time, newest first."""
    return sorted(items, key=lambda item: item.published_at, reverse=True)


class SourceFetcher:
    """
    Fetches the latest items of many sources with bounded concurrency.

    Example:
        async with RateLimitedClient(min_interval=0.5) as client:
            fetcher = SourceFetcher(client, FeedConfig())
            result = await fetcher.fetch(["946974", "1567748478"])
            if result.error:
                print(result.error)
    """

    def __init__(self, client: RateLimitedClient, config: FeedConfig | None = None):
        self._client = client
        self._config = config or FeedConfig()
        self._tracer = get_tracer(__name__)

    @property
    def endpoint(self) -> str:
        return self._config.api_base_url.rstrip("/") + VIDEO_LIST_PATH

    def build_params(self, source_id: SourceID) -> dict[str, str | int]:
        return {
            "mid": source_id,
            "ps": self._config.page_size,
            "tid": 0,
            "pn": 1,
            "order": "pubdate",
        }

    def build_headers(self, source_id: SourceID) -> dict[str, str]:
        return {
            "User-Agent": get_settings().user_agent,
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
            "Origin": "https://space.bilibili.com",
            "Referer": f"{space_url(source_id)}/video",
        }

    async def fetch(self, source_ids: Sequence[SourceID]) -> FetchResult:
        """
        Fetch the latest items of every source.

        Args:
            source_ids: Sources to fetch, in order

        Returns:
            FetchResult with outcomes in request order and all successful
            items sorted newest first. `error` is a PartialContentError
            when some sources failed.

        Raises:
            NoContentError: If no items were obtained from any source,
                or the worker pool failed as a whole
        """
        source_ids = list(source_ids)
        logger.info(
            f"Fetching {len(source_ids)} sources with "
            f"{self._config.workers} workers: {source_ids}"
        )

        pool: WorkerPool[SourceID, list[Item]] = WorkerPool(
            workers=self._config.workers,
            timeout=self._config.fetch_timeout_seconds,
        )
        try:
            batches, errors = await pool.run(source_ids, self._fetch_source)
        except WorkerPoolError as e:
            logger.error(f"Fetch job failed: {e}")
            raise NoContentError(f"no content received: {e}", failed=len(source_ids)) from e

        outcomes: list[FetchOutcome] = []
        items: list[Item] = []
        failed = 0

        for source_id, batch, error in zip(source_ids, batches, errors):
            if error is not None:
                failed += 1
                logger.error(
                    f"Source {source_id} failed: {type(error).__name__}: {error}"
                )
                outcomes.append(FetchOutcome(source_id=source_id, error=error))
                continue

            batch = batch or []
            logger.debug(f"Source {source_id} returned {len(batch)} items")
            outcomes.append(FetchOutcome(source_id=source_id, items=batch))
            items.extend(batch)

        if not items:
            logger.error(f"No items received from {len(source_ids)} sources")
            raise NoContentError(failed=failed)

        items = sort_newest_first(items)

        if failed:
            logger.warning(
                f"Partial content: {failed} of {len(source_ids)} sources failed"
            )
            return FetchResult(
                outcomes=outcomes,
                items=items,
                failed=failed,
                error=PartialContentError(failed=failed, total=len(source_ids)),
            )

        logger.info(f"Fetched {len(items)} items from {len(source_ids)} sources")
        return FetchResult(outcomes=outcomes, items=items)

    async def _fetch_source(self, source_id: SourceID) -> list[Item]:
        metrics = get_metrics()
        start = time.monotonic()

        with traced(self._tracer, "feed.fetch_source", {"source_id": source_id}):
            try:
                response = await self._client.get(
                    self.endpoint,
                    params=self.build_params(source_id),
                    headers=self.build_headers(source_id),
                )
                items = self.decode(source_id, response.content)
            except TransportError:
                metrics.record_source_fetch("transport_error", time.monotonic() - start)
                raise
            except DecodeError:
                metrics.record_source_fetch("decode_error", time.monotonic() - start)
                raise
            except UpstreamStatusError:
                metrics.record_source_fetch("upstream_error", time.monotonic() - start)
                raise

        metrics.record_source_fetch("ok", time.monotonic() - start)
        return items

    def decode(self, source_id: SourceID, body: bytes | str) -> list[Item]:
        """
        Decode one response body into items tagged with source_id.

        Raises:
            DecodeError: If the body is not a valid envelope
            UpstreamStatusError: If the envelope carries a non-zero code
        """
        try:
            response = VideoListResponse.model_validate_json(body)
        except ValidationError as e:
            raise DecodeError(
                f"Malformed response for {source_id}: {e.error_count()} errors",
                source_id=source_id,
            ) from e

        if response.code != 0:
            raise UpstreamStatusError(source_id, response.code, response.message)

        author_url = space_url(source_id)
        return [
            Item(
                title=video.title,
                url=VIDEO_URL.format(bvid=video.bvid),
                thumbnail_url=video.pic,
                author=video.author,
                author_url=author_url,
                published_at=datetime.fromtimestamp(video.created, tz=timezone.utc),
                source_id=source_id,
            )
            for video in response.videos
        ]
