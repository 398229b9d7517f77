"""
Feed aggregation: cache check, selective refresh, merge.

One pass moves through:

    IDLE → CHECKING → (FETCHING) → MERGING → DONE
                         ↘ FAILED

CHECKING asks the TTLCache which sources are stale. FETCHING refreshes
only those; a fatal fetch error ends the pass in FAILED without touching
the cache. MERGING concatenates every source's batch (fresh or cached),
sorts newest first and truncates to the configured limit.
"""

import logging
from datetime import datetime, timezone
from enum import Enum

from src.feed.cache import TTLCache, resolve_ttl
from src.feed.config import FeedConfig
from src.feed.errors import FeedError, NoContentError, PartialContentError
from src.feed.fetcher import SourceFetcher, sort_newest_first
from src.feed.schemas import AggregateResult, ErrorKind, Item, SourceID
from src.observability.metrics import get_metrics
from src.observability.tracing import get_tracer, set_outcome, traced

logger = logging.getLogger(__name__)


class AggregationState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    FETCHING = "fetching"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FeedAggregator:
    """
    Keeps a merged feed of many sources, refreshing each only when stale.

    The cache is created empty here and lives as long as the aggregator.
    `items` and `error` hold the outcome of the last pass; after a failed
    pass `items` still holds the previous feed.

    Example:
        async with RateLimitedClient(min_interval=0.5) as client:
            aggregator = FeedAggregator(config, SourceFetcher(client, config))
            result = await aggregator.update()
            for item in result.items:
                print(item.title)
    """

    def __init__(self, config: FeedConfig, fetcher: SourceFetcher):
        self._config = config
        self._fetcher = fetcher
        self._cache = TTLCache()
        self._tracer = get_tracer(__name__)

        self.state = AggregationState.IDLE
        self.items: list[Item] = []
        self.error: Exception | None = None
        self.last_result: AggregateResult | None = None

        logger.info(
            f"Initialized {config.title} feed: sources={len(config.sources)}, "
            f"update_every={config.update_every}, limit={config.limit}, "
            f"mode={config.mode.value}"
        )

    @property
    def config(self) -> FeedConfig:
        return self._config

    @property
    def cache(self) -> TTLCache:
        return self._cache

    async def update(
        self,
        now: datetime | None = None,
        force_all: bool = False,
    ) -> AggregateResult:
        """
        Run one aggregation pass.

        Args:
            now: Check time (defaults to current UTC time)
            force_all: Refresh every source regardless of cache state

        Returns:
            AggregateResult. On a failed pass the previous feed is
            returned with error_kind TOTAL.
        """
        now = now or _utc_now()
        force_all = force_all or self._config.is_development
        metrics = get_metrics()

        with traced(
            self._tracer,
            "feed.update",
            {"sources": len(self._config.sources), "force_all": force_all},
        ) as span:
            self.state = AggregationState.CHECKING
            stale = self._cache.stale_sources(self._config.sources, now, force_all=force_all)
            span.set_attribute("stale", len(stale))

            partial: PartialContentError | None = None
            refreshed: list[SourceID] = []

            if stale:
                self.state = AggregationState.FETCHING
                logger.info(f"Refreshing {len(stale)} stale sources: {stale}")
                try:
                    result = await self._fetcher.fetch(stale)
                except FeedError as e:
                    failed = self._fail(e)
                    set_outcome(span, failed.error_kind.value, failed.failed_count, len(failed.items))
                    return failed

                if isinstance(result.error, PartialContentError):
                    partial = result.error

                batches = result.items_by_source()
                for source in self._config.sources:
                    if source.uid not in batches or source.uid in refreshed:
                        continue
                    ttl = resolve_ttl(source, self._config.update_every, self._config.mode)
                    self._cache.put(source.uid, batches[source.uid], now + ttl)
                    refreshed.append(source.uid)
            else:
                logger.debug("All sources served from cache")

            self.state = AggregationState.MERGING
            items = self._merge(now, refreshed)

            if partial is not None:
                aggregate = AggregateResult(
                    items=items,
                    error_kind=ErrorKind.PARTIAL,
                    failed_count=partial.failed,
                    error=partial,
                    refreshed=refreshed,
                )
            else:
                aggregate = AggregateResult(items=items, refreshed=refreshed)
            set_outcome(span, aggregate.error_kind.value, aggregate.failed_count, len(items))

        self.items = items
        self.error = partial
        self.state = AggregationState.DONE
        self.last_result = aggregate

        metrics.record_aggregation(aggregate.error_kind.value, len(items))
        logger.info(
            f"Feed updated: items={len(items)}, refreshed={len(refreshed)}, "
            f"failed={aggregate.failed_count}"
        )
        return aggregate

    async def ensure_populated(self) -> AggregateResult:
        """
        Return the current feed, forcing one refresh when it is empty.

        If the feed is still empty afterwards a NoContentError is recorded
        as the last error.
        """
        if self.items and self.last_result is not None:
            return self.last_result

        logger.info("Feed is empty, forcing an update")
        result = await self.update(force_all=True)
        if not result.items:
            self.error = NoContentError(
                "no videos available, check the network connection or source ids"
            )
            logger.error(str(self.error))
            return AggregateResult(
                items=[],
                error_kind=ErrorKind.TOTAL,
                error=self.error,
                refreshed=result.refreshed,
            )
        return result

    def _merge(self, now: datetime, refreshed: list[SourceID]) -> list[Item]:
        """
        Concatenate the batches of every configured source.

        A source contributes its batch when it was refreshed in this pass or
        its entry is still valid. Expired entries of sources whose refresh
        failed stay in the cache but are left out of the feed.
        """
        merged: list[Item] = []
        seen: set[SourceID] = set()
        for source in self._config.sources:
            if source.uid in seen:
                continue
            seen.add(source.uid)
            entry = self._cache.get(source.uid)
            if entry is None:
                continue
            if source.uid in refreshed or not entry.is_stale(now):
                merged.extend(entry.items)

        merged = sort_newest_first(merged)
        if len(merged) > self._config.limit:
            logger.debug(f"Truncating feed from {len(merged)} to {self._config.limit} items")
            merged = merged[: self._config.limit]
        return merged

    def _fail(self, error: FeedError) -> AggregateResult:
        self.state = AggregationState.FAILED
        self.error = error
        get_metrics().record_aggregation(ErrorKind.TOTAL.value, len(self.items))
        logger.error(f"Feed update failed: {type(error).__name__}: {error}")
        self.last_result = AggregateResult(
            items=list(self.items),
            error_kind=ErrorKind.TOTAL,
            failed_count=error.failed if isinstance(error, NoContentError) else 0,
            error=error,
        )
        return self.last_result
