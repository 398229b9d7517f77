"""
Per-source TTL cache for fetched item batches.

Each source maps to one CacheEntry holding its last fetched batch and an
expiry timestamp. Entries are replaced wholesale on refresh and never
deleted; an expired entry is simply superseded by the next refresh.

The cache is written only by the aggregator after a fetch pass has
completed, so it carries no lock.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.feed.config import FeedMode
from src.feed.schemas import Item, SourceConfig, SourceID
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

FALLBACK_TTL = timedelta(hours=2)


@dataclass(frozen=True)
class CacheEntry:
    """Last known batch of one source."""

    items: tuple[Item, ...]
    expires_at: datetime

    def is_stale(self, now: datetime) -> bool:
        return now >= self.expires_at


def resolve_ttl(
    source: SourceConfig,
    default_ttl: timedelta | None,
    mode: FeedMode = FeedMode.NORMAL,
) -> timedelta:
    """
    Effective cache lifetime for a source.

    Source override > feed default > FALLBACK_TTL. Only positive values
    count as set. Development mode always resolves to zero.
    """
    if mode == FeedMode.DEVELOPMENT:
        return timedelta(0)
    if source.update_every is not None and source.update_every > timedelta(0):
        return source.update_every
    if default_ttl is not None and default_ttl > timedelta(0):
        return default_ttl
    return FALLBACK_TTL


class TTLCache:
    """In-memory map of SourceID to CacheEntry."""

    def __init__(self) -> None:
        self._entries: dict[SourceID, CacheEntry] = {}

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, source_id: SourceID) -> CacheEntry | None:
        return self._entries.get(source_id)

    def put(
        self,
        source_id: SourceID,
        items: Iterable[Item],
        expires_at: datetime,
    ) -> CacheEntry:
        """Replace the entry for source_id."""
        entry = CacheEntry(items=tuple(items), expires_at=expires_at)
        self._entries[source_id] = entry
        logger.debug(
            f"Cached {len(entry.items)} items for {source_id}, "
            f"expires_at={expires_at.isoformat()}"
        )
        return entry

    def stale_sources(
        self,
        configured: Sequence[SourceConfig],
        now: datetime,
        force_all: bool = False,
    ) -> list[SourceID]:
        """
        Sources that need a refresh, in configured order.

        A source is stale when force_all is set, when it has no entry, or
        when now is at or after its entry's expiry.
        """
        metrics = get_metrics()
        stale: list[SourceID] = []
        seen: set[SourceID] = set()

        for source in configured:
            if source.uid in seen:
                continue
            seen.add(source.uid)

            if force_all:
                stale.append(source.uid)
                continue

            entry = self._entries.get(source.uid)
            if entry is None:
                metrics.cache_lookups.labels(result="missing").inc()
                logger.debug(f"No cache entry for {source.uid}")
                stale.append(source.uid)
            elif entry.is_stale(now):
                metrics.cache_lookups.labels(result="stale").inc()
                logger.debug(
                    f"Cache entry for {source.uid} expired at "
                    f"{entry.expires_at.isoformat()} ({len(entry.items)} items)"
                )
                stale.append(source.uid)
            else:
                metrics.cache_lookups.labels(result="fresh").inc()

        return stale
