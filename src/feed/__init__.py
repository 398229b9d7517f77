"""Creator feed: per-source TTL cache with rate-limited concurrent refresh."""

from src.feed.aggregator import AggregationState, FeedAggregator
from src.feed.cache import FALLBACK_TTL, CacheEntry, TTLCache, resolve_ttl
from src.feed.config import FeedConfig, FeedMode
from src.feed.errors import (
    DecodeError,
    FeedError,
    NoContentError,
    PartialContentError,
    TransportError,
    UpstreamStatusError,
    WorkerPoolError,
)
from src.feed.fetcher import SourceFetcher
from src.feed.schemas import (
    AggregateResult,
    ErrorKind,
    FetchOutcome,
    FetchResult,
    Item,
    SourceConfig,
    SourceID,
)

__all__ = [
    "AggregateResult",
    "AggregationState",
    "CacheEntry",
    "DecodeError",
    "ErrorKind",
    "FALLBACK_TTL",
    "FeedAggregator",
    "FeedConfig",
    "FeedError",
    "FeedMode",
    "FetchOutcome",
    "FetchResult",
    "Item",
    "NoContentError",
    "PartialContentError",
    "SourceConfig",
    "SourceFetcher",
    "SourceID",
    "TTLCache",
    "TransportError",
    "UpstreamStatusError",
    "WorkerPoolError",
    "resolve_ttl",
]
