"""
Error taxonomy for feed aggregation.

Per-source failures (TransportError, DecodeError, UpstreamStatusError)
are absorbed by the fetcher and summarized as one aggregate error per
pass: PartialContentError when some sources failed, NoContentError when
nothing at all could be fetched.
"""

from src.ingestion.http_client import TransportError
from src.ingestion.worker_pool import WorkerPoolError


class FeedError(Exception):
    """Base exception for feed errors."""

    pass


class DecodeError(FeedError):
    """Raised when a response body cannot be decoded."""

    def __init__(self, message: str, source_id: str | None = None):
        super().__init__(message)
        self.source_id = source_id


class UpstreamStatusError(FeedError):
    """Raised when the upstream API reports a non-zero status code."""

    def __init__(self, source_id: str, code: int, message: str = ""):
        super().__init__(f"Upstream returned code {code} for {source_id}: {message}")
        self.source_id = source_id
        self.code = code
        self.message = message


class NoContentError(FeedError):
    """Raised when no items were obtained from any source."""

    def __init__(self, message: str = "no content received", failed: int = 0):
        super().__init__(message)
        self.failed = failed


class PartialContentError(FeedError):
    """Some, but not all, sources failed. Non-fatal."""

    def __init__(self, failed: int, total: int):
        super().__init__(f"partial content: missing items from {failed} of {total} sources")
        self.failed = failed
        self.total = total


__all__ = [
    "DecodeError",
    "FeedError",
    "NoContentError",
    "PartialContentError",
    "TransportError",
    "UpstreamStatusError",
    "WorkerPoolError",
]
