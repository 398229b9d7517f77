"""Transport layer - spaced HTTP client and bounded worker pool."""

from src.ingestion.http_client import RateLimitedClient, TransportError
from src.ingestion.worker_pool import WorkerPool, WorkerPoolError

__all__ = [
    "RateLimitedClient",
    "TransportError",
    "WorkerPool",
    "WorkerPoolError",
]
