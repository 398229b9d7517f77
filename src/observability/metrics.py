"""
Prometheus metrics for monitoring feed aggregation.

Defines and exposes metrics for:
- Per-source fetch outcomes and latency
- Cache lookups (fresh, stale, missing)
- Aggregation pass outcomes
- Size of the merged feed

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the creator feed.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_source_fetch("ok", latency=0.4)
        metrics.cache_lookups.labels(result="fresh").inc()
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.source_fetches = Counter(
            "creator_feed_source_fetches_total",
            "Total per-source fetches",
            ["status"],  # ok, transport_error, decode_error, upstream_error
        )

        self.fetch_latency = Histogram(
            "creator_feed_fetch_latency_seconds",
            "Time to fetch and decode one source",
            buckets=LATENCY_BUCKETS,
        )

        self.cache_lookups = Counter(
            "creator_feed_cache_lookups_total",
            "Cache lookups during stale checks",
            ["result"],  # fresh, stale, missing
        )

        self.aggregations = Counter(
            "creator_feed_aggregations_total",
            "Aggregation passes by error classification",
            ["outcome"],  # none, partial, total
        )

        self.feed_items = Gauge(
            "creator_feed_items",
            "Number of items in the merged feed",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_source_fetch(self, status: str, latency: float | None = None) -> None:
        """
        Record the outcome of fetching one source.

        Args:
            status: ok, transport_error, decode_error or upstream_error
            latency: Optional fetch latency in seconds
        """
        self.source_fetches.labels(status=status).inc()
        if latency is not None:
            self.fetch_latency.observe(latency)

    def record_aggregation(self, outcome: str, item_count: int) -> None:
        """
        Record one aggregation pass.

        Args:
            outcome: none, partial or total
            item_count: Items in the resulting feed
        """
        self.aggregations.labels(outcome=outcome).inc()
        self.feed_items.set(item_count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
