"""Observability for feed aggregation - logging, metrics, and tracing."""

from src.observability.logging import pass_context, setup_logging
from src.observability.metrics import MetricsCollector, get_metrics
from src.observability.tracing import get_tracer, set_outcome, setup_tracing, traced

__all__ = [
    "MetricsCollector",
    "get_metrics",
    "get_tracer",
    "pass_context",
    "set_outcome",
    "setup_logging",
    "setup_tracing",
    "traced",
]
