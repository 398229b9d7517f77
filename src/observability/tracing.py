"""
OpenTelemetry tracing for feed aggregation.

One span per aggregation pass, with a child span per stale source:

    feed.update
      feed.fetch_source (source_id=...)

The update span carries the pass outcome (see set_outcome) so a trace
alone tells whether a pass was clean, partial or failed. Log lines
emitted inside a span pick up trace_id/span_id via add_trace_context.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, StatusCode, Tracer
from opentelemetry.trace.propagation import get_current_span

logger = logging.getLogger(__name__)

DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_tracing_enabled = False


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a global TracerProvider for the feed service.

    Spans go to an OTLP gRPC collector in batches. Tests pass an
    in-memory exporter instead, which is flushed synchronously.
    """
    global _tracing_enabled

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        target = type(exporter).__name__
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        target = otlp_endpoint or DEFAULT_OTLP_ENDPOINT
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=target, insecure=True))
        )

    trace.set_tracer_provider(provider)
    _tracing_enabled = True
    logger.info("Tracing enabled: service=%s exporter=%s", service_name, target)
    return provider


def get_tracer(name: str) -> Tracer:
    """Named tracer; a no-op tracer until setup_tracing() has run."""
    return trace.get_tracer(name)


def is_tracing_enabled() -> bool:
    return _tracing_enabled


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """
    Run the block inside a span, marking it failed if the block raises.

    Usage:
        with traced(tracer, "feed.fetch_source", {"source_id": uid}):
            ...
    """
    with tracer.start_as_current_span(name, attributes=attributes) as span:
        try:
            yield span
        except Exception as exc:
            span.set_status(StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise


def set_outcome(span: Span, error_kind: str, failed: int, items: int) -> None:
    """
    Attach an aggregation pass outcome to its span.

    A total failure also sets the span status to ERROR; a partial one
    leaves it OK since the pass still produced a feed.
    """
    span.set_attribute("feed.error_kind", error_kind)
    span.set_attribute("feed.failed", failed)
    span.set_attribute("feed.items", items)
    if error_kind == "total":
        span.set_status(StatusCode.ERROR, f"{failed} sources failed")


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor adding trace_id/span_id of the active span."""
    ctx = get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = f"{ctx.trace_id:032x}"
        event_dict["span_id"] = f"{ctx.span_id:016x}"
    return event_dict
