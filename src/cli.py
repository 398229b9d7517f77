"""
Command-line interface for creator-feed.

Runs aggregation passes against the configured sources and prints the
merged feed.

Usage:
    creator-feed fetch --uid 946974 --uid 1567748478:30m --limit 10
    creator-feed fetch --json          # sources from FEED_SOURCES
    creator-feed watch --interval 60   # repeated passes, cache reused
"""

import asyncio
import json
import sys
from typing import Any

import click

from src.config.settings import get_settings
from src.feed.aggregator import FeedAggregator
from src.feed.config import FeedConfig, FeedMode
from src.feed.fetcher import SourceFetcher
from src.feed.schemas import AggregateResult, ErrorKind, SourceConfig
from src.ingestion.http_client import RateLimitedClient
from src.observability.logging import pass_context, setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Creator Feed - merged, cached feed of creators' latest videos."""
    setup_logging("DEBUG" if debug else None)

    settings = get_settings()
    if settings.tracing_enabled:
        from src.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


def _build_config(
    uids: tuple[str, ...],
    limit: int | None,
    update_every: str | None,
    dev: bool,
) -> FeedConfig:
    overrides: dict[str, Any] = {}
    if uids:
        overrides["sources"] = [SourceConfig.parse(uid) for uid in uids]
    if limit is not None:
        overrides["limit"] = limit
    if update_every is not None:
        overrides["update_every"] = update_every
    if dev:
        overrides["mode"] = FeedMode.DEVELOPMENT
    return FeedConfig(**overrides)


def _render(result: AggregateResult, as_json: bool) -> None:
    if as_json:
        payload = {
            "items": [item.model_dump(mode="json") for item in result.items],
            "error_kind": result.error_kind.value,
            "failed_count": result.failed_count,
            "error": str(result.error) if result.error else None,
            "refreshed": result.refreshed,
        }
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    for item in result.items:
        click.echo(
            f"{item.published_at:%Y-%m-%d %H:%M}  {item.author}  {item.title}  {item.url}"
        )
    if result.error_kind != ErrorKind.NONE:
        click.echo(f"[{result.error_kind.value}] {result.error}", err=True)


async def _run_passes(
    config: FeedConfig,
    passes: int,
    interval: float,
    force: bool,
    as_json: bool,
) -> AggregateResult:
    settings = get_settings()
    async with RateLimitedClient(
        min_interval=config.request_interval_seconds,
        timeout=settings.http_timeout_seconds,
    ) as client:
        aggregator = FeedAggregator(config, SourceFetcher(client, config))
        for number in range(1, passes + 1):
            if number > 1:
                await asyncio.sleep(interval)
            with pass_context(number):
                result = await aggregator.update(force_all=force and number == 1)
            _render(result, as_json)

    return result


@main.command()
@click.option("--uid", "uids", multiple=True, help="Source id, optionally uid:ttl (repeatable)")
@click.option("--limit", type=int, default=None, help="Maximum items in the feed")
@click.option("--update-every", default=None, help="Default cache lifetime, e.g. 30m")
@click.option("--force", is_flag=True, help="Refresh every source")
@click.option("--dev", is_flag=True, help="Development mode: zero TTL, verbose logs")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
def fetch(
    uids: tuple[str, ...],
    limit: int | None,
    update_every: str | None,
    force: bool,
    dev: bool,
    as_json: bool,
) -> None:
    """Run one aggregation pass and print the feed."""
    config = _build_config(uids, limit, update_every, dev)
    if not config.sources:
        click.echo("No sources configured (use --uid or FEED_SOURCES)", err=True)
        sys.exit(2)
    if config.is_development:
        setup_logging("DEBUG")

    result = asyncio.run(_run_passes(config, 1, 0.0, force, as_json))
    if result.error_kind == ErrorKind.TOTAL:
        sys.exit(1)


@main.command()
@click.option("--uid", "uids", multiple=True, help="Source id, optionally uid:ttl (repeatable)")
@click.option("--limit", type=int, default=None, help="Maximum items in the feed")
@click.option("--update-every", default=None, help="Default cache lifetime, e.g. 30m")
@click.option("--interval", default=60.0, help="Seconds between passes")
@click.option("--passes", default=0, help="Number of passes (0 = run until interrupted)")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def watch(
    uids: tuple[str, ...],
    limit: int | None,
    update_every: str | None,
    interval: float,
    passes: int,
    metrics: bool,
) -> None:
    """Run repeated passes; only stale sources are refetched."""
    config = _build_config(uids, limit, update_every, dev=False)
    if not config.sources:
        click.echo("No sources configured (use --uid or FEED_SOURCES)", err=True)
        sys.exit(2)
    if config.is_development:
        setup_logging("DEBUG")

    if metrics:
        get_metrics().start_server()

    try:
        asyncio.run(_run_passes(config, passes or sys.maxsize, interval, False, False))
    except KeyboardInterrupt:
        click.echo("Stopped")


if __name__ == "__main__":
    main()
