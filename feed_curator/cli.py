"""
Command-line interface for feed-curator.

Provides commands to run the polling loop, run a single cycle, manage
tracked sources and inspect the enrichment cache.

Usage:
    feed-curator run            # Poll every source on an interval
    feed-curator check          # Run one cycle and print new items
    feed-curator sources list   # Show tracked sources
    feed-curator cache stats    # Show enrichment cache status
"""

import asyncio
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

import click

from feed_curator.config.settings import Settings, get_settings
from feed_curator.observability.logging import setup_logging
from feed_curator.observability.metrics import get_metrics

if TYPE_CHECKING:
    from feed_curator.services.curation_service import CurationService, NotificationSink

MOCK_SOURCE_IDS = [f"UCmocksource{n:012d}" for n in range(1, 4)]


@asynccontextmanager
async def curation_service(
    settings: Settings,
    *,
    mock: bool = False,
    sink: "NotificationSink | None" = None,
) -> AsyncIterator["CurationService"]:
    """
    Wire a CurationService from settings and release its resources on exit.

    With ``mock`` nothing external is touched: sources, checkpoints and
    user state live in memory, feeds are synthetic and enrichment is faked.
    """
    from feed_curator.cache.enrichment_cache import EnrichmentCache
    from feed_curator.cache.observed_items import ObservedItemCache
    from feed_curator.enrichment.service import MockEnricher, YtDlpEnricher
    from feed_curator.ingestion.feed_client import (
        MockFeedClient,
        YouTubeFeedClient,
        sample_feed,
    )
    from feed_curator.ingestion.schemas import Source
    from feed_curator.services import (
        CurationService,
        SourceDispatcher,
        SourceProcessor,
    )
    from feed_curator.storage.memory import InMemoryStore
    from feed_curator.storage.redis_store import RedisStore

    seed_ids = settings.tracked_source_ids

    if mock:
        seed_ids = seed_ids or MOCK_SOURCE_IDS
        store = InMemoryStore(sources=[Source(id=s, title=s) for s in seed_ids])
        feed_client = MockFeedClient(feeds={s: sample_feed(s) for s in seed_ids})
        enricher = MockEnricher()
    else:
        store = RedisStore()
        await store.connect()
        feed_client = YouTubeFeedClient(
            retry_config=settings.retry_config(),
            timeout=settings.feed_timeout_seconds,
        )
        enricher = YtDlpEnricher(
            EnrichmentCache(
                settings.enrichment_cache_dir,
                enabled=settings.enrichment_cache_enabled,
            ),
            retry_config=settings.enrichment_retry_config(),
            timeout=settings.enrichment_timeout_seconds,
            binary=settings.ytdlp_binary,
        )

    try:
        if not mock and seed_ids:
            known = {s.id for s in await store.get_sources()}
            for source_id in seed_ids:
                if source_id not in known:
                    await store.add_source(Source(id=source_id, title=source_id))

        observed_cache = ObservedItemCache(
            ttl=timedelta(hours=settings.observed_cache_ttl_hours),
            user_state=store,
        )
        processor = SourceProcessor(feed_client, store, observed_cache, enricher)
        dispatcher = SourceDispatcher(processor, concurrency=settings.concurrency)
        yield CurationService(
            store,
            dispatcher,
            observed_cache,
            sink=sink,
            poll_interval=settings.poll_interval_seconds,
            error_backoff=settings.cycle_backoff_config(),
        )
    finally:
        await feed_client.close()
        if not mock:
            await store.close()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Feed Curator - polls tracked feeds and surfaces new items."""
    setup_logging("DEBUG" if debug else None)


@main.command()
@click.option("--mock", is_flag=True, help="Use in-memory stores and synthetic feeds")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def run(mock: bool, metrics: bool) -> None:
    """Run the polling loop until interrupted."""
    settings = get_settings()

    async def _run():
        async with curation_service(settings, mock=mock) as service:
            if metrics:
                get_metrics().start_server(port=settings.metrics_port)

            # Handle shutdown signals
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

            await service.start(
                ignore_checkpoint=settings.ignore_checkpoint,
                max_items=settings.max_items_per_cycle,
            )

    asyncio.run(_run())


@main.command()
@click.option("--mock", is_flag=True, help="Use in-memory stores and synthetic feeds")
@click.option("--ignore-checkpoint", is_flag=True, help="Treat every source as never checked")
@click.option("--max-items", default=None, type=int, help="Qualifying items per source (0 = no limit)")
def check(mock: bool, ignore_checkpoint: bool, max_items: int | None) -> None:
    """Run one cycle over every tracked source and print new items."""
    from feed_curator.services.curation_service import CollectingNotificationSink

    settings = get_settings()
    if max_items is None:
        max_items = settings.max_items_per_cycle

    async def _check():
        sink = CollectingNotificationSink()
        async with curation_service(settings, mock=mock, sink=sink) as service:
            return await service.run_once(
                ignore_checkpoint=ignore_checkpoint or settings.ignore_checkpoint,
                max_items=max_items,
            )

    report = asyncio.run(_check())

    click.echo("\nCycle Results:")
    click.echo("-" * 40)
    if not report.surfaced:
        click.echo("  No new items")
    for item in report.surfaced:
        click.echo(f"  {item.published:%Y-%m-%d %H:%M} {item.author.name}: {item.title}")
        click.echo(f"    {item.link}")
    for source_id, result in sorted(report.results.items()):
        if not result.ok:
            click.echo(click.style(f"  ✗ {source_id}: {result.error}", fg="red"))
    click.echo("-" * 40)

    color = "green" if report.errored == 0 else "yellow"
    click.echo(click.style(
        f"Processed: {report.processed}, errored: {report.errored}, "
        f"new items: {len(report.surfaced)}",
        fg=color,
    ))


# ── sources ──────────────────────────────────────────────


@main.group()
def sources() -> None:
    """Manage tracked sources."""


@sources.command("list")
def sources_list() -> None:
    """List tracked sources."""
    from feed_curator.storage.redis_store import RedisStore

    async def _list():
        async with RedisStore() as store:
            return await store.get_sources()

    tracked = asyncio.run(_list())
    if not tracked:
        click.echo("No sources tracked")
        return
    for source in sorted(tracked, key=lambda s: s.id):
        click.echo(f"  {source.id}  {source.title}")
    click.echo(f"\n{len(tracked)} source(s)")


@sources.command("add")
@click.argument("source_id")
@click.option("--title", default=None, help="Display title (defaults to the id)")
def sources_add(source_id: str, title: str | None) -> None:
    """Start tracking SOURCE_ID."""
    from feed_curator.ingestion.item_id import InvalidItemIdError, validate_channel_id
    from feed_curator.ingestion.schemas import Source
    from feed_curator.storage.redis_store import RedisStore

    try:
        validate_channel_id(source_id)
    except InvalidItemIdError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    async def _add():
        async with RedisStore() as store:
            await store.add_source(Source(id=source_id, title=title or source_id))

    asyncio.run(_add())
    click.echo(click.style(f"Tracking {source_id}", fg="green"))


@sources.command("remove")
@click.argument("source_id")
def sources_remove(source_id: str) -> None:
    """Stop tracking SOURCE_ID."""
    from feed_curator.storage.redis_store import RedisStore

    async def _remove():
        async with RedisStore() as store:
            return await store.remove_source(source_id)

    if asyncio.run(_remove()):
        click.echo(click.style(f"Removed {source_id}", fg="green"))
    else:
        click.echo(click.style(f"Source {source_id} was not tracked", fg="yellow"))
        sys.exit(1)


# ── cache ────────────────────────────────────────────────


@main.group()
def cache() -> None:
    """Inspect the enrichment cache."""


def _enrichment_cache():
    from feed_curator.cache.enrichment_cache import EnrichmentCache

    settings = get_settings()
    return EnrichmentCache(
        settings.enrichment_cache_dir,
        enabled=settings.enrichment_cache_enabled,
    )


@cache.command("clear")
def cache_clear() -> None:
    """Delete every cached enrichment payload."""
    removed = _enrichment_cache().clear()
    click.echo(f"Removed {removed} cached payload(s)")


@cache.command("stats")
def cache_stats() -> None:
    """Show enrichment cache status."""
    enrichment_cache = _enrichment_cache()
    click.echo(f"  enabled:   {enrichment_cache.enabled}")
    click.echo(f"  directory: {enrichment_cache.directory}")
    click.echo(f"  entries:   {len(enrichment_cache)}")


if __name__ == "__main__":
    main()
