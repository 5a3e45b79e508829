"""Tests for the curation service cycle and loop."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from feed_curator.ingestion.schemas import Source
from feed_curator.services.curation_service import (
    CollectingNotificationSink,
    CurationService,
    LoggingNotificationSink,
)
from feed_curator.services.dispatcher import SourceDispatcher
from tests.conftest import BASE_TIME, make_feed, make_item


@pytest.fixture
def sink() -> CollectingNotificationSink:
    return CollectingNotificationSink()


@pytest.fixture
def service(processor, store, observed_cache, sink) -> CurationService:
    return CurationService(
        store,
        SourceDispatcher(processor, concurrency=2),
        observed_cache,
        sink=sink,
        poll_interval=0.01,
    )


class TestRunOnce:
    """Tests for a single cycle."""

    @pytest.mark.asyncio
    async def test_cycle_surfaces_items_oldest_first(
        self, service, store, feed_client, sink, observed_cache
    ):
        await store.add_source(Source(id="UC2"))
        feed_client.feeds["UC1"] = make_feed(make_item(1, published=BASE_TIME + timedelta(hours=5)))
        feed_client.feeds["UC2"] = make_feed(make_item(2, published=BASE_TIME + timedelta(hours=1)))

        report = await service.run_once()

        assert report.processed == 2
        assert report.errored == 0
        assert [i.id for i in report.surfaced] == [
            "yt:video:vid00000002",
            "yt:video:vid00000001",
        ]
        assert sink.batches == [report.surfaced]
        assert observed_cache.last_refreshed_at is not None

    @pytest.mark.asyncio
    async def test_counts_failed_sources(self, service, store, feed_client, sink):
        await store.add_source(Source(id="UC2"))
        feed_client.feeds["UC1"] = make_feed(make_item(1))
        feed_client.errors["UC2"] = RuntimeError("HTTP 500")

        report = await service.run_once()

        assert report.processed == 1
        assert report.errored == 1
        assert len(sink.batches) == 1

    @pytest.mark.asyncio
    async def test_no_sources(self, processor, observed_cache, sink):
        from feed_curator.storage.memory import InMemoryStore

        service = CurationService(
            InMemoryStore(), SourceDispatcher(processor), observed_cache, sink=sink
        )

        report = await service.run_once()

        assert report.results == {}
        assert report.surfaced == []
        assert sink.batches == []

    @pytest.mark.asyncio
    async def test_nothing_new_skips_sink(self, service, sink):
        report = await service.run_once()

        assert report.processed == 1
        assert report.surfaced == []
        assert sink.batches == []

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_fail_cycle(
        self, processor, store, observed_cache, feed_client
    ):
        sink = AsyncMock()
        sink.notify.side_effect = RuntimeError("smtp down")
        service = CurationService(
            store, SourceDispatcher(processor), observed_cache, sink=sink
        )
        feed_client.feeds["UC1"] = make_feed(make_item(1))

        report = await service.run_once()

        assert len(report.surfaced) == 1
        sink.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ignore_checkpoint_forwarded(self, service, store, feed_client):
        feed_client.feeds["UC1"] = make_feed(make_item(1))

        await service.run_once(ignore_checkpoint=True)

        assert store.writes == []

    @pytest.mark.asyncio
    async def test_health_check(self, service, feed_client):
        feed_client.feeds["UC1"] = make_feed(make_item(1))
        await service.run_once()

        health = await service.health_check()

        assert health["running"] is False
        assert health["concurrency"] == 2
        assert health["observed_items"] == 1
        assert health["last_cycle"] == {"processed": 1, "errored": 0, "surfaced": 1}
        assert health["stale"] is False

    @pytest.mark.asyncio
    async def test_all_sources_failing_leaves_refresh_time(
        self, service, feed_client, observed_cache
    ):
        feed_client.errors["UC1"] = RuntimeError("HTTP 500")

        report = await service.run_once()

        assert report.errored == 1
        assert observed_cache.last_refreshed_at is None
        assert (await service.health_check())["stale"] is True

    @pytest.mark.asyncio
    async def test_cancelled_cycle_leaves_refresh_time(
        self, service, store, feed_client, observed_cache
    ):
        await store.add_source(Source(id="UC2"))
        feed_client.feeds["UC1"] = make_feed(make_item(1))
        cancel = asyncio.Event()
        cancel.set()

        report = await service.run_once(cancel_event=cancel)

        assert report.results == {}
        assert observed_cache.last_refreshed_at is None

    @pytest.mark.asyncio
    async def test_partial_failure_still_counts_as_refresh(
        self, service, store, feed_client, observed_cache, clock
    ):
        await store.add_source(Source(id="UC2"))
        feed_client.feeds["UC1"] = make_feed(make_item(1))
        feed_client.errors["UC2"] = RuntimeError("HTTP 500")

        await service.run_once()

        assert observed_cache.last_refreshed_at == clock.now


class TestLoop:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_runs_until_stopped(self, service, feed_client):
        task = asyncio.create_task(service.start())
        await asyncio.sleep(0.05)
        assert service.is_running

        await service.stop()
        await asyncio.wait_for(task, timeout=1)

        assert not service.is_running
        # Several cycles ran at a 10ms interval
        assert len(feed_client.calls) >= 2

    @pytest.mark.asyncio
    async def test_cycle_error_backs_off_and_continues(self, service, store):
        store.get_sources = AsyncMock(side_effect=[RuntimeError("redis down"), []])

        task = asyncio.create_task(service.start())
        await asyncio.sleep(0.02)
        await service.stop()
        await asyncio.wait_for(task, timeout=1)

        assert store.get_sources.await_count >= 1


class TestSinks:
    """Tests for the notification sinks."""

    @pytest.mark.asyncio
    async def test_logging_sink_accepts_items(self):
        await LoggingNotificationSink().notify([make_item(1), make_item(2)])

    @pytest.mark.asyncio
    async def test_collecting_sink_copies_batch(self):
        sink = CollectingNotificationSink()
        batch = [make_item(1)]

        await sink.notify(batch)
        batch.append(make_item(2))

        assert len(sink.batches[0]) == 1
