"""
Curation service - runs polling cycles over every tracked source.

Each cycle dispatches the source processor across all sources, marks the
observed-item cache refreshed, and hands the surfaced items to the
notification sink. Runs continuously via start(), or once via run_once().

Features:
- Bounded concurrent source processing
- Per-source failure isolation with an aggregate processed/errored count
- Graceful shutdown
- Metrics collection
"""

import asyncio
import time
from datetime import timedelta
from abc import ABC, abstractmethod
from typing import Any

import structlog

from feed_curator.cache.observed_items import ObservedItemCache
from feed_curator.ingestion.schemas import CycleReport, Item
from feed_curator.observability.logging import log_context
from feed_curator.observability.metrics import get_metrics
from feed_curator.retry.backoff import RetryConfig
from feed_curator.services.dispatcher import SourceDispatcher
from feed_curator.storage.base import SourceRegistry

logger = structlog.get_logger(__name__)


class NotificationSink(ABC):
    """Receives the items surfaced by one cycle."""

    @abstractmethod
    async def notify(self, items: list[Item]) -> None: ...


class LoggingNotificationSink(NotificationSink):
    """Logs surfaced items. Stand-in until a delivery channel is wired up."""

    async def notify(self, items: list[Item]) -> None:
        for item in items:
            logger.info(
                "New item",
                item_id=item.id,
                title=item.title,
                author=item.author.name,
                published=item.published.isoformat(),
                link=item.link,
            )


class CollectingNotificationSink(NotificationSink):
    """Keeps every batch it receives; used by tests."""

    def __init__(self):
        self.batches: list[list[Item]] = []

    async def notify(self, items: list[Item]) -> None:
        self.batches.append(list(items))


class CurationService:
    """
    Orchestrates polling cycles.

    Usage:
        service = CurationService(registry, dispatcher, observed_cache, sink)
        report = await service.run_once()
        # or
        await service.start()  # Runs until stop()
    """

    def __init__(
        self,
        registry: SourceRegistry,
        dispatcher: SourceDispatcher,
        observed_cache: ObservedItemCache,
        sink: NotificationSink | None = None,
        poll_interval: float = 3600,
        error_backoff: RetryConfig | None = None,
    ):
        """
        Initialize curation service.

        Args:
            registry: Where the tracked sources come from
            dispatcher: Worker pool over the source processor
            observed_cache: Cache refreshed by every cycle
            sink: Receives surfaced items (logging sink if None)
            poll_interval: Seconds between cycles in start()
            error_backoff: Delays after consecutive failed cycles (5s doubling,
                capped at poll_interval, if None)
        """
        self._registry = registry
        self._dispatcher = dispatcher
        self._observed_cache = observed_cache
        self._sink = sink or LoggingNotificationSink()
        self._poll_interval = poll_interval
        self._error_backoff = error_backoff or RetryConfig(
            initial_backoff=min(5.0, poll_interval),
            max_backoff=poll_interval,
            jitter_factor=0.25,
        )
        self._metrics = get_metrics()

        self._running = False
        self._stop_event = asyncio.Event()
        self._last_report: CycleReport | None = None
        self._cycles = 0

    async def run_once(
        self,
        *,
        ignore_checkpoint: bool = False,
        max_items: int = 0,
        cancel_event: asyncio.Event | None = None,
    ) -> CycleReport:
        """
        Run one cycle over every tracked source.

        Returns:
            CycleReport with per-source results and the surfaced items,
            oldest first
        """
        self._cycles += 1
        with log_context(cycle=self._cycles):
            return await self._run_cycle(
                ignore_checkpoint=ignore_checkpoint,
                max_items=max_items,
                cancel_event=cancel_event,
            )

    async def _run_cycle(
        self,
        *,
        ignore_checkpoint: bool,
        max_items: int,
        cancel_event: asyncio.Event | None,
    ) -> CycleReport:
        start_time = time.monotonic()

        sources = await self._registry.get_sources()
        if not sources:
            logger.info("No sources configured, nothing to check")
            return CycleReport()

        results = await self._dispatcher.dispatch(
            [s.id for s in sources],
            ignore_checkpoint=ignore_checkpoint,
            max_items=max_items,
            cancel_event=cancel_event,
        )

        # A cut-short or all-failed wave leaves the last good refresh time alone
        expected = {s.id for s in sources}
        if expected.issubset(results) and any(r.ok for r in results.values()):
            self._observed_cache.mark_refreshed()
        else:
            logger.warning(
                "Cycle incomplete, observed cache refresh time not advanced",
                expected=len(expected),
                completed=len(results),
                succeeded=sum(1 for r in results.values() if r.ok),
            )
        await self._observed_cache.purge_expired()

        for source_id, result in results.items():
            if not result.ok:
                logger.error(
                    "Source failed this cycle",
                    source_id=source_id,
                    error=str(result.error),
                )

        surfaced = sorted(
            (r.item for r in results.values() if r.item is not None),
            key=lambda item: item.published,
        )

        report = CycleReport(
            results=results,
            surfaced=surfaced,
            elapsed_seconds=time.monotonic() - start_time,
        )

        if surfaced:
            try:
                await self._sink.notify(surfaced)
            except Exception as e:
                logger.error("Notification sink failed", error=str(e), exc_info=True)
        else:
            logger.info("No new items found across all sources")

        self._metrics.record_cycle(
            processed=report.processed,
            errored=report.errored,
            surfaced=len(surfaced),
            latency=report.elapsed_seconds,
        )
        logger.info(
            "Cycle completed",
            processed=report.processed,
            errored=report.errored,
            surfaced=len(surfaced),
            elapsed_seconds=round(report.elapsed_seconds, 2),
        )

        self._last_report = report
        return report

    async def start(
        self,
        *,
        ignore_checkpoint: bool = False,
        max_items: int = 0,
    ) -> None:
        """
        Run cycles every poll_interval seconds until stop() is called.
        """
        self._running = True
        self._stop_event.clear()
        consecutive_failures = 0

        logger.info("Starting curation service", poll_interval=self._poll_interval)

        while self._running:
            delay = self._poll_interval
            try:
                await self.run_once(
                    ignore_checkpoint=ignore_checkpoint,
                    max_items=max_items,
                    cancel_event=self._stop_event,
                )
                consecutive_failures = 0
            except asyncio.CancelledError:
                break
            except Exception as e:
                delay = self._error_backoff.calculate_backoff(consecutive_failures)
                consecutive_failures += 1
                logger.error(
                    "Curation cycle failed",
                    error=str(e),
                    retry_in_seconds=round(delay, 1),
                    exc_info=True,
                )

            if not self._running:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except TimeoutError:
                pass

        self._running = False
        logger.info("Curation service stopped")

    async def stop(self) -> None:
        """Stop the service; an in-flight cycle is cancelled."""
        logger.info("Stopping curation service")
        self._running = False
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        """Check if service is running."""
        return self._running

    async def health_check(self) -> dict[str, Any]:
        """
        Check health of the curation service.

        Returns:
            Dictionary with health status
        """
        last_refreshed = self._observed_cache.last_refreshed_at
        report = self._last_report
        return {
            "running": self._running,
            "cycles_run": self._cycles,
            "concurrency": self._dispatcher.concurrency,
            "observed_items": len(self._observed_cache),
            "last_refreshed_at": last_refreshed.isoformat() if last_refreshed else None,
            # Two missed intervals without a complete refresh
            "stale": self._observed_cache.is_stale(
                timedelta(seconds=2 * self._poll_interval)
            ),
            "last_cycle": {
                "processed": report.processed,
                "errored": report.errored,
                "surfaced": len(report.surfaced),
            }
            if report
            else None,
        }
