"""
Concurrency dispatcher - fans the source processor out over all sources.

A fixed work list is drained by a bounded set of worker tasks. Each worker
owns the result it produces and writes it under its own source id, so the
collector needs no locking and no shared counters.
"""

import asyncio
from collections.abc import Iterable

import structlog

from feed_curator.errors import SourceProcessingError
from feed_curator.ingestion.schemas import ProcessingResult
from feed_curator.observability.logging import log_context
from feed_curator.observability.metrics import get_metrics
from feed_curator.services.source_processor import SourceProcessor

logger = structlog.get_logger(__name__)

# Upper bound on parallel feed fetches, whatever the configuration says
MAX_CONCURRENCY = 10
DEFAULT_CONCURRENCY = 5


class SourceDispatcher:
    """
    Bounded worker pool over SourceProcessor.

    Failures are isolated per source: an unexpected exception in one
    source becomes that source's error result and never reaches the
    others. Only cancellation stops the dispatch as a whole.

    Usage:
        dispatcher = SourceDispatcher(processor, concurrency=5)
        results = await dispatcher.dispatch(["UC1", "UC2"])
    """

    def __init__(
        self,
        processor: SourceProcessor,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_concurrency: int = MAX_CONCURRENCY,
    ):
        self._processor = processor
        self._max_concurrency = max_concurrency
        self._concurrency = self._clamp(concurrency)

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def _clamp(self, requested: int) -> int:
        if requested > self._max_concurrency:
            logger.warning(
                "Requested concurrency exceeds maximum, limiting",
                requested=requested,
                maximum=self._max_concurrency,
            )
            return self._max_concurrency
        return max(1, requested)

    async def dispatch(
        self,
        source_ids: Iterable[str],
        *,
        ignore_checkpoint: bool = False,
        max_items: int = 0,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, ProcessingResult]:
        """
        Process every source with at most ``concurrency`` running at once.

        Args:
            source_ids: Sources to process (duplicates are processed once)
            ignore_checkpoint: Forwarded to every process() call
            max_items: Forwarded to every process() call
            cancel_event: When set, no further sources are started and
                in-flight ones are cancelled; results gathered so far are
                returned

        Returns:
            Mapping of source id to its result. Complete unless cancelled.
        """
        work = list(dict.fromkeys(source_ids))
        if not work:
            return {}

        worker_count = min(self._concurrency, len(work))
        logger.info(
            "Processing sources",
            sources=len(work),
            workers=worker_count,
        )

        queue: asyncio.Queue[str] = asyncio.Queue()
        for source_id in work:
            queue.put_nowait(source_id)

        results: dict[str, ProcessingResult] = {}
        workers = [
            asyncio.create_task(
                self._worker(
                    worker_id,
                    queue,
                    results,
                    ignore_checkpoint=ignore_checkpoint,
                    max_items=max_items,
                    cancel_event=cancel_event,
                ),
                name=f"source_worker_{worker_id}",
            )
            for worker_id in range(worker_count)
        ]

        watcher = None
        if cancel_event is not None:
            watcher = asyncio.create_task(
                self._cancel_on_event(cancel_event, workers),
                name="dispatch_cancel_watcher",
            )

        try:
            await asyncio.gather(*workers, return_exceptions=True)
        except asyncio.CancelledError:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        finally:
            if watcher is not None:
                watcher.cancel()

        if len(results) < len(work):
            logger.warning(
                "Dispatch cancelled before all sources finished",
                completed=len(results),
                sources=len(work),
            )
        else:
            logger.info("Completed processing sources", sources=len(work))
        return results

    async def _worker(
        self,
        worker_id: int,
        queue: asyncio.Queue[str],
        results: dict[str, ProcessingResult],
        *,
        ignore_checkpoint: bool,
        max_items: int,
        cancel_event: asyncio.Event | None,
    ) -> None:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return
            try:
                source_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            with log_context(source_id=source_id):
                results[source_id] = await self._process_one(
                    source_id,
                    ignore_checkpoint=ignore_checkpoint,
                    max_items=max_items,
                )
            logger.debug("Worker processed source", worker=worker_id, source_id=source_id)

    async def _process_one(
        self,
        source_id: str,
        *,
        ignore_checkpoint: bool,
        max_items: int,
    ) -> ProcessingResult:
        try:
            return await self._processor.process(
                source_id,
                ignore_checkpoint=ignore_checkpoint,
                max_items=max_items,
            )
        except Exception as e:
            logger.error(
                "Unexpected error processing source",
                source_id=source_id,
                error=str(e),
                exc_info=True,
            )
            get_metrics().record_source_error(type(e).__name__)
            return ProcessingResult(
                source_id=source_id,
                error=SourceProcessingError(source_id, e),
            )

    @staticmethod
    async def _cancel_on_event(
        cancel_event: asyncio.Event,
        workers: list[asyncio.Task],
    ) -> None:
        await cancel_event.wait()
        logger.info("Cancellation requested, aborting in-flight sources")
        for task in workers:
            task.cancel()
