"""
Source processor - one source, one cycle.

Fetches the source's feed, compares every item against the source's
checkpoint, refreshes the observed-item cache, enriches qualifying items
and advances the checkpoint. Steps run sequentially; the only fatal
failure is the feed fetch itself.
"""

from datetime import datetime

import structlog

from feed_curator.cache.observed_items import ObservedItemCache
from feed_curator.enrichment.service import Enricher
from feed_curator.errors import CheckpointReadError, CheckpointWriteError, FeedFetchError
from feed_curator.ingestion.feed_client import FeedClient
from feed_curator.ingestion.schemas import EPOCH, Item, ProcessingResult
from feed_curator.observability.metrics import get_metrics
from feed_curator.storage.base import CheckpointStore

logger = structlog.get_logger(__name__)


class SourceProcessor:
    """
    Per-source orchestration.

    The processor holds no cross-source state: the caches it writes to do
    their own locking, and checkpoint keys are per source, so any number of
    process() calls for different sources may run concurrently.

    Usage:
        processor = SourceProcessor(feed_client, store, observed_cache, enricher)
        result = await processor.process("UC...", max_items=5)
    """

    def __init__(
        self,
        feed_client: FeedClient,
        checkpoints: CheckpointStore,
        observed_cache: ObservedItemCache,
        enricher: Enricher,
    ):
        self._feed_client = feed_client
        self._checkpoints = checkpoints
        self._observed_cache = observed_cache
        self._enricher = enricher

    async def process(
        self,
        source_id: str,
        *,
        ignore_checkpoint: bool = False,
        max_items: int = 0,
    ) -> ProcessingResult:
        """
        Run one cycle for a source.

        Args:
            source_id: Source to process
            ignore_checkpoint: Treat the source as never checked for this
                cycle and leave its stored checkpoint untouched
            max_items: Stop after this many qualifying items (0 = no limit)

        Returns:
            ProcessingResult with the newest qualifying item (or None), or
            with the fetch error
        """
        log = logger.bind(source_id=source_id)

        try:
            feed = await self._feed_client.fetch_feed(source_id)
        except FeedFetchError as e:
            log.error("Feed fetch failed", error=str(e))
            get_metrics().record_source_error(type(e).__name__)
            return ProcessingResult(source_id=source_id, error=e)

        stored_checkpoint = await self._read_checkpoint(source_id)
        baseline = stored_checkpoint
        if ignore_checkpoint:
            log.info("Ignoring stored checkpoint for this cycle")
            baseline = EPOCH

        newest: Item | None = None
        latest_published = baseline
        qualifying = 0

        for item in feed.items:
            await self._observed_cache.upsert(source_id, item)

            if item.published <= baseline:
                continue

            await self._enrich(source_id, item)

            if newest is None or item.published > newest.published:
                newest = item
            if item.published > latest_published:
                latest_published = item.published

            qualifying += 1
            if max_items > 0 and qualifying >= max_items:
                log.info("Reached maximum items limit", max_items=max_items)
                break

        if newest is not None:
            log.info(
                "Found new item",
                item_id=newest.id,
                title=newest.title,
                qualifying=qualifying,
            )

        if ignore_checkpoint:
            log.info("Skipping checkpoint update (checkpoint ignored)")
        elif latest_published != stored_checkpoint:
            await self._write_checkpoint(source_id, latest_published)
        else:
            log.debug(
                "No new items since last check",
                checkpoint=stored_checkpoint.isoformat(),
            )

        return ProcessingResult(source_id=source_id, item=newest)

    async def _read_checkpoint(self, source_id: str) -> datetime:
        try:
            return await self._checkpoints.get_last_checked(source_id)
        except CheckpointReadError as e:
            logger.warning(
                "Checkpoint read failed, treating source as never checked",
                source_id=source_id,
                error=str(e),
            )
            return EPOCH

    async def _write_checkpoint(self, source_id: str, timestamp: datetime) -> None:
        try:
            await self._checkpoints.set_last_checked(source_id, timestamp)
        except CheckpointWriteError as e:
            # Items surfaced this cycle may surface again after a restart
            logger.error(
                "Checkpoint write failed",
                source_id=source_id,
                checkpoint=timestamp.isoformat(),
                error=str(e),
            )
            return
        logger.info(
            "Updated checkpoint",
            source_id=source_id,
            checkpoint=timestamp.isoformat(),
        )

    async def _enrich(self, source_id: str, item: Item) -> None:
        """Enrich in place, best-effort; the cache receives the enriched copy."""
        try:
            await self._enricher.enrich(item)
        except Exception as e:
            logger.warning(
                "Enrichment failed, continuing with feed data only",
                item_id=item.id,
                error=str(e),
            )
            return
        await self._observed_cache.upsert(source_id, item)
