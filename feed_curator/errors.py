"""
Error taxonomy for the curation pipeline.

Per-source errors (fetch, checkpoint, enrichment) are isolated to the
source that raised them. Only cancellation aborts a whole dispatch, and
that travels as asyncio.CancelledError, never as one of these.
"""


class FeedCuratorError(Exception):
    """Base exception for feed-curator errors."""


class FeedFetchError(FeedCuratorError):
    """Fetching or parsing a source's feed failed. Fatal to that source's cycle."""

    def __init__(self, source_id: str, message: str):
        super().__init__(f"error fetching feed for {source_id}: {message}")
        self.source_id = source_id


class StoreError(FeedCuratorError):
    """A persistent store operation failed."""


class CheckpointReadError(StoreError):
    """Reading a checkpoint failed. Treated as never checked."""


class CheckpointWriteError(StoreError):
    """Persisting a checkpoint failed. Logged only."""


class EnrichmentError(FeedCuratorError):
    """Secondary metadata could not be fetched for an item. Non-fatal."""

    def __init__(self, item_id: str, message: str):
        super().__init__(f"enrichment failed for {item_id}: {message}")
        self.item_id = item_id


class SourceProcessingError(FeedCuratorError):
    """Unexpected failure while processing a source, captured by the dispatcher."""

    def __init__(self, source_id: str, cause: BaseException):
        super().__init__(f"unexpected error processing {source_id}: {cause}")
        self.source_id = source_id
        self.cause = cause
