"""Feed ingestion - schemas, item ids and feed clients."""

from feed_curator.ingestion.schemas import (
    EPOCH,
    CachedItem,
    CycleReport,
    Feed,
    Item,
    ProcessingResult,
    Source,
)

__all__ = [
    "EPOCH",
    "CachedItem",
    "CycleReport",
    "Feed",
    "Item",
    "ProcessingResult",
    "Source",
]
