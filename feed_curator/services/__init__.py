"""Service orchestration - per-source processing, dispatch and polling cycles."""

from feed_curator.services.curation_service import (
    CollectingNotificationSink,
    CurationService,
    LoggingNotificationSink,
    NotificationSink,
)
from feed_curator.services.dispatcher import SourceDispatcher
from feed_curator.services.source_processor import SourceProcessor

__all__ = [
    "CollectingNotificationSink",
    "CurationService",
    "LoggingNotificationSink",
    "NotificationSink",
    "SourceDispatcher",
    "SourceProcessor",
]
