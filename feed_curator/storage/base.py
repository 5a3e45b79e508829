"""
Storage interfaces used by the curation core.

CheckpointStore holds one monotonic timestamp per source, UserStateStore
persists watched/to-watch flags across restarts, and SourceRegistry lists
the tracked sources. Implementations raise CheckpointReadError,
CheckpointWriteError or StoreError; they never return partial state.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from feed_curator.ingestion.schemas import Source


class CheckpointStore(ABC):
    """Per-source checkpoint persistence."""

    @abstractmethod
    async def get_last_checked(self, source_id: str) -> datetime:
        """
        Return the source's checkpoint, or EPOCH if it was never set.

        Raises:
            CheckpointReadError: The store could not be read
        """
        ...

    @abstractmethod
    async def set_last_checked(self, source_id: str, timestamp: datetime) -> None:
        """
        Persist the source's checkpoint.

        Raises:
            CheckpointWriteError: The store could not be written
        """
        ...


class UserStateStore(ABC):
    """Persistent watched/to-watch flags, keyed by item id."""

    @abstractmethod
    async def is_watched(self, item_id: str) -> bool: ...

    @abstractmethod
    async def set_watched(self, item_id: str) -> None: ...

    @abstractmethod
    async def is_to_watch(self, item_id: str) -> bool: ...

    @abstractmethod
    async def set_to_watch(self, item_id: str) -> None: ...

    @abstractmethod
    async def unset_to_watch(self, item_id: str) -> None: ...


class SourceRegistry(ABC):
    """The set of tracked sources."""

    @abstractmethod
    async def get_sources(self) -> list[Source]: ...

    @abstractmethod
    async def add_source(self, source: Source) -> None: ...

    @abstractmethod
    async def remove_source(self, source_id: str) -> bool:
        """Remove a source. Returns False if it was not tracked."""
        ...
