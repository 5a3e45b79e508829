"""In-memory store for tests, ``--mock`` runs and single-shot checks."""

import asyncio
from datetime import datetime

from feed_curator.errors import CheckpointReadError, CheckpointWriteError
from feed_curator.ingestion.schemas import EPOCH, Source, ensure_utc
from feed_curator.storage.base import CheckpointStore, SourceRegistry, UserStateStore


class InMemoryStore(CheckpointStore, UserStateStore, SourceRegistry):
    """
    Dict-backed implementation of every store interface.

    Failures can be injected per source id to exercise the non-fatal
    checkpoint paths.
    """

    def __init__(
        self,
        sources: list[Source] | None = None,
        checkpoints: dict[str, datetime] | None = None,
        fail_reads: set[str] | None = None,
        fail_writes: set[str] | None = None,
    ):
        self._sources: dict[str, Source] = {s.id: s for s in sources or []}
        self._checkpoints: dict[str, datetime] = {
            k: ensure_utc(v) for k, v in (checkpoints or {}).items()
        }
        self._watched: set[str] = set()
        self._to_watch: set[str] = set()
        self.fail_reads = set(fail_reads or ())
        self.fail_writes = set(fail_writes or ())
        self.writes: list[tuple[str, datetime]] = []
        self._lock = asyncio.Lock()

    # CheckpointStore

    async def get_last_checked(self, source_id: str) -> datetime:
        if source_id in self.fail_reads:
            raise CheckpointReadError(f"injected read failure for {source_id}")
        return self._checkpoints.get(source_id, EPOCH)

    async def set_last_checked(self, source_id: str, timestamp: datetime) -> None:
        if source_id in self.fail_writes:
            raise CheckpointWriteError(f"injected write failure for {source_id}")
        async with self._lock:
            self._checkpoints[source_id] = ensure_utc(timestamp)
            self.writes.append((source_id, ensure_utc(timestamp)))

    def checkpoint(self, source_id: str) -> datetime:
        """Synchronous peek, for assertions."""
        return self._checkpoints.get(source_id, EPOCH)

    # UserStateStore

    async def is_watched(self, item_id: str) -> bool:
        return item_id in self._watched

    async def set_watched(self, item_id: str) -> None:
        self._watched.add(item_id)

    async def is_to_watch(self, item_id: str) -> bool:
        return item_id in self._to_watch

    async def set_to_watch(self, item_id: str) -> None:
        self._to_watch.add(item_id)

    async def unset_to_watch(self, item_id: str) -> None:
        self._to_watch.discard(item_id)

    # SourceRegistry

    async def get_sources(self) -> list[Source]:
        return list(self._sources.values())

    async def add_source(self, source: Source) -> None:
        self._sources[source.id] = source

    async def remove_source(self, source_id: str) -> bool:
        return self._sources.pop(source_id, None) is not None
