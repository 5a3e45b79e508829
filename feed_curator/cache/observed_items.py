"""
Observed-item cache: recently seen feed items plus per-item user state.

Every item from every fetch lands here, new or not, so recent items stay
browsable. Records expire lazily: reads skip anything older than the TTL,
and purge_expired() reclaims the memory.

Mutations are serialized by an asyncio.Lock. Reads never await, so on
the event loop they observe a consistent snapshot without taking it.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from feed_curator.errors import StoreError
from feed_curator.ingestion.schemas import CachedItem, Item, utc_now
from feed_curator.observability.metrics import get_metrics
from feed_curator.storage.base import UserStateStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)


class ObservedItemCache:
    """
    Process-local store of CachedItem records keyed by item id.

    Upserts are state-preserving: re-inserting an id replaces the item's
    metadata and refreshes its insertion time, but keeps watched/to_watch.
    Secondary metadata already on the stored record survives a refresh
    that arrives without it (a plain re-fetch is never enriched).

    Args:
        ttl: Age beyond which records are excluded from reads
        user_state: Optional persistent store; seeds flags for ids not yet
            in memory and receives every flag change
        clock: Source of "now" (injectable for tests)
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        user_state: UserStateStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._ttl = ttl
        self._user_state = user_state
        self._clock = clock
        self._records: dict[str, CachedItem] = {}
        self._lock = asyncio.Lock()
        self._last_refreshed_at: datetime | None = None

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def __len__(self) -> int:
        return len(self._records)

    async def _persisted_state(self, item_id: str) -> tuple[bool, bool]:
        if self._user_state is None:
            return False, False
        try:
            return (
                await self._user_state.is_watched(item_id),
                await self._user_state.is_to_watch(item_id),
            )
        except StoreError as e:
            logger.warning(f"Could not load user state for {item_id}: {e}")
            return False, False

    async def upsert(self, source_id: str, item: Item) -> CachedItem:
        """
        Insert or refresh an item.

        Returns:
            A copy of the stored record
        """
        seeded = (False, False)
        if item.id not in self._records:
            seeded = await self._persisted_state(item.id)

        stored = item.model_copy(deep=True)
        async with self._lock:
            existing = self._records.get(item.id)
            if existing is not None:
                stored.merge_secondary(existing.item)
                watched, to_watch = existing.watched, existing.to_watch
            else:
                watched, to_watch = seeded

            record = CachedItem(
                item=stored,
                source_id=source_id,
                inserted_at=self._clock(),
                watched=watched,
                to_watch=to_watch,
            )
            self._records[item.id] = record
            return record.model_copy(deep=True)

    def _is_live(self, record: CachedItem, now: datetime) -> bool:
        return now - record.inserted_at <= self._ttl

    def get_all(self) -> list[CachedItem]:
        """Return copies of all live records, in no particular order."""
        now = self._clock()
        return [
            record.model_copy(deep=True)
            for record in self._records.values()
            if self._is_live(record, now)
        ]

    def get(self, item_id: str) -> CachedItem | None:
        """Return a copy of one live record, or None."""
        record = self._records.get(item_id)
        if record is None or not self._is_live(record, self._clock()):
            return None
        return record.model_copy(deep=True)

    async def _set_flag(self, item_id: str, **flags: bool) -> bool:
        async with self._lock:
            record = self._records.get(item_id)
            if record is not None:
                for name, value in flags.items():
                    setattr(record, name, value)
        return record is not None

    async def set_watched(self, item_id: str) -> None:
        """Mark an item watched. Unknown ids are a no-op in memory."""
        if not await self._set_flag(item_id, watched=True):
            logger.debug(f"set_watched on unknown item {item_id}")
        if self._user_state is not None:
            await self._user_state.set_watched(item_id)

    async def set_to_watch(self, item_id: str) -> None:
        """Add an item to the to-watch list. Unknown ids are a no-op in memory."""
        if not await self._set_flag(item_id, to_watch=True):
            logger.debug(f"set_to_watch on unknown item {item_id}")
        if self._user_state is not None:
            await self._user_state.set_to_watch(item_id)

    async def unset_to_watch(self, item_id: str) -> None:
        """Remove an item from the to-watch list. Unknown ids are a no-op in memory."""
        if not await self._set_flag(item_id, to_watch=False):
            logger.debug(f"unset_to_watch on unknown item {item_id}")
        if self._user_state is not None:
            await self._user_state.unset_to_watch(item_id)

    @property
    def last_refreshed_at(self) -> datetime | None:
        """When the last complete upsert wave finished, or None if never."""
        return self._last_refreshed_at

    def mark_refreshed(self, at: datetime | None = None) -> None:
        self._last_refreshed_at = at or self._clock()

    def is_stale(self, max_age: timedelta) -> bool:
        """True if the cache was never refreshed or its last refresh is older than max_age."""
        if self._last_refreshed_at is None:
            return True
        return self._clock() - self._last_refreshed_at > max_age

    async def purge_expired(self) -> int:
        """Physically drop expired records. Returns how many were removed."""
        async with self._lock:
            now = self._clock()
            expired = [
                item_id
                for item_id, record in self._records.items()
                if not self._is_live(record, now)
            ]
            for item_id in expired:
                del self._records[item_id]
            size = len(self._records)

        get_metrics().set_observed_cache_size(size)
        if expired:
            logger.info(f"Purged {len(expired)} expired items from observed cache")
        return len(expired)
