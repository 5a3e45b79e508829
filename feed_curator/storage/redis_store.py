"""
Redis-backed persistence for checkpoints, user state and tracked sources.

Key layout (``prefix`` defaults to "feed_curator"):
    {prefix}:checkpoint:{source_id}  -> ISO-8601 UTC timestamp (string)
    {prefix}:watched                 -> set of item ids
    {prefix}:to_watch                -> set of item ids
    {prefix}:sources                 -> hash of source_id -> Source JSON

Checkpoint keys are per source, so concurrent writes for different
sources never touch the same key.
"""

import logging
from datetime import datetime
from types import TracebackType

import redis.asyncio as redis

from feed_curator.config.settings import get_settings
from feed_curator.errors import CheckpointReadError, CheckpointWriteError, StoreError
from feed_curator.ingestion.schemas import EPOCH, Source, ensure_utc
from feed_curator.storage.base import CheckpointStore, SourceRegistry, UserStateStore

logger = logging.getLogger(__name__)


class RedisStore(CheckpointStore, UserStateStore, SourceRegistry):
    """
    Redis implementation of every store interface.

    Usage:
        async with RedisStore() as store:
            ts = await store.get_last_checked("UC...")
    """

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str | None = None,
        client: redis.Redis | None = None,
    ):
        settings = get_settings()

        self._redis_url = redis_url or str(settings.redis_url)
        self._prefix = key_prefix or settings.redis_key_prefix
        self._redis: redis.Redis | None = client

    async def connect(self) -> None:
        """Establish the Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info(f"Connected to Redis, prefix={self._prefix}")

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    async def __aenter__(self) -> "RedisStore":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    def _key(self, *parts: str) -> str:
        return ":".join((self._prefix, *parts))

    # CheckpointStore

    async def get_last_checked(self, source_id: str) -> datetime:
        try:
            raw = await self.redis.get(self._key("checkpoint", source_id))
        except redis.RedisError as e:
            raise CheckpointReadError(
                f"failed to read checkpoint for {source_id}: {e}"
            ) from e

        if raw is None:
            return EPOCH
        try:
            return ensure_utc(datetime.fromisoformat(raw))
        except ValueError as e:
            raise CheckpointReadError(
                f"corrupt checkpoint for {source_id}: {raw!r}"
            ) from e

    async def set_last_checked(self, source_id: str, timestamp: datetime) -> None:
        try:
            await self.redis.set(
                self._key("checkpoint", source_id),
                ensure_utc(timestamp).isoformat(),
            )
        except redis.RedisError as e:
            raise CheckpointWriteError(
                f"failed to write checkpoint for {source_id}: {e}"
            ) from e

    # UserStateStore

    async def _is_member(self, name: str, item_id: str) -> bool:
        try:
            return bool(await self.redis.sismember(self._key(name), item_id))
        except redis.RedisError as e:
            raise StoreError(f"failed to read {name} state for {item_id}: {e}") from e

    async def _update_set(self, name: str, item_id: str, add: bool) -> None:
        try:
            if add:
                await self.redis.sadd(self._key(name), item_id)
            else:
                await self.redis.srem(self._key(name), item_id)
        except redis.RedisError as e:
            raise StoreError(f"failed to write {name} state for {item_id}: {e}") from e

    async def is_watched(self, item_id: str) -> bool:
        return await self._is_member("watched", item_id)

    async def set_watched(self, item_id: str) -> None:
        await self._update_set("watched", item_id, add=True)

    async def is_to_watch(self, item_id: str) -> bool:
        return await self._is_member("to_watch", item_id)

    async def set_to_watch(self, item_id: str) -> None:
        await self._update_set("to_watch", item_id, add=True)

    async def unset_to_watch(self, item_id: str) -> None:
        await self._update_set("to_watch", item_id, add=False)

    # SourceRegistry

    async def get_sources(self) -> list[Source]:
        try:
            raw = await self.redis.hgetall(self._key("sources"))
        except redis.RedisError as e:
            raise StoreError(f"failed to list sources: {e}") from e

        sources = []
        for source_id, payload in raw.items():
            try:
                sources.append(Source.model_validate_json(payload))
            except ValueError as e:
                logger.error(f"Skipping corrupt source record {source_id}: {e}")
        return sources

    async def add_source(self, source: Source) -> None:
        try:
            await self.redis.hset(
                self._key("sources"), source.id, source.model_dump_json()
            )
        except redis.RedisError as e:
            raise StoreError(f"failed to add source {source.id}: {e}") from e

    async def remove_source(self, source_id: str) -> bool:
        try:
            removed = await self.redis.hdel(self._key("sources"), source_id)
        except redis.RedisError as e:
            raise StoreError(f"failed to remove source {source_id}: {e}") from e
        return bool(removed)
