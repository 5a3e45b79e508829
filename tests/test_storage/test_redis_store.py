"""Tests for the Redis store with a mocked client."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from feed_curator.errors import CheckpointReadError, CheckpointWriteError, StoreError
from feed_curator.ingestion.schemas import EPOCH, Source
from feed_curator.storage.redis_store import RedisStore


@pytest.fixture
def client() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def store(client) -> RedisStore:
    return RedisStore(redis_url="redis://localhost:6379/1", key_prefix="test", client=client)


class TestCheckpoints:
    """Tests for checkpoint keys."""

    @pytest.mark.asyncio
    async def test_missing_checkpoint_is_epoch(self, store, client):
        client.get.return_value = None

        assert await store.get_last_checked("UC1") == EPOCH
        client.get.assert_awaited_once_with("test:checkpoint:UC1")

    @pytest.mark.asyncio
    async def test_read_iso_checkpoint(self, store, client):
        client.get.return_value = "2026-03-01T12:00:00+00:00"

        ts = await store.get_last_checked("UC1")

        assert ts == datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_write_checkpoint(self, store, client):
        await store.set_last_checked("UC1", datetime(2026, 3, 1, 12, tzinfo=timezone.utc))

        client.set.assert_awaited_once_with(
            "test:checkpoint:UC1", "2026-03-01T12:00:00+00:00"
        )

    @pytest.mark.asyncio
    async def test_corrupt_checkpoint(self, store, client):
        client.get.return_value = "yesterday"

        with pytest.raises(CheckpointReadError, match="corrupt"):
            await store.get_last_checked("UC1")

    @pytest.mark.asyncio
    async def test_redis_errors_wrapped(self, store, client):
        client.get.side_effect = redis.ConnectionError("down")
        client.set.side_effect = redis.ConnectionError("down")

        with pytest.raises(CheckpointReadError):
            await store.get_last_checked("UC1")
        with pytest.raises(CheckpointWriteError):
            await store.set_last_checked("UC1", datetime.now(timezone.utc))


class TestUserState:
    """Tests for watched/to-watch sets."""

    @pytest.mark.asyncio
    async def test_set_membership(self, store, client):
        client.sismember.return_value = 1

        await store.set_watched("yt:video:a")
        await store.unset_to_watch("yt:video:a")

        assert await store.is_watched("yt:video:a") is True
        client.sadd.assert_awaited_once_with("test:watched", "yt:video:a")
        client.srem.assert_awaited_once_with("test:to_watch", "yt:video:a")

    @pytest.mark.asyncio
    async def test_errors_wrapped(self, store, client):
        client.sismember.side_effect = redis.ConnectionError("down")

        with pytest.raises(StoreError):
            await store.is_to_watch("yt:video:a")


class TestSources:
    """Tests for the source registry hash."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, store, client):
        source = Source(id="UC1", title="One")
        await store.add_source(source)

        key, field, payload = client.hset.await_args.args
        assert (key, field) == ("test:sources", "UC1")

        client.hgetall.return_value = {"UC1": payload, "UC2": "{broken"}
        sources = await store.get_sources()

        assert sources == [source]

    @pytest.mark.asyncio
    async def test_remove(self, store, client):
        client.hdel.return_value = 0

        assert await store.remove_source("UC1") is False
        client.hdel.assert_awaited_once_with("test:sources", "UC1")


class TestConnection:
    """Tests for connection lifecycle."""

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        store = RedisStore(redis_url="redis://localhost:6379/1")

        with pytest.raises(RuntimeError, match="Not connected"):
            await store.get_last_checked("UC1")

    @pytest.mark.asyncio
    async def test_close(self, store, client):
        await store.close()

        client.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError):
            store.redis
