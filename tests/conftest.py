"""Pytest fixtures for feed-curator tests."""

from datetime import datetime, timedelta, timezone

import pytest

from feed_curator.cache.observed_items import ObservedItemCache
from feed_curator.config.settings import Settings
from feed_curator.enrichment.service import MockEnricher
from feed_curator.ingestion.feed_client import MockFeedClient
from feed_curator.ingestion.schemas import Author, Feed, Item, Source
from feed_curator.services.source_processor import SourceProcessor
from feed_curator.storage.memory import InMemoryStore

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for TTL and staleness tests."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def make_item(
    n: int,
    published: datetime | None = None,
    title: str | None = None,
) -> Item:
    """Build an item with a valid 11-character raw id derived from ``n``."""
    raw = f"vid{n:08d}"
    return Item(
        id=f"yt:video:{raw}",
        title=title or f"Video {n}",
        published=published or BASE_TIME + timedelta(hours=n),
        link=f"https://www.youtube.com/watch?v={raw}",
        author=Author(name="Test Channel"),
    )


def make_feed(*items: Item, title: str = "Test Channel") -> Feed:
    return Feed(title=title, items=list(items))


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_url="redis://localhost:6379/1",  # Use DB 1 for tests
        enrichment_cache_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(sources=[Source(id="UC1", title="One")])


@pytest.fixture
def observed_cache(store: InMemoryStore, clock: FakeClock) -> ObservedItemCache:
    return ObservedItemCache(ttl=timedelta(hours=24), user_state=store, clock=clock)


@pytest.fixture
def feed_client() -> MockFeedClient:
    return MockFeedClient()


@pytest.fixture
def enricher() -> MockEnricher:
    return MockEnricher()


@pytest.fixture
def processor(
    feed_client: MockFeedClient,
    store: InMemoryStore,
    observed_cache: ObservedItemCache,
    enricher: MockEnricher,
) -> SourceProcessor:
    return SourceProcessor(feed_client, store, observed_cache, enricher)
