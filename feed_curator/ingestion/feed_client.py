"""
Feed clients: fetch a source's feed and map it to Items.

FeedClient is the interface the source processor depends on.
YouTubeFeedClient is the production implementation (Atom over HTTP,
parsed with feedparser); MockFeedClient is a deterministic double.
"""

import calendar
import hashlib
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

import feedparser

from feed_curator.errors import FeedFetchError
from feed_curator.ingestion.http_client import HTTPClient
from feed_curator.ingestion.item_id import VIDEO_ID_PREFIX
from feed_curator.ingestion.schemas import Author, Feed, Item, MediaMetadata
from feed_curator.retry.backoff import RetryConfig
from feed_curator.retry.errors import RetryError

logger = logging.getLogger(__name__)

FEED_URL_TEMPLATE = "https://www.youtube.com/feeds/videos.xml?channel_id={source_id}"


class FeedClient(ABC):
    """Fetches the current feed for a source."""

    @abstractmethod
    async def fetch_feed(self, source_id: str) -> Feed:
        """
        Fetch and parse the feed for ``source_id``.

        Raises:
            FeedFetchError: The feed could not be fetched or parsed
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""


class YouTubeFeedClient(FeedClient):
    """
    Fetches YouTube channel Atom feeds.

    Transient HTTP failures are retried by the HTTP client; whatever
    escapes is wrapped in FeedFetchError so the caller sees one error type.
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        http_client: HTTPClient | None = None,
    ):
        self._http = http_client or HTTPClient(retry_config, timeout=timeout)

    def feed_url(self, source_id: str) -> str:
        return FEED_URL_TEMPLATE.format(source_id=source_id)

    async def fetch_feed(self, source_id: str) -> Feed:
        url = self.feed_url(source_id)
        try:
            response = await self._http.get(url)
        except RetryError as e:
            raise FeedFetchError(source_id, str(e)) from e
        except Exception as e:
            # CancelledError is a BaseException and passes through
            raise FeedFetchError(source_id, f"{type(e).__name__}: {e}") from e

        return parse_feed(response.text, source_id=source_id, url=url)

    async def close(self) -> None:
        await self._http.close()


def parse_feed(text: str, source_id: str, url: str | None = None) -> Feed:
    """
    Parse Atom/RSS text into a Feed.

    Entries without an id or a usable published time are skipped.

    Raises:
        FeedFetchError: The document is not a feed at all
    """
    parsed = feedparser.parse(text)
    if parsed.get("bozo") and not parsed.get("entries") and not parsed.get("feed"):
        raise FeedFetchError(
            source_id, f"could not parse feed: {parsed.get('bozo_exception')}"
        )

    items = []
    for entry in parsed.get("entries", []):
        item = entry_to_item(entry)
        if item is None:
            logger.debug(f"Skipping unusable entry in feed {source_id}")
            continue
        items.append(item)

    feed_meta = parsed.get("feed", {})
    return Feed(
        title=feed_meta.get("title", ""),
        url=feed_meta.get("link") or url,
        items=items,
    )


def entry_to_item(entry: Mapping[str, Any]) -> Item | None:
    """Map one feedparser entry to an Item, or None if it is unusable."""
    item_id = entry.get("id") or ""
    if not item_id and entry.get("yt_videoid"):
        item_id = VIDEO_ID_PREFIX + entry["yt_videoid"]
    if not item_id:
        return None

    published = _parse_published(entry)
    if published is None:
        return None

    author_detail = entry.get("author_detail") or {}
    thumbnails = entry.get("media_thumbnail") or []
    contents = entry.get("media_content") or []
    statistics = entry.get("media_statistics") or {}

    views = None
    if statistics.get("views"):
        try:
            views = int(statistics["views"])
        except (TypeError, ValueError):
            views = None

    return Item(
        id=item_id,
        title=(entry.get("title") or "").strip(),
        published=published,
        link=entry.get("link") or "",
        author=Author(
            name=author_detail.get("name") or entry.get("author") or "",
            uri=author_detail.get("href") or "",
        ),
        media=MediaMetadata(
            thumbnail_url=thumbnails[0].get("url", "") if thumbnails else "",
            description=entry.get("summary") or "",
            content_url=contents[0].get("url", "") if contents else "",
            views=views,
        ),
    )


def _parse_published(entry: Mapping[str, Any]) -> datetime | None:
    """Parse the entry's publish time, falling back to the updated time."""
    for field in ("published", "updated"):
        value = entry.get(field)
        if value:
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                parsed = None
            if parsed is not None:
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=timezone.utc)
                return parsed.astimezone(timezone.utc)

        struct = entry.get(f"{field}_parsed")
        if struct:
            # feedparser normalises *_parsed to UTC
            return datetime.fromtimestamp(calendar.timegm(struct), tz=timezone.utc)
    return None


class MockFeedClient(FeedClient):
    """
    Deterministic feed client for tests and ``--mock`` runs.

    Feeds and errors are keyed by source id; every call is recorded.
    """

    def __init__(
        self,
        feeds: dict[str, Feed] | None = None,
        errors: dict[str, Exception] | None = None,
    ):
        self.feeds = dict(feeds or {})
        self.errors = dict(errors or {})
        self.calls: list[str] = []

    async def fetch_feed(self, source_id: str) -> Feed:
        self.calls.append(source_id)
        if source_id in self.errors:
            raise FeedFetchError(source_id, str(self.errors[source_id]))
        feed = self.feeds.get(source_id)
        if feed is None:
            return Feed(title=source_id)
        # Hand out copies so enrichment never mutates the fixture
        return feed.model_copy(deep=True)


SAMPLE_TITLES = [
    "Weekly roundup #{n}",
    "Live Q&A highlights, part {n}",
    "Build log {n}: wiring it all together",
    "Deep dive {n}: what the numbers say",
    "Short {n}",
]


def sample_feed(
    source_id: str,
    count: int = 3,
    now: datetime | None = None,
    spacing: timedelta = timedelta(hours=6),
) -> Feed:
    """
    Generate a synthetic feed for ``--mock`` runs.

    Items are published ``spacing`` apart ending at ``now``; ids are
    derived from the source id so repeated calls produce the same ids.
    """
    now = now or datetime.now(timezone.utc)
    digest = hashlib.sha256(source_id.encode()).hexdigest()
    items = []
    for n in range(count):
        raw_id = f"{digest[:9]}{n:02d}"
        items.append(
            Item(
                id=VIDEO_ID_PREFIX + raw_id,
                title=random.choice(SAMPLE_TITLES).format(n=n + 1),
                published=now - spacing * n,
                link=f"https://www.youtube.com/watch?v={raw_id}",
                author=Author(name=f"Mock channel {source_id}"),
                media=MediaMetadata(views=random.randint(100, 100_000)),
            )
        )
    return Feed(title=f"Mock channel {source_id}", items=items)
