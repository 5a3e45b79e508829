"""
Data model for sources, feed items and per-cycle results.

Item is the record that flows through the whole pipeline: the feed client
produces it with primary metadata, enrichment fills the optional secondary
fields in place, and the observed-item cache wraps it in a CachedItem.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

# "Never checked": every real published time compares after this.
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Source(BaseModel):
    """A tracked feed. Its checkpoint lives in the checkpoint store."""

    id: str = Field(..., min_length=1, description="Unique source identifier")
    title: str = Field(default="", description="Display title")
    url: str | None = Field(default=None, description="Human-facing source URL")


class Author(BaseModel):
    """Item author as published in the feed."""

    name: str = ""
    uri: str = ""


class MediaMetadata(BaseModel):
    """Primary media metadata carried by the feed itself."""

    thumbnail_url: str = ""
    description: str = ""
    content_url: str = ""
    views: int | None = Field(default=None, ge=0)


class ItemSummary(BaseModel):
    """Generated summary attached by an external summarization service."""

    text: str
    source_language: str = "en"
    generated_at: datetime = Field(default_factory=utc_now)


class Item(BaseModel):
    """
    One feed entry.

    Primary fields come from the feed. The optional secondary fields are
    filled by enrichment and are the only fields mutated after fetch.
    """

    # Primary metadata
    id: str = Field(
        ...,
        min_length=1,
        description="Globally unique item id",
        examples=["yt:video:dQw4w9WgXcQ"],
    )
    title: str = ""
    published: datetime
    link: str = ""
    author: Author = Field(default_factory=Author)
    media: MediaMetadata = Field(default_factory=MediaMetadata)

    # Secondary metadata (enrichment)
    duration: int | None = Field(default=None, ge=0, description="Seconds")
    tags: list[str] = Field(default_factory=list)
    top_comments: list[str] = Field(default_factory=list)
    auto_subtitles: str | None = Field(
        default=None, description="URL of auto-generated English subtitles"
    )
    summary: ItemSummary | None = None

    @field_validator("published")
    @classmethod
    def published_is_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def has_secondary_metadata(self) -> bool:
        return bool(
            self.duration is not None
            or self.tags
            or self.top_comments
            or self.auto_subtitles
            or self.summary is not None
        )

    def merge_secondary(self, previous: "Item") -> None:
        """
        Fill secondary fields that this item lacks from ``previous``.

        Non-empty values on this item always win.
        """
        if self.duration is None:
            self.duration = previous.duration
        if not self.tags:
            self.tags = list(previous.tags)
        if not self.top_comments:
            self.top_comments = list(previous.top_comments)
        if not self.auto_subtitles:
            self.auto_subtitles = previous.auto_subtitles
        if self.summary is None:
            self.summary = previous.summary


class Feed(BaseModel):
    """A fetched feed: display title plus items in feed order."""

    title: str = ""
    url: str | None = None
    items: list[Item] = Field(default_factory=list)


class CachedItem(BaseModel):
    """An item held by the observed-item cache, with per-item user state."""

    item: Item
    source_id: str
    inserted_at: datetime = Field(default_factory=utc_now)
    watched: bool = False
    to_watch: bool = False


@dataclass(frozen=True)
class ProcessingResult:
    """
    Outcome of one source in one cycle.

    ``item`` is the newest qualifying item (at most one per source per
    cycle); ``error`` is set only when the cycle failed for this source.
    """

    source_id: str
    item: Item | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    """Aggregate outcome of one dispatch over all tracked sources."""

    results: dict[str, ProcessingResult] = field(default_factory=dict)
    surfaced: list[Item] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results.values() if r.ok)

    @property
    def errored(self) -> int:
        return sum(1 for r in self.results.values() if not r.ok)
