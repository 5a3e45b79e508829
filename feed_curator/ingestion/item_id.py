"""
Item id handling for YouTube feed entries.

Feeds publish ids as ``yt:video:<raw>``; yt-dlp and watch URLs need the
11-character raw id.
"""

import re

from feed_curator.retry.errors import TerminalError

VIDEO_ID_PREFIX = "yt:video:"
RAW_VIDEO_ID_LENGTH = 11
_RAW_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_CHANNEL_ID_RE = re.compile(r"^UC[A-Za-z0-9_-]{22}$")


class InvalidItemIdError(TerminalError, ValueError):
    """An item id is not in a recognised format. Never retried."""


def validate_raw_id(raw: str) -> str:
    """Validate a raw 11-character id, returning it unchanged."""
    if len(raw) != RAW_VIDEO_ID_LENGTH:
        raise InvalidItemIdError(
            f"invalid raw video ID length: expected {RAW_VIDEO_ID_LENGTH} "
            f"characters, got {len(raw)}"
        )
    if not _RAW_VIDEO_ID_RE.match(raw):
        raise InvalidItemIdError(f"invalid raw video ID format: {raw!r}")
    return raw


def to_raw_id(item_id: str) -> str:
    """
    Convert a full item id (``yt:video:XXXXXXXXXXX``) to its raw form.

    Raises:
        InvalidItemIdError: Missing prefix or malformed raw id
    """
    if not item_id.startswith(VIDEO_ID_PREFIX):
        raise InvalidItemIdError(
            f"invalid full video ID format: missing prefix {VIDEO_ID_PREFIX}"
        )
    return validate_raw_id(item_id[len(VIDEO_ID_PREFIX):])


def to_full_id(raw: str) -> str:
    """Build the full feed id from a raw id."""
    return VIDEO_ID_PREFIX + validate_raw_id(raw)


def watch_url(item_id: str) -> str:
    """Watch URL for a full item id."""
    return f"https://www.youtube.com/watch?v={to_raw_id(item_id)}"


def validate_channel_id(channel_id: str) -> str:
    """Validate a channel id (``UC`` followed by 22 id characters)."""
    if not _CHANNEL_ID_RE.match(channel_id):
        raise InvalidItemIdError(f"invalid channel ID format: {channel_id!r}")
    return channel_id
