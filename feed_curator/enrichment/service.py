"""
Enrichment: best-effort secondary metadata for new items.

YtDlpEnricher shells out to yt-dlp for duration, tags, comments and the
auto-subtitle URL. Results are memoized in the EnrichmentCache; misses go
through the shared backoff executor, with each attempt bounded by its own
timeout. Timeouts and network-looking failures are retried; bad ids,
other command failures and malformed output are not.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from feed_curator.cache.enrichment_cache import EnrichmentCache
from feed_curator.errors import EnrichmentError
from feed_curator.ingestion.item_id import InvalidItemIdError, to_raw_id, watch_url
from feed_curator.ingestion.schemas import Item
from feed_curator.observability.metrics import get_metrics
from feed_curator.retry.backoff import RetryConfig, retry_with_backoff
from feed_curator.retry.errors import RetryableError

logger = logging.getLogger(__name__)

MAX_TOP_COMMENTS = 5
SUBTITLE_LANGUAGE = "en"

# Substrings of yt-dlp stderr that indicate a transient failure
TRANSIENT_MARKERS = ("timeout", "timed out", "connection", "network", "temporary failure")

CommandRunner = Callable[[Sequence[str], float], Awaitable[bytes]]


class CommandError(Exception):
    """A command exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str):
        detail = stderr.strip() or "no stderr"
        super().__init__(f"{args[0]} exited with status {returncode}: {detail}")
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeoutError(RetryableError):
    """A command did not finish within its per-attempt timeout."""


async def run_command(args: Sequence[str], timeout: float) -> bytes:
    """
    Run a command and return its stdout.

    The process is killed if it outlives ``timeout`` or the caller is
    cancelled.

    Raises:
        CommandTimeoutError: The timeout elapsed
        CommandError: Non-zero exit status
        FileNotFoundError: The binary does not exist
    """
    logger.debug(f"Executing command: {' '.join(args)}")
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except (TimeoutError, asyncio.CancelledError) as e:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        if isinstance(e, asyncio.CancelledError):
            raise
        raise CommandTimeoutError(
            f"{args[0]} timed out after {timeout}s"
        ) from e

    if proc.returncode != 0:
        raise CommandError(args, proc.returncode, stderr.decode("utf-8", "replace"))
    return stdout


def is_retryable_enrichment_error(exc: BaseException) -> bool:
    """Timeouts and network-looking command failures are worth retrying."""
    if isinstance(exc, RetryableError):
        return True
    if isinstance(exc, CommandError):
        stderr = exc.stderr.lower()
        return any(marker in stderr for marker in TRANSIENT_MARKERS)
    return False


class MalformedPayloadError(ValueError):
    """A yt-dlp payload is valid JSON but not shaped the way yt-dlp writes it."""


def _expect(value: Any, kind: type, field: str) -> Any:
    if value is not None and not isinstance(value, kind):
        raise MalformedPayloadError(
            f"{field}: expected {kind.__name__}, got {type(value).__name__}"
        )
    return value


def extract_secondary(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Read the secondary fields out of a yt-dlp JSON payload.

    Absent fields are simply left out of the result.

    Raises:
        MalformedPayloadError: A field is present with the wrong type
    """
    fields: dict[str, Any] = {}

    duration = payload.get("duration")
    if isinstance(duration, (int, float)) and not isinstance(duration, bool) and duration > 0:
        fields["duration"] = int(duration)

    tags = _expect(payload.get("tags"), list, "tags")
    if tags:
        fields["tags"] = [str(t) for t in tags]

    comments = _expect(payload.get("comments"), list, "comments") or []
    top = [
        str(c.get("text", ""))
        for c in comments[:MAX_TOP_COMMENTS]
        if isinstance(c, dict)
    ]
    if top:
        fields["top_comments"] = top

    auto_captions = _expect(payload.get("automatic_captions"), dict, "automatic_captions") or {}
    captions = _expect(
        auto_captions.get(SUBTITLE_LANGUAGE), list, f"automatic_captions.{SUBTITLE_LANGUAGE}"
    ) or []
    if captions and isinstance(captions[0], dict) and isinstance(captions[0].get("url"), str):
        fields["auto_subtitles"] = captions[0]["url"]

    return fields


def apply_payload(item: Item, payload: dict[str, Any]) -> None:
    """
    Merge a yt-dlp JSON payload into the item's secondary fields.

    Every field is validated before any is assigned, so a malformed payload
    leaves the item exactly as it was.
    """
    for name, value in extract_secondary(payload).items():
        setattr(item, name, value)


class Enricher(ABC):
    """Fills an item's secondary metadata in place."""

    @abstractmethod
    async def enrich(self, item: Item) -> None:
        """
        Enrich ``item`` in place.

        Raises:
            EnrichmentError: Nothing could be fetched; the item keeps only
                its primary metadata
        """
        ...


class YtDlpEnricher(Enricher):
    """
    yt-dlp backed enricher with a read-through file cache.

    Args:
        cache: Payload cache (may be disabled)
        retry_config: Retry tuning for yt-dlp invocations
        timeout: Per-attempt timeout in seconds
        binary: yt-dlp executable
        runner: Command runner (injectable for tests)
    """

    def __init__(
        self,
        cache: EnrichmentCache,
        retry_config: RetryConfig | None = None,
        timeout: float = 60.0,
        binary: str = "yt-dlp",
        runner: CommandRunner | None = None,
    ):
        self._cache = cache
        self._retry_config = retry_config or RetryConfig(max_retries=2)
        self._timeout = timeout
        self._binary = binary
        self._runner = runner or run_command

    def _command(self, item_id: str) -> list[str]:
        return [
            self._binary,
            "--skip-download",
            "--dump-json",
            "--write-auto-subs",
            "--sub-langs",
            SUBTITLE_LANGUAGE,
            watch_url(item_id),
        ]

    async def enrich(self, item: Item) -> None:
        try:
            raw_id = to_raw_id(item.id)
        except InvalidItemIdError as e:
            get_metrics().record_enrichment(success=False)
            raise EnrichmentError(item.id, str(e)) from e

        fields = await self._cached_fields(item.id, raw_id)
        if fields is None:
            fields = await self._fetch(item.id, raw_id)

        for name, value in fields.items():
            setattr(item, name, value)
        get_metrics().record_enrichment(success=True)

    async def _cached_fields(self, item_id: str, raw_id: str) -> dict[str, Any] | None:
        payload = await asyncio.to_thread(self._cache.get, raw_id)
        if payload is None:
            return None
        try:
            return extract_secondary(payload)
        except MalformedPayloadError as e:
            # Treated as a miss so the next fetch replaces the entry
            logger.warning(f"Discarding malformed cached payload for {item_id}: {e}")
            await asyncio.to_thread(self._cache.delete, raw_id)
            return None

    async def _fetch(self, item_id: str, raw_id: str) -> dict[str, Any]:
        args = self._command(item_id)

        try:
            output = await retry_with_backoff(
                lambda: self._runner(args, self._timeout),
                self._retry_config,
                is_retryable_enrichment_error,
                operation_name="yt-dlp",
            )
        except Exception as e:
            get_metrics().record_enrichment(success=False)
            raise EnrichmentError(item_id, str(e)) from e

        try:
            payload = json.loads(output)
            if not isinstance(payload, dict):
                raise ValueError("yt-dlp output is not a JSON object")
            fields = extract_secondary(payload)
        except ValueError as e:
            get_metrics().record_enrichment(success=False)
            raise EnrichmentError(item_id, f"failed to parse yt-dlp output: {e}") from e

        await asyncio.to_thread(self._cache.put, raw_id, output)
        return fields


class MockEnricher(Enricher):
    """
    Deterministic enricher for tests and ``--mock`` runs.

    Args:
        payload: Data merged into every item (yt-dlp JSON shape)
        error: If set, every call raises EnrichmentError with this message
        fail_ids: Item ids that fail even when ``error`` is unset
    """

    def __init__(
        self,
        payload: dict[str, Any] | None = None,
        error: str | None = None,
        fail_ids: set[str] | None = None,
    ):
        self.payload = payload if payload is not None else {
            "duration": 600,
            "tags": ["mock"],
            "comments": [{"text": "first"}],
        }
        self.error = error
        self.fail_ids = set(fail_ids or ())
        self.calls: list[str] = []

    async def enrich(self, item: Item) -> None:
        self.calls.append(item.id)
        if self.error is not None:
            raise EnrichmentError(item.id, self.error)
        if item.id in self.fail_ids:
            raise EnrichmentError(item.id, "configured to fail")
        apply_payload(item, self.payload)
