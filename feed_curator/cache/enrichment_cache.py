"""
Content-addressed file cache for enrichment payloads.

Each item's payload is stored as JSON under a file named from the SHA-256
of the item id: the first 16 hex characters plus ".json". Names are fixed
length and filesystem safe, and stay stable across runs, so a cache
directory can be reused by later processes.
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from feed_curator.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

CACHE_KEY_LENGTH = 16


def cache_key(item_id: str) -> str:
    """Stable, fixed-length cache file name for an item id."""
    digest = hashlib.sha256(item_id.encode("utf-8")).hexdigest()
    return digest[:CACHE_KEY_LENGTH] + ".json"


class EnrichmentCache:
    """
    Read-through cache of raw enrichment payloads.

    A disabled cache (by configuration, or because its directory could not
    be created) misses on every get and ignores every put. A payload that
    cannot be read or decoded is deleted and reported as a miss.
    """

    def __init__(self, cache_dir: str | Path, enabled: bool = True):
        self._dir = Path(cache_dir)
        self._enabled = enabled
        self._lock = threading.Lock()

        if self._enabled:
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Enrichment cache enabled, using directory: {self._dir}")
            except OSError as e:
                logger.warning(
                    f"Failed to create enrichment cache directory {self._dir}: {e}; "
                    "caching disabled"
                )
                self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, item_id: str) -> Path:
        return self._dir / cache_key(item_id)

    def get(self, item_id: str) -> dict[str, Any] | None:
        """
        Look up a cached payload.

        Returns:
            The payload on a hit; None on a miss, when disabled, or when the
            stored payload is corrupt
        """
        if not self._enabled:
            return None

        path = self.path_for(item_id)
        with self._lock:
            try:
                raw = path.read_bytes()
            except FileNotFoundError:
                get_metrics().record_enrichment_cache(hit=False)
                return None
            except OSError as e:
                logger.warning(f"Could not read cache file for {item_id}: {e}")
                get_metrics().record_enrichment_cache(hit=False)
                return None

            try:
                payload = json.loads(raw)
                if not isinstance(payload, dict):
                    raise ValueError(f"expected object, got {type(payload).__name__}")
            except ValueError as e:
                logger.warning(
                    f"Failed to parse cached data for {item_id}, removing invalid "
                    f"cache file: {e}"
                )
                path.unlink(missing_ok=True)
                get_metrics().record_enrichment_cache(hit=False)
                return None

        logger.debug(f"Cache hit for {item_id}")
        get_metrics().record_enrichment_cache(hit=True)
        return payload

    def put(self, item_id: str, payload: dict[str, Any] | bytes) -> None:
        """
        Store a payload atomically (temp file, then rename).

        Accepts a dict or already-encoded JSON bytes. I/O failures are
        logged and leave any previous entry in place.
        """
        if not self._enabled:
            return

        data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        path = self.path_for(item_id)

        with self._lock:
            tmp_path = None
            try:
                with tempfile.NamedTemporaryFile(
                    dir=self._dir, prefix=".tmp-", suffix=".part", delete=False
                ) as tmp:
                    tmp_path = tmp.name
                    tmp.write(data)
                os.replace(tmp_path, path)
                tmp_path = None
            except OSError as e:
                logger.warning(f"Failed to write cache file for {item_id}: {e}")
            finally:
                if tmp_path is not None:
                    Path(tmp_path).unlink(missing_ok=True)

    def delete(self, item_id: str) -> bool:
        """Drop one entry, e.g. a payload that parsed but could not be used."""
        path = self.path_for(item_id)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                logger.warning(f"Failed to remove cache file for {item_id}: {e}")
                return False
        logger.debug(f"Removed cache entry for {item_id}")
        return True

    def clear(self) -> int:
        """Remove every cached payload. Returns how many files were deleted."""
        if not self._dir.exists():
            return 0

        removed = 0
        with self._lock:
            for path in self._dir.glob("*.json"):
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    logger.warning(f"Failed to remove cache file {path}: {e}")

        logger.info(f"Cleared {removed} enrichment cache entries from {self._dir}")
        return removed

    def __len__(self) -> int:
        if not self._dir.exists():
            return 0
        return sum(1 for _ in self._dir.glob("*.json"))
