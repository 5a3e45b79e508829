"""Caches shared across concurrently processed sources."""

from feed_curator.cache.enrichment_cache import EnrichmentCache, cache_key
from feed_curator.cache.observed_items import ObservedItemCache

__all__ = ["EnrichmentCache", "ObservedItemCache", "cache_key"]
