"""Best-effort enrichment of new items with secondary metadata."""

from feed_curator.enrichment.service import Enricher, MockEnricher, YtDlpEnricher

__all__ = ["Enricher", "MockEnricher", "YtDlpEnricher"]
