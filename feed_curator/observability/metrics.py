"""
Prometheus metrics for monitoring curation cycles.

Defines and exposes metrics for:
- Cycles run and their latency
- Processed vs errored sources per cycle
- Surfaced items
- Enrichment outcomes and enrichment cache hit rate
- Observed-item cache size
- Retry attempts

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

logger = logging.getLogger(__name__)

# Buckets for cycle latency (in seconds); cycles fan out over many feeds
CYCLE_BUCKETS = (0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """
    Prometheus metrics collector for feed-curator.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_cycle(processed=9, errored=1, surfaced=3, latency=4.2)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.cycles_total = Counter(
            "feed_curator_cycles_total",
            "Total number of curation cycles run",
        )

        self.sources_processed = Counter(
            "feed_curator_sources_processed_total",
            "Sources processed, by outcome",
            ["status"],  # status: success, error
        )

        self.source_errors = Counter(
            "feed_curator_source_errors_total",
            "Per-source failures, by error type",
            ["error_type"],
        )

        self.items_surfaced = Counter(
            "feed_curator_items_surfaced_total",
            "Items surfaced for notification",
        )

        self.enrichments = Counter(
            "feed_curator_enrichments_total",
            "Enrichment attempts, by outcome",
            ["status"],  # status: success, error
        )

        self.enrichment_cache_hits = Counter(
            "feed_curator_enrichment_cache_hits_total",
            "Total enrichment cache hits",
        )

        self.enrichment_cache_misses = Counter(
            "feed_curator_enrichment_cache_misses_total",
            "Total enrichment cache misses",
        )

        self.retry_attempts = Counter(
            "feed_curator_retry_attempts_total",
            "Retries scheduled by the backoff executor",
            ["operation"],
        )

        self.cycle_latency = Histogram(
            "feed_curator_cycle_latency_seconds",
            "Wall-clock time of one curation cycle",
            buckets=CYCLE_BUCKETS,
        )

        self.observed_cache_size = Gauge(
            "feed_curator_observed_cache_size",
            "Records currently held by the observed-item cache",
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        if port is None:
            from feed_curator.config.settings import get_settings

            port = get_settings().metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_cycle(
        self,
        processed: int,
        errored: int,
        surfaced: int,
        latency: float | None = None,
    ) -> None:
        """
        Record the outcome of one curation cycle.

        Args:
            processed: Sources that produced a successful result
            errored: Sources that produced an error result
            surfaced: Items handed to the notification sink
            latency: Optional cycle duration in seconds
        """
        self.cycles_total.inc()
        if processed:
            self.sources_processed.labels(status="success").inc(processed)
        if errored:
            self.sources_processed.labels(status="error").inc(errored)
        if surfaced:
            self.items_surfaced.inc(surfaced)
        if latency is not None:
            self.cycle_latency.observe(latency)

    def record_source_error(self, error_type: str) -> None:
        """Record a per-source failure by exception type name."""
        self.source_errors.labels(error_type=error_type).inc()

    def record_enrichment(self, success: bool) -> None:
        """Record an enrichment outcome."""
        self.enrichments.labels(status="success" if success else "error").inc()

    def record_enrichment_cache(self, hit: bool) -> None:
        """
        Record enrichment cache hit or miss.

        Args:
            hit: True for cache hit, False for miss
        """
        if hit:
            self.enrichment_cache_hits.inc()
        else:
            self.enrichment_cache_misses.inc()

    def record_retry(self, operation: str) -> None:
        """Record a retry scheduled for an operation."""
        self.retry_attempts.labels(operation=operation).inc()

    def set_observed_cache_size(self, size: int) -> None:
        """Set the observed-item cache size gauge."""
        self.observed_cache_size.set(size)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
