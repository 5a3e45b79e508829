"""Retry-with-backoff primitive and error classification."""

from feed_curator.retry.backoff import (
    RetryConfig,
    retry_with_backoff,
)
from feed_curator.retry.errors import (
    MaxRetriesExceededError,
    RateLimitedError,
    RetryableError,
    RetryError,
    RetryTimeoutError,
    TerminalError,
    is_transient_http_error,
)

__all__ = [
    "MaxRetriesExceededError",
    "RateLimitedError",
    "RetryConfig",
    "RetryError",
    "RetryTimeoutError",
    "RetryableError",
    "TerminalError",
    "is_transient_http_error",
    "retry_with_backoff",
]
