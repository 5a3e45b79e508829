"""
Retry classification for network-facing operations.

Transient failures (timeouts, dropped connections, rate limits, 5xx) are
worth another attempt. Validation and malformed-input failures are not.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryableError(Exception):
    """A transient failure that a retry may fix."""


class TerminalError(Exception):
    """A permanent failure. Retrying would not help."""


class RateLimitedError(RetryableError):
    """The remote side asked us to slow down."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        response: httpx.Response | None = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.result = response


class RetryError(Exception):
    """Base for errors raised by the backoff executor itself."""

    def __init__(
        self,
        message: str,
        last_error: BaseException | None,
        last_result: Any = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.last_error = last_error
        self.last_result = last_result
        self.attempts = attempts


class MaxRetriesExceededError(RetryError):
    """All attempts failed with retryable errors."""


class RetryTimeoutError(RetryError):
    """The total time budget across attempts ran out."""


def is_transient_http_error(exc: BaseException) -> bool:
    """
    Classify an exception raised around an httpx call.

    Retryable:
    - RetryableError and subclasses
    - httpx timeouts, connect/read errors, dropped connections
    - HTTPStatusError with 429 or 5xx status

    Everything else (4xx, parse errors, TerminalError) is terminal.
    """
    if isinstance(exc, TerminalError):
        return False
    if isinstance(exc, RetryableError):
        return True
    if isinstance(
        exc,
        (
            httpx.TimeoutException,
            httpx.ConnectError,
            httpx.ReadError,
            httpx.RemoteProtocolError,
        ),
    ):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return False


def parse_retry_after(value: str | None) -> float | None:
    """
    Parse a Retry-After header value into seconds.

    Accepts delta-seconds ("120") or an HTTP date. Returns None when the
    header is absent or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    return seconds if seconds > 0 else None


def attached_result(exc: BaseException) -> Any:
    """Return the result value carried by a failure, if any (e.g. an httpx response)."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response
    return getattr(exc, "result", None)


def retry_after_hint(exc: BaseException) -> float | None:
    """
    Extract an explicit rate-limit wait from a failure.

    Prefers a ``retry_after`` attribute, then a Retry-After header on an
    attached 429 response.
    """
    hint = getattr(exc, "retry_after", None)
    if hint is not None and hint > 0:
        return float(hint)

    response = attached_result(exc)
    if isinstance(response, httpx.Response) and response.status_code == 429:
        return parse_retry_after(response.headers.get("Retry-After"))
    return None
