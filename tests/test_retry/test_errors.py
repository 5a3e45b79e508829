"""Tests for retry error classification."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from feed_curator.ingestion.item_id import InvalidItemIdError
from feed_curator.retry.errors import (
    RateLimitedError,
    RetryableError,
    TerminalError,
    is_transient_http_error,
    parse_retry_after,
    retry_after_hint,
)


def _status_error(status: int, headers: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.com/feed")
    response = httpx.Response(status, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestIsTransientHttpError:
    """Tests for is_transient_http_error."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert is_transient_http_error(_status_error(status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410])
    def test_client_errors_are_terminal(self, status):
        assert is_transient_http_error(_status_error(status)) is False

    def test_network_errors_are_retryable(self):
        request = httpx.Request("GET", "https://example.com")
        assert is_transient_http_error(httpx.ConnectError("refused", request=request))
        assert is_transient_http_error(httpx.ReadTimeout("slow", request=request))

    def test_marker_classes(self):
        assert is_transient_http_error(RetryableError("x")) is True
        assert is_transient_http_error(TerminalError("x")) is False
        assert is_transient_http_error(InvalidItemIdError("x")) is False

    def test_unknown_errors_are_terminal(self):
        assert is_transient_http_error(ValueError("parse")) is False


class TestRetryAfter:
    """Tests for Retry-After parsing."""

    def test_delta_seconds(self):
        assert parse_retry_after("120") == 120.0

    def test_http_date(self):
        when = datetime.now(timezone.utc) + timedelta(seconds=90)
        seconds = parse_retry_after(format_datetime(when, usegmt=True))
        assert seconds is not None
        assert 80 <= seconds <= 91

    @pytest.mark.parametrize("value", [None, "", "soon", "0", "-5"])
    def test_unusable_values(self, value):
        assert parse_retry_after(value) is None

    def test_hint_from_attribute(self):
        assert retry_after_hint(RateLimitedError("slow", retry_after=2.0)) == 2.0

    def test_hint_only_from_429(self):
        assert retry_after_hint(_status_error(429, {"Retry-After": "5"})) == 5.0
        assert retry_after_hint(_status_error(503, {"Retry-After": "5"})) is None

    def test_no_hint(self):
        assert retry_after_hint(RetryableError("x")) is None
