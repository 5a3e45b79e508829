"""Tests for structlog configuration and context binding."""

import asyncio
import logging

import pytest
import structlog

from feed_curator.config.settings import Settings
from feed_curator.observability.logging import (
    add_watch_url,
    log_context,
    resolve_log_level,
    setup_logging,
)


class TestAddWatchUrl:
    """Tests for the watch-URL processor."""

    def test_adds_url_for_item_id(self):
        event = add_watch_url(None, "info", {"event": "New item", "item_id": "yt:video:dQw4w9WgXcQ"})
        assert event["url"] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

    def test_existing_link_left_alone(self):
        event = add_watch_url(
            None, "info", {"item_id": "yt:video:dQw4w9WgXcQ", "link": "https://example.com"}
        )
        assert "url" not in event

    def test_malformed_id_flagged(self):
        event = add_watch_url(None, "info", {"item_id": "garbage"})
        assert "url" not in event
        assert event["item_id_valid"] is False

    def test_events_without_item_id_untouched(self):
        assert add_watch_url(None, "info", {"event": "Cycle completed"}) == {
            "event": "Cycle completed"
        }


class TestLogLevel:
    """Tests for resolving the effective log level."""

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setattr(
            "feed_curator.observability.logging.get_settings",
            lambda: Settings(_env_file=None, log_level="WARNING", debug=False),
        )
        assert resolve_log_level("debug") == "DEBUG"

    def test_debug_setting_forces_debug(self, monkeypatch):
        monkeypatch.setattr(
            "feed_curator.observability.logging.get_settings",
            lambda: Settings(_env_file=None, log_level="ERROR", debug=True),
        )
        assert resolve_log_level() == "DEBUG"

    def test_falls_back_to_log_level(self, monkeypatch):
        monkeypatch.setattr(
            "feed_curator.observability.logging.get_settings",
            lambda: Settings(_env_file=None, log_level="ERROR", debug=False),
        )
        assert resolve_log_level() == "ERROR"

    def test_setup_logging_applies_level(self, monkeypatch):
        monkeypatch.setattr(
            "feed_curator.observability.logging.get_settings",
            lambda: Settings(_env_file=None, log_level="INFO"),
        )
        root = logging.getLogger()
        previous = root.level
        try:
            setup_logging("DEBUG")

            assert root.level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.setLevel(previous)
            structlog.reset_defaults()


class TestLogContext:
    """Tests for contextvar-bound log fields."""

    def test_binds_and_restores(self):
        with log_context(cycle=3):
            assert structlog.contextvars.get_contextvars()["cycle"] == 3
            with log_context(source_id="UC1"):
                assert structlog.contextvars.get_contextvars() == {
                    "cycle": 3,
                    "source_id": "UC1",
                }
            assert "source_id" not in structlog.contextvars.get_contextvars()
        assert "cycle" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_sibling_tasks_do_not_share_source_id(self):
        async def worker(source_id: str) -> dict:
            with log_context(source_id=source_id):
                await asyncio.sleep(0)
                return dict(structlog.contextvars.get_contextvars())

        with log_context(cycle=1):
            seen = await asyncio.gather(*(worker(s) for s in ["UC1", "UC2", "UC3"]))

        assert seen == [
            {"cycle": 1, "source_id": "UC1"},
            {"cycle": 1, "source_id": "UC2"},
            {"cycle": 1, "source_id": "UC3"},
        ]
