"""Tests for the feed-curator CLI."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from feed_curator.cache.enrichment_cache import EnrichmentCache
from feed_curator.cli import MOCK_SOURCE_IDS, main
from feed_curator.config.settings import Settings
from feed_curator.ingestion.schemas import Source


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("feed_curator.cli.setup_logging"):
        yield


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        tracked_sources=None,
        enrichment_cache_dir=str(tmp_path / "ytdlp"),
    )


@pytest.fixture
def use_settings(settings):
    with patch("feed_curator.cli.get_settings", return_value=settings):
        yield settings


def _mock_store(sources=None, removed=True):
    """Create a mock RedisStore that works as async context."""
    store = AsyncMock()
    store.__aenter__.return_value = store
    store.__aexit__.return_value = None
    store.get_sources = AsyncMock(return_value=sources or [])
    store.add_source = AsyncMock()
    store.remove_source = AsyncMock(return_value=removed)
    return store


# ── check ────────────────────────────────────────────────


class TestCheck:
    """Tests for `check` command."""

    def test_mock_cycle(self, runner, use_settings):
        result = runner.invoke(main, ["check", "--mock"])

        assert result.exit_code == 0, result.output
        assert f"Processed: {len(MOCK_SOURCE_IDS)}, errored: 0" in result.output
        assert f"new items: {len(MOCK_SOURCE_IDS)}" in result.output
        assert "https://www.youtube.com/watch?v=" in result.output

    def test_mock_uses_tracked_sources(self, runner, use_settings):
        use_settings.tracked_sources = "UCaaaaaaaaaaaaaaaaaaaaaa"

        result = runner.invoke(main, ["check", "--mock", "--max-items", "1"])

        assert result.exit_code == 0, result.output
        assert "Processed: 1, errored: 0, new items: 1" in result.output

    def test_ignore_checkpoint_flag(self, runner, use_settings):
        result = runner.invoke(main, ["check", "--mock", "--ignore-checkpoint"])

        assert result.exit_code == 0, result.output
        assert "errored: 0" in result.output


# ── sources ──────────────────────────────────────────────


class TestSources:
    """Tests for `sources` command group."""

    def test_list(self, runner):
        store = _mock_store([Source(id="UC2", title="Two"), Source(id="UC1", title="One")])

        with patch("feed_curator.storage.redis_store.RedisStore", return_value=store):
            result = runner.invoke(main, ["sources", "list"])

        assert result.exit_code == 0, result.output
        assert result.output.index("UC1") < result.output.index("UC2")
        assert "2 source(s)" in result.output

    def test_list_empty(self, runner):
        with patch("feed_curator.storage.redis_store.RedisStore", return_value=_mock_store()):
            result = runner.invoke(main, ["sources", "list"])

        assert "No sources tracked" in result.output

    def test_add(self, runner):
        store = _mock_store()

        with patch("feed_curator.storage.redis_store.RedisStore", return_value=store):
            result = runner.invoke(
                main, ["sources", "add", "UCabcdefghijklmnopqrstuv", "--title", "Chan"]
            )

        assert result.exit_code == 0, result.output
        store.add_source.assert_awaited_once_with(
            Source(id="UCabcdefghijklmnopqrstuv", title="Chan")
        )

    def test_add_rejects_invalid_id(self, runner):
        store = _mock_store()

        with patch("feed_curator.storage.redis_store.RedisStore", return_value=store):
            result = runner.invoke(main, ["sources", "add", "not-a-channel"])

        assert result.exit_code == 1
        store.add_source.assert_not_awaited()

    def test_remove(self, runner):
        with patch("feed_curator.storage.redis_store.RedisStore", return_value=_mock_store()):
            result = runner.invoke(main, ["sources", "remove", "UC1"])

        assert result.exit_code == 0
        assert "Removed UC1" in result.output

    def test_remove_unknown(self, runner):
        store = _mock_store(removed=False)

        with patch("feed_curator.storage.redis_store.RedisStore", return_value=store):
            result = runner.invoke(main, ["sources", "remove", "UC1"])

        assert result.exit_code == 1
        assert "was not tracked" in result.output


# ── cache ────────────────────────────────────────────────


class TestCache:
    """Tests for `cache` command group."""

    def test_stats(self, runner, use_settings):
        EnrichmentCache(use_settings.enrichment_cache_dir).put("dQw4w9WgXcQ", {"v": 1})

        result = runner.invoke(main, ["cache", "stats"])

        assert result.exit_code == 0, result.output
        assert "enabled:   True" in result.output
        assert "entries:   1" in result.output

    def test_clear(self, runner, use_settings):
        cache = EnrichmentCache(use_settings.enrichment_cache_dir)
        cache.put("aaaaaaaaaaa", {"v": 1})
        cache.put("bbbbbbbbbbb", {"v": 2})

        result = runner.invoke(main, ["cache", "clear"])

        assert result.exit_code == 0, result.output
        assert "Removed 2 cached payload(s)" in result.output
        assert len(cache) == 0


# ── run ──────────────────────────────────────────────────


class TestRun:
    """Tests for `run` command wiring."""

    def test_run_starts_service_with_settings(self, runner, use_settings):
        use_settings.max_items_per_cycle = 4
        service = MagicMock()
        service.start = AsyncMock()
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=service)
        context.__aexit__ = AsyncMock(return_value=None)

        with patch("feed_curator.cli.curation_service", return_value=context) as build:
            result = runner.invoke(main, ["run", "--mock", "--no-metrics"])

        assert result.exit_code == 0, result.output
        build.assert_called_once_with(use_settings, mock=True)
        service.start.assert_awaited_once_with(ignore_checkpoint=False, max_items=4)


class TestDebugFlag:
    """Tests for the --debug group option."""

    def test_debug_forces_debug_level(self, runner, use_settings):
        with patch("feed_curator.cli.setup_logging") as setup:
            result = runner.invoke(main, ["--debug", "cache", "stats"])

        assert result.exit_code == 0, result.output
        setup.assert_called_once_with("DEBUG")

    def test_default_defers_to_settings(self, runner, use_settings):
        with patch("feed_curator.cli.setup_logging") as setup:
            runner.invoke(main, ["cache", "stats"])

        setup.assert_called_once_with(None)
