"""
Tests for the Refresh Scheduler
===============================
"""

import asyncio

import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from maifead.config.settings import MaifeadSettings
from maifead.database.models import Item, RefreshSummary
from maifead.processing.orchestrator import RefreshOrchestrator
from maifead.scheduler.refresh_scheduler import RefreshScheduler
from maifead.utils.exceptions import DatabaseError


MORNING = datetime(2024, 9, 5, 10, 0, tzinfo=timezone.utc)
SWEEP_TIME = datetime(2024, 9, 5, 2, 15, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    return MaifeadSettings(_env_file=None)


@pytest.fixture
def scheduler(settings, db_connection, fake_fetcher, parsers):
    orchestrator = RefreshOrchestrator(db_connection=db_connection, fetcher=fake_fetcher, parsers=parsers)
    with patch("maifead.scheduler.refresh_scheduler.get_db_manager", return_value=db_connection):
        yield RefreshScheduler(settings=settings, orchestrator=orchestrator)


class TestSweepSchedule:

    def test_sweep_due_at_configured_hour(self, scheduler):
        assert scheduler.sweep_due(SWEEP_TIME) is True
        assert scheduler.sweep_due(MORNING) is False

    def test_sweep_once_per_day(self, scheduler):
        scheduler.last_sweep_date = date(2024, 9, 5)

        assert scheduler.sweep_due(SWEEP_TIME) is False
        assert scheduler.sweep_due(SWEEP_TIME.replace(day=6)) is True


class TestRunCycle:
    """Test single scheduler cycles."""

    @pytest.mark.asyncio
    async def test_refreshes_due_sources(self, scheduler, source_repo, make_source, fake_fetcher, rss_builder):
        source = source_repo.create_source(make_source())
        fake_fetcher.add(source.feed_url, rss_builder([("a", "Alpha", "First")]))

        result = await scheduler.run_cycle(MORNING)

        assert result.error is None
        assert result.refresh.sources_refreshed == 1
        assert result.refresh.total_new_items == 1
        assert result.sweep is None

    @pytest.mark.asyncio
    async def test_sweep_runs_at_sweep_hour(self, scheduler, source_repo, item_repo, make_source):
        source = source_repo.create_source(make_source(is_enabled=False, retention_days=30))
        item_repo.insert_items_if_absent([
            Item(
                source_id=source.id,
                remote_id="old",
                title="Old",
                canonical_link="https://example.com/old",
                published_at=datetime(2024, 7, 1, tzinfo=timezone.utc),
            )
        ])

        result = await scheduler.run_cycle(SWEEP_TIME)

        assert result.sweep.items_deleted == 1
        assert scheduler.last_sweep_date == date(2024, 9, 5)

        again = await scheduler.run_cycle(SWEEP_TIME)
        assert again.sweep is None

    @pytest.mark.asyncio
    async def test_forced_sweep(self, scheduler):
        result = await scheduler.run_cycle(MORNING, force_sweep=True)

        assert result.sweep is not None
        assert result.sweep.sources_swept == 0

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, settings, db_connection):
        """Test an infrastructure error ends the cycle without stopping the service."""
        orchestrator = MagicMock()
        orchestrator.refresh_due_sources = AsyncMock(side_effect=DatabaseError("database is locked"))
        with patch("maifead.scheduler.refresh_scheduler.get_db_manager", return_value=db_connection):
            scheduler = RefreshScheduler(settings=settings, orchestrator=orchestrator)

        result = await scheduler.run_cycle(MORNING)

        assert "database is locked" in result.error
        assert result.refresh is None


    @pytest.mark.asyncio
    async def test_unexpected_failure_is_reported_not_raised(self, settings, db_connection):
        orchestrator = MagicMock()
        orchestrator.refresh_due_sources = AsyncMock(side_effect=RuntimeError("boom"))
        with patch("maifead.scheduler.refresh_scheduler.get_db_manager", return_value=db_connection):
            scheduler = RefreshScheduler(settings=settings, orchestrator=orchestrator)

        result = await scheduler.run_cycle(MORNING)

        assert "boom" in result.error
        assert result.refresh is None


class TestRunForever:

    @pytest.mark.asyncio
    async def test_stops_on_event(self, scheduler):
        stop_event = asyncio.Event()

        async def one_cycle(*args, **kwargs):
            stop_event.set()

        scheduler.run_cycle = AsyncMock(side_effect=one_cycle)

        await scheduler.run_forever(stop_event)

        assert scheduler.run_cycle.await_count == 1
        assert scheduler.running is False


    @pytest.mark.asyncio
    async def test_keeps_running_after_unexpected_failure(self, settings, db_connection):
        """Test a cycle that raises a non-domain error does not end the service loop."""
        stop_event = asyncio.Event()
        settings.scheduler.check_interval_seconds = 0
        calls = []

        async def refresh(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("boom")
            stop_event.set()
            return RefreshSummary()

        orchestrator = MagicMock()
        orchestrator.refresh_due_sources = AsyncMock(side_effect=refresh)
        orchestrator.drain = AsyncMock()
        with patch("maifead.scheduler.refresh_scheduler.get_db_manager", return_value=db_connection):
            scheduler = RefreshScheduler(settings=settings, orchestrator=orchestrator)

        await scheduler.run_forever(stop_event)

        assert len(calls) == 2
        assert scheduler.running is False
