"""
Maifead Refresh Scheduler
=========================

Periodic coordination of source refreshes and the retention sweep.

Features:
- Refreshes every enabled source whose fetch interval has elapsed
- Runs the retention sweep once a day at the configured hour
- Keeps running when a cycle fails; the next cycle starts on schedule
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..config.settings import get_settings
from ..database.connection import get_db_manager
from ..database.models import RefreshSummary, utc_now
from ..processing.orchestrator import RefreshOrchestrator
from ..processing.retention import RetentionSweeper, SweepSummary
from ..storage.item_repository import ItemRepository
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import MaifeadError
from ..utils.logging import get_logger_for_component


@dataclass
class CycleResult:
    """Outcome of one scheduler cycle."""
    started_at: datetime
    refresh: Optional[RefreshSummary] = None
    sweep: Optional[SweepSummary] = None
    error: Optional[str] = None


class RefreshScheduler:
    """
    Runs refresh cycles on a fixed interval.

    Typically started by ``run_scheduler.py --service`` under systemd or
    Docker; ``run_cycle`` can also be called once from cron.
    """

    def __init__(self, settings=None, orchestrator: Optional[RefreshOrchestrator] = None):
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("scheduler")
        self.db_manager = get_db_manager(self.settings.database.path)

        self.orchestrator = orchestrator or RefreshOrchestrator(self.db_manager)
        self.sweeper = RetentionSweeper(
            ItemRepository(self.db_manager), SourceRepository(self.db_manager)
        )

        self.last_sweep_date: Optional[date] = None
        self.running = False

    def sweep_due(self, now: datetime) -> bool:
        """Whether the daily retention sweep should run in this cycle."""
        return (
            now.hour == self.settings.retention.sweep_hour
            and self.last_sweep_date != now.date()
        )

    async def run_cycle(self, now: Optional[datetime] = None, force_sweep: bool = False) -> CycleResult:
        """Refresh due sources, then sweep if it is time to."""
        now = now or utc_now()
        result = CycleResult(started_at=now)

        try:
            result.refresh = await self.orchestrator.refresh_due_sources(now)
            await self.orchestrator.drain()

            if force_sweep or self.sweep_due(now):
                result.sweep = self.sweeper.sweep_all(now=now)
                self.last_sweep_date = now.date()

        except MaifeadError as e:
            self.logger.error(f"Scheduler cycle failed: {e}", extra=e.to_dict())
            result.error = str(e)
        except Exception as e:
            self.logger.error(f"Scheduler cycle failed unexpectedly: {e}", exc_info=True)
            result.error = f"Unexpected error: {e}"

        if result.refresh is not None:
            self.logger.info(
                f"Cycle refreshed {result.refresh.sources_refreshed} sources, "
                f"{result.refresh.total_new_items} new items, "
                f"{result.refresh.sources_failed} failures"
            )
        return result

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run cycles until stopped."""
        stop_event = stop_event or asyncio.Event()
        interval = self.settings.scheduler.check_interval_seconds
        self.running = True

        self.logger.info(
            f"Scheduler started: checking every {interval}s, "
            f"retention sweep at {self.settings.retention.sweep_hour}:00 UTC"
        )

        while self.running and not stop_event.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

        self.running = False
        self.logger.info("Scheduler stopped")

    def stop(self) -> None:
        self.running = False
