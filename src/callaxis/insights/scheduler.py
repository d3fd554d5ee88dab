"""
Periodic insight refresher.

Holds the latest insight report in memory and regenerates it once it is
older than ``refresh_after``. Staleness is checked every
``check_interval_seconds``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from callaxis.insights.models import CallStatistics, InsightGenerationError, InsightReport
from callaxis.insights.summarizer import InsightSummarizer
from callaxis.shared.logging import get_logger

logger = get_logger(__name__)

StatisticsProvider = Callable[[], Awaitable[CallStatistics]]


class InsightRefresher:
    """Background job keeping one insight report fresh."""

    def __init__(
        self,
        summarizer: InsightSummarizer,
        statistics: StatisticsProvider,
        refresh_after: timedelta = timedelta(hours=24),
        check_interval_seconds: float = 3600.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._summarizer = summarizer
        self._statistics = statistics
        self._refresh_after = refresh_after
        self._check_interval = check_interval_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

        self.latest: InsightReport | None = None
        self.last_error: str | None = None

        self._running = False
        self._task: asyncio.Task[None] | None = None

    def is_stale(self) -> bool:
        if self.latest is None:
            return True
        return self._clock() - self.latest.generated_at >= self._refresh_after

    async def refresh(self, force: bool = False) -> InsightReport | None:
        """Regenerate the report when stale (or forced).

        Returns the current report; an existing report is kept when
        generation fails. Statistics with no calls skip generation.
        """
        async with self._lock:
            if not force and not self.is_stale():
                return self.latest

            stats = await self._statistics()
            if stats.total_calls == 0:
                logger.info("No calls in window; skipping insight generation")
                return self.latest

            try:
                report = await self._summarizer.summarize(stats)
            except InsightGenerationError as e:
                self.last_error = e.message
                logger.warning("Insight refresh failed", extra={"error": e.message})
                return self.latest

            self.latest = report
            self.last_error = None
            return report

    async def start(self) -> None:
        """Start the refresher background task."""
        if self._running:
            logger.warning("Insight refresher already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Insight refresher started")

    async def stop(self) -> None:
        """Stop the refresher background task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Insight refresher stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.refresh()
            except Exception:
                logger.exception("Insight refresh iteration failed")
            await asyncio.sleep(self._check_interval)
