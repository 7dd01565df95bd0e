"""
Interval scheduler for incremental price ingestion.
Runs as an asyncio task and checks the shutdown signal between ticks.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional, Tuple

from src.config import settings
from src.logging_config import get_logger
from src.models.price import SLOT_LENGTH, IngestionReport, WriteStatus
from src.services.price_service import PriceService, price_service
from src.utils.time_utils import floor_to_hour, now_local

logger = get_logger(__name__)


class IngestionScheduler:
    """Background task that periodically ingests new upstream prices."""

    def __init__(
        self,
        service: PriceService = None,
        interval_minutes: int = None,
        lookback_hours: int = None,
        horizon_hours: int = None,
        stop_timeout: float = 30.0,
    ):
        self.service = service or price_service
        self.interval_seconds = 60 * (interval_minutes or settings.ingestion_interval_minutes)
        self.lookback = timedelta(hours=lookback_hours or settings.ingestion_lookback_hours)
        self.horizon = timedelta(
            hours=settings.ingestion_horizon_hours if horizon_hours is None else horizon_hours
        )
        self.stop_timeout = stop_timeout
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Event] = None

    async def start(self, shutdown_event: asyncio.Event = None) -> None:
        """Start the scheduler background task."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._shutdown = shutdown_event or asyncio.Event()
        self._task = asyncio.create_task(self._scheduler_loop(), name="price-ingestion")
        logger.info("Scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Signal shutdown and wait for the current tick to finish."""
        if not self._running:
            return

        self._running = False
        self._shutdown.set()
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning("Ingestion tick did not finish in time, cancelled",
                               timeout_seconds=self.stop_timeout)
            except asyncio.CancelledError:
                pass

        logger.info("Scheduler stopped")

    async def _scheduler_loop(self) -> None:
        """Main scheduler loop."""
        try:
            while not self._shutdown.is_set():
                await self._ingest_job()

                if await self._wait_for_shutdown(self.interval_seconds):
                    break
        finally:
            self._running = False

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; True if shutdown was signalled."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def compute_window(self, now: datetime = None) -> Optional[Tuple[datetime, datetime]]:
        """
        Window for the next ingestion cycle.

        Starts one slot after the high-watermark, or a fixed lookback before
        the current hour when the store is empty; ends the configured horizon
        after the current hour. None when the store is already ahead.
        """
        current_hour = floor_to_hour(now or now_local())
        end = current_hour + self.horizon

        watermark = await self.service.store.get_latest_start_time()
        if watermark is None:
            start = current_hour - self.lookback
        else:
            start = watermark + SLOT_LENGTH

        if start >= end:
            return None
        return start, end

    async def _ingest_job(self, now: datetime = None) -> Optional[IngestionReport]:
        """Execute one ingestion cycle. Never raises."""
        job_start = datetime.now()

        try:
            window = await self.compute_window(now)
            if window is None:
                logger.info("Price store up to date, nothing to ingest")
                return None

            start, end = window
            logger.info("Starting price ingestion", start=start.isoformat(), end=end.isoformat())
            report = await self.service.ingest_window(start, end)

            duration = (datetime.now() - job_start).total_seconds()
            log = logger.error if report.status is WriteStatus.FAILED else logger.info
            log(
                "Completed price ingestion",
                status=report.status.value,
                fetched=report.fetched,
                ingested=report.ingested,
                duplicates=report.duplicates,
                duration_seconds=duration,
            )
            return report

        except Exception as e:
            duration = (datetime.now() - job_start).total_seconds()
            logger.error(
                "Price ingestion failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=duration,
            )
            return None

    async def run_once(self, now: datetime = None) -> Optional[IngestionReport]:
        """Run a single ingestion cycle outside the loop."""
        logger.info("Running manual price ingestion")
        return await self._ingest_job(now)

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running and self._task is not None and not self._task.done()


# Global scheduler instance
ingestion_scheduler = IngestionScheduler()
