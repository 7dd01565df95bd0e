"""
One-shot startup backfill read.
Requests a long historical window once to check store connectivity and warm the range cache.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional, Tuple

import pandas as pd

from src.config import settings
from src.database.service import PriceStore, price_store
from src.logging_config import get_logger
from src.utils.time_utils import now_local

logger = get_logger(__name__)


class BackfillRunner:
    """Reads the trailing history once after a grace delay. Performs no writes."""

    def __init__(self, store: PriceStore = None, delay_seconds: float = None, years: int = None):
        self.store = store or price_store
        self.delay_seconds = settings.backfill_delay_seconds if delay_seconds is None else delay_seconds
        self.years = years or settings.backfill_years
        self._task: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Event] = None

    async def start(self, shutdown_event: asyncio.Event = None) -> None:
        """Schedule the backfill read in the background."""
        if self._task and not self._task.done():
            logger.warning("Backfill already scheduled")
            return

        self._shutdown = shutdown_event or asyncio.Event()
        self._task = asyncio.create_task(self.run(), name="price-backfill")
        logger.info("Backfill scheduled", delay_seconds=self.delay_seconds, years=self.years)

    async def stop(self) -> None:
        """Abandon the backfill if it is still pending."""
        if self._shutdown:
            self._shutdown.set()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Backfill abandoned at shutdown")

    def compute_window(self, now: datetime = None) -> Tuple[datetime, datetime]:
        """
        From midnight ``years`` ago up to the end of today.

        Both bounds are day-aligned so repeat runs on the same day share a cache key.
        """
        now = now or now_local()
        today = datetime.combine(now.date(), datetime.min.time())
        start = (pd.Timestamp(today) - pd.DateOffset(years=self.years)).to_pydatetime()
        return start, today + timedelta(days=1)

    async def run(self) -> Optional[int]:
        """Wait for the grace delay, then read the window. Returns the record count."""
        if self._shutdown is None:
            self._shutdown = asyncio.Event()

        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=self.delay_seconds)
            logger.info("Backfill skipped, shutdown requested")
            return None
        except asyncio.TimeoutError:
            pass

        start, end = self.compute_window()
        job_start = datetime.now()

        try:
            records = await self.store.get_prices_for_period(start, end)
        except Exception as e:
            logger.error(
                "Backfill read failed",
                error=str(e),
                start=start.isoformat(),
                end=end.isoformat(),
            )
            return None

        logger.info(
            "Backfill read completed",
            count=len(records),
            start=start.isoformat(),
            end=end.isoformat(),
            duration_seconds=(datetime.now() - job_start).total_seconds(),
        )
        return len(records)


# Global backfill instance
backfill_runner = BackfillRunner()
