"""
Price service - gap-filled range reads and upstream ingestion.
Sits between callers and the price store; never touches persistence directly.
"""

from datetime import datetime
from typing import List

from src.config import settings
from src.database.service import PriceStore, price_store
from src.logging_config import get_logger
from src.models.price import IngestionReport, PriceRecord, WriteStatus
from src.services.price_source import PriceSourceClient
from src.services.range_completer import complete_range

logger = get_logger(__name__)


class PriceService:
    """Service for padded range queries and incremental ingestion."""

    def __init__(
        self,
        store: PriceStore = None,
        source: PriceSourceClient = None,
        include_end_date: bool = None,
    ):
        self.store = store or price_store
        self.source = source or PriceSourceClient()
        self.include_end_date = (
            settings.range_include_end_date if include_end_date is None else include_end_date
        )

    async def get_prices_for_period(self, start: datetime, end: datetime) -> List[PriceRecord]:
        """Stored prices for [start, end) padded to one record per hour slot."""
        logger.info("Range query", start=start.isoformat(), end=end.isoformat())

        try:
            records = await self.store.get_prices_for_period(start, end)
        except Exception as e:
            logger.error("Range query failed", error=str(e),
                         start=start.isoformat(), end=end.isoformat())
            raise

        padded = complete_range(records, start, end, include_end_date=self.include_end_date)
        logger.info(
            "Range query completed",
            stored=len(records),
            placeholders=sum(1 for record in padded if record.is_placeholder),
            total=len(padded),
        )
        return padded

    async def ingest_window(self, start: datetime, end: datetime) -> IngestionReport:
        """
        Fetch upstream candidates for [start, end) and store the new ones.

        Fetch errors and duplicate-check errors propagate; insert failures are
        reported through the returned status.
        """
        candidates = await self.source.fetch_prices(start, end)

        fresh = []
        duplicates = 0
        for candidate in candidates:
            if await self.store.is_duplicate(candidate.start_time, candidate.end_time):
                duplicates += 1
                continue
            fresh.append(candidate)

        result = await self.store.add_range(fresh)

        status = result.status
        if status is WriteStatus.EMPTY and duplicates:
            status = WriteStatus.DUPLICATE

        return IngestionReport(
            window_start=start,
            window_end=end,
            fetched=len(candidates),
            ingested=result.inserted,
            duplicates=duplicates + (result.skipped if result.status is not WriteStatus.FAILED else 0),
            status=status,
        )


# Global price service instance
price_service = PriceService()
