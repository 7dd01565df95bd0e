"""
Client for the upstream hourly price source.
Downloads the JSON price feed and normalises it into PriceRecord candidates.
"""

from datetime import datetime
from typing import List

import httpx
import pandas as pd

from src.config import settings
from src.exceptions import DataFetchError
from src.logging_config import get_logger
from src.models.price import PriceRecord, quantize_price

logger = get_logger(__name__)

REQUIRED_FIELDS = ("price", "startDate", "endDate")


class PriceSourceClient:
    """Fetches candidate price records for a time window."""

    def __init__(self, url: str = None, timeout: float = None, tz_name: str = None):
        self.url = url or settings.price_source_url
        self.timeout = timeout or settings.price_source_timeout
        self.tz_name = tz_name or settings.market_timezone

    async def fetch_prices(self, start: datetime, end: datetime) -> List[PriceRecord]:
        """Return candidates with start <= start_time < end, ascending."""
        payload = await self._fetch_json()
        records = self._parse_prices(payload, start, end)
        logger.debug("Fetched upstream prices", start=start.isoformat(), end=end.isoformat(),
                     count=len(records))
        return records

    async def _fetch_json(self) -> dict:
        """Download the price feed."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            raise DataFetchError(f"HTTP error: {e}") from e
        except Exception as e:
            raise DataFetchError(f"Unexpected error: {e}") from e

    def _parse_prices(self, payload: dict, start: datetime, end: datetime) -> List[PriceRecord]:
        """
        Normalise the feed into hourly records.

        Upstream timestamps are UTC; slots are converted to naive wall-clock
        time in the market timezone. Entries that do not span exactly one
        hour are dropped, and on a DST fall-back the first of two slots
        sharing a wall-clock hour wins.
        """
        try:
            df = pd.DataFrame(payload.get("prices", []))
            if df.empty:
                return []

            missing = set(REQUIRED_FIELDS) - set(df.columns)
            if missing:
                raise ValueError(f"Missing price fields: {sorted(missing)}")

            starts_utc = pd.to_datetime(df["startDate"], utc=True, format="ISO8601")
            ends_utc = pd.to_datetime(df["endDate"], utc=True, format="ISO8601")
            df = df.assign(
                start_utc=starts_utc,
                start_time=starts_utc.dt.tz_convert(self.tz_name).dt.tz_localize(None),
                hourly=(ends_utc - starts_utc) == pd.Timedelta(hours=1),
            )

            dropped = int((~df["hourly"]).sum())
            if dropped:
                logger.debug("Dropped non-hourly upstream entries", count=dropped)

            df = df[df["hourly"] & (df["start_time"].dt.minute == 0)]
            df = df[(df["start_time"] >= pd.Timestamp(start)) & (df["start_time"] < pd.Timestamp(end))]
            df = df.dropna(subset=["price"])
            df = df.sort_values("start_utc").drop_duplicates("start_time", keep="first")

            return [
                PriceRecord(
                    start_time=row.start_time.to_pydatetime(),
                    price=quantize_price(row.price),
                )
                for row in df.itertuples(index=False)
            ]

        except Exception as e:
            raise DataFetchError(f"Price payload parsing failed: {e}") from e
