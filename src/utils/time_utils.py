"""
Time utility functions for hour slots.
Slots are stored as naive wall-clock timestamps in the configured market timezone.
"""

from datetime import datetime
from typing import Optional

import pytz

from src.config import settings


def market_timezone(name: Optional[str] = None):
    """Return the pytz timezone slots are expressed in."""
    return pytz.timezone(name or settings.market_timezone)


def floor_to_hour(value: datetime) -> datetime:
    """Drop minutes, seconds and microseconds."""
    return value.replace(minute=0, second=0, microsecond=0)


def now_local(tz_name: Optional[str] = None) -> datetime:
    """
    Current wall-clock time in the market timezone, as a naive datetime.

    Examples (Europe/Helsinki, summer time):
        - 10:15 UTC -> 13:15
    """
    return datetime.now(market_timezone(tz_name)).replace(tzinfo=None)

