"""
Range completion: turns a sparse list of stored records into a gap-free hourly timeline.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List

from src.models.price import PriceRecord

HOURS_PER_DAY = 24
PLACEHOLDER_PRICE = Decimal("0.00")


def complete_range(
    records: Iterable[PriceRecord],
    start: datetime,
    end: datetime,
    include_end_date: bool = False,
) -> List[PriceRecord]:
    """
    Pad missing hour slots with zero-priced placeholders.

    Whole calendar days are walked from ``start``'s date up to, but not
    including, ``end``'s date; every hour of those days that has no record
    gets a placeholder. The end date's own day is left out unless
    ``include_end_date`` is set. Placeholders are never persisted.

    Args:
        records: Stored records for the window, in any order
        start: Inclusive window start
        end: Exclusive window end
        include_end_date: Also walk the calendar day ``end`` falls on

    Returns:
        Stored records plus placeholders, sorted ascending by start_time.
        Empty when ``end <= start``.
    """
    if end <= start:
        return []

    records = list(records)
    existing = {record.start_time for record in records}

    first_day = datetime.combine(start.date(), datetime.min.time())
    last_day = datetime.combine(end.date(), datetime.min.time())
    if include_end_date:
        last_day += timedelta(days=1)

    placeholders = []
    day = first_day
    while day < last_day:
        for hour in range(HOURS_PER_DAY):
            slot = day + timedelta(hours=hour)
            if slot not in existing:
                placeholders.append(PriceRecord(start_time=slot, price=PLACEHOLDER_PRICE))
        day += timedelta(days=1)

    return sorted(placeholders + records, key=lambda record: record.start_time)
