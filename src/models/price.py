"""
Pydantic data models for hourly price records and store results.
Defines the structure for price records, write outcomes and API responses.
"""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

SLOT_LENGTH = timedelta(hours=1)
PRICE_QUANTUM = Decimal("0.01")


def quantize_price(value) -> Decimal:
    """Round a price to two fractional digits."""
    return Decimal(str(value)).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


class PriceRecord(BaseModel):
    """
    A single hourly price slot.

    start_time is a naive wall-clock timestamp aligned to the hour; end_time
    is always derived from it. Placeholder records produced by range
    completion have no id and a zero price.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = Field(default=None, description="Store-assigned identifier")
    start_time: datetime = Field(description="Hour-aligned slot start (naive wall clock)")
    price: Decimal = Field(description="Slot price, two fractional digits")
    created_at: Optional[datetime] = Field(default=None, description="Insert timestamp")
    updated_at: Optional[datetime] = Field(default=None, description="Last modification timestamp")

    @field_validator("start_time")
    @classmethod
    def _check_slot(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            raise ValueError("start_time must be a naive wall-clock timestamp")
        if value.minute or value.second or value.microsecond:
            raise ValueError("start_time must be aligned to the hour")
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _quantize(cls, value) -> Decimal:
        try:
            return quantize_price(value)
        except InvalidOperation:
            raise ValueError(f"Invalid price value: {value!r}")

    @computed_field
    @property
    def end_time(self) -> datetime:
        return self.start_time + SLOT_LENGTH

    @property
    def is_placeholder(self) -> bool:
        return self.id is None and self.created_at is None


class WriteStatus(str, Enum):
    """Outcome of a bulk insert."""
    INSERTED = "inserted"
    EMPTY = "empty"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class WriteResult(BaseModel):
    """
    Typed result of PriceStore.add_range.

    Truthy only when at least one row was written, so it can stand in
    wherever a plain success boolean is expected.
    """
    status: WriteStatus
    inserted: int = 0
    skipped: int = 0
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.status is WriteStatus.INSERTED


class IngestionReport(BaseModel):
    """Summary of one ingestion cycle."""
    window_start: datetime
    window_end: datetime
    fetched: int = 0
    ingested: int = 0
    duplicates: int = 0
    status: WriteStatus = WriteStatus.EMPTY


class HealthResponse(BaseModel):
    """
    Health check response model.
    """
    status: str = Field(description="Health status")
    timestamp: datetime = Field(description="Health check timestamp")
    details: Optional[dict] = Field(default=None, description="Additional health details")
