"""
Data models package for the Electricity Price Store.
Contains Pydantic models for price records, write results and API responses.
"""

from .price import (
    HealthResponse,
    IngestionReport,
    PriceRecord,
    SLOT_LENGTH,
    WriteResult,
    WriteStatus,
    quantize_price,
)

__all__ = [
    "HealthResponse",
    "IngestionReport",
    "PriceRecord",
    "SLOT_LENGTH",
    "WriteResult",
    "WriteStatus",
    "quantize_price",
]
