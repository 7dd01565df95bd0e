"""
FastAPI route handlers for the price store.
Exposes gap-filled range reads and a health endpoint.
"""

from datetime import datetime
from typing import List

from fastapi import APIRouter, HTTPException, Query

from src.database.service import price_store
from src.exceptions import DatabaseError
from src.logging_config import get_logger
from src.models.price import HealthResponse, PriceRecord
from src.scheduler.ingestion_scheduler import ingestion_scheduler
from src.services.price_service import price_service

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.
    Reports store connectivity, stored record count and the latest slot.
    """
    try:
        healthy = await price_store.health_check()
        details = {
            "service": "electricity-price-store",
            "database": "up" if healthy else "down",
            "scheduler_running": ingestion_scheduler.is_running,
        }

        if healthy:
            latest = await price_store.get_latest_start_time()
            details["record_count"] = await price_store.count_records()
            details["latest_slot"] = latest.isoformat() if latest else None

        return HealthResponse(
            status="healthy" if healthy else "unhealthy",
            timestamp=datetime.now(),
            details=details,
        )

    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.now(),
            details={"service": "electricity-price-store", "error": str(e)}
        )


@router.get("/prices", response_model=List[PriceRecord])
async def get_prices(
    start: datetime = Query(description="Inclusive window start (naive wall clock)"),
    end: datetime = Query(description="Exclusive window end (naive wall clock)"),
):
    """
    Hourly prices for [start, end) with missing slots padded at price 0.

    Calendar days from start's date up to, but not including, end's date are
    padded. An empty list is returned when end <= start.

    Raises:
        HTTPException: 400 for timezone-aware input, 503 when the store is unavailable.
    """
    if start.tzinfo is not None or end.tzinfo is not None:
        raise HTTPException(status_code=400, detail="start and end must not carry a timezone offset")

    try:
        return await price_service.get_prices_for_period(start, end)

    except DatabaseError as e:
        logger.error("Price store unavailable", error=str(e),
                     start=start.isoformat(), end=end.isoformat())
        raise HTTPException(status_code=503, detail="Price store unavailable")
