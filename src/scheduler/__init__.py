"""
Scheduler package for the Electricity Price Store.
Contains the interval ingestion scheduler and the startup backfill runner.
"""

from .backfill import backfill_runner, BackfillRunner
from .ingestion_scheduler import ingestion_scheduler, IngestionScheduler

__all__ = [
    "backfill_runner",
    "BackfillRunner",
    "ingestion_scheduler",
    "IngestionScheduler",
]
