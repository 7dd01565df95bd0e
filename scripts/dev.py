#!/usr/bin/env python3
"""
Development helper scripts for the Electricity Price Store.
Provides utilities for database setup, manual ingestion and range inspection.
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add project root to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import settings
from src.database.service import price_store
from src.logging_config import setup_logging
from src.scheduler.ingestion_scheduler import ingestion_scheduler
from src.services.price_service import price_service


async def init_db():
    """Initialize the database with required tables."""
    print("Initializing database...")
    setup_logging()
    try:
        await price_store.init_database()
        print("Database initialized")
    finally:
        await price_store.close()


async def ingest_manual():
    """Run one ingestion cycle."""
    print("Starting manual ingestion...")
    setup_logging()
    try:
        await price_store.init_database()
        report = await ingestion_scheduler.run_once()
    finally:
        await price_store.close()

    if report is None:
        print("Nothing ingested (store up to date or cycle failed, see logs)")
    else:
        print(f"Status: {report.status.value}, fetched {report.fetched}, "
              f"ingested {report.ingested}, duplicates {report.duplicates}")


async def show_range(start: datetime, end: datetime):
    """Display the gap-filled price sequence for a window."""
    setup_logging()
    try:
        records = await price_service.get_prices_for_period(start, end)
    finally:
        await price_store.close()

    if not records:
        print("Empty window")
        return

    print(f"\n{len(records)} hourly slots:")
    print("-" * 60)
    print(f"{'Start':<20} {'End':<20} {'Price':>10}  Stored")
    print("-" * 60)

    for record in records:
        print(f"{record.start_time.strftime('%Y-%m-%d %H:%M'):<20} "
              f"{record.end_time.strftime('%Y-%m-%d %H:%M'):<20} "
              f"{record.price:>10}  {'no' if record.is_placeholder else 'yes'}")


async def show_health():
    """Report store connectivity and contents."""
    setup_logging()
    try:
        healthy = await price_store.health_check()
        print(f"Database: {'up' if healthy else 'down'}")
        if healthy:
            print(f"Records: {await price_store.count_records()}")
            print(f"Latest slot: {await price_store.get_latest_start_time()}")
    finally:
        await price_store.close()


def show_config():
    """Display current configuration settings."""
    print("Current Configuration:")
    print("-" * 40)
    print(f"API: {settings.api_host}:{settings.api_port} (debug={settings.api_debug})")
    print(f"Price source: {settings.price_source_url}")
    print(f"Market timezone: {settings.market_timezone}")
    print(f"Ingestion: every {settings.ingestion_interval_minutes} min, "
          f"lookback {settings.ingestion_lookback_hours} h, horizon {settings.ingestion_horizon_hours} h")
    print(f"Backfill: enabled={settings.backfill_enabled}, {settings.backfill_years} years "
          f"after {settings.backfill_delay_seconds:.0f} s")
    print(f"Range cache: {settings.cache_max_entries} entries, ttl {settings.cache_ttl_seconds:.0f} s")
    print(f"Log Level: {settings.log_level}")


def main():
    """Main script entry point with command selection."""
    if len(sys.argv) < 2:
        print("Electricity Price Store Development Scripts")
        print("Usage: python scripts/dev.py <command>")
        print("\nAvailable commands:")
        print("  init-db            - Initialize database")
        print("  ingest             - Run one ingestion cycle")
        print("  show START END     - Display gap-filled prices (ISO timestamps)")
        print("  health             - Check store connectivity")
        print("  show-config        - Display current configuration")
        return

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_db())
    elif command == "ingest":
        asyncio.run(ingest_manual())
    elif command == "show":
        if len(sys.argv) != 4:
            print("Usage: python scripts/dev.py show 2024-01-01T00:00 2024-01-03T00:00")
            return
        asyncio.run(show_range(datetime.fromisoformat(sys.argv[2]), datetime.fromisoformat(sys.argv[3])))
    elif command == "health":
        asyncio.run(show_health())
    elif command == "show-config":
        show_config()
    else:
        print(f"Unknown command: {command}")
        print("Run without arguments to see available commands")


if __name__ == "__main__":
    main()
