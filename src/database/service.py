"""
Price store using PostgreSQL with asyncpg.
Owns persistence of hourly price records: duplicate check, bulk insert and range queries.
"""

import asyncio
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

import asyncpg

from src.config import settings
from src.database.cache import RangeCache
from src.exceptions import DatabaseError
from src.logging_config import get_logger
from src.models.price import SLOT_LENGTH, PriceRecord, WriteResult, WriteStatus

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 1

INSERT_PRICES_SQL = """
    INSERT INTO electricity_prices (id, start_time, end_time, price, created_at)
    SELECT * FROM unnest($1::uuid[], $2::timestamp[], $3::timestamp[], $4::numeric[], $5::timestamp[])
    ON CONFLICT (start_time) DO NOTHING
    RETURNING start_time
"""

SELECT_PERIOD_SQL = """
    SELECT id, start_time, price, created_at, updated_at
    FROM electricity_prices
    WHERE start_time >= $1 AND start_time < $2
"""


class PriceStore:
    """Store for hourly price records with an optional range cache."""

    def __init__(self, database_url: str = None, cache: Optional[RangeCache] = None):
        self.database_url = database_url or settings.database_url
        self.cache = cache
        self._pool = None
        self._pool_lock = asyncio.Lock()

    async def _get_pool(self) -> asyncpg.Pool:
        """Get or create connection pool."""
        if self._pool is None or self._pool.is_closing():
            async with self._pool_lock:
                # Re-check: another caller may have created it while we waited
                if self._pool is None or self._pool.is_closing():
                    self._pool = await asyncpg.create_pool(
                        self.database_url,
                        min_size=settings.database_pool_min_size,
                        max_size=settings.database_pool_max_size,
                        command_timeout=settings.database_command_timeout,
                    )
        return self._pool

    async def close(self):
        """Close database connection pool."""
        if self._pool and not self._pool.is_closing():
            await self._pool.close()

    async def init_database(self) -> None:
        """Initialize database with tables, indexes and the updated_at trigger."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                current_version = await self._get_schema_version(conn)

                if current_version < CURRENT_SCHEMA_VERSION:
                    async with conn.transaction():
                        await self._create_initial_schema(conn)
                        await self._set_schema_version(conn, CURRENT_SCHEMA_VERSION)
                    logger.info("Database initialized with schema version", version=CURRENT_SCHEMA_VERSION)

        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise DatabaseError(f"Database initialization failed: {e}") from e

    async def _get_schema_version(self, conn: asyncpg.Connection) -> int:
        """Get current database schema version."""
        try:
            result = await conn.fetchval(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            return result if result else 0
        except asyncpg.UndefinedTableError:
            # New database
            return 0

    async def _set_schema_version(self, conn: asyncpg.Connection, version: int) -> None:
        """Set database schema version."""
        await conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES ($1, $2)",
            version, datetime.now()
        )

    async def _create_initial_schema(self, conn: asyncpg.Connection) -> None:
        """Create initial database schema."""
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP NOT NULL DEFAULT LOCALTIMESTAMP
            )
        """)

        # One row per hour slot; the unique constraint closes the
        # check-then-insert race between concurrent ingestions.
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS electricity_prices (
                id UUID PRIMARY KEY,
                start_time TIMESTAMP NOT NULL,
                end_time TIMESTAMP NOT NULL,
                price NUMERIC(18,2) NOT NULL,
                created_at TIMESTAMP NOT NULL DEFAULT LOCALTIMESTAMP,
                updated_at TIMESTAMP NULL,
                CONSTRAINT uq_electricity_prices_start_time UNIQUE (start_time),
                CONSTRAINT ck_electricity_prices_slot CHECK (end_time = start_time + INTERVAL '1 hour')
            )
        """)

        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_electricity_prices_start_time ON electricity_prices(start_time)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_electricity_prices_end_time ON electricity_prices(end_time)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_electricity_prices_start_end "
            "ON electricity_prices(start_time, end_time)"
        )

        # updated_at only moves when an existing row is modified
        await conn.execute("""
            CREATE OR REPLACE FUNCTION electricity_prices_touch_updated_at()
            RETURNS trigger AS $$
            BEGIN
                NEW.updated_at = LOCALTIMESTAMP;
                RETURN NEW;
            END;
            $$ LANGUAGE plpgsql
        """)
        await conn.execute(
            "DROP TRIGGER IF EXISTS trg_electricity_prices_updated_at ON electricity_prices"
        )
        await conn.execute("""
            CREATE TRIGGER trg_electricity_prices_updated_at
            BEFORE UPDATE ON electricity_prices
            FOR EACH ROW EXECUTE FUNCTION electricity_prices_touch_updated_at()
        """)

        logger.info("Initial database schema created")

    async def is_duplicate(self, start_time: datetime, end_time: datetime) -> bool:
        """Check whether a record with exactly this start/end pair exists."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                return bool(await conn.fetchval(
                    "SELECT EXISTS (SELECT 1 FROM electricity_prices "
                    "WHERE start_time = $1 AND end_time = $2)",
                    start_time, end_time
                ))
        except Exception as e:
            logger.error("Failed to check for duplicate record", error=str(e),
                         start_time=start_time.isoformat())
            raise DatabaseError(f"Duplicate check failed: {e}") from e

    async def add_range(self, records: Iterable[PriceRecord]) -> WriteResult:
        """
        Insert records in one statement.

        Never raises: storage failures are logged and reported as a FAILED
        result. Rows whose slot already exists are skipped by the database.
        """
        records = list(records)
        if not records:
            return WriteResult(status=WriteStatus.EMPTY)

        batch = {}
        for record in records:
            batch.setdefault(record.start_time, record)
        batch = list(batch.values())

        now = datetime.now()
        params = (
            [record.id or uuid4() for record in batch],
            [record.start_time for record in batch],
            [record.end_time for record in batch],
            [record.price for record in batch],
            [now] * len(batch),
        )

        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    rows = await conn.fetch(INSERT_PRICES_SQL, *params)
        except Exception as e:
            logger.error("Failed to insert price records", error=str(e), count=len(batch))
            return WriteResult(status=WriteStatus.FAILED, skipped=len(records), error=str(e))

        inserted = len(rows)
        skipped = len(records) - inserted

        if inserted == 0:
            logger.info("All price records already stored", count=len(records))
            return WriteResult(status=WriteStatus.DUPLICATE, skipped=skipped)

        if self.cache is not None:
            written = [row["start_time"] for row in rows]
            evicted = self.cache.invalidate(min(written), max(written) + SLOT_LENGTH)
            if evicted:
                logger.debug("Invalidated cached ranges", evicted=evicted)

        logger.info("Saved price records", inserted=inserted, skipped=skipped)
        return WriteResult(status=WriteStatus.INSERTED, inserted=inserted, skipped=skipped)

    async def get_prices_for_period(self, start: datetime, end: datetime) -> List[PriceRecord]:
        """
        Return stored records with start <= start_time < end, in store order.

        Storage failures raise DatabaseError so callers can retry or fail the request.
        """
        if end <= start:
            return []

        version = None
        if self.cache is not None:
            cached = self.cache.get(start, end)
            if cached is not None:
                logger.debug("Range served from cache", start=start.isoformat(),
                             end=end.isoformat(), count=len(cached))
                return cached
            version = self.cache.version

        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(SELECT_PERIOD_SQL, start, end)
        except Exception as e:
            logger.error("Failed to query prices for period", error=str(e),
                         start=start.isoformat(), end=end.isoformat())
            raise DatabaseError(f"Range query failed: {e}") from e

        records = [self._row_to_record(row) for row in rows]

        if self.cache is not None:
            self.cache.put(start, end, records, version=version)

        return records

    async def get_latest_start_time(self) -> Optional[datetime]:
        """Most recent stored slot, used as the ingestion high-watermark."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                return await conn.fetchval("SELECT MAX(start_time) FROM electricity_prices")
        except Exception as e:
            logger.error("Failed to read latest slot", error=str(e))
            raise DatabaseError(f"Query failed: {e}") from e

    async def count_records(self) -> int:
        """Total number of stored records."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM electricity_prices")
        except Exception as e:
            logger.error("Failed to count records", error=str(e))
            raise DatabaseError(f"Query failed: {e}") from e

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                result = await conn.fetchval(
                    "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = 'electricity_prices'"
                )

                if result != 1:
                    logger.error("Price table not found")
                    return False

            return True

        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    @staticmethod
    def _row_to_record(row) -> PriceRecord:
        return PriceRecord(
            id=row["id"],
            start_time=row["start_time"],
            price=row["price"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


# Global price store instance
price_store = PriceStore(
    cache=RangeCache(
        max_entries=settings.cache_max_entries,
        ttl_seconds=settings.cache_ttl_seconds,
    )
)
