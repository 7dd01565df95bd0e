"""
Test configuration and fixtures for the Electricity Price Store tests.
Contains shared fixtures and an in-memory stand-in for the asyncpg pool.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.database.cache import RangeCache
from src.database.service import PriceStore
from src.main import create_app
from src.models.price import PriceRecord


class FakeDatabase:
    """Rows of electricity_prices keyed by start_time, plus failure injection."""

    def __init__(self):
        self.rows = {}
        self.queries = 0
        self.fail_with = None
        self.select_hook = None

    def check(self):
        self.queries += 1
        if self.fail_with is not None:
            raise self.fail_with


class FakeConnection:
    """Interprets the handful of statements issued by PriceStore."""

    def __init__(self, db: FakeDatabase):
        self.db = db

    @asynccontextmanager
    async def transaction(self):
        yield self

    async def fetch(self, query, *args):
        self.db.check()

        if "INSERT INTO electricity_prices" in query:
            ids, starts, ends, prices, created = args
            staged = {}
            for row_id, start, end, price, created_at in zip(ids, starts, ends, prices, created):
                if start in self.db.rows or start in staged:
                    continue
                staged[start] = {
                    "id": row_id,
                    "start_time": start,
                    "end_time": end,
                    "price": price,
                    "created_at": created_at,
                    "updated_at": None,
                }
            self.db.rows.update(staged)
            return [{"start_time": start} for start in staged]

        if "FROM electricity_prices" in query and "start_time >= $1" in query:
            start, end = args
            rows = [
                dict(row) for row in self.db.rows.values()
                if start <= row["start_time"] < end
            ]
            if self.db.select_hook is not None:
                await self.db.select_hook()
            return rows

        raise AssertionError(f"Unexpected query: {query}")

    async def fetchval(self, query, *args):
        self.db.check()

        if "SELECT EXISTS" in query:
            start, end = args
            row = self.db.rows.get(start)
            return row is not None and row["end_time"] == end
        if "MAX(start_time)" in query:
            return max(self.db.rows) if self.db.rows else None
        if "COUNT(*) FROM electricity_prices" in query:
            return len(self.db.rows)
        if "information_schema.tables" in query:
            return 1

        raise AssertionError(f"Unexpected query: {query}")


class FakePool:
    def __init__(self, db: FakeDatabase):
        self.db = db
        self.closed = False

    def is_closing(self) -> bool:
        return self.closed

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self.db)

    async def close(self):
        self.closed = True


def make_record(start_time: datetime, price="10.00") -> PriceRecord:
    return PriceRecord(id=uuid4(), start_time=start_time, price=Decimal(price),
                       created_at=datetime(2023, 1, 1))


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def range_cache() -> RangeCache:
    return RangeCache(max_entries=16, ttl_seconds=60)


@pytest.fixture
def store(fake_db, range_cache) -> PriceStore:
    """
    PriceStore wired to the in-memory pool.
    """
    price_store = PriceStore(database_url="postgresql://test/prices", cache=range_cache)
    price_store._pool = FakePool(fake_db)
    return price_store


@pytest.fixture
def uncached_store(fake_db) -> PriceStore:
    price_store = PriceStore(database_url="postgresql://test/prices")
    price_store._pool = FakePool(fake_db)
    return price_store


@pytest.fixture
def sample_price_records() -> List[PriceRecord]:
    """
    Create a day of hourly records for 2023-01-01 with varied prices.
    """
    base_time = datetime(2023, 1, 1, 0, 0, 0)
    return [
        make_record(base_time + timedelta(hours=hour), f"{5 + hour * 0.25:.2f}")
        for hour in range(24)
    ]


@pytest.fixture
def test_app():
    """
    Create a test instance of the FastAPI application.
    """
    return create_app()


@pytest.fixture
def test_client(test_app):
    """
    Create a test client for the FastAPI application.
    """
    return TestClient(test_app)


@pytest.fixture
def mock_price_source():
    """
    Create a mock upstream price source.
    """
    source = AsyncMock()
    source.fetch_prices.return_value = []
    return source
