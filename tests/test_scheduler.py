"""
Unit tests for the background tasks.
Tests the interval ingestion scheduler and the startup backfill runner.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from src.exceptions import DatabaseError, DataFetchError
from src.models.price import IngestionReport, PriceRecord, WriteStatus
from src.scheduler.backfill import BackfillRunner
from src.scheduler.ingestion_scheduler import IngestionScheduler
from src.services.price_service import PriceService

NOW = datetime(2023, 1, 10, 14, 25)


def _record(start_time: datetime) -> PriceRecord:
    return PriceRecord(start_time=start_time, price=Decimal("4.20"))


def _report(status=WriteStatus.INSERTED) -> IngestionReport:
    return IngestionReport(window_start=datetime(2023, 1, 1), window_end=datetime(2023, 1, 2),
                           fetched=2, ingested=2, status=status)


@pytest.fixture
def price_service(store, mock_price_source):
    return PriceService(store=store, source=mock_price_source)


@pytest.fixture
def scheduler(price_service):
    return IngestionScheduler(service=price_service, interval_minutes=60,
                              lookback_hours=48, horizon_hours=36)


class TestComputeWindow:
    """Tests for the ingestion window."""

    @pytest.mark.asyncio
    async def test_empty_store_uses_lookback(self, scheduler):
        window = await scheduler.compute_window(NOW)

        assert window == (datetime(2023, 1, 8, 14), datetime(2023, 1, 12, 2))

    @pytest.mark.asyncio
    async def test_starts_after_high_watermark(self, scheduler, store):
        await store.add_range([_record(datetime(2023, 1, 10, 9))])

        window = await scheduler.compute_window(NOW)

        assert window == (datetime(2023, 1, 10, 10), datetime(2023, 1, 12, 2))

    @pytest.mark.asyncio
    async def test_up_to_date_store(self, scheduler, store):
        await store.add_range([_record(datetime(2023, 1, 12, 1))])

        assert await scheduler.compute_window(NOW) is None


class TestIngestionJob:
    """Tests for a single ingestion cycle."""

    @pytest.mark.asyncio
    async def test_ingests_new_records(self, scheduler, store, mock_price_source):
        mock_price_source.fetch_prices.return_value = [
            _record(datetime(2023, 1, 10, 15)),
            _record(datetime(2023, 1, 10, 16)),
        ]

        with capture_logs() as logs:
            report = await scheduler.run_once(NOW)

        assert report.status == WriteStatus.INSERTED
        assert report.ingested == 2
        assert await store.count_records() == 2
        completed = [entry for entry in logs if entry["event"] == "Completed price ingestion"]
        assert completed[0]["ingested"] == 2
        assert completed[0]["duplicates"] == 0

    @pytest.mark.asyncio
    async def test_fetch_failure_is_logged_not_raised(self, scheduler, mock_price_source):
        mock_price_source.fetch_prices.side_effect = DataFetchError("HTTP error: 503")

        with capture_logs() as logs:
            report = await scheduler.run_once(NOW)

        assert report is None
        failures = [entry for entry in logs if entry["event"] == "Price ingestion failed"]
        assert failures[0]["error_type"] == "DataFetchError"
        assert failures[0]["log_level"] == "error"

    @pytest.mark.asyncio
    async def test_store_failure_is_logged_not_raised(self, scheduler, fake_db):
        fake_db.fail_with = ConnectionError("db down")

        with capture_logs() as logs:
            report = await scheduler.run_once(NOW)

        assert report is None
        assert any(entry["event"] == "Price ingestion failed" for entry in logs)

    @pytest.mark.asyncio
    async def test_up_to_date_skips_fetch(self, scheduler, store, mock_price_source):
        await store.add_range([_record(datetime(2023, 1, 12, 5))])

        assert await scheduler.run_once(NOW) is None
        mock_price_source.fetch_prices.assert_not_called()


class TestSchedulerLifecycle:
    """Tests for start/stop and the shutdown signal."""

    @pytest.mark.asyncio
    async def test_runs_immediately_and_stops_between_ticks(self):
        service = AsyncMock()
        service.store.get_latest_start_time.return_value = None
        service.ingest_window.return_value = _report()
        scheduler = IngestionScheduler(service=service, interval_minutes=60)

        await scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.is_running

        await asyncio.wait_for(scheduler.stop(), timeout=1)

        assert not scheduler.is_running
        assert service.ingest_window.await_count == 1

    @pytest.mark.asyncio
    async def test_loop_survives_failing_ticks(self):
        service = AsyncMock()
        service.store.get_latest_start_time.side_effect = DatabaseError("db down")
        scheduler = IngestionScheduler(service=service, interval_minutes=1)
        scheduler.interval_seconds = 0.01

        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert service.store.get_latest_start_time.await_count >= 2

    @pytest.mark.asyncio
    async def test_shared_shutdown_event_stops_loop(self):
        service = AsyncMock()
        service.store.get_latest_start_time.return_value = None
        service.ingest_window.return_value = _report()
        scheduler = IngestionScheduler(service=service, interval_minutes=60)
        shutdown = asyncio.Event()

        await scheduler.start(shutdown)
        await asyncio.sleep(0.05)
        assert scheduler.is_running

        shutdown.set()
        await asyncio.wait_for(scheduler._task, timeout=1)

        assert scheduler._task.done()
        assert not scheduler.is_running
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_double_start_is_ignored(self):
        service = AsyncMock()
        service.store.get_latest_start_time.return_value = None
        service.ingest_window.return_value = _report()
        scheduler = IngestionScheduler(service=service, interval_minutes=60)

        await scheduler.start()
        task = scheduler._task
        await scheduler.start()

        assert scheduler._task is task
        await scheduler.stop()


class TestBackfillRunner:
    """Tests for the startup backfill read."""

    def test_window_spans_configured_years(self):
        runner = BackfillRunner(store=AsyncMock(), delay_seconds=0, years=10)

        start, end = runner.compute_window(NOW)

        assert start == datetime(2013, 1, 10)
        assert end == datetime(2023, 1, 11)

    def test_window_handles_leap_day(self):
        runner = BackfillRunner(store=AsyncMock(), delay_seconds=0, years=1)

        start, _ = runner.compute_window(datetime(2024, 2, 29, 8))

        assert start == datetime(2023, 2, 28)

    @pytest.mark.asyncio
    async def test_same_day_runs_share_cached_window(self, store, fake_db, range_cache):
        runner = BackfillRunner(store=store, delay_seconds=0, years=10)
        morning = runner.compute_window(datetime(2023, 1, 10, 8, 15, 3, 120))
        evening = runner.compute_window(datetime(2023, 1, 10, 21, 40, 59, 999))
        assert morning == evening

        await store.get_prices_for_period(*morning)
        queries = fake_db.queries
        await store.get_prices_for_period(*evening)

        assert fake_db.queries == queries
        assert len(range_cache) == 1

    @pytest.mark.asyncio
    async def test_reads_once_and_logs_count(self, store, sample_price_records):
        await store.add_range(sample_price_records)
        runner = BackfillRunner(store=store, delay_seconds=0, years=10)

        with capture_logs() as logs:
            count = await runner.run()

        assert count == 24
        completed = [entry for entry in logs if entry["event"] == "Backfill read completed"]
        assert completed[0]["count"] == 24

    @pytest.mark.asyncio
    async def test_does_not_write(self):
        mock_store = AsyncMock()
        mock_store.get_prices_for_period.return_value = []
        runner = BackfillRunner(store=mock_store, delay_seconds=0, years=10)

        await runner.run()

        mock_store.get_prices_for_period.assert_awaited_once()
        mock_store.add_range.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self):
        mock_store = AsyncMock()
        mock_store.get_prices_for_period.side_effect = DatabaseError("Range query failed")
        runner = BackfillRunner(store=mock_store, delay_seconds=0, years=10)

        with capture_logs() as logs:
            assert await runner.run() is None

        assert any(entry["event"] == "Backfill read failed" for entry in logs)

    @pytest.mark.asyncio
    async def test_shutdown_during_grace_delay_abandons(self):
        mock_store = AsyncMock()
        runner = BackfillRunner(store=mock_store, delay_seconds=60, years=10)
        shutdown = asyncio.Event()

        await runner.start(shutdown)
        await asyncio.sleep(0.01)
        shutdown.set()
        await asyncio.wait_for(runner._task, timeout=1)

        assert runner._task.result() is None
        mock_store.get_prices_for_period.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_backfill(self):
        mock_store = AsyncMock()
        runner = BackfillRunner(store=mock_store, delay_seconds=60, years=10)

        await runner.start()
        await asyncio.wait_for(runner.stop(), timeout=1)

        assert runner._task.done()
        mock_store.get_prices_for_period.assert_not_called()
