"""Orchestrator tests: window sync, retries, partial tolerance and cancellation"""

import asyncio
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from solsync.ingestion.registry import FETCHERS
from solsync.models.base import utcnow
from solsync.models.progress import SyncState
from solsync.models.records import UnitRecord
from solsync.models.runs import SyncRun, SyncRunSource
from solsync.services.position import PositionResolver
from solsync.services.sync_service import UNRESOLVED_MESSAGE, SyncService
from solsync.tests.conftest import FakeFetcher, NullClient, RecordingSleep


def http_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://feed.test/api")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"Server error '{status}'", request=request, response=response)


@pytest.fixture
def register(monkeypatch):
    """Register fake fetchers under their source ids for the test."""

    def _register(*fetchers):
        for fetcher in fetchers:
            monkeypatch.setitem(FETCHERS, fetcher.name, lambda client, f=fetcher: f)
        return fetchers[0] if len(fetchers) == 1 else fetchers

    return _register


@pytest.fixture
def make_service(db):
    def _make(sources, sleep=None, source_pause=0, **kwargs):
        sleep = sleep or RecordingSleep()
        return SyncService(
            db,
            sources=sources,
            lookback=7,
            retry_rounds=3,
            retry_base_delay=30,
            source_pause=source_pause,
            stuck_threshold=timedelta(minutes=60),
            resolver=PositionResolver(db, attempts=3, sleep=sleep),
            client_factory=NullClient,
            sleep=sleep,
            **kwargs,
        )

    return _make


def record_count(db, source):
    return db.execute(select(func.count()).select_from(UnitRecord).where(UnitRecord.source == source)).scalar()


class TestSourceSync:
    """Test one source end to end against a scripted upstream"""

    @pytest.mark.asyncio
    async def test_one_unit_failing_every_round(self, db, register, make_service):
        """Units 193-200 attempted; 196 fails all rounds; the source still succeeds"""
        fetcher = register(FakeFetcher(latest=200, items_per_unit=3, failures={196: http_error(503)}))
        sleep = RecordingSleep()

        result = await make_service(["alpha"], sleep=sleep).run_all()

        source = result.sources[0]
        assert fetcher.order[:8] == list(range(193, 201))
        assert fetcher.attempts[196] == 4
        assert sleep.delays == [30, 60, 120]

        assert source.status == "success"
        assert source.degraded is False
        assert (source.start_unit, source.end_unit) == (193, 200)
        assert source.units_attempted == 8
        assert source.units_succeeded == 7
        assert source.units_failed == 1
        assert source.records_written == 21
        assert [(f.unit, f.error_type) for f in source.failed_units] == [(196, "HTTP_503")]
        assert "196 (HTTP_503)" in source.error_message

        assert result.status == "success"
        assert result.records_written == 21
        assert record_count(db, "alpha") == 21

        state = db.get(SyncState, "alpha")
        assert state.last_synced_unit == 200
        assert state.last_run_status == "partial"
        assert state.records_written_last_run == 21

        run = db.get(SyncRun, result.run_id)
        assert run.status == "success"
        assert run.sources_attempted == 1
        assert run.sources_succeeded == 1
        assert run.records_written == 21
        assert run.completed_at is not None
        detail = run.source_details[0]
        assert detail.status == "partial"
        assert detail.units_failed == 1
        assert detail.failed_units[0]["unit"] == 196
        assert detail.failed_units[0]["error_type"] == "HTTP_503"

    @pytest.mark.asyncio
    async def test_unit_recovered_on_retry(self, db, register, make_service):
        """A unit succeeding in a later round counts towards the totals"""
        register(FakeFetcher(latest=10, items_per_unit=2, failures={5: [httpx.ReadTimeout("slow"), None]}))
        sleep = RecordingSleep()

        result = await make_service(["alpha"], sleep=sleep).run_all()

        source = result.sources[0]
        assert source.units_succeeded == 8
        assert source.units_failed == 0
        assert source.failed_units == []
        assert source.records_written == 16
        assert sleep.delays == [30]
        assert db.get(SyncState, "alpha").last_run_status == "success"

    @pytest.mark.asyncio
    async def test_clean_run(self, db, register, make_service):
        register(FakeFetcher(latest=3))

        result = await make_service(["alpha"]).run_all()

        source = result.sources[0]
        assert (source.start_unit, source.end_unit) == (1, 3)
        assert source.units_attempted == 3
        assert source.error_message is None
        state = db.get(SyncState, "alpha")
        assert state.last_run_status == "success"
        assert state.error_message is None
        detail = db.execute(select(SyncRunSource)).scalar_one()
        assert detail.status == "success"
        assert detail.units_failed == 0

    @pytest.mark.asyncio
    async def test_rerun_writes_nothing_new(self, db, register, make_service):
        """The overlapping window replays without duplicating records"""
        register(FakeFetcher(latest=20))
        service = make_service(["alpha"])

        first = await service.run_all()
        second = await service.run_all()

        assert first.records_written == 24
        assert second.records_written == 0
        assert second.sources[0].units_succeeded == 8
        assert record_count(db, "alpha") == 24

    @pytest.mark.asyncio
    async def test_cursor_never_moves_backwards(self, db, register, make_service):
        db.add(SyncState(source="alpha", last_synced_unit=250, last_sync_at=utcnow(), last_run_status="success"))
        db.commit()
        register(FakeFetcher(latest=200))

        await make_service(["alpha"]).run_all()

        assert db.get(SyncState, "alpha").last_synced_unit == 250

    @pytest.mark.asyncio
    async def test_degraded_resolution(self, db, register, make_service):
        """Upstream down: window ends one past the highest stored unit"""
        fetcher = FakeFetcher(latest_error=httpx.ConnectError("down"))
        db.add(UnitRecord(source="alpha", **fetcher.parse_item({"id": "seed", "date_taken": "2024-01-01"}, 120).model_dump()))
        db.commit()
        register(fetcher)
        sleep = RecordingSleep()

        result = await make_service(["alpha"], sleep=sleep).run_all()

        source = result.sources[0]
        assert source.degraded is True
        assert (source.start_unit, source.end_unit) == (114, 121)
        assert sleep.delays[:2] == [2, 4]
        detail = db.execute(select(SyncRunSource)).scalar_one()
        assert detail.degraded is True

    @pytest.mark.asyncio
    async def test_unresolved_source_fails(self, db, register, make_service):
        """No upstream and no stored records aborts only that source"""
        register(FakeFetcher(latest_error=httpx.ConnectError("down")))

        result = await make_service(["alpha"]).run_all()

        source = result.sources[0]
        assert source.status == "failed"
        assert source.error_message == UNRESOLVED_MESSAGE
        assert source.units_attempted == 0
        assert result.status == "failed"
        assert result.failed_sources == ["alpha"]

        state = db.get(SyncState, "alpha")
        assert state.last_run_status == "failed"
        assert state.last_synced_unit == 0
        run = db.get(SyncRun, result.run_id)
        assert run.status == "failed"
        assert run.error_summary == "Failed sources: alpha"

    @pytest.mark.asyncio
    async def test_unknown_source_fails(self, db, make_service):
        result = await make_service(["gamma"]).run_all()

        assert result.sources[0].status == "failed"
        assert "gamma" in result.sources[0].error_message
        assert db.get(SyncState, "gamma").last_run_status == "failed"


class TestRunAcrossSources:
    """Test run-level bookkeeping across several sources"""

    @pytest.mark.asyncio
    async def test_failed_source_does_not_stop_others(self, db, register, make_service):
        alpha, beta = register(
            FakeFetcher(name="alpha", latest_error=httpx.ConnectError("down")),
            FakeFetcher(name="beta", latest=8),
        )
        sleep = RecordingSleep()

        result = await make_service(["alpha", "beta"], sleep=sleep, source_pause=2).run_all()

        assert [s.status for s in result.sources] == ["failed", "success"]
        assert result.status == "partial"
        assert sleep.delays == [2, 4, 2]
        run = db.get(SyncRun, result.run_id)
        assert run.status == "partial"
        assert run.sources_attempted == 2
        assert run.sources_succeeded == 1
        assert [d.source for d in run.source_details] == ["alpha", "beta"]

    @pytest.mark.asyncio
    async def test_stuck_run_reaped_before_new_run(self, db, register, make_service):
        stuck = SyncRun(started_at=utcnow() - timedelta(minutes=90), status="in_progress")
        recent = SyncRun(started_at=utcnow() - timedelta(minutes=30), status="in_progress")
        db.add_all([stuck, recent])
        db.commit()
        register(FakeFetcher(latest=2))

        result = await make_service(["alpha"]).run_all()

        assert result.reaped_runs == [stuck.id]
        db.refresh(stuck)
        db.refresh(recent)
        assert stuck.status == "failed"
        assert recent.status == "in_progress"

    @pytest.mark.asyncio
    async def test_store_failure_aborts_run(self, db, register, make_service, monkeypatch):
        """Bookkeeping that cannot be written is not a unit failure"""
        register(FakeFetcher(latest=5))
        service = make_service(["alpha"])

        def broken_write(*args, **kwargs):
            raise OperationalError("INSERT INTO unit_records", {}, Exception("database is gone"))

        monkeypatch.setattr(service.writer, "write", broken_write)

        with pytest.raises(OperationalError):
            await service.run_all()

        run = db.execute(select(SyncRun)).scalar_one()
        assert run.status == "in_progress"


class TestCancellation:
    """Test that cancellation stops work but keeps the bookkeeping"""

    @pytest.mark.asyncio
    async def test_cancelled_unit_stops_source_and_run(self, db, register, make_service):
        alpha, beta = register(
            FakeFetcher(name="alpha", latest=200, failures={195: asyncio.CancelledError()}),
            FakeFetcher(name="beta", latest=10),
        )
        sleep = RecordingSleep()

        with pytest.raises(asyncio.CancelledError):
            await make_service(["alpha", "beta"], sleep=sleep).run_all()

        assert alpha.order == [193, 194, 195]
        assert beta.latest_calls == 0
        assert sleep.delays == []

        state = db.get(SyncState, "alpha")
        assert state.last_synced_unit == 195
        assert state.last_run_status == "partial"
        assert db.get(SyncState, "beta") is None

        run = db.execute(select(SyncRun)).scalar_one()
        assert run.status == "partial"
        assert run.completed_at is not None
        assert "Cancelled" in run.error_summary
        detail = run.source_details[0]
        assert detail.status == "partial"
        assert detail.units_attempted == 3
        assert detail.failed_units[0]["error_type"] == "Cancelled"

    @pytest.mark.asyncio
    async def test_cancelled_during_retry_backoff(self, db, register, make_service):
        register(FakeFetcher(latest=10, failures={4: http_error(500)}))
        sleep = RecordingSleep(cancel_on=1)

        with pytest.raises(asyncio.CancelledError):
            await make_service(["alpha"], sleep=sleep).run_all()

        state = db.get(SyncState, "alpha")
        assert state.last_synced_unit == 10
        assert state.last_run_status == "partial"
        detail = db.execute(select(SyncRunSource)).scalar_one()
        assert detail.failed_units[0]["unit"] == 4
        assert detail.failed_units[0]["error_type"] == "HTTP_500"

    @pytest.mark.asyncio
    async def test_cancelled_between_sources(self, db, register, make_service):
        alpha, beta = register(FakeFetcher(name="alpha", latest=2), FakeFetcher(name="beta", latest=2))
        sleep = RecordingSleep(cancel_on=1)

        with pytest.raises(asyncio.CancelledError):
            await make_service(["alpha", "beta"], sleep=sleep, source_pause=2).run_all()

        assert beta.latest_calls == 0
        run = db.execute(select(SyncRun)).scalar_one()
        assert run.status == "partial"
        assert [d.source for d in run.source_details] == ["alpha"]
