"""Incremental sync of every configured source into the record store."""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from solsync.core.config import settings
from solsync.core.logging import get_logger, with_context
from solsync.ingestion.base import UnitFetcher
from solsync.ingestion.client import FeedClient
from solsync.ingestion.errors import UnknownSourceError
from solsync.ingestion.registry import get_fetcher
from solsync.models.base import utcnow
from solsync.schemas.sync import FailedUnitInfo, RunResult, SourceSyncResult
from solsync.services.position import PositionResolver, compute_window
from solsync.services.progress import ProgressStore
from solsync.services.reaper import StuckRunReaper
from solsync.services.record_writer import RecordWriter
from solsync.services.retry import concise_message, fetch_with_classification, retry_failed_units
from solsync.services.run_history import RunHistoryRecorder, overall_status

log = get_logger("sync_service")

UNRESOLVED_MESSAGE = "Could not determine current position (upstream unavailable and no stored records)"


class SyncService:
    """Runs the lookback-window sync for each source, one source and one unit at a time.

    Responsibilities:
    - Reap runs left in_progress by a crashed process
    - Resolve each source's current unit and sync the trailing window
    - Retry failed units in backoff rounds
    - Keep per-source progress and the run ledger up to date
    """

    def __init__(
        self,
        db: Session,
        *,
        sources: Optional[List[str]] = None,
        lookback: Optional[int] = None,
        retry_rounds: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        source_pause: Optional[float] = None,
        stuck_threshold: Optional[timedelta] = None,
        resolver: Optional[PositionResolver] = None,
        client_factory: Callable[[], FeedClient] = FeedClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.sources = sources if sources is not None else settings.active_sources
        self.lookback = lookback if lookback is not None else settings.LOOKBACK_UNITS
        self.retry_rounds = retry_rounds if retry_rounds is not None else settings.UNIT_RETRY_ROUNDS
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.UNIT_RETRY_BASE_DELAY_SECONDS
        )
        self.source_pause = source_pause if source_pause is not None else settings.SOURCE_PAUSE_SECONDS
        self.client_factory = client_factory
        self.sleep = sleep

        self.writer = RecordWriter(db)
        self.progress = ProgressStore(db)
        self.history = RunHistoryRecorder(db)
        self.reaper = StuckRunReaper(db, stuck_threshold)
        self.resolver = resolver or PositionResolver(db, sleep=sleep)

    async def run_all(self, sources: Optional[List[str]] = None) -> RunResult:
        """Run one sync across ``sources`` (default: every configured source).

        Cancellation stops the remaining work, the run is still written to
        the ledger, and then ``asyncio.CancelledError`` is re-raised.
        """
        sources = sources if sources is not None else self.sources
        log.info(f"Starting sync run for sources: {', '.join(sources)}")

        reaped = self.reaper.reap()

        started_at = utcnow()
        run = self.history.start_run(started_at)
        results: List[SourceSyncResult] = []
        cancelled = False

        async with self.client_factory() as client:
            for index, source in enumerate(sources):
                result = await self._sync_source_guarded(source, client, run.id)
                results.append(result)
                self.history.record_source(run, result)

                if result.cancelled:
                    cancelled = True
                    break

                if index < len(sources) - 1 and self.source_pause > 0:
                    try:
                        await self.sleep(self.source_pause)
                    except asyncio.CancelledError:
                        log.warning("Sync run cancelled between sources")
                        cancelled = True
                        break

        completed_at = utcnow()
        run = self.history.complete_run(run, started_at, results, cancelled=cancelled, completed_at=completed_at)

        run_result = RunResult(
            run_id=run.id,
            status=overall_status(results, cancelled),
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            records_written=sum(r.records_written for r in results),
            cancelled=cancelled,
            reaped_runs=reaped,
            sources=results,
        )
        log.info(
            f"Sync run {run_result.run_id} complete: status={run_result.status} records={run_result.records_written} "
            f"duration={run_result.duration_seconds:.0f}s"
        )

        if cancelled:
            raise asyncio.CancelledError()
        return run_result

    async def _sync_source_guarded(self, source: str, client: FeedClient, run_id: Optional[int] = None) -> SourceSyncResult:
        """sync_source, but an unexpected non-store error only fails this source."""
        try:
            return await self.sync_source(source, client, run_id)
        except SQLAlchemyError:
            raise
        except Exception as exc:  # noqa: BLE001
            with_context(log, source=source, run=run_id).exception(f"Error syncing source: {exc}")
            self.db.rollback()
            message = concise_message(exc)
            self.progress.mark_failed(self.progress.get_or_create(source), message)
            return SourceSyncResult(source=source, status="failed", error_message=message)

    async def sync_source(self, source: str, client: FeedClient, run_id: Optional[int] = None) -> SourceSyncResult:
        started = time.monotonic()
        slog = with_context(log, source=source, run=run_id)
        result = SourceSyncResult(source=source)
        state = self.progress.get_or_create(source)

        try:
            fetcher = get_fetcher(source, client)
        except UnknownSourceError as exc:
            slog.warning(str(exc))
            result.error_message = str(exc)
            self.progress.mark_failed(state, result.error_message)
            return self._finish(result, started)

        try:
            position = await self.resolver.resolve(fetcher)
        except asyncio.CancelledError:
            slog.warning(f"Sync of {source} cancelled while resolving current position")
            result.cancelled = True
            result.error_message = "Cancelled before current position was resolved"
            self.progress.mark_failed(state, result.error_message)
            return self._finish(result, started)

        if position is None:
            slog.error(f"Could not determine current position for {source}")
            result.error_message = UNRESOLVED_MESSAGE
            self.progress.mark_failed(state, UNRESOLVED_MESSAGE)
            return self._finish(result, started)

        if position.degraded:
            slog.warning(f"Using stored-data fallback for {source} current unit: {position.unit} (upstream unavailable)")

        window = compute_window(position.unit, self.lookback)
        result.degraded = position.degraded
        result.start_unit = window.start
        result.end_unit = window.end
        slog.info(f"Syncing {source} units {window.start} to {window.end} (current unit: {position.unit})")

        self.progress.mark_in_progress(state)

        failures, written, succeeded, last_attempted = await self._initial_pass(fetcher, window.units, slog)
        cancelled = bool(failures) and failures[-1].cancelled

        if failures and not cancelled:
            outcome = await retry_failed_units(
                failures,
                lambda unit: fetch_with_classification(fetcher, unit, self.writer),
                max_rounds=self.retry_rounds,
                base_delay=self.retry_base_delay,
                sleep=self.sleep,
                label=f"for {source} ",
            )
            written += sum(outcome.recovered.values())
            succeeded += len(outcome.recovered)
            failures = outcome.failures
            cancelled = outcome.cancelled

        result.cancelled = cancelled
        result.units_attempted = last_attempted - window.start + 1
        result.units_succeeded = succeeded
        result.units_failed = len(failures)
        result.records_written = written
        result.failed_units = sorted(failures, key=lambda f: f.unit)
        # Unit failures do not fail the source: the next run's lookback window retries them.
        result.status = "partial" if cancelled else "success"

        summary = self._failure_summary(result.failed_units)
        if cancelled:
            result.error_message = "Cancelled" + (f"; failed units: {summary}" if summary else "")
        elif summary:
            result.error_message = f"Failed units: {summary}"

        self.progress.mark_completed(
            state,
            end_unit=last_attempted,
            status="success" if not failures and not cancelled else "partial",
            records_written=written,
            error_message=result.error_message,
        )

        if failures:
            slog.warning(
                f"Completed {source} with partial success: {written} records added, "
                f"{succeeded}/{result.units_attempted} units succeeded, {len(failures)} units failed. "
                f"Failed units: {summary}"
            )
        else:
            slog.info(f"Completed {source}: {written} records added, {succeeded}/{result.units_attempted} units succeeded")

        return self._finish(result, started)

    async def _initial_pass(self, fetcher: UnitFetcher, units: range, slog=log):
        failures: List[FailedUnitInfo] = []
        written = 0
        succeeded = 0
        last_attempted = units.start - 1

        for unit in units:
            outcome = await fetch_with_classification(fetcher, unit, self.writer)
            last_attempted = unit
            if isinstance(outcome, FailedUnitInfo):
                failures.append(outcome)
                slog.warning(f"Unit {unit}: FAILED - {outcome.error_type}: {outcome.error_message}")
                if outcome.cancelled:
                    break
            else:
                written += outcome
                succeeded += 1
                slog.info(f"Unit {unit}: SUCCESS ({outcome} records)")

        return failures, written, succeeded, last_attempted

    @staticmethod
    def _failure_summary(failures: List[FailedUnitInfo]) -> str:
        return ", ".join(f"{f.unit} ({f.error_type})" for f in failures)

    @staticmethod
    def _finish(result: SourceSyncResult, started: float) -> SourceSyncResult:
        result.duration_seconds = round(time.monotonic() - started, 3)
        return result
