"""Append-only ledger of sync runs and their per-source details."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from solsync.core.logging import get_logger
from solsync.models.base import utcnow
from solsync.models.runs import SyncRun, SyncRunSource
from solsync.schemas.sync import RunStatus, SourceSyncResult

log = get_logger("services.run_history")


def overall_status(results: List[SourceSyncResult], cancelled: bool = False) -> RunStatus:
    """success if every source succeeded, partial if some did, failed if none did.

    A cancelled run is at best partial.
    """
    if not results:
        return "failed"
    succeeded = sum(1 for r in results if r.success)
    if succeeded == len(results):
        return "partial" if cancelled else "success"
    return "partial" if succeeded else "failed"


class RunHistoryRecorder:
    def __init__(self, db: Session):
        self.db = db

    def start_run(self, started_at: Optional[datetime] = None) -> SyncRun:
        run = SyncRun(started_at=started_at or utcnow(), status="in_progress")
        self.db.add(run)
        self.db.commit()
        log.info(f"Created sync run {run.id}")
        return run

    def record_source(self, run: SyncRun, result: SourceSyncResult) -> SyncRunSource:
        """Write the immutable detail row for one source of ``run``.

        A source that succeeded with units still failing is stored as partial,
        so the ledger tells it apart from a clean sync.
        """
        status = result.status
        if status == "success" and result.units_failed:
            status = "partial"
        detail = SyncRunSource(
            run_id=run.id,
            source=result.source,
            start_unit=result.start_unit,
            end_unit=result.end_unit,
            units_attempted=result.units_attempted,
            units_succeeded=result.units_succeeded,
            units_failed=result.units_failed,
            records_written=result.records_written,
            duration_seconds=int(result.duration_seconds),
            status=status,
            degraded=result.degraded,
            error_message=result.error_message,
            failed_units=[f.model_dump(mode="json") for f in result.failed_units] or None,
        )
        self.db.add(detail)
        self.db.commit()
        return detail

    def complete_run(
        self,
        run: SyncRun,
        started_at: datetime,
        results: List[SourceSyncResult],
        cancelled: bool = False,
        completed_at: Optional[datetime] = None,
    ) -> SyncRun:
        completed_at = completed_at or utcnow()
        failed = [r.source for r in results if not r.success]

        summary: List[str] = []
        if failed:
            summary.append(f"Failed sources: {', '.join(failed)}")
        if cancelled:
            summary.append("Cancelled before all sources completed")

        run.completed_at = completed_at
        run.duration_seconds = int((completed_at - started_at).total_seconds())
        run.sources_attempted = len(results)
        run.sources_succeeded = len(results) - len(failed)
        run.records_written = sum(r.records_written for r in results)
        run.status = overall_status(results, cancelled)
        run.error_summary = "; ".join(summary) or None
        self.db.commit()
        return run
