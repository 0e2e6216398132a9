"""Stats Service - read-only queries behind the sync status, history and metrics endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from solsync.core.logging import get_logger
from solsync.models.base import utcnow
from solsync.models.progress import SyncState
from solsync.models.records import UnitRecord
from solsync.models.runs import SyncRun, SyncRunSource

log = get_logger("stats_service")

STALE_AFTER = timedelta(hours=36)

METRIC_PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def health_status(state: SyncState, now: Optional[datetime] = None) -> str:
    """healthy | warning | error for one source's progress state."""
    if state.last_run_status == "failed":
        return "error"

    now = now or utcnow()
    if now - _as_utc(state.last_sync_at) > STALE_AFTER:
        return "warning"

    if state.last_run_status == "in_progress":
        return "warning"

    return "healthy"


class StatsService:
    """Handles sync observability queries - reads from DB only, no writes."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------
    def record_counts(self) -> Dict[str, int]:
        stmt = select(UnitRecord.source, func.count()).group_by(UnitRecord.source)
        return {source: count for source, count in self.db.execute(stmt).all()}

    def get_status(self) -> List[Dict[str, Any]]:
        states = self.db.execute(select(SyncState).order_by(SyncState.source)).scalars().all()
        counts = self.record_counts()
        now = utcnow()
        return [
            {
                "source": state.source,
                "last_synced_unit": state.last_synced_unit,
                "last_sync_at": state.last_sync_at,
                "last_run_status": state.last_run_status,
                "records_written_last_run": state.records_written_last_run,
                "error_message": state.error_message,
                "health_status": health_status(state, now),
                "total_records": counts.get(state.source, 0),
            }
            for state in states
        ]

    def last_run(self) -> Optional[SyncRun]:
        stmt = select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------
    def get_history(
        self,
        limit: int = 50,
        offset: int = 0,
        source: Optional[str] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Tuple[List[SyncRun], int]:
        """Runs newest first with their source details, plus the unpaginated total."""
        stmt = select(SyncRun)

        if start:
            stmt = stmt.where(SyncRun.started_at >= start)
        if end:
            stmt = stmt.where(SyncRun.started_at <= end)
        if status:
            stmt = stmt.where(SyncRun.status == status.lower())
        if source:
            stmt = stmt.where(SyncRun.source_details.any(SyncRunSource.source == source.lower()))

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0

        stmt = (
            stmt.options(selectinload(SyncRun.source_details))
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(stmt).scalars().all()), total

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------
    def get_metrics(self, period: str = "7d") -> Dict[str, Any]:
        if period not in METRIC_PERIODS:
            period = "7d"
        cutoff = utcnow() - METRIC_PERIODS[period]

        stmt = (
            select(SyncRun)
            .options(selectinload(SyncRun.source_details))
            .where(SyncRun.started_at >= cutoff)
        )
        runs = list(self.db.execute(stmt).scalars().all())

        total = len(runs)
        successful = sum(1 for r in runs if r.status == "success")
        durations = [r.duration_seconds for r in runs if r.duration_seconds is not None]

        details = [d for r in runs for d in r.source_details]
        counts = self.record_counts()
        breakdown = []
        for source in sorted({d.source for d in details}):
            rows = [d for d in details if d.source == source]
            breakdown.append(
                {
                    "source": source,
                    "total_records": counts.get(source, 0),
                    "records_written_period": sum(d.records_written for d in rows),
                    "successful_runs": sum(1 for d in rows if d.status == "success"),
                    "partial_runs": sum(1 for d in rows if d.status == "partial"),
                    "failed_runs": sum(1 for d in rows if d.status == "failed"),
                    "units_failed_period": sum(d.units_failed for d in rows),
                    "average_duration_seconds": int(sum(d.duration_seconds for d in rows) / len(rows)),
                }
            )

        return {
            "period": period,
            "total_runs": total,
            "successful_runs": successful,
            "failed_runs": sum(1 for r in runs if r.status == "failed"),
            "partial_runs": sum(1 for r in runs if r.status == "partial"),
            "success_rate": round(successful / total * 100, 1) if total else 0.0,
            "records_written": sum(r.records_written for r in runs),
            "average_duration_seconds": int(sum(durations) / len(durations)) if durations else 0,
            "sources": breakdown,
        }
