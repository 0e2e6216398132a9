"""Sync routes - Trigger runs and inspect progress, history and metrics."""

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from solsync.api.deps import get_db
from solsync.core.config import settings
from solsync.core.logging import get_logger
from solsync.schemas.api import HistoryResponse, MetricsResponse, RunOut, StatusResponse
from solsync.schemas.sync import RunResult
from solsync.services.stats_service import StatsService
from solsync.services.sync_service import SyncService

router = APIRouter(prefix="/sync", tags=["sync"])
log = get_logger("sync_routes")


def get_sync_service(db: Session = Depends(get_db)) -> SyncService:
    return SyncService(db)


# -----------------------------------------------------------------------------
# Triggers
# -----------------------------------------------------------------------------


@router.post("/run-all", response_model=RunResult)
async def trigger_sync_all(service: SyncService = Depends(get_sync_service)):
    """
    Run one incremental sync for every configured source.

    Sources run sequentially. Each one resolves its current unit, re-checks the
    lookback window and retries failed units before the next source starts.
    """
    log.info("Sync triggered for all sources")
    return await service.run_all()


@router.post("/run/{source}", response_model=RunResult)
async def trigger_sync_source(source: str, service: SyncService = Depends(get_sync_service)):
    """Run one incremental sync for a single configured source."""
    source = source.lower()
    if source not in settings.active_sources:
        raise HTTPException(status_code=404, detail=f"Source '{source}' is not configured")

    log.info(f"Sync triggered for source: {source}")
    return await service.run_all([source])


# -----------------------------------------------------------------------------
# Observability
# -----------------------------------------------------------------------------


@router.get("/status", response_model=StatusResponse)
def get_sync_status(db: Session = Depends(get_db)):
    """
    Current progress state for every source that has been synced.

    health_status is "error" after a failed sync, "warning" when the last sync
    is older than 36 hours or still in progress, otherwise "healthy".
    """
    return StatusResponse(sources=StatsService(db).get_status(), active_sources=settings.active_sources)


@router.get("/history", response_model=HistoryResponse)
def get_sync_history(
    limit: int = Query(50, ge=10, le=100, description="Number of runs to return (10-100)"),
    offset: int = Query(0, ge=0, description="Number of runs to skip"),
    source: Optional[str] = Query(None, description="Only runs that included this source"),
    status: Optional[Literal["in_progress", "success", "partial", "failed"]] = Query(None, description="Filter by run status"),
    start: Optional[datetime] = Query(None, description="Runs started at or after this time"),
    end: Optional[datetime] = Query(None, description="Runs started at or before this time"),
    db: Session = Depends(get_db),
):
    """Recent sync runs, newest first, with per-source details and failed units."""
    runs, total = StatsService(db).get_history(
        limit=limit,
        offset=offset,
        source=source,
        status=status,
        start=start,
        end=end,
    )
    return HistoryResponse(
        runs=[RunOut.model_validate(run) for run in runs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/metrics", response_model=MetricsResponse)
def get_sync_metrics(
    period: str = Query("7d", description="24h, 7d or 30d (anything else means 7d)"),
    db: Session = Depends(get_db),
):
    """Aggregated sync statistics over a period, with a per-source breakdown."""
    return MetricsResponse(**StatsService(db).get_metrics(period))
