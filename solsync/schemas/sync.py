"""Results produced by a sync run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

CANCELLED = "Cancelled"

SourceStatus = Literal["success", "partial", "failed"]
RunStatus = Literal["in_progress", "success", "partial", "failed"]


class FailedUnitInfo(BaseModel):
    unit: int
    error_type: str  # Timeout | ParseError | NetworkError | HTTP_<code> | Cancelled | Unknown
    error_message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def cancelled(self) -> bool:
        return self.error_type == CANCELLED


class SourceSyncResult(BaseModel):
    source: str
    status: SourceStatus = "failed"
    degraded: bool = False
    cancelled: bool = False
    start_unit: Optional[int] = None
    end_unit: Optional[int] = None
    units_attempted: int = 0
    units_succeeded: int = 0
    units_failed: int = 0
    records_written: int = 0
    duration_seconds: float = 0.0
    error_message: Optional[str] = None
    failed_units: List[FailedUnitInfo] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        """Only a source that could not be synced at all counts as failed."""
        return self.status != "failed"


class RunResult(BaseModel):
    run_id: int
    status: RunStatus
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    records_written: int
    cancelled: bool = False
    reaped_runs: List[int] = Field(default_factory=list)
    sources: List[SourceSyncResult] = Field(default_factory=list)

    @property
    def failed_sources(self) -> List[str]:
        return [r.source for r in self.sources if not r.success]

    @property
    def partial_sources(self) -> List[str]:
        return [r.source for r in self.sources if r.success and (r.units_failed or r.cancelled)]
