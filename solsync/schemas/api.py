from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from solsync.schemas.sync import FailedUnitInfo


class HealthResponse(BaseModel):
    database: str
    last_run_status: str | None


class SourceStatusOut(BaseModel):
    source: str
    last_synced_unit: int
    last_sync_at: datetime
    last_run_status: str
    records_written_last_run: int
    error_message: str | None = None
    health_status: str
    total_records: int


class StatusResponse(BaseModel):
    sources: List[SourceStatusOut]
    active_sources: List[str]


class RunSourceOut(BaseModel):
    source: str
    start_unit: Optional[int] = None
    end_unit: Optional[int] = None
    units_attempted: int
    units_succeeded: int
    units_failed: int
    records_written: int
    duration_seconds: int
    status: str
    degraded: bool
    error_message: str | None = None
    failed_units: List[FailedUnitInfo] = []

    model_config = ConfigDict(from_attributes=True)

    @field_validator("failed_units", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


class RunOut(BaseModel):
    id: int
    started_at: datetime
    completed_at: datetime | None
    duration_seconds: int | None
    status: str
    sources_attempted: int
    sources_succeeded: int
    records_written: int
    error_summary: str | None = None
    source_details: List[RunSourceOut] = []

    model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
    runs: List[RunOut]
    total: int
    limit: int
    offset: int


class SourceMetricsOut(BaseModel):
    source: str
    total_records: int
    records_written_period: int
    successful_runs: int
    partial_runs: int
    failed_runs: int
    units_failed_period: int
    average_duration_seconds: int


class MetricsResponse(BaseModel):
    period: str
    total_runs: int
    successful_runs: int
    failed_runs: int
    partial_runs: int
    success_rate: float
    records_written: int
    average_duration_seconds: int
    sources: List[SourceMetricsOut]
