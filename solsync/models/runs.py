"""Run ledger: one row per orchestrator invocation plus one detail per source."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from solsync.models.base import Base, JSONType, utcnow

RUN_STATUSES = ("in_progress", "success", "partial", "failed")


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="in_progress",  # in_progress | success | partial | failed
        index=True,
    )

    sources_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sources_succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    records_written: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_summary: Mapped[str | None] = mapped_column(String, nullable=True)

    source_details: Mapped[list["SyncRunSource"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="SyncRunSource.id",
    )


class SyncRunSource(Base):
    __tablename__ = "sync_run_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    run_id: Mapped[int] = mapped_column(ForeignKey("sync_runs.id", ondelete="CASCADE"), nullable=False, index=True)

    source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    start_unit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_unit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    units_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    units_succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    units_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    records_written: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success | partial | failed

    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    error_message: Mapped[str | None] = mapped_column(String, nullable=True)

    # [{"unit", "error_type", "error_message", "timestamp"}, ...] in unit order
    failed_units: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    run: Mapped[SyncRun] = relationship(back_populates="source_details")
