"""Powers incremental sync: one durable cursor per source."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from solsync.models.base import Base, utcnow

PROGRESS_STATUSES = ("pending", "in_progress", "success", "partial", "failed")


class SyncState(Base):
    __tablename__ = "sync_states"

    source: Mapped[str] = mapped_column(String(50), primary_key=True)

    # High-water mark; only moves forward
    last_synced_unit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_sync_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    last_run_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",  # pending | in_progress | success | partial | failed
    )

    records_written_last_run: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )
