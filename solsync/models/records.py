"""Normalized upstream items; one row per (source, external_id), replay-safe."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from solsync.models.base import Base, JSONType, utcnow


class UnitRecord(Base):
    __tablename__ = "unit_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    source: Mapped[str] = mapped_column(String(50), nullable=False)

    # Natural identifier assigned by the upstream feed; parsers skip longer ids
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)

    unit: Mapped[int] = mapped_column(Integer, nullable=False)

    taken_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    camera: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Complete upstream item, kept for replay
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)

    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_unit_records_source_external_id"),
        Index("ix_unit_records_source_unit", "source", "unit"),
    )
