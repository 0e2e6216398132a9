"""Durable per-source cursor."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from solsync.core.logging import get_logger
from solsync.models.base import utcnow
from solsync.models.progress import SyncState

log = get_logger("services.progress")


class ProgressStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, source: str) -> Optional[SyncState]:
        return self.db.get(SyncState, source)

    def get_or_create(self, source: str) -> SyncState:
        state = self.get(source)
        if state is None:
            state = SyncState(
                source=source,
                last_synced_unit=0,
                last_sync_at=utcnow(),
                last_run_status="pending",
                records_written_last_run=0,
            )
            self.db.add(state)
            self.db.commit()
            log.info(f"Created sync state for {source}")
        return state

    def mark_in_progress(self, state: SyncState) -> None:
        state.last_run_status = "in_progress"
        state.last_sync_at = utcnow()
        state.error_message = None
        self.db.commit()

    def mark_completed(
        self,
        state: SyncState,
        end_unit: int,
        status: str,
        records_written: int,
        error_message: Optional[str] = None,
    ) -> None:
        """Record a finished sync. The cursor never moves backwards."""
        if end_unit > state.last_synced_unit:
            state.last_synced_unit = end_unit
        state.last_run_status = status
        state.last_sync_at = utcnow()
        state.records_written_last_run = records_written
        state.error_message = error_message
        self.db.commit()

    def mark_failed(self, state: SyncState, error_message: str) -> None:
        state.last_run_status = "failed"
        state.last_sync_at = utcnow()
        state.records_written_last_run = 0
        state.error_message = error_message
        self.db.commit()
