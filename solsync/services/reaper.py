"""Marks runs abandoned by a crashed process as failed."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from solsync.core.config import settings
from solsync.core.logging import get_logger
from solsync.models.base import utcnow
from solsync.models.runs import SyncRun

log = get_logger("services.reaper")


class StuckRunReaper:
    def __init__(self, db: Session, threshold: Optional[timedelta] = None):
        self.db = db
        self.threshold = threshold or timedelta(minutes=settings.STUCK_RUN_THRESHOLD_MINUTES)

    def reap(self, now: Optional[datetime] = None) -> List[int]:
        """Fail every in_progress run started before now - threshold. Returns their ids."""
        now = now or utcnow()
        cutoff = now - self.threshold

        stmt = select(SyncRun).where(SyncRun.status == "in_progress", SyncRun.started_at < cutoff)
        stuck = list(self.db.execute(stmt).scalars())
        if not stuck:
            return []

        minutes = int(self.threshold.total_seconds() // 60)
        log.warning(f"Found {len(stuck)} stuck run(s) older than {minutes} minute(s). Marking as failed")

        for run in stuck:
            run.status = "failed"
            run.completed_at = now
            run.error_summary = (
                f"Run was stuck in in_progress status for more than {minutes} minute(s). "
                "Cleaned up on startup."
            )
            log.warning(f"Marked stuck run {run.id} (started at {run.started_at}) as failed")

        self.db.commit()
        return [run.id for run in stuck]
