"""Stuck-run reaper tests"""

from datetime import timedelta

import pytest

from solsync.models.base import utcnow
from solsync.models.runs import SyncRun
from solsync.services.reaper import StuckRunReaper


class TestStuckRunReaper:
    """Test recovery of runs left in_progress by a crashed process"""

    @pytest.fixture
    def reaper(self, db):
        return StuckRunReaper(db, threshold=timedelta(minutes=60))

    def _run(self, db, minutes_ago, status="in_progress"):
        run = SyncRun(started_at=utcnow() - timedelta(minutes=minutes_ago), status=status)
        db.add(run)
        db.commit()
        return run

    def test_old_in_progress_run_marked_failed(self, db, reaper):
        stuck = self._run(db, 90)
        recent = self._run(db, 30)

        reaped = reaper.reap()

        assert reaped == [stuck.id]
        db.refresh(stuck)
        db.refresh(recent)
        assert stuck.status == "failed"
        assert stuck.completed_at is not None
        assert "stuck in in_progress" in stuck.error_summary
        assert "60 minute(s)" in stuck.error_summary
        assert recent.status == "in_progress"
        assert recent.completed_at is None

    def test_finished_runs_untouched(self, db, reaper):
        done = self._run(db, 300, status="success")

        assert reaper.reap() == []
        db.refresh(done)
        assert done.status == "success"
        assert done.error_summary is None

    def test_nothing_to_reap(self, reaper):
        assert reaper.reap() == []
