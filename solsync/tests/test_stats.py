"""Progress health indicator tests"""

from datetime import datetime, timedelta, timezone

from solsync.models.progress import SyncState
from solsync.services.stats_service import health_status

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def state(status, hours_ago=1, naive=False):
    last_sync_at = NOW - timedelta(hours=hours_ago)
    if naive:
        last_sync_at = last_sync_at.replace(tzinfo=None)
    return SyncState(source="alpha", last_synced_unit=10, last_sync_at=last_sync_at, last_run_status=status)


def test_recent_success_is_healthy():
    assert health_status(state("success"), NOW) == "healthy"


def test_partial_is_still_healthy():
    assert health_status(state("partial"), NOW) == "healthy"


def test_failed_is_error_even_when_recent():
    assert health_status(state("failed"), NOW) == "error"


def test_stale_sync_is_warning():
    assert health_status(state("success", hours_ago=37), NOW) == "warning"


def test_in_progress_is_warning():
    assert health_status(state("in_progress"), NOW) == "warning"


def test_naive_timestamps_read_as_utc():
    assert health_status(state("success", hours_ago=35, naive=True), NOW) == "healthy"
