# Services package
from solsync.services.position import PositionResolver, ResolvedPosition, UnitWindow, compute_window
from solsync.services.progress import ProgressStore
from solsync.services.reaper import StuckRunReaper
from solsync.services.record_writer import RecordWriter, WriteResult
from solsync.services.run_history import RunHistoryRecorder
from solsync.services.stats_service import StatsService
from solsync.services.sync_service import SyncService

__all__ = [
    "PositionResolver",
    "ResolvedPosition",
    "UnitWindow",
    "compute_window",
    "ProgressStore",
    "StuckRunReaper",
    "RecordWriter",
    "WriteResult",
    "RunHistoryRecorder",
    "StatsService",
    "SyncService",
]
