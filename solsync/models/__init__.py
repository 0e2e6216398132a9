from solsync.models.base import Base
from solsync.models.records import UnitRecord
from solsync.models.progress import PROGRESS_STATUSES, SyncState
from solsync.models.runs import RUN_STATUSES, SyncRun, SyncRunSource

__all__ = [
    "Base",
    "UnitRecord",
    "SyncState",
    "SyncRun",
    "SyncRunSource",
    "PROGRESS_STATUSES",
    "RUN_STATUSES",
]
