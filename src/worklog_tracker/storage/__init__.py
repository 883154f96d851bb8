"""Storage abstractions for the worklog tracker."""

from .activity_log import ActivityLogStore
from .files import (
    ScanLock,
    StoreCorruptError,
    StoreError,
    StoreLockedError,
    StoreWriteError,
    atomic_write_text,
)
from .models import ActivityLog, LogEntry, RepoCursor, RepoStateTable
from .state import RepoStateStore

__all__ = [
    "ActivityLog",
    "ActivityLogStore",
    "LogEntry",
    "RepoCursor",
    "RepoStateStore",
    "RepoStateTable",
    "ScanLock",
    "StoreCorruptError",
    "StoreError",
    "StoreLockedError",
    "StoreWriteError",
    "atomic_write_text",
]
