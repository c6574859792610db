"""Synchronization engine and real-time aggregation for famsync."""

from famsync.sync.status import SyncStatus, DrainReport
from famsync.sync.engine import SyncEngine, backoff_delay
from famsync.sync.aggregator import TaskAggregator, merge_segments, sort_tasks_by_last_touched, is_visible_to

__all__ = [
    "SyncStatus",
    "DrainReport",
    "SyncEngine",
    "backoff_delay",
    "TaskAggregator",
    "merge_segments",
    "sort_tasks_by_last_touched",
    "is_visible_to",
]
