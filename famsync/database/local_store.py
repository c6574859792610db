"""Local cache of tasks, history and sync bookkeeping."""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from famsync.database.models import HistoryDB, SyncStateDB, TaskCacheDB
from famsync.database.outbox import OutboxRepository, now_ms
from famsync.models.constants import (
    DEFAULT_COMPLETED_RETENTION_DAYS,
    DEFAULT_HISTORY_RETENTION_DAYS,
    DEFAULT_STALE_AFTER_SEC,
)
from famsync.models.history import HistoryItem
from famsync.models.pending_operation import OfflineData
from famsync.models.priority import TaskStatus
from famsync.models.task import Task

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync"


class LocalStore:
    """Repository for the device-local copy of tasks and history."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {type(e).__name__}: {str(e)}")
            raise

    # --- tasks -----------------------------------------------------------

    def save_task(self, task: Task) -> Task:
        """Insert or replace the cached copy of a task."""
        row = self.db.query(TaskCacheDB).filter(TaskCacheDB.id == task.id).first()
        if row is None:
            self.db.add(TaskCacheDB.from_pydantic(task))
        else:
            row.apply(task)
        self._commit(f"cache task {task.id}")
        logger.debug(f"Cached task {task.id}: {task.title[:50]}")
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        row = self.db.query(TaskCacheDB).filter(TaskCacheDB.id == task_id).first()
        return row.to_pydantic() if row else None

    def list_tasks(self) -> List[Task]:
        """All cached tasks, most recently updated first."""
        rows = self.db.query(TaskCacheDB).order_by(desc(TaskCacheDB.updated_at)).all()
        return [row.to_pydantic() for row in rows]

    def list_by_repeat_group(self, repeat_group_id: str) -> List[Task]:
        rows = self.db.query(TaskCacheDB).filter(TaskCacheDB.repeat_group_id == repeat_group_id).all()
        return [row.to_pydantic() for row in rows]

    def remove_task(self, task_id: str) -> bool:
        row = self.db.query(TaskCacheDB).filter(TaskCacheDB.id == task_id).first()
        if row is None:
            return False
        self.db.delete(row)
        self._commit(f"remove cached task {task_id}")
        return True

    def clear_old_completed_tasks(self, days_to_keep: int = DEFAULT_COMPLETED_RETENTION_DAYS) -> int:
        """Drop completed tasks whose completion is older than ``days_to_keep``."""
        cutoff = datetime.utcnow() - timedelta(days=days_to_keep)
        rows = (
            self.db.query(TaskCacheDB)
            .filter(
                TaskCacheDB.status == TaskStatus.COMPLETED.value,
                TaskCacheDB.completed_at.isnot(None),
                TaskCacheDB.completed_at < cutoff,
            )
            .all()
        )
        for row in rows:
            self.db.delete(row)
        self._commit("prune completed tasks")
        if rows:
            logger.info(f"Pruned {len(rows)} completed tasks older than {days_to_keep} days")
        return len(rows)

    # --- history ---------------------------------------------------------

    def add_history_item(self, item: HistoryItem) -> HistoryItem:
        if self.db.query(HistoryDB).filter(HistoryDB.id == item.id).first() is not None:
            # Append-only: a replayed item keeps the first copy
            return item
        self.db.add(HistoryDB.from_pydantic(item))
        self._commit(f"append history item {item.id}")
        return item

    def list_history(
        self,
        family_id: Optional[str] = None,
        task_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[HistoryItem]:
        """History newest first, optionally scoped to a family or task."""
        query = self.db.query(HistoryDB)
        if family_id is not None:
            query = query.filter(HistoryDB.family_id == family_id)
        if task_id is not None:
            query = query.filter(HistoryDB.task_id == task_id)
        query = query.order_by(desc(HistoryDB.timestamp))
        if limit is not None:
            query = query.limit(limit)
        return [row.to_pydantic() for row in query.all()]

    def clear_old_history(self, days_to_keep: int = DEFAULT_HISTORY_RETENTION_DAYS) -> int:
        """Retention pruning: the only way history items are ever removed."""
        cutoff = datetime.utcnow() - timedelta(days=days_to_keep)
        count = self.db.query(HistoryDB).filter(HistoryDB.timestamp < cutoff).delete()
        self._commit("prune history")
        if count:
            logger.info(f"Pruned {count} history items older than {days_to_keep} days")
        return count

    # --- sync bookkeeping ------------------------------------------------

    def get_last_sync(self) -> int:
        row = self.db.query(SyncStateDB).filter(SyncStateDB.key == LAST_SYNC_KEY).first()
        return row.value if row else 0

    def update_last_sync(self, timestamp_ms: Optional[int] = None) -> int:
        value = timestamp_ms if timestamp_ms is not None else now_ms()
        row = self.db.query(SyncStateDB).filter(SyncStateDB.key == LAST_SYNC_KEY).first()
        if row is None:
            self.db.add(SyncStateDB(key=LAST_SYNC_KEY, value=value))
        else:
            row.value = value
        self._commit("update last sync")
        return value

    def is_data_stale(self, stale_after_seconds: int = DEFAULT_STALE_AFTER_SEC) -> bool:
        last_sync = self.get_last_sync()
        return last_sync == 0 or now_ms() - last_sync > stale_after_seconds * 1000

    def load_offline_data(self, outbox: OutboxRepository) -> OfflineData:
        """Snapshot of everything kept on the device."""
        tasks: Dict[str, Task] = {t.id: t for t in self.list_tasks()}
        history: Dict[str, HistoryItem] = {h.id: h for h in self.list_history()}
        return OfflineData(
            tasks=tasks,
            pending_operations=outbox.list_all(),
            last_sync=self.get_last_sync(),
            history=history,
        )
