"""Offline-first repositories used by the use-case layer.

Writes land in the local cache and the outbox in one step, then the sync
engine (when online) is asked to drain in the background. Reads come from
the local cache, so use cases behave the same with or without connectivity.
"""

import logging
from typing import Callable, Dict, List, Optional

from famsync.database.local_store import LocalStore
from famsync.database.outbox import OutboxRepository
from famsync.models.approval import ApprovalRequest
from famsync.models.history import HistoryItem
from famsync.models.pending_operation import Collection, OperationType
from famsync.models.session import SessionContext
from famsync.models.task import Task
from famsync.remote.documents import approval_from_document, approval_to_document, history_to_document, task_to_document
from famsync.remote.repositories import RemoteApprovalRepository

logger = logging.getLogger(__name__)


class _OutboxWriter:
    def __init__(self, outbox: OutboxRepository, engine=None):
        self.outbox = outbox
        self.engine = engine

    def _flush(self) -> None:
        if self.engine is None:
            return
        self.engine.notify_enqueued()
        self.engine.request_sync()


class OfflineTaskRepository(_OutboxWriter):
    """Task repository backed by the local cache plus the outbox."""

    def __init__(
        self,
        local_store: LocalStore,
        outbox: OutboxRepository,
        session: SessionContext,
        engine=None,
    ):
        super().__init__(outbox, engine)
        self.local_store = local_store
        self.session = session

    async def save(self, task: Task) -> Task:
        self.local_store.save_task(task)
        self.outbox.enqueue(OperationType.CREATE, Collection.TASKS, task_to_document(task))
        logger.debug(f"Queued create for task {task.id}")
        self._flush()
        return task

    async def update(self, task: Task) -> Task:
        if self.local_store.get_task(task.id) is None:
            raise ValueError(f"Task {task.id} not found")
        self.local_store.save_task(task)
        self.outbox.enqueue(OperationType.UPDATE, Collection.TASKS, task_to_document(task))
        logger.debug(f"Queued update for task {task.id}")
        self._flush()
        return task

    async def delete(self, task_id: str) -> None:
        self.local_store.remove_task(task_id)
        self.outbox.enqueue(OperationType.DELETE, Collection.TASKS, {"id": task_id})
        logger.debug(f"Queued delete for task {task_id}")
        self._flush()

    async def find_by_id(self, task_id: str) -> Optional[Task]:
        return self.local_store.get_task(task_id)

    async def find_all(self) -> List[Task]:
        """Cached tasks visible to the session user."""
        user_id = self.session.user_id
        return [
            t for t in self.local_store.list_tasks()
            if not t.private or t.created_by == user_id
        ]

    async def find_by_repeat_group(self, repeat_group_id: str) -> List[Task]:
        return self.local_store.list_by_repeat_group(repeat_group_id)

    def cache_remote_tasks(self, tasks: List[Task], evict_missing: bool = True) -> None:
        """Mirror a merged remote view into the cache.

        Tasks are stored unless a local edit is newer or a local delete is
        still queued. With ``evict_missing`` cached tasks absent from the view
        are dropped, except those with an outbox entry still waiting.
        """
        queued = self.outbox.queued_document_ids(Collection.TASKS)
        deleted = self.outbox.queued_document_ids(Collection.TASKS, OperationType.DELETE)
        for task in tasks:
            if task.id in deleted:
                continue
            cached = self.local_store.get_task(task.id)
            if cached is None or cached.updated_at <= task.updated_at:
                self.local_store.save_task(task)

        if not evict_missing:
            return
        seen = {t.id for t in tasks}
        for cached in self.local_store.list_tasks():
            if cached.id not in seen and cached.id not in queued:
                self.local_store.remove_task(cached.id)
                logger.debug(f"Evicted task {cached.id} no longer in the remote view")


class OfflineHistoryRepository(_OutboxWriter):
    """Appends history locally and queues it for the remote store."""

    def __init__(self, local_store: LocalStore, outbox: OutboxRepository, engine=None):
        super().__init__(outbox, engine)
        self.local_store = local_store

    async def add(self, item: HistoryItem) -> HistoryItem:
        self.local_store.add_history_item(item)
        self.outbox.enqueue(OperationType.CREATE, Collection.HISTORY, history_to_document(item))
        self._flush()
        return item


class OfflineApprovalRepository(_OutboxWriter):
    """Approval writes go through the outbox; reads overlay them on the remote copy.

    Queued approvals are visible to every lookup, so the one-pending-request
    check holds before the write reaches the remote store.
    """

    def __init__(self, remote: RemoteApprovalRepository, outbox: OutboxRepository, engine=None):
        super().__init__(outbox, engine)
        self.remote = remote

    async def save(self, approval: ApprovalRequest) -> ApprovalRequest:
        self.outbox.enqueue(OperationType.CREATE, Collection.APPROVALS, approval_to_document(approval))
        logger.debug(f"Queued approval {approval.id} for task {approval.task_id}")
        self._flush()
        return approval

    async def update(self, approval: ApprovalRequest) -> ApprovalRequest:
        self.outbox.enqueue(OperationType.UPDATE, Collection.APPROVALS, approval_to_document(approval))
        logger.debug(f"Queued approval update {approval.id} -> {approval.status}")
        self._flush()
        return approval

    def _queued(self) -> Dict[str, ApprovalRequest]:
        # Later entries win, so the newest queued state of each approval is kept
        queued: Dict[str, ApprovalRequest] = {}
        for operation in self.outbox.list_all():
            if operation.collection == Collection.APPROVALS.value and operation.type != OperationType.DELETE.value:
                queued[operation.document_id] = approval_from_document(operation.data)
        return queued

    def _overlay(
        self,
        remote: List[ApprovalRequest],
        keep: Callable[[ApprovalRequest], bool],
    ) -> List[ApprovalRequest]:
        merged = {a.id: a for a in remote}
        merged.update(self._queued())
        return [a for a in merged.values() if keep(a)]

    async def find_by_id(self, approval_id: str) -> Optional[ApprovalRequest]:
        queued = self._queued().get(approval_id)
        if queued is not None:
            return queued
        return await self.remote.find_by_id(approval_id)

    async def find_pending_by_task(self, task_id: str) -> Optional[ApprovalRequest]:
        found = await self.remote.find_pending_by_task(task_id)
        matches = self._overlay(
            [found] if found is not None else [],
            lambda a: a.task_id == task_id and a.is_pending(),
        )
        return matches[0] if matches else None

    async def find_pending_by_family(self, family_id: str) -> List[ApprovalRequest]:
        remote = await self.remote.find_pending_by_family(family_id)
        return self._overlay(remote, lambda a: a.family_id == family_id and a.is_pending())

    async def find_by_requester(self, requester_id: str) -> List[ApprovalRequest]:
        remote = await self.remote.find_by_requester(requester_id)
        return self._overlay(remote, lambda a: a.requester_id == requester_id)
