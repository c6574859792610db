"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations. The
remote document store, notification scheduling and the user directory are
external collaborators; tests provide in-memory fakes.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from famsync.models.approval import ApprovalRequest
from famsync.models.history import HistoryItem
from famsync.models.role import FamilyMember
from famsync.models.task import Task

Document = Dict[str, Any]
# Raw remote document: camelCase keys, always including "id".

Unsubscribe = Callable[[], None]
SnapshotCallback = Callable[[List[Document]], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class Predicate:
    """Equality filter understood by every store (``field == value``)."""

    field: str
    op: str
    value: Any

    def matches(self, doc: Document) -> bool:
        if self.op != "==":
            raise ValueError(f"Unsupported predicate operator: {self.op}")
        return doc.get(self.field) == self.value


def where(field: str, value: Any) -> Predicate:
    return Predicate(field, "==", value)


class RemoteDocumentStore(Protocol):
    """Authoritative document store (query/mutate/subscribe)."""

    async def query(self, collection: str, predicates: List[Predicate]) -> List[Document]: ...

    def subscribe(
        self,
        collection: str,
        predicates: List[Predicate],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """Deliver the full matching set on every change; returns a teardown function."""
        ...

    async def create(self, collection: str, payload: Document) -> str: ...

    async def set(self, collection: str, doc_id: str, payload: Document, merge: bool = True) -> None: ...

    async def update(self, collection: str, doc_id: str, payload: Document) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    def server_timestamp(self) -> Any:
        """Placeholder the store replaces with its own clock on write."""
        ...


class TaskRepository(Protocol):
    async def save(self, task: Task) -> Task: ...
    async def update(self, task: Task) -> Task: ...
    async def delete(self, task_id: str) -> None: ...
    async def find_by_id(self, task_id: str) -> Optional[Task]: ...
    async def find_all(self) -> List[Task]: ...
    async def find_by_repeat_group(self, repeat_group_id: str) -> List[Task]: ...


class ApprovalRepository(Protocol):
    async def save(self, approval: ApprovalRequest) -> ApprovalRequest: ...
    async def update(self, approval: ApprovalRequest) -> ApprovalRequest: ...
    async def find_by_id(self, approval_id: str) -> Optional[ApprovalRequest]: ...
    async def find_pending_by_task(self, task_id: str) -> Optional[ApprovalRequest]: ...
    async def find_pending_by_family(self, family_id: str) -> List[ApprovalRequest]: ...
    async def find_by_requester(self, requester_id: str) -> List[ApprovalRequest]: ...


class HistoryRepository(Protocol):
    async def add(self, item: HistoryItem) -> HistoryItem: ...


class UserRepository(Protocol):
    """Fresh view of family membership; never trust caller-supplied roles."""

    async def find_by_id(self, user_id: str) -> Optional[FamilyMember]: ...
    async def find_family_members(self, family_id: str) -> List[FamilyMember]: ...


class NotificationService(Protocol):
    """Push/local notification scheduling."""

    def schedule_task_reminder(self, task: Task) -> Awaitable[Optional[str]]: ...
    def cancel_task_reminder(self, task_id: str) -> Awaitable[None]: ...
    def schedule_subtask_reminders(self, task: Task) -> Awaitable[None]: ...
    def cancel_subtask_reminders(self, task: Task) -> Awaitable[None]: ...

    def notify_user(
        self,
        *,
        user_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Awaitable[None]: ...
