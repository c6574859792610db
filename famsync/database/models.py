"""SQLAlchemy database models for famsync's local store."""

from datetime import datetime
from typing import TypeVar, Union

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, JSON, String, Text

from famsync.database.database import Base
from famsync.models.history import HistoryItem
from famsync.models.pending_operation import PendingOperation
from famsync.models.task import Task

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


class TaskCacheDB(Base):
    """Local copy of a task as last written on this device or received from the remote store."""

    __tablename__ = "task_cache"

    id = Column(String, primary_key=True)

    # Indexed projections used for local queries
    created_by = Column(String, nullable=False, index=True)
    assigned_to = Column(String, nullable=True, index=True)
    family_id = Column(String, nullable=True, index=True)
    private = Column(Boolean, nullable=False, default=True)
    status = Column(String, nullable=False, default="pending", index=True)
    repeat_group_id = Column(String, nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Full task document (pydantic JSON dump)
    document = Column(JSON, nullable=False)

    def to_pydantic(self) -> Task:
        """Convert database model to Pydantic model."""
        return Task.model_validate(self.document)

    @classmethod
    def from_pydantic(cls, task: Task) -> "TaskCacheDB":
        """Create database model from Pydantic model."""
        row = cls(id=task.id)
        row.apply(task)
        return row

    def apply(self, task: Task) -> None:
        """Copy a task snapshot onto this row."""
        self.created_by = task.created_by
        self.assigned_to = task.assigned_to
        self.family_id = task.family_id
        self.private = task.private
        self.status = enum_to_value(task.status)
        self.repeat_group_id = task.repeat_group_id
        self.completed_at = task.completed_at
        self.updated_at = task.updated_at
        self.document = task.model_dump(mode="json")


class PendingOperationDB(Base):
    """Outbox entry. `seq` preserves enqueue order across restarts."""

    __tablename__ = "pending_operations"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    type = Column(String, nullable=False)
    collection = Column(String, nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)
    timestamp = Column(BigInteger, nullable=False)
    retry = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    def to_pydantic(self) -> PendingOperation:
        """Convert database model to Pydantic model."""
        return PendingOperation(
            id=self.id,
            type=self.type,
            collection=self.collection,
            data=self.data or {},
            timestamp=self.timestamp,
            retry=self.retry,
            last_error=self.last_error,
        )

    @classmethod
    def from_pydantic(cls, operation: PendingOperation) -> "PendingOperationDB":
        """Create database model from Pydantic model."""
        return cls(
            id=operation.id,
            type=enum_to_value(operation.type),
            collection=enum_to_value(operation.collection),
            data=operation.data,
            timestamp=operation.timestamp,
            retry=operation.retry,
            last_error=operation.last_error,
        )


class HistoryDB(Base):
    """Database model for HistoryItem."""

    __tablename__ = "history"

    id = Column(String, primary_key=True)
    action = Column(String, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    user_id = Column(String, nullable=False)
    user_name = Column(String, nullable=False)
    user_role = Column(String, nullable=True)
    family_id = Column(String, nullable=True, index=True)
    task_id = Column(String, nullable=True, index=True)
    task_title = Column(String, nullable=True)
    details = Column(JSON, nullable=False, default=dict)

    def to_pydantic(self) -> HistoryItem:
        """Convert database model to Pydantic model."""
        return HistoryItem(
            id=self.id,
            action=self.action,
            timestamp=self.timestamp,
            user_id=self.user_id,
            user_name=self.user_name,
            user_role=self.user_role,
            family_id=self.family_id,
            task_id=self.task_id,
            task_title=self.task_title,
            details=self.details or {},
        )

    @classmethod
    def from_pydantic(cls, item: HistoryItem) -> "HistoryDB":
        """Create database model from Pydantic model."""
        return cls(
            id=item.id,
            action=enum_to_value(item.action),
            timestamp=item.timestamp,
            user_id=item.user_id,
            user_name=item.user_name,
            user_role=item.user_role,
            family_id=item.family_id,
            task_id=item.task_id,
            task_title=item.task_title,
            details=item.details,
        )


class SyncStateDB(Base):
    """Single-row key/value table for sync bookkeeping (e.g. last_sync)."""

    __tablename__ = "sync_state"

    key = Column(String, primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)
