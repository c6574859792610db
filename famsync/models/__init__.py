"""Data models for famsync."""

from famsync.models.priority import Priority, TaskStatus, ApprovalStatus
from famsync.models.repeat import RepeatConfig, RepeatType, WeekDay
from famsync.models.role import UserRole, FamilyMember, get_permissions, is_elevated_role
from famsync.models.subtask import Subtask
from famsync.models.task import Task
from famsync.models.approval import ApprovalRequest, ApprovalRequestStatus
from famsync.models.history import HistoryItem, HistoryAction
from famsync.models.pending_operation import PendingOperation, OperationType, Collection, OfflineData
from famsync.models.session import SessionContext
from famsync.models.result import Result

__all__ = [
    "Priority",
    "TaskStatus",
    "ApprovalStatus",
    "RepeatConfig",
    "RepeatType",
    "WeekDay",
    "UserRole",
    "FamilyMember",
    "get_permissions",
    "is_elevated_role",
    "Subtask",
    "Task",
    "ApprovalRequest",
    "ApprovalRequestStatus",
    "HistoryItem",
    "HistoryAction",
    "PendingOperation",
    "OperationType",
    "Collection",
    "OfflineData",
    "SessionContext",
    "Result",
]
