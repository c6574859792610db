"""Task priority and status value objects."""

from enum import Enum
from typing import Dict, List


class Priority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    """Task status enumeration."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApprovalStatus(str, Enum):
    """Approval axis of a task (only meaningful when approval is required)."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Lower sorts first
PRIORITY_ORDER: Dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}

VALID_STATUS_TRANSITIONS: Dict[TaskStatus, List[TaskStatus]] = {
    TaskStatus.PENDING: [TaskStatus.COMPLETED, TaskStatus.CANCELLED],
    TaskStatus.COMPLETED: [TaskStatus.PENDING],
    TaskStatus.CANCELLED: [TaskStatus.PENDING],
}


def priority_rank(priority: str) -> int:
    """Sort key for a priority value (enum or raw string)."""
    try:
        return PRIORITY_ORDER[Priority(priority)]
    except ValueError:
        return PRIORITY_ORDER[Priority.MEDIUM]


def is_valid_status_transition(current: str, target: str) -> bool:
    """Check whether a status change is allowed by the task state machine."""
    try:
        return TaskStatus(target) in VALID_STATUS_TRANSITIONS[TaskStatus(current)]
    except (ValueError, KeyError):
        return False
