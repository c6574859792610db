"""Error taxonomy for famsync.

Expected failures (validation, illegal transitions, authorization) carry a
stable ``code`` so the use-case layer can turn them into failed ``Result``
values. Repository and sync errors represent I/O problems.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorSeverity(str, Enum):
    """How loudly an error should be surfaced."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskErrorCode(str, Enum):
    """Stable codes for illegal task transitions."""
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    TASK_ALREADY_COMPLETED = "TASK_ALREADY_COMPLETED"
    TASK_NOT_COMPLETED = "TASK_NOT_COMPLETED"
    TASK_CANNOT_EDIT = "TASK_CANNOT_EDIT"
    TASK_PENDING_APPROVAL = "TASK_PENDING_APPROVAL"
    TASK_NOT_PENDING_APPROVAL = "TASK_NOT_PENDING_APPROVAL"
    TASK_APPROVAL_NOT_REQUIRED = "TASK_APPROVAL_NOT_REQUIRED"
    TASK_CANNOT_POSTPONE = "TASK_CANNOT_POSTPONE"
    TASK_INVALID_TRANSITION = "TASK_INVALID_TRANSITION"
    TASK_SUBTASK_NOT_FOUND = "TASK_SUBTASK_NOT_FOUND"


class ApprovalErrorCode(str, Enum):
    """Stable codes for the approval workflow."""
    APPROVAL_NOT_FOUND = "APPROVAL_NOT_FOUND"
    APPROVAL_ALREADY_EXISTS = "APPROVAL_ALREADY_EXISTS"
    APPROVAL_ALREADY_PROCESSED = "APPROVAL_ALREADY_PROCESSED"
    APPROVER_NOT_FOUND = "APPROVER_NOT_FOUND"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    NOT_FAMILY_MEMBER = "NOT_FAMILY_MEMBER"


class DomainError(Exception):
    """Base class for expected domain failures."""

    def __init__(
        self,
        message: str,
        code: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code.value if isinstance(code, Enum) else code
        self.severity = severity
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class TaskError(DomainError):
    """Illegal task state transition or missing task."""

    def __init__(self, message: str, code: TaskErrorCode, task_id: Optional[str] = None, **context: Any):
        if task_id is not None:
            context["task_id"] = task_id
        super().__init__(message, code, ErrorSeverity.MEDIUM, context)

    @classmethod
    def not_found(cls, task_id: str) -> "TaskError":
        return cls(f"Task {task_id} not found", TaskErrorCode.TASK_NOT_FOUND, task_id)

    @classmethod
    def already_completed(cls, task_id: str) -> "TaskError":
        return cls("Task is already completed", TaskErrorCode.TASK_ALREADY_COMPLETED, task_id)

    @classmethod
    def not_completed(cls, task_id: str) -> "TaskError":
        return cls("Task is not completed", TaskErrorCode.TASK_NOT_COMPLETED, task_id)

    @classmethod
    def cannot_edit(cls, task_id: str) -> "TaskError":
        return cls(
            "Task cannot be edited while completed or pending approval",
            TaskErrorCode.TASK_CANNOT_EDIT,
            task_id,
        )

    @classmethod
    def cannot_postpone(cls, task_id: str) -> "TaskError":
        return cls("Completed tasks cannot be postponed", TaskErrorCode.TASK_CANNOT_POSTPONE, task_id)

    @classmethod
    def approval_not_required(cls, task_id: str) -> "TaskError":
        return cls("Task does not require approval", TaskErrorCode.TASK_APPROVAL_NOT_REQUIRED, task_id)

    @classmethod
    def not_pending_approval(cls, task_id: str) -> "TaskError":
        return cls("Task is not pending approval", TaskErrorCode.TASK_NOT_PENDING_APPROVAL, task_id)

    @classmethod
    def invalid_transition(cls, task_id: str, current: str, target: str) -> "TaskError":
        return cls(
            f"Cannot move task from {current} to {target}",
            TaskErrorCode.TASK_INVALID_TRANSITION,
            task_id,
            current=current,
            target=target,
        )

    @classmethod
    def subtask_not_found(cls, task_id: str, subtask_id: str) -> "TaskError":
        return cls(
            f"Subtask {subtask_id} not found",
            TaskErrorCode.TASK_SUBTASK_NOT_FOUND,
            task_id,
            subtask_id=subtask_id,
        )


class ApprovalError(DomainError):
    """Approval workflow failure (missing, duplicate or already resolved)."""

    def __init__(self, message: str, code: ApprovalErrorCode, approval_id: Optional[str] = None, **context: Any):
        if approval_id is not None:
            context["approval_id"] = approval_id
        super().__init__(message, code, ErrorSeverity.MEDIUM, context)


class NotAuthorizedError(DomainError):
    """Actor lacks the role or family membership for the requested action."""

    def __init__(self, message: str, code: ApprovalErrorCode = ApprovalErrorCode.NOT_AUTHORIZED, **context: Any):
        super().__init__(message, code, ErrorSeverity.HIGH, context)


class ValidationError(DomainError):
    """Malformed input, detected before any I/O."""

    def __init__(self, message: str, issues: Optional[List[str]] = None, **context: Any):
        super().__init__(message, "VALIDATION_ERROR", ErrorSeverity.LOW, context)
        self.issues = issues or [message]

    @classmethod
    def from_issues(cls, issues: List[str]) -> "ValidationError":
        return cls("; ".join(issues), issues)


class RepositoryError(Exception):
    """A remote or local persistence call failed."""

    def __init__(self, message: str, operation: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.code = "REPOSITORY_ERROR"
        self.operation = operation
        self.cause = cause


class SyncRetryExhausted(Exception):
    """An outbox entry exceeded the retry cap and needs manual attention."""

    def __init__(self, operation_id: str, retries: int, last_error: Optional[str] = None):
        super().__init__(f"Operation {operation_id} failed after {retries} retries: {last_error}")
        self.code = "SYNC_RETRY_EXHAUSTED"
        self.operation_id = operation_id
        self.retries = retries
        self.last_error = last_error
