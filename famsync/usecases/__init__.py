"""Use cases for famsync."""

from famsync.usecases.base import UseCase
from famsync.usecases.tasks import (
    CreateTask,
    CreateTaskRequest,
    UpdateTask,
    UpdateTaskRequest,
    CompleteTask,
    CompleteTaskRequest,
    UncompleteTask,
    UncompleteTaskRequest,
    PostponeTask,
    PostponeTaskRequest,
    DeleteTask,
    DeleteTaskRequest,
    GetTasks,
    GetTasksRequest,
)
from famsync.usecases.approvals import (
    RequestApproval,
    RequestApprovalRequest,
    ApproveTask,
    ApproveTaskRequest,
    RejectApproval,
    RejectApprovalRequest,
    CancelApproval,
    CancelApprovalRequest,
    GetPendingApprovals,
    GetPendingApprovalsRequest,
)

__all__ = [
    "UseCase",
    "CreateTask",
    "CreateTaskRequest",
    "UpdateTask",
    "UpdateTaskRequest",
    "CompleteTask",
    "CompleteTaskRequest",
    "UncompleteTask",
    "UncompleteTaskRequest",
    "PostponeTask",
    "PostponeTaskRequest",
    "DeleteTask",
    "DeleteTaskRequest",
    "GetTasks",
    "GetTasksRequest",
    "RequestApproval",
    "RequestApprovalRequest",
    "ApproveTask",
    "ApproveTaskRequest",
    "RejectApproval",
    "RejectApprovalRequest",
    "CancelApproval",
    "CancelApprovalRequest",
    "GetPendingApprovals",
    "GetPendingApprovalsRequest",
]
