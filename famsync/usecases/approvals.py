"""Approval workflow use cases.

Reviewer authorization is always re-checked against a fresh read of the
reviewer's membership; caller-supplied roles are never trusted. The
notification to the requester and the history entry are best-effort.
"""

import asyncio
import datetime as dt
import logging
import uuid
from collections import defaultdict
from typing import Dict, List, Optional

from pydantic import BaseModel

from famsync.models.approval import ApprovalRequest
from famsync.models.constants import DEFAULT_APPROVAL_TTL_DAYS
from famsync.models.errors import ApprovalError, ApprovalErrorCode, NotAuthorizedError, TaskError
from famsync.models.history import HistoryAction
from famsync.models.role import FamilyMember, is_elevated_role
from famsync.models.task import Task
from famsync.ports import (
    ApprovalRepository,
    HistoryRepository,
    NotificationService,
    TaskRepository,
    UserRepository,
)
from famsync.usecases.base import UseCase, make_history_item
from famsync.usecases.tasks import spawn_next_occurrence

logger = logging.getLogger(__name__)


def _required(**fields: Optional[str]) -> List[str]:
    return [f"{name.replace('_', ' ').capitalize()} is required" for name, value in fields.items() if not value]


class _ApprovalUseCase(UseCase):
    def __init__(
        self,
        approvals: ApprovalRepository,
        tasks: TaskRepository,
        users: UserRepository,
        notifications: Optional[NotificationService] = None,
        history: Optional[HistoryRepository] = None,
    ):
        self.approvals = approvals
        self.tasks = tasks
        self.users = users
        self.notifications = notifications
        self.history = history

    async def _get_pending_approval(self, approval_id: str) -> ApprovalRequest:
        approval = await self.approvals.find_by_id(approval_id)
        if approval is None:
            raise ApprovalError(
                f"Approval {approval_id} not found", ApprovalErrorCode.APPROVAL_NOT_FOUND, approval_id
            )
        if not approval.is_pending():
            raise ApprovalError(
                f"Approval {approval_id} was already {approval.status}",
                ApprovalErrorCode.APPROVAL_ALREADY_PROCESSED,
                approval_id,
            )
        return approval

    async def _authorize_reviewer(self, reviewer_id: str, approval: ApprovalRequest) -> FamilyMember:
        reviewer = await self.users.find_by_id(reviewer_id)
        if reviewer is None:
            raise ApprovalError(
                f"Reviewer {reviewer_id} not found", ApprovalErrorCode.APPROVER_NOT_FOUND, approval.id
            )
        if not is_elevated_role(reviewer.role):
            raise NotAuthorizedError(
                f"Role {reviewer.role} cannot review tasks",
                ApprovalErrorCode.NOT_AUTHORIZED,
                user_id=reviewer_id,
            )
        if reviewer.family_id != approval.family_id:
            raise NotAuthorizedError(
                "Reviewer does not belong to the approval's family",
                ApprovalErrorCode.NOT_FAMILY_MEMBER,
                user_id=reviewer_id,
            )
        return reviewer

    async def _notify(self, user_id: str, title: str, body: str, **data: str) -> bool:
        if self.notifications is None:
            return False
        return await self.best_effort(
            f"notify {user_id}",
            self.notifications.notify_user(user_id=user_id, title=title, body=body, data=data),
        )

    async def _record(
        self,
        action: HistoryAction,
        user_id: str,
        user_name: str,
        user_role: Optional[str],
        approval: ApprovalRequest,
        task: Optional[Task],
        **details,
    ) -> bool:
        if self.history is None:
            return False
        item = make_history_item(
            action,
            user_id,
            user_name,
            task,
            user_role=user_role,
            family_id=approval.family_id,
            details={"approval_id": approval.id, **details},
        )
        if task is None:
            item = item.model_copy(update={"task_id": approval.task_id, "task_title": approval.task_title})
        return await self.best_effort(f"history {action.value}", self.history.add(item))


# --- request -------------------------------------------------------------

class RequestApprovalRequest(BaseModel):
    task_id: str = ""
    requester_id: str = ""
    requester_name: str = ""
    family_id: str = ""
    task_title: Optional[str] = None


class RequestApprovalResponse(BaseModel):
    approval: ApprovalRequest
    notifications_sent: int


class RequestApproval(_ApprovalUseCase):
    error_code = "REQUEST_APPROVAL_ERROR"

    def __init__(self, *args, ttl_days: int = DEFAULT_APPROVAL_TTL_DAYS, **kwargs):
        super().__init__(*args, **kwargs)
        self.ttl_days = ttl_days
        # Serializes check-then-save per task inside this process
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def validate(self, request: RequestApprovalRequest) -> List[str]:
        return _required(
            task_id=request.task_id,
            requester_id=request.requester_id,
            requester_name=request.requester_name,
            family_id=request.family_id,
        )

    async def run(self, request: RequestApprovalRequest) -> RequestApprovalResponse:
        async with self._locks[request.task_id]:
            task = await self.tasks.find_by_id(request.task_id)
            if task is None:
                raise TaskError.not_found(request.task_id)
            existing = await self.approvals.find_pending_by_task(request.task_id)
            if existing is not None:
                raise ApprovalError(
                    f"Task {request.task_id} already has a pending approval",
                    ApprovalErrorCode.APPROVAL_ALREADY_EXISTS,
                    existing.id,
                )

            now = dt.datetime.utcnow()
            approval = ApprovalRequest(
                id=str(uuid.uuid4()),
                task_id=task.id,
                task_title=request.task_title or task.title,
                requester_id=request.requester_id,
                requester_name=request.requester_name,
                family_id=request.family_id,
                created_at=now,
                expires_at=now + dt.timedelta(days=self.ttl_days),
            )
            saved = await self.approvals.save(approval)

        if not task.is_pending_approval():
            await self.tasks.update(task.request_approval())

        sent = 0
        try:
            reviewers = await self.users.find_family_members(request.family_id)
        except Exception as e:
            logger.warning(f"Could not load reviewers of family {request.family_id}: {type(e).__name__}: {str(e)}")
            reviewers = []
        for member in reviewers:
            if member.id == request.requester_id or not is_elevated_role(member.role):
                continue
            if await self._notify(
                member.id,
                "Task awaiting approval",
                f"{request.requester_name} completed \"{saved.task_title}\"",
                approval_id=saved.id,
                task_id=saved.task_id,
            ):
                sent += 1

        await self._record(
            HistoryAction.APPROVAL_REQUESTED, request.requester_id, request.requester_name, None, saved, task
        )
        logger.info(f"Approval {saved.id} requested for task {task.id} ({sent} reviewers notified)")
        return RequestApprovalResponse(approval=saved, notifications_sent=sent)


# --- approve -------------------------------------------------------------

class ApproveTaskRequest(BaseModel):
    approval_id: str = ""
    approver_id: str = ""
    approver_name: str = ""
    comment: Optional[str] = None


class ApproveTaskResponse(BaseModel):
    approval: ApprovalRequest
    task: Optional[Task] = None
    notification_sent: bool = False
    history_recorded: bool = False
    next_task: Optional[Task] = None


class ApproveTask(_ApprovalUseCase):
    error_code = "APPROVE_TASK_ERROR"

    def validate(self, request: ApproveTaskRequest) -> List[str]:
        return _required(
            approval_id=request.approval_id,
            approver_id=request.approver_id,
            approver_name=request.approver_name,
        )

    async def run(self, request: ApproveTaskRequest) -> ApproveTaskResponse:
        approval = await self._get_pending_approval(request.approval_id)
        reviewer = await self._authorize_reviewer(request.approver_id, approval)

        approved = approval.approve(reviewer.id, request.approver_name, request.comment)
        await self.approvals.update(approved)

        task = await self.tasks.find_by_id(approval.task_id)
        next_task = None
        if task is not None and task.is_pending_approval():
            task = await self.tasks.update(task.approve(reviewer.id))
            if task.is_completed:
                next_task = await spawn_next_occurrence(self, task)
        elif task is None:
            logger.warning(f"Approved {approval.id} but task {approval.task_id} no longer exists")

        notified = await self._notify(
            approval.requester_id,
            "Task approved",
            f"{request.approver_name} approved \"{approval.task_title}\"",
            approval_id=approval.id,
            task_id=approval.task_id,
        )
        recorded = await self._record(
            HistoryAction.TASK_APPROVED,
            reviewer.id,
            request.approver_name,
            reviewer.role,
            approved,
            task,
            comment=request.comment,
        )
        return ApproveTaskResponse(
            approval=approved,
            task=task,
            notification_sent=notified,
            history_recorded=recorded,
            next_task=next_task,
        )


# --- reject --------------------------------------------------------------

class RejectApprovalRequest(BaseModel):
    approval_id: str = ""
    rejector_id: str = ""
    rejector_name: str = ""
    reason: str = ""


class RejectApprovalResponse(BaseModel):
    approval: ApprovalRequest
    task_deleted: bool
    notification_sent: bool = False
    history_recorded: bool = False


class RejectApproval(_ApprovalUseCase):
    """Rejecting destroys the underlying task instead of reverting it."""

    error_code = "REJECT_APPROVAL_ERROR"

    def validate(self, request: RejectApprovalRequest) -> List[str]:
        issues = _required(
            approval_id=request.approval_id,
            rejector_id=request.rejector_id,
            rejector_name=request.rejector_name,
        )
        if not request.reason.strip():
            issues.append("A rejection reason is required")
        return issues

    async def run(self, request: RejectApprovalRequest) -> RejectApprovalResponse:
        approval = await self._get_pending_approval(request.approval_id)
        reviewer = await self._authorize_reviewer(request.rejector_id, approval)

        rejected = approval.reject(reviewer.id, request.rejector_name, request.reason.strip())
        await self.approvals.update(rejected)

        task = await self.tasks.find_by_id(approval.task_id)
        task_deleted = False
        if task is not None:
            try:
                await self.tasks.delete(task.id)
                task_deleted = True
            except Exception as e:
                logger.warning(f"Rejected {approval.id} but could not delete task {task.id}: {e}")
            if task_deleted and self.notifications is not None:
                await self.best_effort("cancel reminder", self.notifications.cancel_task_reminder(task.id))

        notified = await self._notify(
            approval.requester_id,
            "Task rejected",
            f"{request.rejector_name} rejected \"{approval.task_title}\": {request.reason.strip()}",
            approval_id=approval.id,
            task_id=approval.task_id,
        )
        recorded = await self._record(
            HistoryAction.TASK_REJECTED,
            reviewer.id,
            request.rejector_name,
            reviewer.role,
            rejected,
            task,
            reason=request.reason.strip(),
            task_deleted=task_deleted,
        )
        return RejectApprovalResponse(
            approval=rejected,
            task_deleted=task_deleted,
            notification_sent=notified,
            history_recorded=recorded,
        )


# --- cancel --------------------------------------------------------------

class CancelApprovalRequest(BaseModel):
    approval_id: str = ""
    user_id: str = ""


class CancelApproval(_ApprovalUseCase):
    """The requester (or a reviewer of the family) withdraws a pending request."""

    error_code = "CANCEL_APPROVAL_ERROR"

    def validate(self, request: CancelApprovalRequest) -> List[str]:
        return _required(approval_id=request.approval_id, user_id=request.user_id)

    async def run(self, request: CancelApprovalRequest) -> ApprovalRequest:
        approval = await self._get_pending_approval(request.approval_id)
        if request.user_id != approval.requester_id:
            await self._authorize_reviewer(request.user_id, approval)

        cancelled = approval.cancel()
        await self.approvals.update(cancelled)

        task = await self.tasks.find_by_id(approval.task_id)
        if task is not None and task.is_pending_approval():
            await self.tasks.update(task.withdraw_approval_request())
        return cancelled


# --- list ----------------------------------------------------------------

class GetPendingApprovalsRequest(BaseModel):
    user_id: str = ""


class GetPendingApprovalsResponse(BaseModel):
    approvals: List[ApprovalRequest]
    total: int


class GetPendingApprovals(_ApprovalUseCase):
    """Reviewers see their family's queue; everyone else sees their own requests."""

    error_code = "GET_APPROVALS_ERROR"

    def validate(self, request: GetPendingApprovalsRequest) -> List[str]:
        return _required(user_id=request.user_id)

    async def run(self, request: GetPendingApprovalsRequest) -> GetPendingApprovalsResponse:
        user = await self.users.find_by_id(request.user_id)
        if user is None:
            raise NotAuthorizedError(f"User {request.user_id} not found", user_id=request.user_id)

        if is_elevated_role(user.role) and user.family_id:
            approvals = await self.approvals.find_pending_by_family(user.family_id)
        else:
            approvals = [a for a in await self.approvals.find_by_requester(user.id) if a.is_pending()]

        now = dt.datetime.utcnow()
        approvals = [a for a in approvals if not a.is_expired(now)]
        approvals.sort(key=lambda a: a.created_at, reverse=True)
        return GetPendingApprovalsResponse(approvals=approvals, total=len(approvals))
