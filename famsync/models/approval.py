"""ApprovalRequest data model for famsync.

An approval request is filed when a dependent completes a task that needs
supervision. It is resolved exactly once (approved, rejected or cancelled);
every resolution is terminal.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from famsync.models.errors import ApprovalError, ApprovalErrorCode


class ApprovalRequestStatus(str, Enum):
    """Approval request status enumeration."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ApprovalRequest(BaseModel):
    """A request for an elevated family member to confirm a task completion."""

    id: str = Field(..., description="Unique approval identifier")
    task_id: str = Field(..., description="Task awaiting review")
    task_title: Optional[str] = Field(None, description="Task title at request time")
    requester_id: str = Field(..., description="User who asked for approval")
    requester_name: str = Field(..., description="Display name of the requester")
    family_id: str = Field(..., description="Family whose reviewers may decide")
    status: ApprovalRequestStatus = Field(ApprovalRequestStatus.PENDING, description="Request status")
    reviewer_id: Optional[str] = Field(None, description="Who resolved the request")
    reviewer_name: Optional[str] = Field(None, description="Display name of the reviewer")
    comment: Optional[str] = Field(None, description="Reviewer comment or rejection reason")
    reviewed_at: Optional[dt.datetime] = Field(None, description="Resolution timestamp")
    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow, description="Request timestamp")
    expires_at: Optional[dt.datetime] = Field(None, description="After this the request is ignored")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True

    def is_pending(self) -> bool:
        return self.status == ApprovalRequestStatus.PENDING

    def is_expired(self, now: Optional[dt.datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or dt.datetime.utcnow())

    def _resolve(
        self,
        status: ApprovalRequestStatus,
        reviewer_id: Optional[str],
        reviewer_name: Optional[str],
        comment: Optional[str],
    ) -> "ApprovalRequest":
        if not self.is_pending():
            raise ApprovalError(
                f"Approval {self.id} was already {self.status}",
                ApprovalErrorCode.APPROVAL_ALREADY_PROCESSED,
                self.id,
            )
        return self.model_copy(update={
            "status": status,
            "reviewer_id": reviewer_id,
            "reviewer_name": reviewer_name,
            "comment": comment,
            "reviewed_at": dt.datetime.utcnow(),
        })

    def approve(self, reviewer_id: str, reviewer_name: str, comment: Optional[str] = None) -> "ApprovalRequest":
        return self._resolve(ApprovalRequestStatus.APPROVED, reviewer_id, reviewer_name, comment)

    def reject(self, reviewer_id: str, reviewer_name: str, reason: str) -> "ApprovalRequest":
        return self._resolve(ApprovalRequestStatus.REJECTED, reviewer_id, reviewer_name, reason)

    def cancel(self) -> "ApprovalRequest":
        return self._resolve(ApprovalRequestStatus.CANCELLED, None, None, None)
