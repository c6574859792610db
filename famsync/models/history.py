"""HistoryItem data model for famsync."""

import datetime as dt
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HistoryAction(str, Enum):
    """History action enumeration."""
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_COMPLETED = "task_completed"
    TASK_UNCOMPLETED = "task_uncompleted"
    TASK_DELETED = "task_deleted"
    TASK_POSTPONED = "task_postponed"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    APPROVAL_REQUESTED = "approval_requested"


class HistoryItem(BaseModel):
    """Append-only audit record of something that happened to a task."""

    id: str = Field(..., description="Unique history identifier")
    action: HistoryAction = Field(..., description="What happened")
    timestamp: dt.datetime = Field(default_factory=dt.datetime.utcnow, description="Event timestamp")
    user_id: str = Field(..., description="Actor user ID")
    user_name: str = Field(..., description="Actor display name")
    user_role: Optional[str] = Field(None, description="Actor role at the time")
    family_id: Optional[str] = Field(None, description="Family the event belongs to")
    task_id: Optional[str] = Field(None, description="Related task")
    task_title: Optional[str] = Field(None, description="Task title at the time")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional event details")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True
