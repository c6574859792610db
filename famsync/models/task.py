"""Task data model and state machine for famsync.

Tasks are immutable snapshots. Every transition validates the current state,
returns a new ``Task`` with ``updated_at`` stamped, and raises ``TaskError``
when the transition is illegal. Deleting a task is a repository concern.
"""

import datetime as dt
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from famsync.models.errors import TaskError
from famsync.models.priority import ApprovalStatus, Priority, TaskStatus, is_valid_status_transition
from famsync.models.repeat import RepeatConfig
from famsync.models.subtask import Subtask

# Fields that may be changed through Task.update()
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "category",
    "category_color",
    "category_icon",
    "priority",
    "date",
    "time",
    "assigned_to",
    "repeat",
    "notes",
})


class Task(BaseModel):
    """Canonical Task model."""

    id: str = Field(..., description="Unique task identifier (client-generated UUID v4)")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    category: str = Field(..., description="Category identifier")
    category_color: Optional[str] = Field(None, description="Category color for display")
    category_icon: Optional[str] = Field(None, description="Category icon for display")
    priority: Priority = Field(Priority.MEDIUM, description="Task priority")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Task status")
    date: dt.date = Field(..., description="Day the task is scheduled for")
    time: Optional[dt.time] = Field(None, description="Optional time of day")
    created_by: str = Field(..., description="User ID of the author")
    created_by_name: Optional[str] = Field(None, description="Display name of the author")
    assigned_to: Optional[str] = Field(None, description="User ID of the assignee")
    family_id: Optional[str] = Field(None, description="Owning family (None means private to the author)")
    private: bool = Field(True, description="Visible only to the author; always equals family_id is None")
    subtasks: List[Subtask] = Field(default_factory=list, description="Ordered checklist")
    requires_approval: bool = Field(False, description="Completion must be approved by an elevated member")
    approval_status: Optional[ApprovalStatus] = Field(None, description="Approval axis")
    approved_by: Optional[str] = Field(None, description="Reviewer of the last approval decision")
    approved_at: Optional[dt.datetime] = Field(None, description="When the last approval decision was made")
    postpone_count: int = Field(0, ge=0, description="How many times the task was postponed")
    original_date: Optional[dt.date] = Field(None, description="Date before the first postponement")
    postponed_by: Optional[str] = Field(None, description="Who postponed the task last")
    repeat: Optional[RepeatConfig] = Field(None, description="Repeat configuration")
    repeat_group_id: Optional[str] = Field(None, description="Shared by every occurrence of a recurring series")
    occurrence_number: int = Field(1, ge=1, description="Position of this occurrence in its series")
    notes: Optional[str] = Field(None, description="Free-form notes")
    created_at: dt.datetime = Field(..., description="Task creation timestamp")
    updated_at: dt.datetime = Field(..., description="Task last update timestamp")
    edited_at: Optional[dt.datetime] = Field(None, description="Last time the content was edited")
    completed_at: Optional[dt.datetime] = Field(None, description="Completion timestamp")
    completed_by: Optional[str] = Field(None, description="User ID who completed the task")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _normalize_privacy(cls, data: Any) -> Any:
        # private == (family_id is None); an explicit private flag wins over a stale family id
        if isinstance(data, dict):
            data = dict(data)
            if data.get("private") is True:
                data["family_id"] = None
            data["private"] = data.get("family_id") is None
        return data

    # --- queries ---------------------------------------------------------

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def is_pending_approval(self) -> bool:
        return self.requires_approval and self.approval_status == ApprovalStatus.PENDING

    def can_edit(self) -> bool:
        return not self.is_completed and not self.is_pending_approval()

    def can_postpone(self) -> bool:
        return not self.is_completed

    def is_recurring(self) -> bool:
        return bool(self.repeat and self.repeat.enabled)

    def is_today(self, today: Optional[dt.date] = None) -> bool:
        return self.date == (today or dt.date.today())

    def is_overdue(self, now: Optional[dt.datetime] = None) -> bool:
        """Pending and scheduled before ``now`` (time of day counts on the same day)."""
        if self.status != TaskStatus.PENDING:
            return False
        now = now or dt.datetime.now()
        if self.date < now.date():
            return True
        return self.date == now.date() and self.time is not None and self.time < now.time()

    def all_subtasks_completed(self) -> bool:
        return all(s.completed for s in self.subtasks)

    def subtask_progress(self) -> int:
        """Percentage of completed subtasks (100 when there are none)."""
        if not self.subtasks:
            return 100
        done = sum(1 for s in self.subtasks if s.completed)
        return round(done * 100 / len(self.subtasks))

    def last_touched(self) -> dt.datetime:
        return self.updated_at or self.edited_at or self.created_at

    # --- transitions -----------------------------------------------------

    def _touch(self, **changes: Any) -> "Task":
        changes.setdefault("updated_at", dt.datetime.utcnow())
        return self.model_copy(update=changes)

    def complete(self, by: str) -> "Task":
        """Mark completed; approval-gated tasks move to approval_status=pending."""
        if self.is_completed:
            raise TaskError.already_completed(self.id)
        if not is_valid_status_transition(self.status, TaskStatus.COMPLETED):
            raise TaskError.invalid_transition(self.id, self.status, TaskStatus.COMPLETED.value)
        now = dt.datetime.utcnow()
        return self._touch(
            status=TaskStatus.COMPLETED,
            completed_at=now,
            completed_by=by,
            approval_status=ApprovalStatus.PENDING if self.requires_approval else None,
            updated_at=now,
        )

    def uncomplete(self) -> "Task":
        if not self.is_completed:
            raise TaskError.not_completed(self.id)
        return self._touch(
            status=TaskStatus.PENDING,
            completed_at=None,
            completed_by=None,
            approval_status=None,
            approved_by=None,
            approved_at=None,
        )

    def cancel(self) -> "Task":
        if not is_valid_status_transition(self.status, TaskStatus.CANCELLED):
            raise TaskError.invalid_transition(self.id, self.status, TaskStatus.CANCELLED.value)
        return self._touch(status=TaskStatus.CANCELLED)

    def reopen(self) -> "Task":
        """Bring a cancelled task back to pending."""
        if self.status != TaskStatus.CANCELLED:
            raise TaskError.invalid_transition(self.id, self.status, TaskStatus.PENDING.value)
        return self._touch(status=TaskStatus.PENDING)

    def postpone(self, new_date: dt.date, by: str, new_time: Optional[dt.time] = None) -> "Task":
        """Move the task to a new date; the first postponement records original_date."""
        if not self.can_postpone():
            raise TaskError.cannot_postpone(self.id)
        return self._touch(
            date=new_date,
            time=new_time if new_time is not None else self.time,
            original_date=self.original_date or self.date,
            postpone_count=self.postpone_count + 1,
            postponed_by=by,
        )

    def approve(self, by: str) -> "Task":
        if not self.requires_approval:
            raise TaskError.approval_not_required(self.id)
        if self.approval_status != ApprovalStatus.PENDING:
            raise TaskError.not_pending_approval(self.id)
        now = dt.datetime.utcnow()
        return self._touch(
            approval_status=ApprovalStatus.APPROVED,
            approved_by=by,
            approved_at=now,
            updated_at=now,
        )

    def reject(self, by: str) -> "Task":
        """Send the task back to pending and clear its completion."""
        if not self.requires_approval:
            raise TaskError.approval_not_required(self.id)
        if self.approval_status != ApprovalStatus.PENDING:
            raise TaskError.not_pending_approval(self.id)
        now = dt.datetime.utcnow()
        return self._touch(
            status=TaskStatus.PENDING,
            completed_at=None,
            completed_by=None,
            approval_status=ApprovalStatus.REJECTED,
            approved_by=by,
            approved_at=now,
            updated_at=now,
        )

    def request_approval(self) -> "Task":
        """Flag the task as awaiting review (used when a request is filed explicitly)."""
        return self._touch(requires_approval=True, approval_status=ApprovalStatus.PENDING)

    def withdraw_approval_request(self) -> "Task":
        """Drop a pending approval flag after its request was cancelled."""
        if not self.is_pending_approval():
            raise TaskError.not_pending_approval(self.id)
        return self._touch(approval_status=None)

    def update(self, **changes: Any) -> "Task":
        """Apply an edit restricted to EDITABLE_FIELDS."""
        if not self.can_edit():
            raise TaskError.cannot_edit(self.id)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if isinstance(changes.get("repeat"), dict):
            changes["repeat"] = RepeatConfig(**changes["repeat"])
        if "priority" in changes and changes["priority"] is not None:
            changes["priority"] = Priority(changes["priority"]).value
        now = dt.datetime.utcnow()
        return self._touch(edited_at=now, updated_at=now, **changes)

    # --- subtasks --------------------------------------------------------

    def _find_subtask(self, subtask_id: str) -> Subtask:
        for subtask in self.subtasks:
            if subtask.id == subtask_id:
                return subtask
        raise TaskError.subtask_not_found(self.id, subtask_id)

    @staticmethod
    def _reindexed(subtasks: List[Subtask]) -> List[Subtask]:
        return [s if s.order == i else s.model_copy(update={"order": i}) for i, s in enumerate(subtasks)]

    def add_subtask(
        self,
        title: str,
        due_date: Optional[dt.date] = None,
        due_time: Optional[dt.time] = None,
    ) -> "Task":
        subtask = Subtask(
            id=str(uuid.uuid4()),
            title=title,
            completed=False,
            order=len(self.subtasks),
            due_date=due_date,
            due_time=due_time,
        )
        return self._touch(subtasks=[*self.subtasks, subtask])

    def update_subtask(self, subtask_id: str, **changes: Any) -> "Task":
        self._find_subtask(subtask_id)
        allowed = {k: v for k, v in changes.items() if k in ("title", "due_date", "due_time")}
        subtasks = [s.model_copy(update=allowed) if s.id == subtask_id else s for s in self.subtasks]
        return self._touch(subtasks=subtasks)

    def complete_subtask(self, subtask_id: str, by: str) -> "Task":
        """Toggle a subtask's completion."""
        current = self._find_subtask(subtask_id)
        if current.completed:
            changed = current.model_copy(update={"completed": False, "completed_at": None, "completed_by": None})
        else:
            changed = current.model_copy(
                update={"completed": True, "completed_at": dt.datetime.utcnow(), "completed_by": by}
            )
        return self._touch(subtasks=[changed if s.id == subtask_id else s for s in self.subtasks])

    def remove_subtask(self, subtask_id: str) -> "Task":
        self._find_subtask(subtask_id)
        remaining = [s for s in self.subtasks if s.id != subtask_id]
        return self._touch(subtasks=self._reindexed(remaining))

    def reorder_subtasks(self, ordered_ids: List[str]) -> "Task":
        """Reorder by id; unknown ids are ignored and unlisted subtasks keep their relative order at the end."""
        by_id: Dict[str, Subtask] = {s.id: s for s in self.subtasks}
        ordered = [by_id[i] for i in dict.fromkeys(ordered_ids) if i in by_id]
        listed = {s.id for s in ordered}
        ordered.extend(s for s in self.subtasks if s.id not in listed)
        return self._touch(subtasks=self._reindexed(ordered))

    # --- recurrence ------------------------------------------------------

    def next_occurrence(self) -> Optional["Task"]:
        """Fresh pending instance for the next date of the series, or None when it ends."""
        if not self.is_recurring():
            return None
        if self.repeat.occurrences is not None and self.occurrence_number >= self.repeat.occurrences:
            return None
        next_date = self.repeat.next_occurrence(self.original_date or self.date)
        if next_date is None:
            return None
        now = dt.datetime.utcnow()
        return self.model_copy(update={
            "id": str(uuid.uuid4()),
            "date": next_date,
            "status": TaskStatus.PENDING,
            "subtasks": [
                s.model_copy(update={"completed": False, "completed_at": None, "completed_by": None})
                for s in self.subtasks
            ],
            "approval_status": None,
            "approved_by": None,
            "approved_at": None,
            "postpone_count": 0,
            "original_date": None,
            "postponed_by": None,
            "repeat_group_id": self.repeat_group_id or self.id,
            "occurrence_number": self.occurrence_number + 1,
            "created_at": now,
            "updated_at": now,
            "edited_at": None,
            "completed_at": None,
            "completed_by": None,
        })
