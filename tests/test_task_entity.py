"""Tests for the Task state machine and subtask operations."""

import pytest
from datetime import date, datetime, time, timedelta

from famsync.models.errors import TaskError, TaskErrorCode
from famsync.models.priority import ApprovalStatus, Priority, TaskStatus
from famsync.models.repeat import RepeatConfig
from famsync.models.task import Task
from famsync.models.task_factory import create_task_base


class TestPrivacyNormalization:
    """private always mirrors family_id."""

    def test_family_task_is_not_private(self, sample_task):
        """Test a task with a family is shared."""
        assert sample_task.family_id == "family-1"
        assert sample_task.private is False

    def test_explicit_private_clears_family(self, private_task):
        """Test private=True drops a stale family id."""
        assert private_task.family_id is None
        assert private_task.private is True

    def test_no_family_means_private(self, sample_task_base):
        """Test a task without a family is private even if private=False was passed."""
        task = Task(**{**sample_task_base, "family_id": None, "private": False})
        assert task.private is True


class TestCompletion:
    """Test complete / uncomplete transitions."""

    def test_complete_sets_completion_fields(self, sample_task):
        """Test completing stamps completed_at and completed_by."""
        completed = sample_task.complete("user-b")

        assert completed.status == TaskStatus.COMPLETED
        assert completed.completed_by == "user-b"
        assert completed.completed_at is not None
        assert completed.approval_status is None
        assert completed.updated_at >= sample_task.updated_at
        # The original snapshot is untouched
        assert sample_task.status == TaskStatus.PENDING

    def test_complete_twice_fails(self, sample_task):
        """Test completing an already-completed task raises a TaskError."""
        completed = sample_task.complete("user-a")
        with pytest.raises(TaskError) as exc:
            completed.complete("user-a")
        assert exc.value.code == TaskErrorCode.TASK_ALREADY_COMPLETED.value

    def test_complete_with_approval_moves_to_pending_approval(self, sample_task_base):
        """Test approval-gated tasks wait for review after completion."""
        task = Task(**{**sample_task_base, "requires_approval": True})
        completed = task.complete("child-1")

        assert completed.status == TaskStatus.COMPLETED
        assert completed.approval_status == ApprovalStatus.PENDING
        assert completed.is_pending_approval()
        assert not completed.can_edit()

    def test_uncomplete_not_completed_fails(self, sample_task):
        """Test uncompleting a pending task raises TASK_NOT_COMPLETED."""
        with pytest.raises(TaskError) as exc:
            sample_task.uncomplete()
        assert exc.value.code == "TASK_NOT_COMPLETED"

    def test_uncomplete_clears_completion(self, sample_task):
        """Test uncompleting resets completion and approval fields."""
        reopened = sample_task.complete("user-a").uncomplete()

        assert reopened.status == TaskStatus.PENDING
        assert reopened.completed_at is None
        assert reopened.completed_by is None
        assert reopened.approval_status is None

    def test_cancel_and_reopen(self, sample_task):
        """Test pending -> cancelled -> pending."""
        cancelled = sample_task.cancel()
        assert cancelled.status == TaskStatus.CANCELLED
        assert cancelled.reopen().status == TaskStatus.PENDING

    def test_cancel_completed_fails(self, sample_task):
        """Test completed tasks cannot be cancelled."""
        with pytest.raises(TaskError) as exc:
            sample_task.complete("user-a").cancel()
        assert exc.value.code == TaskErrorCode.TASK_INVALID_TRANSITION.value


class TestApprovalTransitions:
    """Test approve / reject on the task's approval axis."""

    def test_approve_requires_approval_flag(self, sample_task):
        """Test approve() fails when the task does not require approval."""
        with pytest.raises(TaskError) as exc:
            sample_task.complete("user-a").approve("admin-1")
        assert exc.value.code == TaskErrorCode.TASK_APPROVAL_NOT_REQUIRED.value

    def test_reject_requires_pending_status(self, sample_task_base):
        """Test reject() fails when nothing is pending review."""
        task = Task(**{**sample_task_base, "requires_approval": True})
        with pytest.raises(TaskError) as exc:
            task.reject("admin-1")
        assert exc.value.code == TaskErrorCode.TASK_NOT_PENDING_APPROVAL.value

    def test_approve_records_reviewer(self, sample_task_base):
        """Test approving a pending completion."""
        task = Task(**{**sample_task_base, "requires_approval": True}).complete("child-1")
        approved = task.approve("admin-1")

        assert approved.approval_status == ApprovalStatus.APPROVED
        assert approved.approved_by == "admin-1"
        assert approved.approved_at is not None
        assert approved.status == TaskStatus.COMPLETED

    def test_reject_reverts_completion(self, sample_task_base):
        """Test rejecting sends the snapshot back to pending."""
        task = Task(**{**sample_task_base, "requires_approval": True}).complete("child-1")
        rejected = task.reject("admin-1")

        assert rejected.status == TaskStatus.PENDING
        assert rejected.completed_at is None
        assert rejected.approval_status == ApprovalStatus.REJECTED

    def test_withdraw_approval_request(self, sample_task):
        """Test a withdrawn request clears the pending flag."""
        flagged = sample_task.request_approval()
        assert flagged.is_pending_approval()

        withdrawn = flagged.withdraw_approval_request()
        assert not withdrawn.is_pending_approval()
        assert withdrawn.requires_approval is True


class TestPostponeAndEdit:
    """Test postpone and restricted updates."""

    def test_postpone_keeps_first_original_date(self, sample_task):
        """Test original_date is recorded on the first postponement only."""
        first = sample_task.postpone(sample_task.date + timedelta(days=1), "user-a")
        second = first.postpone(sample_task.date + timedelta(days=3), "user-a", time(18, 0))

        assert first.original_date == sample_task.date
        assert second.original_date == sample_task.date
        assert second.postpone_count == 2
        assert second.time == time(18, 0)
        assert second.postponed_by == "user-a"

    def test_postpone_completed_fails(self, sample_task):
        """Test completed tasks cannot be postponed."""
        with pytest.raises(TaskError) as exc:
            sample_task.complete("user-a").postpone(date.today(), "user-a")
        assert exc.value.code == TaskErrorCode.TASK_CANNOT_POSTPONE.value

    def test_update_editable_fields(self, sample_task):
        """Test update applies allowed fields and stamps edited_at."""
        updated = sample_task.update(title="Recycle", priority="high")

        assert updated.title == "Recycle"
        assert updated.priority == Priority.HIGH
        assert updated.edited_at is not None

    def test_update_rejects_unknown_fields(self, sample_task):
        """Test fields outside the editable set are refused."""
        with pytest.raises(ValueError):
            sample_task.update(created_by="someone-else")

    def test_update_completed_task_fails(self, sample_task):
        """Test completed tasks cannot be edited."""
        with pytest.raises(TaskError) as exc:
            sample_task.complete("user-a").update(title="Too late")
        assert exc.value.code == TaskErrorCode.TASK_CANNOT_EDIT.value

    def test_update_repeat_from_dict(self, sample_task):
        """Test a raw repeat dict is turned into a RepeatConfig."""
        updated = sample_task.update(repeat={"type": "daily", "interval": 2})
        assert isinstance(updated.repeat, RepeatConfig)
        assert updated.is_recurring()


class TestQueries:
    """Test read-only helpers."""

    def test_is_overdue(self, sample_task_base):
        """Test overdue detection by date and time of day."""
        yesterday = Task(**{**sample_task_base, "date": date.today() - timedelta(days=1)})
        now = datetime(2026, 3, 10, 12, 0)
        morning = Task(**{**sample_task_base, "date": now.date(), "time": time(9, 0)})
        evening = Task(**{**sample_task_base, "date": now.date(), "time": time(20, 0)})

        assert yesterday.is_overdue()
        assert morning.is_overdue(now)
        assert not evening.is_overdue(now)
        assert not yesterday.complete("user-a").is_overdue()

    def test_last_touched_prefers_updated_at(self, sample_task):
        """Test last_touched returns updated_at."""
        assert sample_task.last_touched() == sample_task.updated_at

    def test_subtask_progress(self, sample_task):
        """Test progress is 100 without subtasks and a rounded percentage otherwise."""
        assert sample_task.subtask_progress() == 100

        task = sample_task.add_subtask("A").add_subtask("B").add_subtask("C")
        task = task.complete_subtask(task.subtasks[0].id, "user-a")
        assert task.subtask_progress() == 33
        assert not task.all_subtasks_completed()


class TestSubtasks:
    """Test subtask operations."""

    def test_add_subtask_appends_in_order(self, sample_task):
        """Test new subtasks get the next order index."""
        task = sample_task.add_subtask("Bags").add_subtask("Bins", due_date=date.today())
        assert [s.title for s in task.subtasks] == ["Bags", "Bins"]
        assert [s.order for s in task.subtasks] == [0, 1]
        assert task.subtasks[1].due_date == date.today()

    def test_complete_subtask_toggles(self, sample_task):
        """Test completing a subtask twice toggles it back."""
        task = sample_task.add_subtask("Bags")
        sid = task.subtasks[0].id

        done = task.complete_subtask(sid, "user-a")
        assert done.subtasks[0].completed
        assert done.subtasks[0].completed_by == "user-a"

        undone = done.complete_subtask(sid, "user-a")
        assert not undone.subtasks[0].completed
        assert undone.subtasks[0].completed_at is None

    def test_remove_subtask_reindexes(self, sample_task):
        """Test order stays contiguous after removal."""
        task = sample_task.add_subtask("A").add_subtask("B").add_subtask("C")
        task = task.remove_subtask(task.subtasks[1].id)
        assert [s.title for s in task.subtasks] == ["A", "C"]
        assert [s.order for s in task.subtasks] == [0, 1]

    def test_reorder_subtasks(self, sample_task):
        """Test reorder ignores unknown ids and keeps unlisted subtasks at the end."""
        task = sample_task.add_subtask("A").add_subtask("B").add_subtask("C")
        a, b, c = (s.id for s in task.subtasks)
        reordered = task.reorder_subtasks([c, "missing", a])
        assert [s.id for s in reordered.subtasks] == [c, a, b]
        assert [s.order for s in reordered.subtasks] == [0, 1, 2]

    def test_unknown_subtask_fails(self, sample_task):
        """Test operations on a missing subtask raise TASK_SUBTASK_NOT_FOUND."""
        with pytest.raises(TaskError) as exc:
            sample_task.update_subtask("missing", title="x")
        assert exc.value.code == TaskErrorCode.TASK_SUBTASK_NOT_FOUND.value


class TestRecurrence:
    """Test next_occurrence on recurring tasks."""

    def test_next_occurrence_shares_repeat_group(self):
        """Test the next instance is fresh, shares the group and counts up."""
        task = create_task_base(
            title="Water plants",
            category="home",
            date=date(2026, 1, 1),
            created_by="user-a",
            family_id="family-1",
            repeat=RepeatConfig(type="daily"),
            subtasks=[{"title": "Balcony"}],
        )
        task = task.complete_subtask(task.subtasks[0].id, "user-a").complete("user-a")
        nxt = task.next_occurrence()

        assert nxt is not None
        assert nxt.id != task.id
        assert nxt.repeat_group_id == task.id
        assert nxt.date == date(2026, 1, 2)
        assert nxt.status == TaskStatus.PENDING
        assert nxt.occurrence_number == 2
        assert not nxt.subtasks[0].completed

    def test_next_occurrence_respects_occurrence_limit(self):
        """Test the series stops after the configured number of occurrences."""
        task = create_task_base(
            title="Dentist",
            category="health",
            date=date(2026, 1, 1),
            created_by="user-a",
            repeat=RepeatConfig(type="monthly", occurrences=2),
        )
        second = task.next_occurrence()
        assert second is not None
        assert second.next_occurrence() is None

    def test_non_recurring_has_no_next(self, sample_task):
        """Test tasks without repeat return None."""
        assert sample_task.next_occurrence() is None
