"""Task use cases: create, update, complete, uncomplete, postpone, delete, list."""

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from famsync.models.constants import MAX_DESCRIPTION_LENGTH, MAX_TITLE_LENGTH
from famsync.models.errors import TaskError
from famsync.models.history import HistoryAction
from famsync.models.priority import Priority, TaskStatus, priority_rank
from famsync.models.repeat import RepeatConfig
from famsync.models.task import Task
from famsync.models.task_factory import create_task_base
from famsync.ports import HistoryRepository, NotificationService, TaskRepository
from famsync.usecases.base import UseCase, make_history_item

logger = logging.getLogger(__name__)

RepeatInput = Optional[Union[RepeatConfig, Dict[str, Any]]]


def _repeat_issues(repeat: RepeatInput) -> List[str]:
    if repeat is None or isinstance(repeat, RepeatConfig):
        return []
    try:
        RepeatConfig.model_validate(repeat)
    except PydanticValidationError as e:
        return [f"Invalid repeat configuration: {err['msg']}" for err in e.errors()]
    return []


def _as_repeat(repeat: RepeatInput) -> Optional[RepeatConfig]:
    if repeat is None or isinstance(repeat, RepeatConfig):
        return repeat
    return RepeatConfig.model_validate(repeat)


def _title_issues(title: Optional[str]) -> List[str]:
    stripped = (title or "").strip()
    if not stripped:
        return ["Title is required"]
    if len(stripped) > MAX_TITLE_LENGTH:
        return [f"Title must be at most {MAX_TITLE_LENGTH} characters"]
    return []


def _description_issues(description: Optional[str]) -> List[str]:
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        return [f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"]
    return []


class _TaskUseCase(UseCase):
    def __init__(
        self,
        tasks: TaskRepository,
        notifications: Optional[NotificationService] = None,
        history: Optional[HistoryRepository] = None,
    ):
        self.tasks = tasks
        self.notifications = notifications
        self.history = history

    async def _get_task(self, task_id: str) -> Task:
        task = await self.tasks.find_by_id(task_id)
        if task is None:
            raise TaskError.not_found(task_id)
        return task

    async def _record(self, action: HistoryAction, user_id: str, user_name: str, task: Task, **details: Any) -> bool:
        if self.history is None:
            return False
        item = make_history_item(action, user_id, user_name, task, details=details)
        return await self.best_effort(f"history {action.value}", self.history.add(item))

    async def _schedule_reminder(self, task: Task) -> bool:
        if self.notifications is None or task.time is None:
            return False
        return await self.best_effort("schedule reminder", self.notifications.schedule_task_reminder(task))

    async def _cancel_reminders(self, task: Task) -> None:
        if self.notifications is None:
            return
        await self.best_effort("cancel reminder", self.notifications.cancel_task_reminder(task.id))
        if task.subtasks:
            await self.best_effort("cancel subtask reminders", self.notifications.cancel_subtask_reminders(task))


# --- create --------------------------------------------------------------

class CreateTaskRequest(BaseModel):
    """Input for CreateTask (business rules are checked in validate)."""

    title: str = ""
    category: str = ""
    date: Optional[dt.date] = None
    created_by: str = ""
    created_by_name: Optional[str] = None
    family_id: Optional[str] = None
    private: bool = False
    description: Optional[str] = None
    category_color: Optional[str] = None
    category_icon: Optional[str] = None
    priority: Optional[Priority] = None
    time: Optional[dt.time] = None
    assigned_to: Optional[str] = None
    subtasks: List[Dict[str, Any]] = Field(default_factory=list)
    requires_approval: bool = False
    repeat: Optional[Union[RepeatConfig, Dict[str, Any]]] = None
    notes: Optional[str] = None
    task_id: Optional[str] = None


class CreateTaskResponse(BaseModel):
    task: Task
    reminder_scheduled: bool = False


class CreateTask(_TaskUseCase):
    error_code = "CREATE_TASK_ERROR"

    def validate(self, request: CreateTaskRequest) -> List[str]:
        issues = _title_issues(request.title)
        if not request.category:
            issues.append("Category is required")
        if request.date is None:
            issues.append("Date is required")
        if not request.created_by:
            issues.append("Creator is required")
        issues += _description_issues(request.description)
        for index, subtask in enumerate(request.subtasks):
            if not str(subtask.get("title") or "").strip():
                issues.append(f"Subtask {index + 1} needs a title")
        issues += _repeat_issues(request.repeat)
        return issues

    async def run(self, request: CreateTaskRequest) -> CreateTaskResponse:
        task = create_task_base(
            title=request.title,
            category=request.category,
            date=request.date,
            created_by=request.created_by,
            created_by_name=request.created_by_name,
            family_id=None if request.private else request.family_id,
            description=request.description,
            category_color=request.category_color,
            category_icon=request.category_icon,
            priority=request.priority,
            time=request.time,
            assigned_to=request.assigned_to,
            subtasks=request.subtasks,
            requires_approval=request.requires_approval,
            repeat=_as_repeat(request.repeat),
            notes=request.notes,
            task_id=request.task_id,
        )
        saved = await self.tasks.save(task)
        logger.info(f"Created task {saved.id} ({'private' if saved.private else 'family'})")

        scheduled = await self._schedule_reminder(saved)
        if self.notifications is not None and any(s.due_date for s in saved.subtasks):
            await self.best_effort("schedule subtask reminders", self.notifications.schedule_subtask_reminders(saved))
        await self._record(HistoryAction.TASK_CREATED, request.created_by, request.created_by_name or "", saved)
        return CreateTaskResponse(task=saved, reminder_scheduled=scheduled)


# --- update --------------------------------------------------------------

class UpdateTaskRequest(BaseModel):
    """Only fields explicitly set are applied (None clears an optional field)."""

    task_id: str = ""
    updated_by: str = ""
    updated_by_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    category_color: Optional[str] = None
    category_icon: Optional[str] = None
    priority: Optional[Priority] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    assigned_to: Optional[str] = None
    repeat: Optional[Union[RepeatConfig, Dict[str, Any]]] = None
    notes: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        data = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name not in ("task_id", "updated_by", "updated_by_name")
        }
        if "repeat" in data:
            data["repeat"] = _as_repeat(data["repeat"])
        return data


class UpdateTask(_TaskUseCase):
    error_code = "UPDATE_TASK_ERROR"

    def validate(self, request: UpdateTaskRequest) -> List[str]:
        issues: List[str] = []
        if not request.task_id:
            issues.append("Task id is required")
        fields = request.model_fields_set
        if "title" in fields:
            issues += _title_issues(request.title)
        if "category" in fields and not request.category:
            issues.append("Category cannot be empty")
        if "date" in fields and request.date is None:
            issues.append("Date cannot be cleared")
        issues += _description_issues(request.description)
        issues += _repeat_issues(request.repeat)
        return issues

    async def run(self, request: UpdateTaskRequest) -> Task:
        task = await self._get_task(request.task_id)
        changes = request.changes()
        if "title" in changes:
            changes["title"] = changes["title"].strip()
        updated = task.update(**changes)
        saved = await self.tasks.update(updated)

        if saved.date != task.date or saved.time != task.time:
            if self.notifications is not None:
                await self.best_effort("cancel reminder", self.notifications.cancel_task_reminder(saved.id))
            await self._schedule_reminder(saved)
        await self._record(
            HistoryAction.TASK_UPDATED,
            request.updated_by,
            request.updated_by_name or "",
            saved,
            fields=sorted(changes),
        )
        return saved


# --- complete / uncomplete -----------------------------------------------

class CompleteTaskRequest(BaseModel):
    task_id: str = ""
    completed_by: str = ""
    completed_by_name: Optional[str] = None


class CompleteTaskResponse(BaseModel):
    task: Task
    requires_approval: bool
    history_recorded: bool = False
    next_task: Optional[Task] = None


class CompleteTask(_TaskUseCase):
    error_code = "COMPLETE_TASK_ERROR"

    def validate(self, request: CompleteTaskRequest) -> List[str]:
        issues = []
        if not request.task_id:
            issues.append("Task id is required")
        if not request.completed_by:
            issues.append("Completing user is required")
        return issues

    async def run(self, request: CompleteTaskRequest) -> CompleteTaskResponse:
        task = await self._get_task(request.task_id)
        completed = task.complete(request.completed_by)
        saved = await self.tasks.update(completed)
        await self._cancel_reminders(saved)

        recorded = await self._record(
            HistoryAction.TASK_COMPLETED,
            request.completed_by,
            request.completed_by_name or "",
            saved,
            requires_approval=saved.requires_approval,
        )

        next_task = None
        # Approval-gated occurrences roll forward once approved
        if not saved.requires_approval:
            next_task = await spawn_next_occurrence(self, saved)
        return CompleteTaskResponse(
            task=saved,
            requires_approval=saved.requires_approval,
            history_recorded=recorded,
            next_task=next_task,
        )


async def spawn_next_occurrence(use_case: UseCase, task: Task) -> Optional[Task]:
    """Best-effort creation of the next instance of a recurring task."""
    nxt = task.next_occurrence()
    if nxt is None:
        return None
    tasks: TaskRepository = use_case.tasks
    if not await use_case.best_effort(f"create next occurrence of {task.id}", tasks.save(nxt)):
        return None
    logger.info(f"Created next occurrence {nxt.id} of task {task.id} on {nxt.date.isoformat()}")
    return nxt


class UncompleteTaskRequest(BaseModel):
    task_id: str = ""
    user_id: str = ""
    user_name: Optional[str] = None


class UncompleteTask(_TaskUseCase):
    error_code = "UNCOMPLETE_TASK_ERROR"

    def validate(self, request: UncompleteTaskRequest) -> List[str]:
        return [] if request.task_id else ["Task id is required"]

    async def run(self, request: UncompleteTaskRequest) -> Task:
        task = await self._get_task(request.task_id)
        reopened = task.uncomplete()
        saved = await self.tasks.update(reopened)
        if not saved.is_overdue():
            await self._schedule_reminder(saved)
        await self._record(HistoryAction.TASK_UNCOMPLETED, request.user_id, request.user_name or "", saved)
        return saved


# --- postpone ------------------------------------------------------------

class PostponeTaskRequest(BaseModel):
    task_id: str = ""
    new_date: Optional[dt.date] = None
    new_time: Optional[dt.time] = None
    postponed_by: str = ""
    postponed_by_name: Optional[str] = None
    reason: Optional[str] = None


class PostponeTaskResponse(BaseModel):
    task: Task
    previous_date: dt.date
    postpone_count: int


class PostponeTask(_TaskUseCase):
    error_code = "POSTPONE_TASK_ERROR"

    def __init__(
        self,
        tasks: TaskRepository,
        notifications: Optional[NotificationService] = None,
        history: Optional[HistoryRepository] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        super().__init__(tasks, notifications, history)
        self.today = today

    def validate(self, request: PostponeTaskRequest) -> List[str]:
        issues = []
        if not request.task_id:
            issues.append("Task id is required")
        if not request.postponed_by:
            issues.append("Postponing user is required")
        if request.new_date is None:
            issues.append("New date is required")
        elif request.new_date < self.today():
            issues.append("New date cannot be in the past")
        return issues

    async def run(self, request: PostponeTaskRequest) -> PostponeTaskResponse:
        task = await self._get_task(request.task_id)
        postponed = task.postpone(request.new_date, request.postponed_by, request.new_time)
        saved = await self.tasks.update(postponed)

        if self.notifications is not None:
            await self.best_effort("cancel reminder", self.notifications.cancel_task_reminder(saved.id))
        await self._schedule_reminder(saved)
        await self._record(
            HistoryAction.TASK_POSTPONED,
            request.postponed_by,
            request.postponed_by_name or "",
            saved,
            previous_date=task.date.isoformat(),
            new_date=saved.date.isoformat(),
            reason=request.reason,
            postpone_count=saved.postpone_count,
        )
        return PostponeTaskResponse(task=saved, previous_date=task.date, postpone_count=saved.postpone_count)


# --- delete --------------------------------------------------------------

class DeleteTaskRequest(BaseModel):
    task_id: str = ""
    deleted_by: str = ""
    deleted_by_name: Optional[str] = None
    delete_recurring: bool = False


class DeleteTaskResponse(BaseModel):
    deleted_count: int
    deleted_ids: List[str]


class DeleteTask(_TaskUseCase):
    error_code = "DELETE_TASK_ERROR"

    def validate(self, request: DeleteTaskRequest) -> List[str]:
        return [] if request.task_id else ["Task id is required"]

    async def run(self, request: DeleteTaskRequest) -> DeleteTaskResponse:
        task = await self._get_task(request.task_id)
        targets = [task]
        if request.delete_recurring and task.repeat_group_id:
            group = await self.tasks.find_by_repeat_group(task.repeat_group_id)
            targets += [t for t in group if t.id != task.id]

        deleted: List[str] = []
        for target in targets:
            await self.tasks.delete(target.id)
            deleted.append(target.id)
            await self._cancel_reminders(target)

        await self._record(
            HistoryAction.TASK_DELETED,
            request.deleted_by,
            request.deleted_by_name or "",
            task,
            deleted_count=len(deleted),
            recurring=request.delete_recurring,
        )
        return DeleteTaskResponse(deleted_count=len(deleted), deleted_ids=deleted)


# --- list ----------------------------------------------------------------

class GetTasksRequest(BaseModel):
    status: Optional[TaskStatus] = None
    category: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    search: Optional[str] = None
    include_completed: bool = True
    limit: Optional[int] = Field(None, ge=1)


class GetTasksResponse(BaseModel):
    tasks: List[Task]
    total: int
    overdue_count: int
    today_count: int
    completed_count: int


class GetTasks(_TaskUseCase):
    error_code = "GET_TASKS_ERROR"

    def _matches(self, task: Task, request: GetTasksRequest) -> bool:
        if request.status is not None and task.status != request.status:
            return False
        if not request.include_completed and task.is_completed:
            return False
        if request.category is not None and task.category != request.category:
            return False
        if request.assigned_to is not None and task.assigned_to != request.assigned_to:
            return False
        if request.created_by is not None and task.created_by != request.created_by:
            return False
        if request.date_from is not None and task.date < request.date_from:
            return False
        if request.date_to is not None and task.date > request.date_to:
            return False
        if request.search:
            term = request.search.strip().lower()
            haystack = f"{task.title} {task.description or ''} {task.notes or ''}".lower()
            if term not in haystack:
                return False
        return True

    async def run(self, request: GetTasksRequest) -> GetTasksResponse:
        tasks = [t for t in await self.tasks.find_all() if self._matches(t, request)]
        tasks.sort(key=lambda t: (t.date, t.time or dt.time.min, priority_rank(t.priority)))
        total = len(tasks)
        overdue = sum(1 for t in tasks if t.is_overdue())
        today = sum(1 for t in tasks if t.is_today())
        completed = sum(1 for t in tasks if t.is_completed)
        if request.limit is not None:
            tasks = tasks[:request.limit]
        return GetTasksResponse(
            tasks=tasks,
            total=total,
            overdue_count=overdue,
            today_count=today,
            completed_count=completed,
        )
