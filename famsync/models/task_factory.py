"""Task creation factory for famsync.

This module centralizes task creation logic so every entry point (use cases,
tests, recurring series) produces tasks with consistent defaults and a
client-generated id.
"""

import datetime as dt
import uuid
from typing import Any, Dict, List, Optional

from famsync.models.priority import Priority, TaskStatus
from famsync.models.repeat import RepeatConfig
from famsync.models.subtask import Subtask
from famsync.models.task import Task


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary.

    Returns:
        Dictionary with default task field values
    """
    return {
        "status": TaskStatus.PENDING,
        "priority": Priority.MEDIUM,
        "subtasks": [],
        "requires_approval": False,
        "approval_status": None,
        "postpone_count": 0,
        "repeat": None,
    }


def build_subtasks(items: Optional[List[Dict[str, Any]]]) -> List[Subtask]:
    """Turn raw subtask dicts into ordered Subtask models (order = position)."""
    subtasks: List[Subtask] = []
    for index, item in enumerate(items or []):
        subtasks.append(Subtask(
            id=item.get("id") or str(uuid.uuid4()),
            title=item["title"].strip(),
            completed=bool(item.get("completed", False)),
            order=index,
            due_date=item.get("due_date"),
            due_time=item.get("due_time"),
        ))
    return subtasks


def create_task_base(
    title: str,
    category: str,
    date: dt.date,
    created_by: str,
    family_id: Optional[str] = None,
    description: Optional[str] = None,
    category_color: Optional[str] = None,
    category_icon: Optional[str] = None,
    priority: Optional[Priority] = None,
    time: Optional[dt.time] = None,
    created_by_name: Optional[str] = None,
    assigned_to: Optional[str] = None,
    subtasks: Optional[List[Dict[str, Any]]] = None,
    requires_approval: Optional[bool] = None,
    repeat: Optional[RepeatConfig] = None,
    notes: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Task:
    """Create a task with defaults, allowing overrides.

    Args:
        title: Task title (required, stripped)
        category: Category identifier (required)
        date: Day the task is scheduled for
        created_by: Author user ID
        family_id: Owning family; None makes the task private to its author
        description: Optional description
        category_color: Display color of the category
        category_icon: Display icon of the category
        priority: Task priority (defaults to MEDIUM)
        time: Optional time of day
        created_by_name: Display name of the author
        assigned_to: Assignee user ID
        subtasks: Raw subtask dicts; order follows list position
        requires_approval: Whether completion needs approval
        repeat: Repeat configuration; recurring tasks start their own repeat group
        notes: Free-form notes
        task_id: Client-generated id to use instead of a fresh UUID

    Returns:
        Task object with defaults applied
    """
    now = dt.datetime.utcnow()
    defaults = create_task_defaults()
    new_id = task_id or str(uuid.uuid4())

    return Task(
        id=new_id,
        title=title.strip(),
        description=description,
        category=category,
        category_color=category_color,
        category_icon=category_icon,
        priority=priority if priority is not None else defaults["priority"],
        status=defaults["status"],
        date=date,
        time=time,
        created_by=created_by,
        created_by_name=created_by_name,
        assigned_to=assigned_to,
        family_id=family_id,
        subtasks=build_subtasks(subtasks),
        requires_approval=requires_approval if requires_approval is not None else defaults["requires_approval"],
        approval_status=defaults["approval_status"],
        postpone_count=defaults["postpone_count"],
        repeat=repeat if repeat is not None else defaults["repeat"],
        repeat_group_id=new_id if repeat is not None and repeat.enabled else None,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
