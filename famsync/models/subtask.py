"""Subtask data model for famsync."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field


class Subtask(BaseModel):
    """A checklist item embedded in a task."""

    id: str = Field(..., description="Unique subtask identifier (UUID v4)")
    title: str = Field(..., description="Subtask title")
    completed: bool = Field(False, description="Whether the subtask is done")
    order: int = Field(0, ge=0, description="Contiguous position inside the parent task")
    due_date: Optional[dt.date] = Field(None, description="Optional due date")
    due_time: Optional[dt.time] = Field(None, description="Optional due time")
    completed_at: Optional[dt.datetime] = Field(None, description="When the subtask was completed")
    completed_by: Optional[str] = Field(None, description="Who completed the subtask")

    class Config:
        """Pydantic configuration."""
        frozen = True
