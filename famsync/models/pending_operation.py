"""Outbox entry and offline snapshot models for famsync."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from famsync.models.history import HistoryItem
from famsync.models.task import Task


class OperationType(str, Enum):
    """Kind of mutation waiting to be replayed remotely."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Collection(str, Enum):
    """Remote collections the outbox can target."""
    TASKS = "tasks"
    APPROVALS = "approvals"
    HISTORY = "history"


class PendingOperation(BaseModel):
    """A mutation not yet confirmed by the remote store."""

    id: str = Field(..., description="Outbox entry identifier")
    type: OperationType = Field(..., description="Mutation kind")
    collection: Collection = Field(..., description="Target collection")
    data: Dict[str, Any] = Field(default_factory=dict, description="Document payload; always carries the document id")
    timestamp: int = Field(..., description="Enqueue time in epoch milliseconds")
    retry: int = Field(0, ge=0, description="Failed attempts so far")
    last_error: Optional[str] = Field(None, description="Message of the last failure")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def document_id(self) -> Optional[str]:
        return self.data.get("id")


class OfflineData(BaseModel):
    """Everything the device keeps locally between syncs."""

    tasks: Dict[str, Task] = Field(default_factory=dict)
    pending_operations: List[PendingOperation] = Field(default_factory=list)
    last_sync: int = Field(0, description="Epoch milliseconds of the last successful sync (0 if never)")
    history: Dict[str, HistoryItem] = Field(default_factory=dict)
