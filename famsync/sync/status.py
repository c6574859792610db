"""Sync status and drain report models."""

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field

from famsync.models.errors import SyncRetryExhausted


class SyncStatus(BaseModel):
    """What the UI needs to show about synchronization."""

    is_online: bool = Field(False, description="Last known connectivity")
    is_syncing: bool = Field(False, description="A sync cycle is running")
    last_sync: int = Field(0, description="Epoch milliseconds of the last completed sync")
    pending_operations: int = Field(0, description="Outbox entries still eligible for retry")
    failed_operations: int = Field(0, description="Outbox entries past the retry cap")
    has_error: bool = Field(False, description="The last sync cycle failed unexpectedly")
    error_message: Optional[str] = Field(None, description="Message of the last unexpected failure")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @property
    def needs_attention(self) -> bool:
        """Some mutations will not sync without a manual retry."""
        return self.failed_operations > 0


@dataclass
class DrainReport:
    """Outcome of one pass over the outbox."""

    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    stale: List[str] = field(default_factory=list)
    exhausted: List[SyncRetryExhausted] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.stale)
