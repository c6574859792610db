"""Explicit session context passed to the sync engine, aggregator and repositories."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SessionContext:
    """Who is using this device right now."""

    user_id: str
    family_id: Optional[str] = None
    user_name: str = ""
    role: Optional[str] = None

    @property
    def has_family(self) -> bool:
        return self.family_id is not None
