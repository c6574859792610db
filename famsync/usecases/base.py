"""Base class for use cases.

``execute`` is the only public entry point: it validates the request, runs
the use case and converts every expected failure into a failed ``Result``.
Side effects marked best-effort (notifications, history) are logged on
failure and never change the outcome.
"""

import logging
import uuid
from typing import Any, Awaitable, Dict, Generic, List, Optional, TypeVar

from famsync.models.errors import DomainError, RepositoryError, ValidationError
from famsync.models.history import HistoryAction, HistoryItem
from famsync.models.result import Result
from famsync.models.task import Task

logger = logging.getLogger(__name__)

Req = TypeVar("Req")
Res = TypeVar("Res")


class UseCase(Generic[Req, Res]):
    """Validate, run, wrap in a Result."""

    # Code used when the primary persistence call or something unexpected fails
    error_code = "USE_CASE_ERROR"

    def validate(self, request: Req) -> List[str]:
        """Return validation issues (empty when the request is well-formed)."""
        return []

    async def run(self, request: Req) -> Res:
        raise NotImplementedError

    async def execute(self, request: Req) -> Result[Res]:
        issues = self.validate(request)
        if issues:
            return Result.from_error(ValidationError.from_issues(issues))
        try:
            return Result.ok(await self.run(request))
        except DomainError as e:
            logger.debug(f"{type(self).__name__} rejected: {e.code}: {e.message}")
            return Result.from_error(e)
        except RepositoryError as e:
            logger.error(f"{type(self).__name__} persistence failed: {str(e)}")
            return Result.fail(str(e), self.error_code)
        except Exception as e:
            logger.exception(f"{type(self).__name__} failed unexpectedly")
            return Result.fail(f"{type(e).__name__}: {str(e)}", self.error_code)

    async def best_effort(self, description: str, awaitable: Optional[Awaitable[Any]]) -> bool:
        """Await a side effect; failures are logged and reported as False."""
        if awaitable is None:
            return False
        try:
            await awaitable
            return True
        except Exception as e:
            logger.warning(f"{type(self).__name__}: {description} failed: {type(e).__name__}: {str(e)}")
            return False


def make_history_item(
    action: HistoryAction,
    user_id: str,
    user_name: str,
    task: Optional[Task] = None,
    user_role: Optional[str] = None,
    family_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> HistoryItem:
    """Build a HistoryItem for a task event (details must be JSON-safe)."""
    return HistoryItem(
        id=str(uuid.uuid4()),
        action=action,
        user_id=user_id,
        user_name=user_name or user_id,
        user_role=user_role,
        family_id=family_id if family_id is not None else (task.family_id if task else None),
        task_id=task.id if task else None,
        task_title=task.title if task else None,
        details=details or {},
    )
