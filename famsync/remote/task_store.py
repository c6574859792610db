"""Gateway translating outbox operations into remote store calls."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from famsync.models.errors import RepositoryError
from famsync.ports import Document, RemoteDocumentStore, where
from famsync.remote.sanitize import deep_sanitize

logger = logging.getLogger(__name__)

TASKS = "tasks"
APPROVALS = "approvals"
HISTORY = "history"


class StaleWriteError(RepositoryError):
    """The remote copy was edited more recently than the write being replayed."""

    def __init__(self, doc_id: str, remote_updated: str, local_updated: str):
        super().__init__(
            f"Remote task {doc_id} is newer ({remote_updated}) than the queued write ({local_updated})",
            operation="save_task",
        )
        self.code = "STALE_WRITE"
        self.doc_id = doc_id


def _parse_ts(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


class RemoteTaskGateway:
    """Writes tasks, approvals and history to the remote document store.

    Every payload is sanitized before it leaves the device. Store failures
    are logged and re-raised as ``RepositoryError`` so callers (the sync
    engine) can count a retry.
    """

    def __init__(self, store: RemoteDocumentStore, stale_write_guard: bool = False):
        self.store = store
        self.stale_write_guard = stale_write_guard

    async def _call(self, operation: str, coro):
        try:
            return await coro
        except RepositoryError:
            raise
        except Exception as e:
            logger.error(f"Remote {operation} failed: {type(e).__name__}: {str(e)}")
            raise RepositoryError(f"Remote {operation} failed: {e}", operation=operation, cause=e) from e

    async def fetch(self, collection: str, doc_id: str) -> Optional[Document]:
        docs = await self._call(f"fetch {collection}/{doc_id}", self.store.query(collection, [where("id", doc_id)]))
        return docs[0] if docs else None

    async def _guard_stale(self, payload: Document) -> None:
        local_updated = _parse_ts(payload.get("clientUpdatedAt"))
        if local_updated is None:
            return
        existing = await self.fetch(TASKS, payload["id"])
        remote_updated = _parse_ts((existing or {}).get("clientUpdatedAt"))
        if remote_updated is not None and remote_updated > local_updated:
            raise StaleWriteError(payload["id"], remote_updated.isoformat(), local_updated.isoformat())

    async def save_task(self, payload: Document) -> str:
        """Create or merge a task document; returns its id.

        Args:
            payload: Task document (camelCase, JSON-safe)

        Returns:
            Remote document id

        Raises:
            ValueError: Payload breaks the task document contract
            StaleWriteError: Guard enabled and the remote copy is newer
            RepositoryError: The store call failed
        """
        data = dict(payload)
        data.setdefault("familyId", None)
        if data.get("private") is True and data["familyId"] is not None:
            raise ValueError(f"Private task {data.get('id')} cannot belong to family {data['familyId']}")
        if not data.get("createdBy"):
            raise ValueError("Task payload needs createdBy")
        if not data.get("title"):
            raise ValueError("Task payload needs a title")

        data["private"] = data["familyId"] is None
        data["clientUpdatedAt"] = data.get("updatedAt")
        data["updatedAt"] = self.store.server_timestamp()
        if not data.get("createdAt"):
            data["createdAt"] = self.store.server_timestamp()
        data = deep_sanitize(data)

        doc_id = data.get("id")
        if doc_id:
            if self.stale_write_guard:
                await self._guard_stale(data)
            await self._call(f"save task {doc_id}", self.store.set(TASKS, doc_id, data, merge=True))
        else:
            doc_id = await self._call("create task", self.store.create(TASKS, data))
        logger.debug(f"Saved remote task {doc_id}")
        return doc_id

    async def delete_task(self, task_id: str) -> None:
        await self._call(f"delete task {task_id}", self.store.delete(TASKS, task_id))
        logger.debug(f"Deleted remote task {task_id}")

    async def save_approval(self, payload: Document) -> str:
        data = deep_sanitize(dict(payload))
        await self._call(f"save approval {data['id']}", self.store.set(APPROVALS, data["id"], data, merge=True))
        return data["id"]

    async def add_history_item(self, payload: Document) -> str:
        data = deep_sanitize(dict(payload))
        if not data.get("timestamp"):
            data["timestamp"] = self.store.server_timestamp()
        # set() keyed by the client id keeps replays from duplicating entries
        await self._call(f"add history {data['id']}", self.store.set(HISTORY, data["id"], data, merge=False))
        return data["id"]

    async def apply(self, collection: str, op_type: str, data: Dict[str, Any]) -> None:
        """Dispatch one outbox operation to the matching store call."""
        if collection == TASKS:
            if op_type == "delete":
                await self.delete_task(data["id"])
            else:
                await self.save_task(data)
        elif collection == APPROVALS:
            if op_type == "delete":
                raise ValueError("Approvals are resolved, never deleted")
            await self.save_approval(data)
        elif collection == HISTORY:
            if op_type == "delete":
                raise ValueError("History is append-only")
            await self.add_history_item(data)
        else:
            raise ValueError(f"Unknown collection: {collection}")
