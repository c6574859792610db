"""Durable pending-operation outbox."""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Set

from sqlalchemy.orm import Session

from famsync.database.models import PendingOperationDB, enum_to_value
from famsync.models.constants import DEFAULT_MAX_RETRIES, DEFAULT_OUTBOX_MAX_AGE_DAYS
from famsync.models.pending_operation import Collection, OperationType, PendingOperation

logger = logging.getLogger(__name__)

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


class OutboxRepository:
    """Append-only queue of mutations waiting for the remote store.

    Every write commits immediately so an enqueued operation survives a
    process restart. Entries leave the queue only through ``remove`` (remote
    confirmed) or the explicit cleanup/clear calls.
    """

    def __init__(self, db: Session, max_retries: int = DEFAULT_MAX_RETRIES):
        self.db = db
        self.max_retries = max_retries

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {type(e).__name__}: {str(e)}")
            raise

    def _get_row(self, op_id: str) -> Optional[PendingOperationDB]:
        return self.db.query(PendingOperationDB).filter(PendingOperationDB.id == op_id).first()

    def enqueue(
        self,
        op_type: OperationType,
        collection: Collection,
        data: Dict[str, Any],
    ) -> PendingOperation:
        """Append an operation.

        Args:
            op_type: create, update or delete
            collection: Target remote collection
            data: Document payload; must carry the client-generated document id

        Returns:
            The stored PendingOperation
        """
        if not data.get("id"):
            raise ValueError("Outbox payloads need a client-generated 'id' so retries stay idempotent")
        payload = dict(data)
        if enum_to_value(collection) == Collection.TASKS.value and payload.get("private") is True:
            payload["familyId"] = None

        operation = PendingOperation(
            id=str(uuid.uuid4()),
            type=op_type,
            collection=collection,
            data=payload,
            timestamp=now_ms(),
            retry=0,
        )
        self.db.add(PendingOperationDB.from_pydantic(operation))
        self._commit(f"enqueue {enum_to_value(op_type)} on {enum_to_value(collection)}")
        logger.debug(f"Enqueued {operation.type} {operation.collection}/{payload['id']} as {operation.id}")
        return operation

    def get(self, op_id: str) -> Optional[PendingOperation]:
        row = self._get_row(op_id)
        return row.to_pydantic() if row else None

    def list_all(self) -> List[PendingOperation]:
        """Every entry in enqueue order, including exhausted ones."""
        rows = self.db.query(PendingOperationDB).order_by(PendingOperationDB.seq).all()
        return [row.to_pydantic() for row in rows]

    def queued_document_ids(self, collection: Collection, op_type: Optional[OperationType] = None) -> Set[str]:
        """Ids of documents that still have an entry queued (exhausted ones included)."""
        query = self.db.query(PendingOperationDB).filter(
            PendingOperationDB.collection == enum_to_value(collection)
        )
        if op_type is not None:
            query = query.filter(PendingOperationDB.type == enum_to_value(op_type))
        return {row.to_pydantic().document_id for row in query.all()}

    def list_pending(self) -> List[PendingOperation]:
        """Entries still eligible for a drain, in enqueue order."""
        rows = (
            self.db.query(PendingOperationDB)
            .filter(PendingOperationDB.retry < self.max_retries)
            .order_by(PendingOperationDB.seq)
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def list_exhausted(self) -> List[PendingOperation]:
        """Entries that hit the retry cap and need manual attention."""
        rows = (
            self.db.query(PendingOperationDB)
            .filter(PendingOperationDB.retry >= self.max_retries)
            .order_by(PendingOperationDB.seq)
            .all()
        )
        return [row.to_pydantic() for row in rows]

    def count_pending(self) -> int:
        return self.db.query(PendingOperationDB).filter(PendingOperationDB.retry < self.max_retries).count()

    def remove(self, op_id: str) -> bool:
        row = self._get_row(op_id)
        if row is None:
            return False
        self.db.delete(row)
        self._commit(f"remove pending operation {op_id}")
        logger.debug(f"Removed pending operation {op_id}")
        return True

    def increment_retry(self, op_id: str, error: Optional[str] = None) -> Optional[PendingOperation]:
        row = self._get_row(op_id)
        if row is None:
            return None
        row.retry = (row.retry or 0) + 1
        row.last_error = error
        self._commit(f"increment retry of {op_id}")
        if row.retry >= self.max_retries:
            logger.warning(f"Pending operation {op_id} reached the retry cap ({self.max_retries}): {error}")
        return row.to_pydantic()

    def reset_retry(self, op_id: str) -> Optional[PendingOperation]:
        row = self._get_row(op_id)
        if row is None:
            return None
        row.retry = 0
        row.last_error = None
        self._commit(f"reset retry of {op_id}")
        return row.to_pydantic()

    def cleanup_old(self, max_age_days: int = DEFAULT_OUTBOX_MAX_AGE_DAYS) -> int:
        """Drop entries older than ``max_age_days`` or past the retry cap."""
        cutoff = now_ms() - max_age_days * MS_PER_DAY
        rows = (
            self.db.query(PendingOperationDB)
            .filter((PendingOperationDB.timestamp < cutoff) | (PendingOperationDB.retry >= self.max_retries))
            .all()
        )
        for row in rows:
            self.db.delete(row)
        self._commit("clean up old pending operations")
        if rows:
            logger.info(f"Dropped {len(rows)} stale pending operations")
        return len(rows)

    def clear_all(self) -> int:
        count = self.db.query(PendingOperationDB).delete()
        self._commit("clear pending operations")
        return count
