"""Remote-backed repositories for approvals and family members.

Approval uniqueness and reviewer authorization need the authoritative copy,
so these read straight from the remote store instead of the local cache.
"""

import logging
from typing import List, Optional

from famsync.models.approval import ApprovalRequest, ApprovalRequestStatus
from famsync.models.role import FamilyMember
from famsync.ports import RemoteDocumentStore, where
from famsync.remote.documents import approval_from_document
from famsync.remote.task_store import APPROVALS

logger = logging.getLogger(__name__)

USERS = "users"


class RemoteApprovalRepository:
    """Read side of the approvals collection; writes are replayed from the outbox."""

    def __init__(self, store: RemoteDocumentStore):
        self.store = store

    async def find_by_id(self, approval_id: str) -> Optional[ApprovalRequest]:
        docs = await self.store.query(APPROVALS, [where("id", approval_id)])
        return approval_from_document(docs[0]) if docs else None

    async def find_pending_by_task(self, task_id: str) -> Optional[ApprovalRequest]:
        docs = await self.store.query(
            APPROVALS,
            [where("taskId", task_id), where("status", ApprovalRequestStatus.PENDING.value)],
        )
        return approval_from_document(docs[0]) if docs else None

    async def find_pending_by_family(self, family_id: str) -> List[ApprovalRequest]:
        docs = await self.store.query(
            APPROVALS,
            [where("familyId", family_id), where("status", ApprovalRequestStatus.PENDING.value)],
        )
        return [approval_from_document(d) for d in docs]

    async def find_by_requester(self, requester_id: str) -> List[ApprovalRequest]:
        docs = await self.store.query(APPROVALS, [where("requesterId", requester_id)])
        return [approval_from_document(d) for d in docs]


class RemoteUserRepository:
    """Reads family members from the ``users`` collection."""

    def __init__(self, store: RemoteDocumentStore):
        self.store = store

    @staticmethod
    def _to_member(doc: dict) -> FamilyMember:
        return FamilyMember(
            id=doc["id"],
            name=doc.get("name") or "",
            role=doc.get("role") or "child",
            family_id=doc.get("familyId"),
        )

    async def find_by_id(self, user_id: str) -> Optional[FamilyMember]:
        docs = await self.store.query(USERS, [where("id", user_id)])
        return self._to_member(docs[0]) if docs else None

    async def find_family_members(self, family_id: str) -> List[FamilyMember]:
        docs = await self.store.query(USERS, [where("familyId", family_id)])
        return [self._to_member(d) for d in docs]
