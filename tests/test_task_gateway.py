"""Tests for RemoteTaskGateway and the remote-backed repositories."""

import pytest
from datetime import datetime, timedelta

from famsync.models.approval import ApprovalRequest
from famsync.models.errors import RepositoryError
from famsync.remote.documents import approval_to_document, task_to_document
from famsync.remote.repositories import RemoteApprovalRepository, RemoteUserRepository
from famsync.remote.sanitize import UNDEFINED
from famsync.remote.task_store import APPROVALS, HISTORY, TASKS, RemoteTaskGateway, StaleWriteError


class TestSaveTask:
    """Test task writes."""

    @pytest.mark.asyncio
    async def test_save_sets_timestamps_and_merges(self, gateway, remote_store, sample_task):
        """Test save_task writes with set-merge and server timestamps."""
        doc_id = await gateway.save_task(task_to_document(sample_task))

        stored = remote_store.docs(TASKS)[doc_id]
        assert doc_id == sample_task.id
        assert isinstance(stored["updatedAt"], datetime)
        assert stored["clientUpdatedAt"] == sample_task.updated_at.isoformat()
        assert stored["createdAt"] == sample_task.created_at.isoformat()
        assert remote_store.count_calls("set", doc_id) == 1

    @pytest.mark.asyncio
    async def test_save_strips_undefined(self, gateway, remote_store, sample_task):
        """Test UNDEFINED fields never reach the store."""
        payload = {**task_to_document(sample_task), "notes": UNDEFINED}
        await gateway.save_task(payload)
        assert "notes" not in remote_store.docs(TASKS)[sample_task.id]

    @pytest.mark.asyncio
    async def test_save_without_id_creates(self, gateway, remote_store, sample_task):
        """Test payloads without an id go through create()."""
        payload = task_to_document(sample_task)
        payload.pop("id")
        doc_id = await gateway.save_task(payload)
        assert remote_store.count_calls("create", doc_id) == 1

    @pytest.mark.asyncio
    async def test_private_with_family_rejected(self, gateway, sample_task):
        """Test a private payload carrying a familyId is refused."""
        payload = {**task_to_document(sample_task), "private": True}
        with pytest.raises(ValueError):
            await gateway.save_task(payload)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["createdBy", "title"])
    async def test_required_fields(self, gateway, sample_task, field):
        """Test author and title are mandatory."""
        payload = {**task_to_document(sample_task), field: ""}
        with pytest.raises(ValueError):
            await gateway.save_task(payload)

    @pytest.mark.asyncio
    async def test_store_failure_becomes_repository_error(self, gateway, remote_store, sample_task):
        """Test store exceptions are wrapped in RepositoryError."""
        remote_store.fail_writes(sample_task.id)
        with pytest.raises(RepositoryError) as exc:
            await gateway.save_task(task_to_document(sample_task))
        assert isinstance(exc.value.cause, ConnectionError)


class TestStaleWriteGuard:
    """Test the optional updatedAt guard."""

    @pytest.mark.asyncio
    async def test_guard_rejects_older_write(self, remote_store, sample_task):
        """Test an older queued write is refused when the guard is on."""
        gateway = RemoteTaskGateway(remote_store, stale_write_guard=True)
        newer = sample_task.model_copy(update={"updated_at": sample_task.updated_at + timedelta(minutes=5)})
        await gateway.save_task(task_to_document(newer))

        with pytest.raises(StaleWriteError):
            await gateway.save_task(task_to_document(sample_task))

    @pytest.mark.asyncio
    async def test_last_write_wins_by_default(self, gateway, remote_store, sample_task):
        """Test without the guard the later call overwrites."""
        newer = sample_task.model_copy(update={
            "updated_at": sample_task.updated_at + timedelta(minutes=5),
            "title": "Newer",
        })
        await gateway.save_task(task_to_document(newer))
        await gateway.save_task(task_to_document(sample_task))

        assert remote_store.docs(TASKS)[sample_task.id]["title"] == sample_task.title


class TestApply:
    """Test outbox dispatch."""

    @pytest.mark.asyncio
    async def test_dispatch(self, gateway, remote_store, sample_task):
        """Test each collection/type pair maps to the right store call."""
        await gateway.apply("tasks", "create", task_to_document(sample_task))
        await gateway.apply("approvals", "update", {"id": "a1", "status": "pending"})
        await gateway.apply("history", "create", {"id": "h1", "action": "task_created"})
        await gateway.apply("tasks", "delete", {"id": sample_task.id})

        assert sample_task.id not in remote_store.docs(TASKS)
        assert remote_store.docs(APPROVALS)["a1"]["status"] == "pending"
        assert isinstance(remote_store.docs(HISTORY)["h1"]["timestamp"], datetime)

    @pytest.mark.asyncio
    async def test_deletes_are_refused(self, gateway):
        """Test history and approval deletes and unknown collections are refused."""
        with pytest.raises(ValueError):
            await gateway.apply("history", "delete", {"id": "h1"})
        with pytest.raises(ValueError):
            await gateway.apply("approvals", "delete", {"id": "a1"})
        with pytest.raises(ValueError):
            await gateway.apply("users", "create", {"id": "u1"})


class TestRemoteRepositories:
    """Test approval and user lookups against the store."""

    @pytest.mark.asyncio
    async def test_approval_queries(self, gateway, remote_store):
        """Test pending-by-task, pending-by-family and by-requester lookups."""
        repo = RemoteApprovalRepository(remote_store)
        approval = ApprovalRequest(
            id="a1",
            task_id="t1",
            requester_id="child-1",
            requester_name="Kid",
            family_id="family-1",
        )
        await gateway.apply(APPROVALS, "create", approval_to_document(approval))

        assert (await repo.find_pending_by_task("t1")).id == "a1"
        assert [a.id for a in await repo.find_pending_by_family("family-1")] == ["a1"]

        await gateway.apply(APPROVALS, "update", approval_to_document(approval.approve("admin-1", "Mom")))
        assert await repo.find_pending_by_task("t1") is None
        assert (await repo.find_by_id("a1")).status == "approved"
        assert len(await repo.find_by_requester("child-1")) == 1

    @pytest.mark.asyncio
    async def test_user_lookup(self, remote_store):
        """Test family members are read from the users collection."""
        remote_store.put("users", {"id": "u1", "name": "Mom", "role": "admin", "familyId": "family-1"})
        remote_store.put("users", {"id": "u2", "name": "Kid", "familyId": "family-1"})
        repo = RemoteUserRepository(remote_store)

        assert (await repo.find_by_id("u1")).role == "admin"
        assert (await repo.find_by_id("u2")).role == "child"
        assert len(await repo.find_family_members("family-1")) == 2
        assert await repo.find_by_id("missing") is None
