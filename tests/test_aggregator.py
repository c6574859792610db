"""Tests for the multi-segment TaskAggregator."""

import asyncio
import pytest
import threading
from datetime import datetime, timedelta

from famsync.models.session import SessionContext
from famsync.models.task import Task
from famsync.remote.documents import task_to_document
from famsync.remote.task_store import TASKS
from famsync.sync.aggregator import (
    SEGMENT_ASSIGNED,
    SEGMENT_CREATED_BY,
    SEGMENT_FAMILY,
    TaskAggregator,
    merge_segments,
    sort_tasks_by_last_touched,
)


@pytest.fixture
def make_task(sample_task_base):
    def make(task_id, **overrides):
        return Task(**{**sample_task_base, "id": task_id, **overrides})
    return make


@pytest.fixture
def seeded_store(remote_store, make_task):
    """Store with private and family tasks of two users."""
    tasks = [
        make_task("t1", created_by="user-a", private=True, title="A private"),
        make_task("t2", created_by="user-a", title="A family"),
        make_task("t3", created_by="user-b", assigned_to="user-a", title="B assigned to A"),
        make_task("t4", created_by="user-b", assigned_to="user-a", private=True, title="B private"),
        make_task("t5", created_by="user-c", family_id="family-2", title="Other family"),
    ]
    for task in tasks:
        remote_store.put(TASKS, task_to_document(task))
    return remote_store


def _ids(tasks):
    return sorted(t.id for t in tasks)


class TestMergeHelpers:
    """Test the pure merge and sort helpers."""

    def test_created_by_overrides_family(self, make_task):
        """Test the author's copy wins over the family copy of the same id."""
        segments = {
            SEGMENT_FAMILY: {"t1": make_task("t1", title="Family copy")},
            SEGMENT_CREATED_BY: {"t1": make_task("t1", title="Author copy")},
        }
        merged = merge_segments(segments, "user-a")
        assert [t.title for t in merged] == ["Author copy"]

    def test_assigned_overrides_created_by(self, make_task):
        """Test the assigned segment is applied last."""
        segments = {
            SEGMENT_CREATED_BY: {"t1": make_task("t1", title="Author copy")},
            SEGMENT_ASSIGNED: {"t1": make_task("t1", title="Assigned copy")},
        }
        assert merge_segments(segments, "user-a")[0].title == "Assigned copy"

    def test_privacy_filter_drops_foreign_private_tasks(self, make_task):
        """Test a private task of someone else never survives the merge."""
        segments = {
            SEGMENT_FAMILY: {"x": make_task("x", created_by="user-b", private=True)},
            SEGMENT_CREATED_BY: {"y": make_task("y", created_by="user-a", private=True)},
        }
        assert _ids(merge_segments(segments, "user-a")) == ["y"]

    def test_sort_by_last_touched(self, make_task):
        """Test newest updated_at comes first."""
        now = datetime.utcnow()
        old = make_task("old", updated_at=now - timedelta(days=1))
        new = make_task("new", updated_at=now)
        assert [t.id for t in sort_tasks_by_last_touched([old, new])] == ["new", "old"]


class TestSegments:
    """Test live subscriptions against the fake store."""

    def test_segment_queries(self, remote_store, session_context):
        """Test the three segment predicates."""
        queries = TaskAggregator(remote_store, session_context).segment_queries()

        assert [(p.field, p.value) for p in queries[SEGMENT_CREATED_BY]] == [("createdBy", "user-a")]
        assert [(p.field, p.value) for p in queries[SEGMENT_ASSIGNED]] == [("assignedTo", "user-a"), ("private", False)]
        assert [(p.field, p.value) for p in queries[SEGMENT_FAMILY]] == [("familyId", "family-1"), ("private", False)]

    def test_no_family_segment_without_family(self, remote_store):
        """Test users without a family only open two segments."""
        aggregator = TaskAggregator(remote_store, SessionContext(user_id="solo"))
        aggregator.subscribe(lambda tasks: None)
        assert len(remote_store.subscriptions) == 2

    def test_private_task_scenario(self, seeded_store):
        """Test user-a sees their private task and user-b never does."""
        views = {}
        for user in ("user-a", "user-b"):
            aggregator = TaskAggregator(seeded_store, SessionContext(user_id=user, family_id="family-1"))
            aggregator.subscribe(lambda tasks, user=user: views.__setitem__(user, tasks))

        assert _ids(views["user-a"]) == ["t1", "t2", "t3"]
        assert _ids(views["user-b"]) == ["t2", "t3", "t4"]
        for user, tasks in views.items():
            assert all(not (t.private and t.created_by != user) for t in tasks)

    def test_private_task_never_reaches_shared_segments(self, seeded_store):
        """Test t1 only ever appears in the created_by segment."""
        aggregator = TaskAggregator(seeded_store, SessionContext(user_id="user-a", family_id="family-1"))
        aggregator.subscribe(lambda tasks: None)

        assert "t1" in aggregator._segments[SEGMENT_CREATED_BY]
        assert "t1" not in aggregator._segments[SEGMENT_FAMILY]
        assert "t1" not in aggregator._segments[SEGMENT_ASSIGNED]

    def test_live_update(self, remote_store, session_context, make_task):
        """Test a remote change is pushed to listeners."""
        views = []
        aggregator = TaskAggregator(remote_store, session_context)
        aggregator.subscribe(views.append)
        assert views[-1] == []

        remote_store.put(TASKS, task_to_document(make_task("new", created_by="user-b")))
        assert _ids(views[-1]) == ["new"]
        assert _ids(aggregator.latest) == ["new"]

    def test_late_subscriber_gets_latest_view(self, seeded_store, session_context):
        """Test a second listener receives the current view right away."""
        aggregator = TaskAggregator(seeded_store, session_context)
        aggregator.subscribe(lambda tasks: None)
        received = []
        aggregator.subscribe(received.append)

        assert _ids(received[0]) == ["t1", "t2", "t3"]
        assert len(seeded_store.subscriptions) == 3

    def test_malformed_documents_are_skipped(self, remote_store, session_context, make_task):
        """Test a broken document does not hide the valid ones."""
        remote_store.put(TASKS, {"id": "broken", "createdBy": "user-a"})
        remote_store.put(TASKS, task_to_document(make_task("ok")))
        views = []
        TaskAggregator(remote_store, session_context).subscribe(views.append)

        assert _ids(views[-1]) == ["ok"]

    def test_views_from_other_threads_arrive_in_order(self, remote_store, session_context, make_task):
        """Test a snapshot applied on another thread is delivered after the view in flight."""
        aggregator = TaskAggregator(remote_store, session_context)
        older = task_to_document(make_task("t1", title="Older"))
        newer = task_to_document(make_task("t1", title="Newer"))
        delivered = []
        workers = []

        def listener(tasks):
            if tasks and tasks[0].title == "Older" and not workers:
                worker = threading.Thread(target=aggregator.apply_snapshot, args=(SEGMENT_CREATED_BY, [newer]))
                workers.append(worker)
                worker.start()
                worker.join(timeout=0.2)
            delivered.append([t.title for t in tasks])

        aggregator.subscribe(listener)
        aggregator.apply_snapshot(SEGMENT_CREATED_BY, [older])
        workers[0].join()

        assert delivered[-2:] == [["Older"], ["Newer"]]
        assert aggregator.latest[0].title == "Newer"

    def test_full_view_after_every_segment(self, remote_store, session_context):
        """Test has_full_view waits for each segment's first snapshot."""
        aggregator = TaskAggregator(remote_store, session_context)
        assert not aggregator.has_full_view

        aggregator.apply_snapshot(SEGMENT_CREATED_BY, [])
        aggregator.apply_snapshot(SEGMENT_ASSIGNED, [])
        assert not aggregator.has_full_view

        aggregator.apply_snapshot(SEGMENT_FAMILY, [])
        assert aggregator.has_full_view
        aggregator.close()
        assert not aggregator.has_full_view

    def test_listener_errors_are_contained(self, seeded_store, session_context):
        """Test a failing listener does not stop delivery to others."""
        received = []

        def broken(tasks):
            raise RuntimeError("render failed")

        aggregator = TaskAggregator(seeded_store, session_context)
        aggregator.subscribe(broken)
        aggregator.subscribe(received.append)
        seeded_store.put(TASKS, {**seeded_store.docs(TASKS)["t2"], "title": "Renamed"})

        assert any(t.title == "Renamed" for t in received[-1])


class TestErrorsAndTeardown:
    """Test segment failures and unsubscribe."""

    def test_segment_error_keeps_last_snapshot(self, seeded_store, session_context):
        """Test a failing segment reports the error and keeps its data."""
        errors = []
        aggregator = TaskAggregator(seeded_store, session_context)
        aggregator.subscribe(lambda tasks: None, on_error=lambda name, e: errors.append((name, e)))

        failure = PermissionError("permission denied")
        seeded_store.emit_error("familyId", failure)

        assert errors == [(SEGMENT_FAMILY, failure)]
        assert "t2" in aggregator._segments[SEGMENT_FAMILY]
        assert _ids(aggregator.latest) == ["t1", "t2", "t3"]

    def test_unsubscribe_tolerates_failures(self, seeded_store, session_context):
        """Test every segment is torn down once even if one teardown raises."""
        seeded_store.break_unsubscribe("assignedTo")
        aggregator = TaskAggregator(seeded_store, session_context)
        unsubscribe = aggregator.subscribe(lambda tasks: None)

        unsubscribe()
        assert seeded_store.unsubscribe_calls == 3
        assert not aggregator.is_active
        assert all(not s.active for s in seeded_store.subscriptions)

        unsubscribe()
        assert seeded_store.unsubscribe_calls == 3

    def test_last_listener_closes(self, seeded_store, session_context):
        """Test segments stay open until the last listener leaves."""
        aggregator = TaskAggregator(seeded_store, session_context)
        first = aggregator.subscribe(lambda tasks: None)
        second = aggregator.subscribe(lambda tasks: None)

        first()
        assert aggregator.is_active
        second()
        assert not aggregator.is_active


class TestStream:
    """Test the async iterator interface."""

    @pytest.mark.asyncio
    async def test_stream_yields_merged_views(self, seeded_store, session_context, make_task):
        """Test views arrive through the async iterator and closing unsubscribes."""
        aggregator = TaskAggregator(seeded_store, session_context)
        stream = aggregator.stream()

        view = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert all(not (t.private and t.created_by != "user-a") for t in view)

        seeded_store.put(TASKS, task_to_document(make_task("t6", created_by="user-b")))
        while "t6" not in {t.id for t in view}:
            view = await asyncio.wait_for(stream.__anext__(), timeout=1)

        await stream.aclose()
        assert not aggregator.is_active
