"""Multi-segment real-time task aggregator.

Three live subscriptions feed one merged, privacy-filtered view:

- created_by: every task the user authored (their private tasks included)
- assigned: tasks assigned to the user, restricted to ``private == False``
- family: tasks of the user's family, restricted to ``private == False``

Each segment owns its keyed snapshot map. After any segment update the
merged view is recomputed from a consistent copy of all three maps,
filtered again for privacy, sorted by last touch and emitted to every
listener. Recompute and delivery share one lock, so listeners see views in
the order they were computed and the last view delivered is always current.
"""

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Set

from famsync.models.session import SessionContext
from famsync.models.task import Task
from famsync.ports import Document, Predicate, RemoteDocumentStore, Unsubscribe, where
from famsync.remote.documents import task_from_document
from famsync.remote.task_store import TASKS

logger = logging.getLogger(__name__)

TasksCallback = Callable[[List[Task]], None]
ErrorCallback = Callable[[str, Exception], None]

SEGMENT_FAMILY = "family"
SEGMENT_CREATED_BY = "created_by"
SEGMENT_ASSIGNED = "assigned"

# Later segments override earlier ones for the same task id
MERGE_ORDER = (SEGMENT_FAMILY, SEGMENT_CREATED_BY, SEGMENT_ASSIGNED)


def is_visible_to(task: Task, user_id: str) -> bool:
    """Private tasks are visible only to their author."""
    return not (task.private and task.created_by != user_id)


def sort_tasks_by_last_touched(tasks: Iterable[Task]) -> List[Task]:
    """Newest first by updated_at, else edited_at, else created_at."""
    return sorted(tasks, key=lambda t: t.last_touched(), reverse=True)


def merge_segments(segments: Dict[str, Dict[str, Task]], user_id: str) -> List[Task]:
    """Union the segment maps in MERGE_ORDER, apply the privacy filter, sort."""
    merged: Dict[str, Task] = {}
    for name in MERGE_ORDER:
        merged.update(segments.get(name, {}))
    visible = [t for t in merged.values() if is_visible_to(t, user_id)]
    return sort_tasks_by_last_touched(visible)


class TaskAggregator:
    """Keeps the merged task list for one session up to date."""

    def __init__(self, store: RemoteDocumentStore, session: SessionContext):
        self.store = store
        self.session = session
        self._lock = threading.RLock()
        self._segments: Dict[str, Dict[str, Task]] = {name: {} for name in MERGE_ORDER}
        self._listeners: List[TasksCallback] = []
        self._error_listeners: List[ErrorCallback] = []
        self._handles: Dict[str, Unsubscribe] = {}
        self._received: Set[str] = set()
        self._latest: Optional[List[Task]] = None

    # --- segment queries -------------------------------------------------

    def segment_queries(self) -> Dict[str, List[Predicate]]:
        """Predicates for each segment; the family segment only exists with a family."""
        user_id = self.session.user_id
        queries = {
            SEGMENT_CREATED_BY: [where("createdBy", user_id)],
            SEGMENT_ASSIGNED: [where("assignedTo", user_id), where("private", False)],
        }
        if self.session.family_id:
            queries[SEGMENT_FAMILY] = [where("familyId", self.session.family_id), where("private", False)]
        return queries

    # --- lifecycle -------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return bool(self._handles)

    @property
    def latest(self) -> Optional[List[Task]]:
        """Last emitted view (None before the first snapshot)."""
        return self._latest

    @property
    def has_full_view(self) -> bool:
        """True once every segment has delivered at least one snapshot."""
        return set(self.segment_queries()) <= self._received

    def subscribe(self, callback: TasksCallback, on_error: Optional[ErrorCallback] = None) -> Callable[[], None]:
        """Register a listener and open the segment subscriptions if needed.

        Returns:
            Function removing this listener; the last removal tears down all segments
        """
        self._listeners.append(callback)
        if on_error is not None:
            self._error_listeners.append(on_error)
        if not self._handles:
            self._open()
        else:
            with self._lock:
                if self._latest is not None:
                    self._deliver(callback, self._latest)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
            if on_error is not None and on_error in self._error_listeners:
                self._error_listeners.remove(on_error)
            if not self._listeners:
                self.close()

        return unsubscribe

    def _open(self) -> None:
        for name, predicates in self.segment_queries().items():
            try:
                self._handles[name] = self.store.subscribe(
                    TASKS,
                    predicates,
                    self._snapshot_handler(name),
                    self._error_handler(name),
                )
            except Exception as e:
                logger.error(f"Failed to open {name} segment: {type(e).__name__}: {str(e)}")
                self._report_error(name, e)
        logger.debug(f"Opened {len(self._handles)} task segments for user {self.session.user_id}")

    def close(self) -> None:
        """Tear down every segment exactly once, even if one teardown fails."""
        handles, self._handles = self._handles, {}
        for name, unsubscribe in handles.items():
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f"Error unsubscribing {name} segment: {type(e).__name__}: {str(e)}")
        with self._lock:
            for segment in self._segments.values():
                segment.clear()
            self._received.clear()

    # --- snapshot handling -----------------------------------------------

    def _snapshot_handler(self, name: str) -> Callable[[List[Document]], None]:
        def handle(docs: List[Document]) -> None:
            self.apply_snapshot(name, docs)
        return handle

    def _error_handler(self, name: str) -> Callable[[Exception], None]:
        def handle(error: Exception) -> None:
            # Keep the segment's last snapshot; the merged view stays usable
            logger.error(f"Task segment {name} failed: {type(error).__name__}: {str(error)}")
            self._report_error(name, error)
        return handle

    def apply_snapshot(self, name: str, docs: List[Document]) -> List[Task]:
        """Replace one segment's map and emit the recomputed merged view."""
        snapshot: Dict[str, Task] = {}
        for doc in docs:
            try:
                task = task_from_document(doc)
            except Exception as e:
                logger.warning(f"Skipping malformed task document {doc.get('id')} in {name}: {e}")
                continue
            snapshot[task.id] = task

        with self._lock:
            self._segments[name] = snapshot
            self._received.add(name)
            merged = merge_segments(self._segments, self.session.user_id)
            self._latest = merged
            for listener in list(self._listeners):
                self._deliver(listener, merged)
        return merged

    def _deliver(self, listener: TasksCallback, tasks: List[Task]) -> None:
        try:
            listener(list(tasks))
        except Exception:
            logger.exception("Task listener raised")

    def _report_error(self, name: str, error: Exception) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(name, error)
            except Exception:
                logger.exception("Task error listener raised")

    # --- async stream ----------------------------------------------------

    async def stream(self) -> AsyncIterator[List[Task]]:
        """Async iterator over merged views; closing it releases the subscription."""
        queue: "asyncio.Queue[List[Task]]" = asyncio.Queue()
        loop = asyncio.get_running_loop()

        def enqueue(tasks: List[Task]) -> None:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                queue.put_nowait(tasks)
            else:
                loop.call_soon_threadsafe(queue.put_nowait, tasks)

        unsubscribe = self.subscribe(enqueue)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()
