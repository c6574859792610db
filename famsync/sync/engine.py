"""Sync engine: drains the outbox against the remote store.

The engine reacts to two signals: connectivity changes (only an offline ->
online edge triggers a drain) and manual triggers. Each outbox entry maps to
exactly one gateway call. Failures are absorbed into the entry's retry
counter; entries that reach the cap are reported as ``SyncRetryExhausted``
and stay in the outbox until the user retries or discards them.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from famsync.config import SyncSettings
from famsync.database.local_store import LocalStore
from famsync.database.outbox import OutboxRepository
from famsync.models.constants import BACKOFF_BASE_MS, BACKOFF_MAX_MS
from famsync.models.errors import SyncRetryExhausted
from famsync.models.pending_operation import Collection, OperationType, PendingOperation
from famsync.models.session import SessionContext
from famsync.remote.documents import history_from_document, task_from_document
from famsync.remote.task_store import RemoteTaskGateway, StaleWriteError
from famsync.sync.status import DrainReport, SyncStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus], None]


def backoff_delay(retry: int, rand: Callable[[], float] = random.random) -> float:
    """Seconds to wait after the ``retry``-th failure (exponential, jitter 0.5x-1.5x)."""
    base_ms = min(BACKOFF_MAX_MS, BACKOFF_BASE_MS * (2 ** retry))
    return base_ms * (0.5 + rand()) / 1000.0


class SyncEngine:
    """Replays queued mutations and keeps a SyncStatus for listeners."""

    def __init__(
        self,
        outbox: OutboxRepository,
        local_store: LocalStore,
        gateway: RemoteTaskGateway,
        session: SessionContext,
        settings: Optional[SyncSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
        is_online: bool = False,
    ):
        self.outbox = outbox
        self.local_store = local_store
        self.gateway = gateway
        self.session = session
        self.settings = settings or SyncSettings()
        self._sleep = sleep
        self._rand = rand
        self._online = is_online
        self._draining = False
        self._syncing = False
        self._resync_requested = False
        self._periodic_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._listeners: List[StatusListener] = []
        self._status = SyncStatus(
            is_online=is_online,
            last_sync=local_store.get_last_sync(),
            pending_operations=outbox.count_pending(),
            failed_operations=len(outbox.list_exhausted()),
        )

    # --- status ----------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_draining(self) -> bool:
        return self._draining

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener (called immediately with the current status)."""
        self._listeners.append(listener)
        self._call_listener(listener, self._status)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _call_listener(self, listener: StatusListener, status: SyncStatus) -> None:
        try:
            listener(status)
        except Exception:
            logger.exception("Sync status listener failed")

    def _publish(self, **changes) -> None:
        self._status = self._status.model_copy(update=changes)
        for listener in list(self._listeners):
            self._call_listener(listener, self._status)

    def _publish_counts(self) -> None:
        self._publish(
            pending_operations=self.outbox.count_pending(),
            failed_operations=len(self.outbox.list_exhausted()),
        )

    def notify_enqueued(self) -> None:
        """Refresh counters after a repository appended to the outbox."""
        self._publish_counts()

    # --- connectivity ----------------------------------------------------

    async def handle_connectivity_change(self, is_online: bool) -> None:
        """Drain on the offline -> online edge only; going offline stops periodic sync."""
        was_online = self._online
        self._online = is_online
        self._publish(is_online=is_online)

        if is_online and not was_online:
            logger.info("Connectivity restored, syncing pending operations")
            await self.sync_with_remote()
            self.start_periodic_sync()
        elif not is_online and was_online:
            logger.info("Connectivity lost, pausing sync")
            self.stop_periodic_sync()

    # --- sync cycle ------------------------------------------------------

    async def sync_now(self) -> Optional[DrainReport]:
        """Manual trigger; while a cycle is running it only asks for one more pass."""
        if self._syncing:
            self._resync_requested = True
            return None
        return await self.sync_with_remote()

    def request_sync(self) -> Optional[asyncio.Task]:
        """Schedule a sync cycle without waiting for it (used after local writes).

        Returns the scheduled task, or None while offline.
        """
        if not self._online:
            return None
        task = asyncio.get_running_loop().create_task(self.sync_now())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background_sync(self) -> None:
        """Wait until every cycle scheduled by request_sync has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def sync_with_remote(self) -> Optional[DrainReport]:
        """One full cycle: drain, record last_sync, prune local retention."""
        if self._syncing or not self._online:
            return None

        self._syncing = True
        self._publish(is_syncing=True, has_error=False, error_message=None)
        report = DrainReport()
        try:
            while True:
                self._resync_requested = False
                cycle = await self.drain()
                if cycle is not None:
                    report.succeeded.extend(cycle.succeeded)
                    report.failed.extend(cycle.failed)
                    report.skipped.extend(cycle.skipped)
                    report.stale.extend(cycle.stale)
                    report.exhausted.extend(cycle.exhausted)
                if not self._resync_requested or not self._online:
                    break
            last_sync = self.local_store.update_last_sync()
            self.run_maintenance()
            self._publish(is_syncing=False, last_sync=last_sync)
        except Exception as e:
            logger.exception("Sync cycle failed")
            self._publish(is_syncing=False, has_error=True, error_message=str(e))
            return None
        finally:
            self._syncing = False
            self._publish_counts()
        return report

    async def drain(self) -> Optional[DrainReport]:
        """Replay eligible outbox entries in enqueue order.

        Returns None when another drain is already in flight.
        """
        if self._draining:
            logger.debug("Drain already in progress, ignoring trigger")
            return None

        self._draining = True
        report = DrainReport()
        # A failed entry holds back later entries for the same document
        blocked: Set[Tuple[str, str]] = set()
        try:
            for operation in self.outbox.list_pending():
                if not self._online:
                    logger.info("Went offline during drain, stopping")
                    break
                key = (operation.collection, operation.document_id)
                if key in blocked:
                    report.skipped.append(operation.id)
                    continue
                await self._process(operation, report, blocked, key)
        finally:
            self._draining = False
        self._publish_counts()
        return report

    async def _process(
        self,
        operation: PendingOperation,
        report: DrainReport,
        blocked: Set[Tuple[str, str]],
        key: Tuple[str, str],
    ) -> None:
        try:
            await self.gateway.apply(operation.collection, operation.type, self._prepare_payload(operation))
        except StaleWriteError as e:
            logger.warning(f"Dropping stale write {operation.id}: {e}")
            self.outbox.remove(operation.id)
            report.stale.append(operation.id)
            return
        except Exception as e:
            logger.error(f"Failed to process operation {operation.id}: {type(e).__name__}: {str(e)}")
            blocked.add(key)
            report.failed.append(operation.id)
            updated = self.outbox.increment_retry(operation.id, str(e))
            retries = updated.retry if updated else operation.retry + 1
            if retries >= self.outbox.max_retries:
                report.exhausted.append(SyncRetryExhausted(operation.id, retries, str(e)))
            elif self.settings.backoff_enabled:
                await self._sleep(backoff_delay(retries, self._rand))
            return

        self.outbox.remove(operation.id)
        self._apply_to_local(operation)
        report.succeeded.append(operation.id)

    def _prepare_payload(self, operation: PendingOperation) -> dict:
        data = dict(operation.data)
        if operation.collection == Collection.TASKS.value and operation.type != OperationType.DELETE.value:
            if data.get("private") is True:
                data["familyId"] = None
            elif "familyId" not in data:
                cached = self.local_store.get_task(data["id"])
                data["familyId"] = cached.family_id if cached else None
        return data

    def _apply_to_local(self, operation: PendingOperation) -> None:
        """Reconcile the local cache with a confirmed remote write."""
        data = operation.data
        if operation.collection == Collection.TASKS.value:
            if operation.type == OperationType.DELETE.value:
                self.local_store.remove_task(data["id"])
                return
            confirmed = task_from_document(data)
            if confirmed.id in self.outbox.queued_document_ids(Collection.TASKS, OperationType.DELETE):
                logger.debug(f"Task {confirmed.id} has a queued delete, not caching confirmed write")
                return
            cached = self.local_store.get_task(confirmed.id)
            # A newer local edit is still queued; keep it
            if cached is None or cached.updated_at <= confirmed.updated_at:
                self.local_store.save_task(confirmed)
        elif operation.collection == Collection.HISTORY.value:
            self.local_store.add_history_item(history_from_document(data))

    # --- failed entries --------------------------------------------------

    def failed_operations(self) -> List[PendingOperation]:
        return self.outbox.list_exhausted()

    def retry_failed_operations(self) -> int:
        """Reset every exhausted entry so the next drain tries it again."""
        exhausted = self.outbox.list_exhausted()
        for operation in exhausted:
            self.outbox.reset_retry(operation.id)
        self._publish_counts()
        return len(exhausted)

    def discard_failed_operations(self) -> int:
        """Drop exhausted and aged entries after the user accepted the data loss."""
        count = self.outbox.cleanup_old(self.settings.outbox_max_age_days)
        self._publish_counts()
        return count

    def run_maintenance(self) -> None:
        """Retention pruning for local history and completed tasks."""
        self.local_store.clear_old_history(self.settings.history_retention_days)
        self.local_store.clear_old_completed_tasks(self.settings.completed_retention_days)

    # --- periodic sync ---------------------------------------------------

    def start_periodic_sync(self) -> None:
        if self._periodic_task is not None and not self._periodic_task.done():
            return
        self._periodic_task = asyncio.get_running_loop().create_task(self._periodic_loop())

    def stop_periodic_sync(self) -> None:
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None

    async def _periodic_loop(self) -> None:
        logger.info(f"Periodic sync started (every {self.settings.sync_interval_seconds}s)")
        while True:
            await asyncio.sleep(self.settings.sync_interval_seconds)
            try:
                await self.sync_with_remote()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic sync iteration failed")

    async def close(self) -> None:
        tasks = list(self._background)
        if self._periodic_task is not None:
            tasks.append(self._periodic_task)
        self.stop_periodic_sync()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
