"""Wiring of the famsync core for one signed-in session."""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from famsync.config import SyncSettings, load_settings
from famsync.database.database import SessionLocal, init_db
from famsync.database.local_store import LocalStore
from famsync.database.offline_repository import (
    OfflineApprovalRepository,
    OfflineHistoryRepository,
    OfflineTaskRepository,
)
from famsync.database.outbox import OutboxRepository
from famsync.models.session import SessionContext
from famsync.models.task import Task
from famsync.ports import NotificationService, RemoteDocumentStore
from famsync.remote.repositories import RemoteApprovalRepository, RemoteUserRepository
from famsync.remote.task_store import RemoteTaskGateway
from famsync.sync.aggregator import TaskAggregator
from famsync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


@dataclass
class FamsyncState:
    settings: SyncSettings
    session: SessionContext
    local_store: LocalStore
    outbox: OutboxRepository
    gateway: RemoteTaskGateway
    engine: SyncEngine
    aggregator: TaskAggregator
    tasks: OfflineTaskRepository
    history: OfflineHistoryRepository
    approvals: OfflineApprovalRepository
    users: RemoteUserRepository
    notifications: Optional[NotificationService] = None

    def start_live_cache(self) -> Callable[[], None]:
        """Mirror the aggregator's merged view into the local cache.

        Cached tasks missing from the view are evicted only once every segment
        has delivered, so a partial view never empties the cache.
        """
        def mirror(tasks: List[Task]) -> None:
            self.tasks.cache_remote_tasks(tasks, evict_missing=self.aggregator.has_full_view)

        return self.aggregator.subscribe(mirror)

    async def close(self) -> None:
        self.aggregator.close()
        await self.engine.close()


def create_state(
    store: RemoteDocumentStore,
    session: SessionContext,
    db: Optional[Session] = None,
    settings: Optional[SyncSettings] = None,
    notifications: Optional[NotificationService] = None,
    is_online: bool = False,
) -> FamsyncState:
    """Create the repositories, sync engine and aggregator for ``session``.

    Without ``db`` the schema is created on the default engine and a new
    session is opened from SessionLocal.
    """
    settings = settings or load_settings()
    if db is None:
        init_db()
        db = SessionLocal()

    local_store = LocalStore(db)
    outbox = OutboxRepository(db, max_retries=settings.max_retries)
    gateway = RemoteTaskGateway(store, stale_write_guard=settings.stale_write_guard)
    engine = SyncEngine(outbox, local_store, gateway, session, settings=settings, is_online=is_online)

    state = FamsyncState(
        settings=settings,
        session=session,
        local_store=local_store,
        outbox=outbox,
        gateway=gateway,
        engine=engine,
        aggregator=TaskAggregator(store, session),
        tasks=OfflineTaskRepository(local_store, outbox, session, engine),
        history=OfflineHistoryRepository(local_store, outbox, engine),
        approvals=OfflineApprovalRepository(RemoteApprovalRepository(store), outbox, engine),
        users=RemoteUserRepository(store),
        notifications=notifications,
    )
    logger.info(
        f"Session ready for {session.user_id} "
        f"({outbox.count_pending()} pending operations, last sync {local_store.get_last_sync()})"
    )
    return state
