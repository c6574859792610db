"""Runtime configuration for famsync.

Values come from the environment (optionally a `.env` file) so the same code
runs on a device, in CI and in tests.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from famsync.models.constants import (
    DEFAULT_COMPLETED_RETENTION_DAYS,
    DEFAULT_HISTORY_RETENTION_DAYS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OUTBOX_MAX_AGE_DAYS,
    DEFAULT_STALE_AFTER_SEC,
    DEFAULT_SYNC_INTERVAL_SEC,
)

load_dotenv()

# Local database URL - SQLite file by default
DATABASE_URL = os.getenv("FAMSYNC_DATABASE_URL", "sqlite:///./famsync.db")


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class SyncSettings:
    """Tunables for the outbox, the sync engine and local retention."""

    max_retries: int = DEFAULT_MAX_RETRIES
    sync_interval_seconds: float = DEFAULT_SYNC_INTERVAL_SEC
    outbox_max_age_days: int = DEFAULT_OUTBOX_MAX_AGE_DAYS
    history_retention_days: int = DEFAULT_HISTORY_RETENTION_DAYS
    completed_retention_days: int = DEFAULT_COMPLETED_RETENTION_DAYS
    stale_after_seconds: int = DEFAULT_STALE_AFTER_SEC
    # Reject remote writes older than the cached copy (off: last write wins)
    stale_write_guard: bool = False
    backoff_enabled: bool = True


def load_settings() -> SyncSettings:
    """Build SyncSettings from environment variables."""
    return SyncSettings(
        max_retries=int(os.getenv("FAMSYNC_MAX_RETRIES", str(DEFAULT_MAX_RETRIES))),
        sync_interval_seconds=float(os.getenv("FAMSYNC_SYNC_INTERVAL_SEC", str(DEFAULT_SYNC_INTERVAL_SEC))),
        outbox_max_age_days=int(os.getenv("FAMSYNC_OUTBOX_MAX_AGE_DAYS", str(DEFAULT_OUTBOX_MAX_AGE_DAYS))),
        history_retention_days=int(
            os.getenv("FAMSYNC_HISTORY_RETENTION_DAYS", str(DEFAULT_HISTORY_RETENTION_DAYS))
        ),
        completed_retention_days=int(
            os.getenv("FAMSYNC_COMPLETED_RETENTION_DAYS", str(DEFAULT_COMPLETED_RETENTION_DAYS))
        ),
        stale_after_seconds=int(os.getenv("FAMSYNC_STALE_AFTER_SEC", str(DEFAULT_STALE_AFTER_SEC))),
        stale_write_guard=_env_bool("FAMSYNC_STALE_WRITE_GUARD"),
        backoff_enabled=_env_bool("FAMSYNC_BACKOFF_ENABLED", "True"),
    )
