"""Database connection and session management for famsync.

The local store is a SQLite file on the device by default. Tests use an
in-memory database with a StaticPool.
"""

import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from famsync.config import DATABASE_URL


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }
    if _is_sqlite_url(database_url):
        # The sync engine's periodic task and callers may share a connection across threads.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    return engine_kwargs


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable foreign keys and WAL so the outbox survives crashes without blocking reads."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def build_engine(database_url: str, **overrides) -> Engine:
    kwargs = get_engine_kwargs(database_url)
    kwargs.update(overrides)
    built = create_engine(database_url, **kwargs)
    if _is_sqlite_url(database_url):
        event.listen(built, "connect", _set_sqlite_pragmas)
    return built


# Create engine (module-level singleton)
engine = build_engine(DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def init_db(engine_override: Engine = None) -> None:
    """Create the local schema (idempotent)."""
    # Import models so they register on Base.metadata
    from famsync.database import models  # noqa: F401

    Base.metadata.create_all(bind=engine_override or engine)
