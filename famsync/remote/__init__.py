"""Remote document store boundary for famsync."""

from famsync.remote.sanitize import deep_sanitize, UNDEFINED, SERVER_TIMESTAMP
from famsync.remote.task_store import RemoteTaskGateway, StaleWriteError
from famsync.remote.repositories import RemoteApprovalRepository, RemoteUserRepository

__all__ = [
    "deep_sanitize",
    "UNDEFINED",
    "SERVER_TIMESTAMP",
    "RemoteTaskGateway",
    "StaleWriteError",
    "RemoteApprovalRepository",
    "RemoteUserRepository",
]
