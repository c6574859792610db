"""Payload sanitization at the remote serialization boundary.

The remote store rejects "undefined" values but accepts ``None``. Fields that
were never set are represented locally by the ``UNDEFINED`` marker and are
stripped recursively before a write; ``None``, dates and the server-timestamp
placeholder pass through untouched.
"""

from datetime import date, datetime, time
from typing import Any


class _Undefined:
    """Marker for "field not provided" (distinct from an explicit None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


class ServerTimestamp:
    """Placeholder the store resolves to its own clock when the write lands."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


UNDEFINED = _Undefined()
SERVER_TIMESTAMP = ServerTimestamp()

_ATOMIC = (datetime, date, time, ServerTimestamp)


def deep_sanitize(value: Any) -> Any:
    """Recursively drop UNDEFINED entries from dicts and lists."""
    if value is UNDEFINED:
        return UNDEFINED
    if value is None or isinstance(value, _ATOMIC):
        return value
    if isinstance(value, dict):
        return {k: deep_sanitize(v) for k, v in value.items() if v is not UNDEFINED}
    if isinstance(value, (list, tuple)):
        return [deep_sanitize(v) for v in value if v is not UNDEFINED]
    return value
