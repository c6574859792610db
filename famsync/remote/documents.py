"""Versioned document schemas for the remote store.

Remote documents use camelCase keys and JSON-safe values (ISO strings for
dates and times), so the same dict can sit in the outbox and be written to
the store. ``migrate_*`` functions upgrade older document shapes on read;
this module is the only place that knows about both representations.
"""

import re
from datetime import datetime
from typing import Any, Dict, Iterable

from famsync.models.approval import ApprovalRequest
from famsync.models.history import HistoryItem
from famsync.models.repeat import RepeatType
from famsync.models.task import Task
from famsync.remote.sanitize import ServerTimestamp

SCHEMA_VERSION = 1

_CAMEL_RE = re.compile(r"_([a-z])")
_SNAKE_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_camel(name: str) -> str:
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


def to_snake(name: str) -> str:
    return _SNAKE_RE.sub("_", name).lower()


def _convert_keys(value: Any, fn, opaque: Iterable[str] = ()) -> Any:
    if isinstance(value, dict):
        return {
            fn(k): (v if k in opaque else _convert_keys(v, fn, opaque))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_convert_keys(v, fn, opaque) for v in value]
    return value


def _resolve_placeholders(doc: Dict[str, Any]) -> Dict[str, Any]:
    # A local echo may still hold the placeholder before the store resolves it
    now = datetime.utcnow()
    return {k: (now if isinstance(v, ServerTimestamp) else v) for k, v in doc.items()}


# --- tasks ---------------------------------------------------------------

def task_to_document(task: Task) -> Dict[str, Any]:
    doc = _convert_keys(task.model_dump(mode="json"), to_camel)
    doc["schemaVersion"] = SCHEMA_VERSION
    return doc


def migrate_task_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade a task document to SCHEMA_VERSION."""
    doc = dict(doc)
    version = doc.get("schemaVersion", 0)
    if version < 1:
        # v0 stored the author as userId and the repeat type as a bare string
        if "createdBy" not in doc and "userId" in doc:
            doc["createdBy"] = doc.pop("userId")
        repeat = doc.get("repeat")
        if isinstance(repeat, str):
            doc["repeat"] = None if repeat == "none" else {"enabled": True, "type": RepeatType(repeat).value}
        if "private" not in doc:
            doc["private"] = doc.get("familyId") is None
        doc["schemaVersion"] = 1
    return doc


def task_from_document(doc: Dict[str, Any]) -> Task:
    data = _resolve_placeholders(migrate_task_document(doc))
    data.pop("schemaVersion", None)
    return Task.model_validate(_convert_keys(data, to_snake))


# --- approvals -----------------------------------------------------------

def approval_to_document(approval: ApprovalRequest) -> Dict[str, Any]:
    doc = _convert_keys(approval.model_dump(mode="json"), to_camel)
    doc["schemaVersion"] = SCHEMA_VERSION
    return doc


def approval_from_document(doc: Dict[str, Any]) -> ApprovalRequest:
    data = _resolve_placeholders(doc)
    data.pop("schemaVersion", None)
    return ApprovalRequest.model_validate(_convert_keys(data, to_snake))


# --- history -------------------------------------------------------------

def history_to_document(item: HistoryItem) -> Dict[str, Any]:
    doc = _convert_keys(item.model_dump(mode="json"), to_camel, opaque=("details",))
    doc["schemaVersion"] = SCHEMA_VERSION
    return doc


def history_from_document(doc: Dict[str, Any]) -> HistoryItem:
    data = _resolve_placeholders(doc)
    data.pop("schemaVersion", None)
    return HistoryItem.model_validate(_convert_keys(data, to_snake, opaque=("details",)))