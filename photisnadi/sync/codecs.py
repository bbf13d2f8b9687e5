"""Wire codecs for the synchronized entities.

Each collection maps between its pydantic entity and the row shape stored in
the remote table.  Decoding is strict about required fields (a bad row raises
``DecodeError`` and the caller skips it) and lenient about enums (unknown
names fall back to a documented default).  Encoding always emits every
column, with ``None`` for absent optional values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from photisnadi.models.base import ensure_utc
from photisnadi.models.entities import (
    DEFAULT_PROJECT_COLOR,
    Project,
    Ritual,
    RitualFrequency,
    Task,
    TaskPriority,
    TaskStatus,
)

logger = logging.getLogger("photisnadi.sync.codecs")

E = TypeVar("E", bound=BaseModel)
V = TypeVar("V", bound=Enum)

# Accepts any ISO-8601 fraction width (Postgres trims trailing zeros).
_DATETIME = TypeAdapter(datetime)


class DecodeError(ValueError):
    """Raised when a remote row cannot be turned into an entity."""


# ---------------------------------------------------------------------------
# Enum name tables
# ---------------------------------------------------------------------------
# Exact, case-sensitive wire name -> variant.  Anything else maps to the
# default listed next to the table.

TASK_STATUS_NAMES: dict[str, TaskStatus] = {
    "todo": TaskStatus.todo,
    "inProgress": TaskStatus.in_progress,
    "inReview": TaskStatus.in_review,
    "blocked": TaskStatus.blocked,
    "done": TaskStatus.done,
}
TASK_STATUS_DEFAULT = TaskStatus.todo

TASK_PRIORITY_NAMES: dict[str, TaskPriority] = {
    "low": TaskPriority.low,
    "medium": TaskPriority.medium,
    "high": TaskPriority.high,
    "urgent": TaskPriority.urgent,
}
TASK_PRIORITY_DEFAULT = TaskPriority.medium

RITUAL_FREQUENCY_NAMES: dict[str, RitualFrequency] = {
    "daily": RitualFrequency.daily,
    "weekly": RitualFrequency.weekly,
    "monthly": RitualFrequency.monthly,
}
RITUAL_FREQUENCY_DEFAULT = RitualFrequency.daily


def parse_enum(names: dict[str, V], value: Any, default: V) -> V:
    """Look up ``value`` in ``names``; unknown or non-string input yields ``default``."""
    if isinstance(value, str) and value in names:
        return names[value]
    if value is not None:
        logger.debug("Unknown enum name %r, using %s", value, default.value)
    return default


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _require(row: dict, key: str) -> Any:
    value = row.get(key)
    if value is None:
        raise DecodeError(f"Missing required field '{key}'")
    return value


def _require_str(row: dict, key: str) -> str:
    value = _require(row, key)
    if not isinstance(value, str):
        raise DecodeError(f"Field '{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_str(row: dict, key: str) -> str | None:
    value = row.get(key)
    if value is not None and not isinstance(value, str):
        raise DecodeError(f"Field '{key}' must be a string or null, got {type(value).__name__}")
    return value


def _require_bool(row: dict, key: str) -> bool:
    value = _require(row, key)
    if not isinstance(value, bool):
        raise DecodeError(f"Field '{key}' must be a boolean, got {type(value).__name__}")
    return value


def _require_int(row: dict, key: str) -> int:
    value = _require(row, key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"Field '{key}' must be an integer, got {type(value).__name__}")
    return value


def _parse_datetime(value: Any, key: str) -> datetime:
    """Parse an ISO-8601 string (or pass through a datetime) as aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise DecodeError(f"Field '{key}' must be an ISO-8601 timestamp, got {type(value).__name__}")
    try:
        return ensure_utc(_DATETIME.validate_python(value))
    except ValidationError as exc:
        raise DecodeError(f"Field '{key}' is not a valid timestamp: {value!r}") from exc


def _require_datetime(row: dict, key: str) -> datetime:
    return _parse_datetime(_require(row, key), key)


def _optional_datetime(row: dict, key: str) -> datetime | None:
    value = row.get(key)
    if value is None:
        return None
    return _parse_datetime(value, key)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _build(model: type[E], fields: dict[str, Any]) -> E:
    try:
        return model(**fields)
    except ValidationError as exc:
        raise DecodeError(f"Invalid {model.__name__} row: {exc}") from exc


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

TASK_COLUMNS = (
    "id", "user_id", "title", "description", "status", "priority", "created_at",
    "due_date", "project_id", "tags", "task_key", "modified_at",
)


def decode_task(row: dict[str, Any]) -> Task:
    created_at = _require_datetime(row, "created_at")
    tags = row.get("tags")
    if tags is None:
        tags = []
    elif not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise DecodeError("Field 'tags' must be a list of strings")
    return _build(Task, {
        "id": _require_str(row, "id"),
        "title": _require_str(row, "title"),
        "description": _optional_str(row, "description"),
        "status": parse_enum(TASK_STATUS_NAMES, row.get("status"), TASK_STATUS_DEFAULT),
        "priority": parse_enum(TASK_PRIORITY_NAMES, row.get("priority"), TASK_PRIORITY_DEFAULT),
        "created_at": created_at,
        "due_date": _optional_datetime(row, "due_date"),
        "project_id": _optional_str(row, "project_id"),
        "tags": tags,
        "task_key": _optional_str(row, "task_key"),
        "modified_at": _optional_datetime(row, "modified_at") or created_at,
    })


def encode_task(task: Task, user_id: str) -> dict[str, Any]:
    return {
        "id": task.id,
        "user_id": user_id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "created_at": _format_datetime(task.created_at),
        "due_date": _format_datetime(task.due_date),
        "project_id": task.project_id,
        "tags": list(task.tags),
        "task_key": task.task_key,
        "modified_at": _format_datetime(task.modified_at),
    }


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

PROJECT_COLUMNS = (
    "id", "user_id", "name", "key", "description", "created_at", "color",
    "icon_name", "task_counter", "is_archived", "modified_at",
)


def decode_project(row: dict[str, Any]) -> Project:
    created_at = _require_datetime(row, "created_at")
    color = _optional_str(row, "color")
    task_counter = row.get("task_counter")
    is_archived = row.get("is_archived")
    return _build(Project, {
        "id": _require_str(row, "id"),
        "name": _require_str(row, "name"),
        "key": _require_str(row, "key"),
        "description": _optional_str(row, "description"),
        "created_at": created_at,
        "color": DEFAULT_PROJECT_COLOR if color is None else color,
        "icon_name": _optional_str(row, "icon_name"),
        "task_counter": 0 if task_counter is None else _require_int(row, "task_counter"),
        "is_archived": False if is_archived is None else _require_bool(row, "is_archived"),
        "modified_at": _optional_datetime(row, "modified_at") or created_at,
    })


def encode_project(project: Project, user_id: str) -> dict[str, Any]:
    return {
        "id": project.id,
        "user_id": user_id,
        "name": project.name,
        "key": project.key,
        "description": project.description,
        "created_at": _format_datetime(project.created_at),
        "color": project.color,
        "icon_name": project.icon_name,
        "task_counter": project.task_counter,
        "is_archived": project.is_archived,
        "modified_at": _format_datetime(project.modified_at),
    }


# ---------------------------------------------------------------------------
# Rituals
# ---------------------------------------------------------------------------

RITUAL_COLUMNS = (
    "id", "user_id", "title", "description", "is_completed", "created_at",
    "last_completed", "reset_time", "streak_count", "frequency",
)


def decode_ritual(row: dict[str, Any]) -> Ritual:
    return _build(Ritual, {
        "id": _require_str(row, "id"),
        "title": _require_str(row, "title"),
        "description": _optional_str(row, "description"),
        "is_completed": _require_bool(row, "is_completed"),
        "created_at": _require_datetime(row, "created_at"),
        "last_completed": _optional_datetime(row, "last_completed"),
        "reset_time": _optional_datetime(row, "reset_time"),
        "streak_count": _require_int(row, "streak_count"),
        "frequency": parse_enum(
            RITUAL_FREQUENCY_NAMES, row.get("frequency"), RITUAL_FREQUENCY_DEFAULT
        ),
    })


def encode_ritual(ritual: Ritual, user_id: str) -> dict[str, Any]:
    return {
        "id": ritual.id,
        "user_id": user_id,
        "title": ritual.title,
        "description": ritual.description,
        "is_completed": ritual.is_completed,
        "created_at": _format_datetime(ritual.created_at),
        "last_completed": _format_datetime(ritual.last_completed),
        "reset_time": _format_datetime(ritual.reset_time),
        "streak_count": ritual.streak_count,
        "frequency": ritual.frequency.value,
    }


# ---------------------------------------------------------------------------
# Codec bundles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntityCodec(Generic[E]):
    """Everything needed to move one entity kind across the wire."""

    model: type[E]
    decode: Callable[[dict[str, Any]], E]
    encode: Callable[[E, str], dict[str, Any]]
    columns: tuple[str, ...]


TASK_CODEC = EntityCodec(Task, decode_task, encode_task, TASK_COLUMNS)
PROJECT_CODEC = EntityCodec(Project, decode_project, encode_project, PROJECT_COLUMNS)
RITUAL_CODEC = EntityCodec(Ritual, decode_ritual, encode_ritual, RITUAL_COLUMNS)
