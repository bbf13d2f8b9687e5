"""Pydantic models for the synchronized collections: tasks, projects, rituals."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator, model_validator

from photisnadi.models.base import SyncBase, ensure_utc


# ---------- Enums ----------
# Values are the wire names stored in the remote tables.

class TaskStatus(str, Enum):
    todo = "todo"
    in_progress = "inProgress"
    in_review = "inReview"
    blocked = "blocked"
    done = "done"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class RitualFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


DEFAULT_PROJECT_COLOR = "#4A90E2"


def _default_modified_at(data: Any) -> Any:
    """Fill a missing ``modified_at`` from ``created_at``."""
    if isinstance(data, dict) and data.get("modified_at") is None and "created_at" in data:
        data = {**data, "modified_at": data["created_at"]}
    return data


# ---------- Tasks ----------

class Task(SyncBase):
    id: str = Field(min_length=1)
    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.todo
    priority: TaskPriority = TaskPriority.medium
    created_at: datetime
    due_date: datetime | None = None
    project_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    task_key: str | None = None
    modified_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _fill_modified_at(cls, data: Any) -> Any:
        return _default_modified_at(data)

    @field_validator("created_at", "due_date", "modified_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        # Ordered set: keep the first occurrence of each tag.
        return list(dict.fromkeys(value))


# ---------- Projects ----------

class Project(SyncBase):
    id: str = Field(min_length=1)
    name: str
    key: str
    description: str | None = None
    created_at: datetime
    color: str = DEFAULT_PROJECT_COLOR
    icon_name: str | None = None
    task_counter: int = 0
    is_archived: bool = False
    modified_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _fill_modified_at(cls, data: Any) -> Any:
        return _default_modified_at(data)

    @field_validator("created_at", "modified_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# ---------- Rituals ----------

class Ritual(SyncBase):
    id: str = Field(min_length=1)
    title: str
    description: str | None = None
    is_completed: bool = False
    created_at: datetime
    last_completed: datetime | None = None
    reset_time: datetime | None = None
    streak_count: int = 0
    frequency: RitualFrequency = RitualFrequency.daily

    @field_validator("created_at", "last_completed", "reset_time")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None
