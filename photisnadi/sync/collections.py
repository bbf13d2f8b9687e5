"""Registry of synchronized collections.

Each entry ties a remote table to its entity codec:

    projects  — Project records (reconciled first; tasks reference them)
    tasks     — Task records
    rituals   — Ritual records
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from photisnadi.sync.codecs import PROJECT_CODEC, RITUAL_CODEC, TASK_CODEC, EntityCodec


@dataclass(frozen=True)
class CollectionSpec:
    """One synchronized collection.

    Attributes:
        kind:  Singular entity name used in log and operation names ("task").
        table: Remote table and local collection name ("tasks").
        codec: Wire codec for the entity.
    """

    kind: str
    table: str
    codec: EntityCodec[Any]


PROJECTS = CollectionSpec(kind="project", table="projects", codec=PROJECT_CODEC)
TASKS = CollectionSpec(kind="task", table="tasks", codec=TASK_CODEC)
RITUALS = CollectionSpec(kind="ritual", table="rituals", codec=RITUAL_CODEC)

# Registry in orchestration order: table → spec
COLLECTION_REGISTRY: dict[str, CollectionSpec] = {
    "projects": PROJECTS,
    "tasks": TASKS,
    "rituals": RITUALS,
}


def get_collection(name: str) -> CollectionSpec:
    """Return the spec for a collection table name.

    Raises:
        KeyError: If the name is not registered.
    """
    if name not in COLLECTION_REGISTRY:
        raise KeyError(
            f"No collection registered as '{name}'. "
            f"Available: {list(COLLECTION_REGISTRY)}"
        )
    return COLLECTION_REGISTRY[name]
