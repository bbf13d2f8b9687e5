"""Tests for the SQLite-backed local store."""

from __future__ import annotations

import asyncio
import json
import sqlite3

import pytest

from photisnadi.models.entities import Project, Task, TaskStatus
from photisnadi.services.local_store import LocalStore
from photisnadi.sync.tests.conftest import JAN_2, make_project, make_task


class TestLocalStore:
    def test_open_collection_creates_table(self, local_store: LocalStore) -> None:
        local_store.open_collection("tasks", Task)
        local_store.open_collection("projects", Project)

        conn = sqlite3.connect(local_store.path)
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        finally:
            conn.close()
        assert {"tasks", "projects"} <= tables
        assert local_store.collections == ["projects", "tasks"]

    @pytest.mark.parametrize("name", ["Tasks", "tasks; DROP TABLE x", "", "1tasks"])
    def test_invalid_collection_name_rejected(self, local_store: LocalStore, name: str) -> None:
        with pytest.raises(ValueError):
            local_store.open_collection(name, Task)


class TestLocalCollection:
    @pytest.mark.asyncio
    async def test_put_then_get(self, local_store: LocalStore) -> None:
        tasks = local_store.open_collection("tasks", Task)
        task = make_task("a", status=TaskStatus.blocked, tags=["x"])

        await tasks.put("a", task)

        assert await tasks.get("a") == task

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, local_store: LocalStore) -> None:
        tasks = local_store.open_collection("tasks", Task)
        assert await tasks.get("nope") is None

    @pytest.mark.asyncio
    async def test_put_overwrites(self, local_store: LocalStore) -> None:
        tasks = local_store.open_collection("tasks", Task)
        await tasks.put("a", make_task("a", title="first"))
        await tasks.put("a", make_task("a", title="second", modified_at=JAN_2))

        assert (await tasks.get("a")).title == "second"
        assert await tasks.count() == 1

    @pytest.mark.asyncio
    async def test_values_and_snapshot(self, local_store: LocalStore) -> None:
        projects = local_store.open_collection("projects", Project)
        await projects.put("p2", make_project("p2"))
        await projects.put("p1", make_project("p1"))

        values = await projects.values()
        snapshot = await projects.snapshot()

        assert [p.id for p in values] == ["p1", "p2"]
        assert set(snapshot) == {"p1", "p2"}
        assert json.loads(snapshot["p1"])["name"] == "Project p1"

    @pytest.mark.asyncio
    async def test_collections_are_isolated(self, local_store: LocalStore) -> None:
        tasks = local_store.open_collection("tasks", Task)
        projects = local_store.open_collection("projects", Project)
        await tasks.put("a", make_task("a"))

        assert await projects.count() == 0

    @pytest.mark.asyncio
    async def test_unreadable_row_is_skipped(self, local_store: LocalStore) -> None:
        tasks = local_store.open_collection("tasks", Task)
        await tasks.put("a", make_task("a"))
        local_store._put("tasks", "broken", "{not json")

        values = await tasks.values()

        assert [t.id for t in values] == ["a"]

    @pytest.mark.asyncio
    async def test_concurrent_puts_keep_every_record(self, local_store: LocalStore) -> None:
        tasks = local_store.open_collection("tasks", Task)

        await asyncio.gather(*(tasks.put(str(i), make_task(str(i))) for i in range(20)))

        assert await tasks.count() == 20
