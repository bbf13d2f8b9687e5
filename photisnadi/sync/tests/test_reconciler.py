"""Tests for CollectionReconciler merge semantics against the fake remote."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from photisnadi.models.entities import Project, Ritual, Task
from photisnadi.sync.codecs import encode_project, encode_ritual, encode_task
from photisnadi.sync.collections import RITUALS
from photisnadi.sync.reconciler import CollectionReconciler
from photisnadi.sync.tests.conftest import (
    JAN_1,
    JAN_2,
    JAN_3,
    TEST_USER_ID,
    make_project,
    make_ritual,
    make_task,
)

OTHER_USER_ID = "0a9b8c7d-6e5f-4a3b-2c1d-0e9f8a7b6c5d"


@pytest.fixture
def local_tasks(local_store):
    return local_store.open_collection("tasks", Task)


@pytest.fixture
def local_rituals(local_store):
    return local_store.open_collection("rituals", Ritual)


# ---------------------------------------------------------------------------
# One-sided records
# ---------------------------------------------------------------------------


class TestOneSidedRecords:
    @pytest.mark.asyncio
    async def test_local_only_record_is_uploaded(self, engine, fake_remote, local_tasks):
        await local_tasks.put("a", make_task("a", title="Draft"))

        assert await engine.synchronize_tasks()

        uploads = fake_remote.uploads_for("tasks")
        assert len(uploads) == 1
        assert uploads[0]["id"] == "a"
        assert uploads[0]["title"] == "Draft"
        assert uploads[0]["user_id"] == TEST_USER_ID
        assert engine.reconciler("tasks").last_report.uploaded == 1

    @pytest.mark.asyncio
    async def test_remote_only_record_is_downloaded(self, engine, fake_remote, local_tasks):
        fake_remote.seed("tasks", encode_task(make_task("b", title="From web"), TEST_USER_ID))

        assert await engine.synchronize_tasks()

        stored = await local_tasks.get("b")
        assert stored is not None
        assert stored.title == "From web"
        assert fake_remote.uploads_for("tasks") == []
        assert engine.reconciler("tasks").last_report.downloaded == 1

    @pytest.mark.asyncio
    async def test_other_users_rows_are_not_downloaded(self, engine, fake_remote, local_tasks):
        fake_remote.seed("tasks", encode_task(make_task("theirs"), OTHER_USER_ID))

        assert await engine.synchronize_tasks()

        assert await local_tasks.get("theirs") is None

    @pytest.mark.asyncio
    async def test_both_directions_in_one_run(self, engine, fake_remote, local_tasks):
        await local_tasks.put("a", make_task("a"))
        fake_remote.seed("tasks", encode_task(make_task("b"), TEST_USER_ID))

        assert await engine.synchronize_tasks()

        assert sorted(fake_remote.tables["tasks"]) == ["a", "b"]
        assert sorted(await local_tasks.snapshot()) == ["a", "b"]


# ---------------------------------------------------------------------------
# Last-write-wins
# ---------------------------------------------------------------------------


class TestLastWriteWins:
    @pytest.mark.asyncio
    async def test_newer_remote_overwrites_local(self, engine, fake_remote, local_tasks):
        await local_tasks.put("a", make_task("a", modified_at=JAN_1, title="X"))
        fake_remote.seed("tasks", encode_task(make_task("a", modified_at=JAN_2, title="Y"), TEST_USER_ID))

        assert await engine.synchronize_tasks()

        stored = await local_tasks.get("a")
        assert stored.title == "Y"
        assert stored.modified_at == JAN_2
        assert fake_remote.uploads_for("tasks") == []
        assert engine.reconciler("tasks").last_report.overwritten == 1

    @pytest.mark.asyncio
    async def test_newer_local_is_uploaded(self, engine, fake_remote, local_tasks):
        await local_tasks.put("a", make_task("a", modified_at=JAN_3, title="Local edit"))
        fake_remote.seed("tasks", encode_task(make_task("a", modified_at=JAN_2, title="Old"), TEST_USER_ID))

        assert await engine.synchronize_tasks()

        uploads = fake_remote.uploads_for("tasks")
        assert [row["title"] for row in uploads] == ["Local edit"]
        assert fake_remote.tables["tasks"]["a"]["title"] == "Local edit"
        assert (await local_tasks.get("a")).title == "Local edit"

    @pytest.mark.asyncio
    async def test_equal_timestamps_leave_both_sides_alone(self, engine, fake_remote, local_tasks):
        await local_tasks.put("a", make_task("a", modified_at=JAN_2, title="Local"))
        fake_remote.seed("tasks", encode_task(make_task("a", modified_at=JAN_2, title="Remote"), TEST_USER_ID))

        assert await engine.synchronize_tasks()

        assert (await local_tasks.get("a")).title == "Local"
        assert fake_remote.tables["tasks"]["a"]["title"] == "Remote"
        assert fake_remote.uploads_for("tasks") == []
        assert engine.reconciler("tasks").last_report.unchanged == 1

    @pytest.mark.asyncio
    async def test_projects_use_last_write_wins(self, engine, fake_remote, local_store):
        local_projects = local_store.open_collection("projects", Project)
        await local_projects.put("p1", make_project("p1", modified_at=JAN_1, name="Old"))
        fake_remote.seed(
            "projects", encode_project(make_project("p1", modified_at=JAN_3, name="New"), TEST_USER_ID)
        )

        assert await engine.synchronize_projects()

        assert (await local_projects.get("p1")).name == "New"

    @pytest.mark.asyncio
    async def test_trimmed_fraction_timestamp_compares_equal(
        self, engine, fake_remote, local_tasks
    ):
        stamp = datetime(2024, 1, 1, 10, 0, 0, 120000, tzinfo=timezone.utc)
        await local_tasks.put("a", make_task("a", modified_at=stamp))
        row = encode_task(make_task("a", modified_at=stamp), TEST_USER_ID)
        row["modified_at"] = "2024-01-01T10:00:00.12+00:00"
        fake_remote.seed("tasks", row)

        assert await engine.synchronize_tasks()

        assert fake_remote.uploads_for("tasks") == []
        report = engine.reconciler("tasks").last_report
        assert report.skipped_rows == 0
        assert report.unchanged == 1


# ---------------------------------------------------------------------------
# Run-level behaviour
# ---------------------------------------------------------------------------


class TestRunBehaviour:
    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, engine, fake_remote, local_tasks):
        await local_tasks.put("a", make_task("a"))
        await local_tasks.put("c", make_task("c", modified_at=JAN_3))
        fake_remote.seed("tasks", encode_task(make_task("b"), TEST_USER_ID))
        fake_remote.seed("tasks", encode_task(make_task("c", modified_at=JAN_2), TEST_USER_ID))

        assert await engine.synchronize_tasks()
        first_snapshot = await local_tasks.snapshot()
        uploads_after_first = len(fake_remote.upserts)

        assert await engine.synchronize_tasks()

        assert len(fake_remote.upserts) == uploads_after_first
        assert await local_tasks.snapshot() == first_snapshot
        report = engine.reconciler("tasks").last_report
        assert report.uploaded == 0
        assert report.downloaded == 0
        assert report.unchanged == 3

    @pytest.mark.asyncio
    async def test_fetch_failure_returns_false_and_leaves_local_alone(
        self, engine, fake_remote, local_tasks, recording_sleep
    ):
        await local_tasks.put("a", make_task("a"))
        fake_remote.seed("tasks", encode_task(make_task("b"), TEST_USER_ID))
        before = await local_tasks.snapshot()
        fake_remote.fetch_failures["tasks"] = 3

        assert await engine.synchronize_tasks() is False

        assert fake_remote.fetch_calls["tasks"] == 3
        assert recording_sleep.delays == pytest.approx([1.0, 2.1])
        assert await local_tasks.snapshot() == before
        assert fake_remote.upserts == []

    @pytest.mark.asyncio
    async def test_transient_fetch_failure_is_retried(self, engine, fake_remote, local_tasks):
        fake_remote.seed("tasks", encode_task(make_task("b"), TEST_USER_ID))
        fake_remote.fetch_failures["tasks"] = 2

        assert await engine.synchronize_tasks()

        assert fake_remote.fetch_calls["tasks"] == 3
        assert await local_tasks.get("b") is not None

    @pytest.mark.asyncio
    async def test_malformed_remote_row_is_skipped(self, engine, fake_remote, local_tasks):
        for task_id in ("a", "b", "c"):
            fake_remote.seed("tasks", encode_task(make_task(task_id), TEST_USER_ID))
        fake_remote.tables["tasks"]["b"]["created_at"] = "not a timestamp"

        assert await engine.synchronize_tasks()

        assert sorted(await local_tasks.snapshot()) == ["a", "c"]
        report = engine.reconciler("tasks").last_report
        assert report.skipped_rows == 1
        assert report.downloaded == 2

    @pytest.mark.asyncio
    async def test_failed_upload_does_not_abort_the_run(
        self, engine, fake_remote, local_tasks
    ):
        await local_tasks.put("a", make_task("a"))
        await local_tasks.put("b", make_task("b"))
        fake_remote.seed("tasks", encode_task(make_task("r"), TEST_USER_ID))
        fake_remote.failing_uploads.add("a")

        assert await engine.synchronize_tasks()

        assert [row["id"] for row in fake_remote.uploads_for("tasks")] == ["b"]
        assert await local_tasks.get("r") is not None
        report = engine.reconciler("tasks").last_report
        assert report.upload_failures == 1
        assert report.uploaded == 1

    @pytest.mark.asyncio
    async def test_no_signed_in_user(self, make_engine, fake_remote, local_tasks):
        engine = make_engine(user_id=None)
        assert await engine.initialize()
        try:
            await local_tasks.put("a", make_task("a"))

            assert await engine.synchronize_tasks() is False

            assert fake_remote.fetch_calls["tasks"] == 0
            assert fake_remote.upserts == []
        finally:
            await engine.shutdown()


# ---------------------------------------------------------------------------
# Rituals
# ---------------------------------------------------------------------------


class TestRituals:
    @pytest.mark.asyncio
    async def test_rituals_do_not_resolve_conflicts(self, engine, fake_remote, local_rituals):
        await local_rituals.put("r1", make_ritual("r1", streak_count=1))
        fake_remote.seed("rituals", encode_ritual(make_ritual("r1", streak_count=5), TEST_USER_ID))

        assert await engine.synchronize_rituals()

        assert (await local_rituals.get("r1")).streak_count == 1
        assert fake_remote.tables["rituals"]["r1"]["streak_count"] == 5
        assert fake_remote.uploads_for("rituals") == []
        assert not engine.reconciler("rituals").resolves_conflicts

    @pytest.mark.asyncio
    async def test_one_sided_rituals_still_merge(self, engine, fake_remote, local_rituals):
        await local_rituals.put("r1", make_ritual("r1"))
        fake_remote.seed("rituals", encode_ritual(make_ritual("r2"), TEST_USER_ID))

        assert await engine.synchronize_rituals()

        assert [row["id"] for row in fake_remote.uploads_for("rituals")] == ["r1"]
        assert await local_rituals.get("r2") is not None

    def test_conflict_resolution_requires_modified_at(self, fake_remote, local_rituals):
        with pytest.raises(ValueError, match="no modified_at"):
            CollectionReconciler(
                RITUALS, local_rituals, fake_remote, lambda: TEST_USER_ID, resolve_conflicts=True
            )
