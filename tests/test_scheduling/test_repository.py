"""Tests for task repository."""

from datetime import datetime, timedelta, timezone

import pytest

from warden.scheduling.types import ScheduledTask, TaskRunLog

NOW = datetime(2026, 2, 13, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def task_repo(db):
    return db.task_repo


def _task(id="task-1", group_id="main", status="active", next_run=NOW, kind="once") -> ScheduledTask:
    return ScheduledTask(
        id=id,
        group_id=group_id,
        chat_id="chat-1",
        prompt="Test prompt",
        schedule_kind=kind,
        schedule_value="",
        next_run=next_run,
        status=status,
        created_at=NOW - timedelta(days=1),
    )


class TestTaskCRUD:
    def test_create_and_get(self, task_repo):
        task_repo.create_task(_task())
        result = task_repo.get_task_by_id("task-1")
        assert result is not None
        assert result.prompt == "Test prompt"
        assert result.next_run == NOW
        assert result.context_mode == "isolated"

    def test_get_nonexistent(self, task_repo):
        assert task_repo.get_task_by_id("nonexistent") is None

    def test_set_status(self, task_repo):
        task_repo.create_task(_task())
        task_repo.set_status("task-1", "paused")
        assert task_repo.get_task_by_id("task-1").status == "paused"

    def test_delete_removes_logs(self, task_repo):
        task_repo.create_task(_task())
        task_repo.log_task_run(TaskRunLog(task_id="task-1", run_at=NOW, duration_ms=10, status="success"))
        task_repo.delete_task("task-1")
        assert task_repo.get_task_by_id("task-1") is None
        assert task_repo.get_run_logs("task-1") == []

    def test_get_for_group(self, task_repo):
        task_repo.create_task(_task("a", group_id="main"))
        task_repo.create_task(_task("b", group_id="family"))
        assert [t.id for t in task_repo.get_tasks_for_group("family")] == ["b"]
        assert len(task_repo.get_all_tasks()) == 2


class TestDueTasks:
    def test_only_active_and_due(self, task_repo):
        task_repo.create_task(_task("due", next_run=NOW - timedelta(minutes=1)))
        task_repo.create_task(_task("future", next_run=NOW + timedelta(minutes=1)))
        task_repo.create_task(_task("paused", status="paused", next_run=NOW - timedelta(minutes=1)))
        task_repo.create_task(_task("exact", next_run=NOW))

        due = task_repo.get_due_tasks(NOW)
        assert [t.id for t in due] == ["due", "exact"]

    def test_due_comparison_across_zones(self, task_repo):
        # 09:30 in UTC+2 is 07:30 UTC, which is before NOW
        other_zone = timezone(timedelta(hours=2))
        task_repo.create_task(_task("t", next_run=datetime(2026, 2, 13, 9, 30, tzinfo=other_zone)))
        assert [t.id for t in task_repo.get_due_tasks(NOW)] == ["t"]


class TestClaiming:
    def test_claim_is_exclusive(self, task_repo):
        task_repo.create_task(_task())
        assert task_repo.claim_task("task-1", NOW) is True
        assert task_repo.claim_task("task-1", NOW) is False

        task = task_repo.get_task_by_id("task-1")
        assert task.status == "running"
        assert task.claimed_at == NOW
        assert task.next_run == NOW
        assert task_repo.get_due_tasks(NOW) == []

    def test_cannot_claim_paused(self, task_repo):
        task_repo.create_task(_task(status="paused"))
        assert task_repo.claim_task("task-1", NOW) is False

    def test_release_stale_claims(self, task_repo):
        task_repo.create_task(_task("old"))
        task_repo.create_task(_task("fresh"))
        task_repo.claim_task("old", NOW - timedelta(hours=2))
        task_repo.claim_task("fresh", NOW)

        released = task_repo.release_stale_claims(NOW - timedelta(hours=1))
        assert released == 1
        assert task_repo.get_task_by_id("old").status == "active"
        assert task_repo.get_task_by_id("old").claimed_at is None
        assert task_repo.get_task_by_id("fresh").status == "running"


class TestRunUpdates:
    def test_update_after_run_clears_claim(self, task_repo):
        task_repo.create_task(_task(kind="interval"))
        task_repo.claim_task("task-1", NOW)
        task_repo.update_task_after_run("task-1", "active", NOW + timedelta(hours=1), NOW, "done")

        task = task_repo.get_task_by_id("task-1")
        assert task.status == "active"
        assert task.claimed_at is None
        assert task.last_run == NOW
        assert task.next_run == NOW + timedelta(hours=1)
        assert task.last_result == "done"

    def test_run_logs_in_order(self, task_repo):
        task_repo.create_task(_task())
        task_repo.log_task_run(TaskRunLog(task_id="task-1", run_at=NOW, duration_ms=5, status="success", classification="structured", result="ok"))
        task_repo.log_task_run(TaskRunLog(task_id="task-1", run_at=NOW + timedelta(hours=1), duration_ms=7, status="error", error="boom"))

        logs = task_repo.get_run_logs("task-1")
        assert [log.status for log in logs] == ["success", "error"]
        assert logs[0].classification == "structured"
        assert logs[1].error == "boom"

    def test_update_after_run_reports_missing_task(self, task_repo):
        assert task_repo.update_task_after_run("gone", "active", NOW, NOW, "done") is False
        assert task_repo.get_task_by_id("gone") is None

    def test_pause_during_run_survives_update(self, task_repo):
        task_repo.create_task(_task(kind="interval"))
        task_repo.claim_task("task-1", NOW)
        task_repo.set_status("task-1", "paused")

        assert task_repo.update_task_after_run("task-1", "active", NOW + timedelta(hours=1), NOW, "done") is True
        task = task_repo.get_task_by_id("task-1")
        assert task.status == "paused"
        assert task.next_run == NOW + timedelta(hours=1)
        assert task.claimed_at is None

    def test_update_without_last_run_keeps_previous(self, task_repo):
        task_repo.create_task(_task())
        task_repo.claim_task("task-1", NOW)
        task_repo.update_task_after_run("task-1", "error", None, None, "Error: runtime down")
        assert task_repo.get_task_by_id("task-1").last_run is None
