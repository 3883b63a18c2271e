"""Task manager — centralized task lifecycle."""

from __future__ import annotations

import random
import string
import time
from datetime import datetime, tzinfo

from warden.execution.types import ContextMode, ExecutionResult
from warden.infrastructure.config import get_zone
from warden.infrastructure.logger import logger
from warden.scheduling import schedule
from warden.scheduling.repository import TaskRepository
from warden.scheduling.types import ScheduledTask, TaskRunLog

RESULT_EXCERPT_LENGTH = 200


class TaskManager:
    def __init__(self, task_repo: TaskRepository, tz: tzinfo | None = None) -> None:
        self._task_repo = task_repo
        self._tz = tz or get_zone()

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)

    # --- CRUD ---

    def create(
        self,
        group_id: str,
        chat_id: str,
        prompt: str,
        schedule_kind: str,
        schedule_value: str,
        context_mode: ContextMode = "isolated",
    ) -> str:
        """Validate the schedule and store an active task. Invalid schedules never become active."""
        now = self.now()
        next_run = schedule.first_run(schedule_kind, schedule_value, now, self._tz)
        rand = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
        task_id = f"task-{int(time.time())}-{rand}"

        task = ScheduledTask(
            id=task_id,
            group_id=group_id,
            chat_id=chat_id,
            prompt=prompt,
            schedule_kind=schedule_kind,  # type: ignore[arg-type]
            schedule_value=schedule_value,
            context_mode=context_mode,
            next_run=next_run,
            status="active",
            created_at=now,
        )
        self._task_repo.create_task(task)
        logger.info("Task created", task_id=task_id, group=group_id, kind=schedule_kind, next_run=next_run.isoformat())
        return task_id

    def get_by_id(self, id: str) -> ScheduledTask | None:
        return self._task_repo.get_task_by_id(id)

    def get_all(self) -> list[ScheduledTask]:
        return self._task_repo.get_all_tasks()

    def get_for_group(self, group_id: str) -> list[ScheduledTask]:
        return self._task_repo.get_tasks_for_group(group_id)

    def get_run_logs(self, id: str) -> list[TaskRunLog]:
        return self._task_repo.get_run_logs(id)

    # --- Lifecycle ---

    def pause(self, id: str) -> None:
        self._task_repo.set_status(id, "paused")

    def resume(self, id: str) -> None:
        """Reactivate a paused or errored task, recomputing next_run when it has none."""
        task = self._task_repo.get_task_by_id(id)
        if not task:
            raise ValueError(f"Task not found: {id}")
        if task.status == "completed":
            raise ValueError(f"Task already completed: {id}")
        if task.status == "running":
            raise ValueError(f"Task is running: {id}")
        if task.claimed_at is not None:
            # Paused mid-run: hand it back to the run in flight, which sets the next state
            self._task_repo.set_status(id, "running")
            return

        now = self.now()
        next_run = task.next_run
        if next_run is None:
            next_run = schedule.next_run(task.schedule_kind, task.schedule_value, now, task.last_run, self._tz)
            if next_run is None:
                raise ValueError(f"Task has no remaining runs: {id}")
        self._task_repo.set_status(id, "active", next_run)

    def cancel(self, id: str) -> None:
        self._task_repo.delete_task(id)

    # --- Scheduling ---

    def get_due_tasks(self, now: datetime | None = None) -> list[ScheduledTask]:
        return self._task_repo.get_due_tasks(now or self.now())

    def claim(self, id: str) -> bool:
        return self._task_repo.claim_task(id, self.now())

    def release_stale_claims(self, older_than_s: float) -> int:
        cutoff = datetime.fromtimestamp(time.time() - older_than_s, self._tz)
        released = self._task_repo.release_stale_claims(cutoff)
        if released:
            logger.warning("Released stale task claims", count=released)
        return released

    def complete_run(
        self,
        task: ScheduledTask,
        started_at: datetime,
        result: ExecutionResult | None,
        error: str | None = None,
        fatal: bool = False,
    ) -> ScheduledTask | None:
        """Move the task to its next state, then log the run.

        once      -> completed, next_run NULL
        interval  -> active, next_run from the run just finished
        cron      -> active, next match after now
        fatal     -> error; stays there until resumed by hand. The agent never
                     started, so last_run is not advanced.

        Returns None when the task was cancelled while it ran.
        """
        finished_at = self.now()
        if result is not None and not result.success:
            error = error or result.error or "Unknown error"
        payload = result.payload if result is not None else None

        if fatal:
            status, next_run = "error", None
        else:
            next_run = schedule.next_run(task.schedule_kind, task.schedule_value, finished_at, started_at, self._tz)
            status = "completed" if task.schedule_kind == "once" else "active"
            if next_run is None and status == "active":
                status = "error"

        result_summary = f"Error: {error}" if error else (payload[:RESULT_EXCERPT_LENGTH] if payload else "Completed")
        found = self._task_repo.update_task_after_run(
            task.id, status, next_run, None if fatal else started_at, result_summary
        )
        if not found:
            logger.info("Task deleted during run", task_id=task.id, error=error)
            return None

        self._task_repo.log_task_run(TaskRunLog(
            task_id=task.id,
            run_at=started_at,
            duration_ms=int((finished_at - started_at).total_seconds() * 1000),
            status="error" if error else "success",
            classification=result.classification if result is not None else "error",
            result=payload[:RESULT_EXCERPT_LENGTH] if payload else None,
            error=error,
        ))

        updated = self._task_repo.get_task_by_id(task.id)
        logger.info(
            "Task run recorded",
            task_id=task.id,
            status=updated.status if updated else status,
            next_run=next_run.isoformat() if next_run else None,
            error=error,
        )
        return updated
