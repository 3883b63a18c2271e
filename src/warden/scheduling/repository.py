"""Scheduled task CRUD, claiming, and run logging."""

from __future__ import annotations

import sqlite3
from datetime import datetime

from warden.scheduling.schedule import format_timestamp, parse_timestamp
from warden.scheduling.types import ScheduledTask, TaskRunLog, TaskStatus


def _ts(value: datetime | None) -> str | None:
    return format_timestamp(value) if value is not None else None


def _dt(value: str | None) -> datetime | None:
    return parse_timestamp(value) if value else None


class TaskRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def create_task(self, task: ScheduledTask) -> None:
        self._db.execute(
            """INSERT INTO scheduled_tasks
               (id, group_id, chat_id, prompt, schedule_kind, schedule_value, context_mode, next_run, status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                task.id, task.group_id, task.chat_id, task.prompt,
                task.schedule_kind, task.schedule_value, task.context_mode,
                _ts(task.next_run), task.status, _ts(task.created_at) or format_timestamp(datetime.now().astimezone()),
            ),
        )
        self._db.commit()

    def get_task_by_id(self, id: str) -> ScheduledTask | None:
        row = self._db.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (id,)).fetchone()
        if not row:
            return None
        return self._row_to_task(row)

    def get_tasks_for_group(self, group_id: str) -> list[ScheduledTask]:
        rows = self._db.execute(
            "SELECT * FROM scheduled_tasks WHERE group_id = ? ORDER BY created_at DESC", (group_id,)
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def get_all_tasks(self) -> list[ScheduledTask]:
        rows = self._db.execute("SELECT * FROM scheduled_tasks ORDER BY created_at DESC").fetchall()
        return [self._row_to_task(row) for row in rows]

    def set_status(self, id: str, status: TaskStatus, next_run: datetime | None = None) -> None:
        if next_run is not None:
            self._db.execute(
                "UPDATE scheduled_tasks SET status = ?, next_run = ? WHERE id = ?",
                (status, _ts(next_run), id),
            )
        else:
            self._db.execute("UPDATE scheduled_tasks SET status = ? WHERE id = ?", (status, id))
        self._db.commit()

    def delete_task(self, id: str) -> None:
        self._db.execute("DELETE FROM task_run_logs WHERE task_id = ?", (id,))
        self._db.execute("DELETE FROM scheduled_tasks WHERE id = ?", (id,))
        self._db.commit()

    def get_due_tasks(self, now: datetime) -> list[ScheduledTask]:
        rows = self._db.execute(
            """SELECT * FROM scheduled_tasks
               WHERE status = 'active' AND next_run IS NOT NULL AND next_run <= ?
               ORDER BY next_run""",
            (format_timestamp(now),),
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def claim_task(self, id: str, now: datetime) -> bool:
        """Atomically move an active task to 'running'. Only one caller can win."""
        result = self._db.execute(
            """UPDATE scheduled_tasks
               SET status = 'running', claimed_at = ?
               WHERE id = ? AND status = 'active'""",
            (format_timestamp(now), id),
        )
        self._db.commit()
        return result.rowcount > 0

    def release_stale_claims(self, older_than: datetime) -> int:
        """Return claims left behind by a crashed process to 'active'."""
        result = self._db.execute(
            """UPDATE scheduled_tasks
               SET status = 'active', claimed_at = NULL,
                   next_run = COALESCE(next_run, ?)
               WHERE status = 'running' AND (claimed_at IS NULL OR claimed_at < ?)""",
            (format_timestamp(older_than), format_timestamp(older_than)),
        )
        # Paused mid-run by a process that never finished the run
        self._db.execute(
            "UPDATE scheduled_tasks SET claimed_at = NULL WHERE status = 'paused' AND claimed_at < ?",
            (format_timestamp(older_than),),
        )
        self._db.commit()
        return result.rowcount

    def update_task_after_run(
        self,
        id: str,
        status: TaskStatus,
        next_run: datetime | None,
        last_run: datetime | None,
        last_result: str,
    ) -> bool:
        """Record the outcome of a run. Returns False when the task no longer exists.

        A pause that landed while the run was in flight wins over a return to
        'active'. last_run is left as it was when None is passed.
        """
        result = self._db.execute(
            """UPDATE scheduled_tasks
               SET status = CASE WHEN status = 'paused' AND ? = 'active' THEN 'paused' ELSE ? END,
                   next_run = ?, last_run = COALESCE(?, last_run), last_result = ?, claimed_at = NULL
               WHERE id = ?""",
            (status, status, _ts(next_run), _ts(last_run), last_result, id),
        )
        self._db.commit()
        return result.rowcount > 0

    def log_task_run(self, log: TaskRunLog) -> None:
        self._db.execute(
            """INSERT INTO task_run_logs (task_id, run_at, duration_ms, status, classification, result, error)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                log.task_id, format_timestamp(log.run_at), log.duration_ms, log.status,
                log.classification, log.result, log.error,
            ),
        )
        self._db.commit()

    def get_run_logs(self, task_id: str) -> list[TaskRunLog]:
        rows = self._db.execute(
            "SELECT * FROM task_run_logs WHERE task_id = ? ORDER BY run_at, id", (task_id,)
        ).fetchall()
        return [
            TaskRunLog(
                task_id=row["task_id"],
                run_at=parse_timestamp(row["run_at"]),
                duration_ms=row["duration_ms"],
                status=row["status"],
                classification=row["classification"],
                result=row["result"],
                error=row["error"],
            )
            for row in rows
        ]

    def _row_to_task(self, row: sqlite3.Row) -> ScheduledTask:
        return ScheduledTask(
            id=row["id"],
            group_id=row["group_id"],
            chat_id=row["chat_id"],
            prompt=row["prompt"],
            schedule_kind=row["schedule_kind"],
            schedule_value=row["schedule_value"],
            context_mode=row["context_mode"] or "isolated",
            next_run=_dt(row["next_run"]),
            last_run=_dt(row["last_run"]),
            last_result=row["last_result"],
            status=row["status"],
            claimed_at=_dt(row["claimed_at"]),
            created_at=_dt(row["created_at"]),
        )
