"""Scheduling domain types."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from warden.execution.types import Classification, ContextMode

ScheduleKind = Literal["once", "interval", "cron"]
# "running" is the persisted claim: visible to every poller while a run is in flight
TaskStatus = Literal["active", "running", "paused", "completed", "error"]


class ScheduledTask(BaseModel):
    id: str
    group_id: str
    chat_id: str
    prompt: str
    schedule_kind: ScheduleKind
    schedule_value: str
    context_mode: ContextMode = "isolated"
    next_run: datetime | None = None
    last_run: datetime | None = None
    last_result: str | None = None
    status: TaskStatus = "active"
    claimed_at: datetime | None = None
    created_at: datetime | None = None


class TaskRunLog(BaseModel):
    task_id: str
    run_at: datetime
    duration_ms: int
    status: Literal["success", "error"]
    classification: Classification | None = None
    result: str | None = None
    error: str | None = None
