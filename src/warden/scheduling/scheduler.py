"""Task scheduler — polls for due tasks and runs them through the coordinator."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable

from warden.errors import SpawnError, WardenError
from warden.execution.coordinator import ExecutionCoordinator
from warden.execution.types import ExecutionResult
from warden.infrastructure.config import MAX_CONCURRENT_TASKS, SCHEDULER_POLL_INTERVAL, TASK_TIMEOUT
from warden.infrastructure.logger import logger
from warden.infrastructure.poll_loop import PollLoop, start_poll_loop
from warden.scheduling.task_service import TaskManager
from warden.scheduling.types import ScheduledTask

SendMessage = Callable[[str, str], Awaitable[None]]


class TaskScheduler:
    """Each tick claims due tasks up to the free concurrency slots and starts them.

    A tick never waits for the runs it starts. A task that is still running when
    its next slot comes up is skipped, since its persisted status is 'running'
    rather than 'active'. Due tasks left over when all slots are busy stay
    active and are picked up by a later tick.
    """

    def __init__(
        self,
        task_manager: TaskManager,
        coordinator: ExecutionCoordinator,
        send_message: SendMessage | None = None,
        poll_interval_s: float = SCHEDULER_POLL_INTERVAL,
        task_timeout_s: float = TASK_TIMEOUT,
        max_concurrent: int = MAX_CONCURRENT_TASKS,
    ) -> None:
        self._tasks = task_manager
        self._coordinator = coordinator
        self._send_message = send_message
        self._poll_interval = poll_interval_s
        self._task_timeout = task_timeout_s
        self._max_concurrent = max_concurrent
        self._in_flight: dict[str, asyncio.Task[ScheduledTask | None]] = {}
        self._loop: PollLoop | None = None

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> None:
        if self._loop and self._loop.running:
            return
        self._loop = start_poll_loop("Scheduler", self._poll_interval, self._tick)

    async def stop(self, drain: bool = True) -> None:
        """Stop polling. With ``drain``, wait for the runs already started."""
        if self._loop:
            await self._loop.stop()
            self._loop = None
        if drain and self._in_flight:
            logger.info("Waiting for scheduled runs to finish", count=len(self._in_flight))
            await asyncio.gather(*self._in_flight.values(), return_exceptions=True)

    async def _tick(self) -> None:
        await self.poll_once()

    async def poll_once(self, now: datetime | None = None) -> list[asyncio.Task[ScheduledTask | None]]:
        """Claim and start due tasks. Returns the runs started by this tick."""
        due_tasks = self._tasks.get_due_tasks(now)
        if not due_tasks:
            return []

        free = self._max_concurrent - len(self._in_flight)
        logger.info("Found due tasks", count=len(due_tasks), free_slots=free)

        started: list[asyncio.Task[ScheduledTask | None]] = []
        for task in due_tasks:
            if free <= 0:
                logger.debug("At concurrency limit, leaving task for a later tick", task_id=task.id)
                break
            if task.id in self._in_flight:
                continue
            if not self._tasks.claim(task.id):
                continue

            run = asyncio.create_task(self.run_task(task), name=f"task-run-{task.id}")
            self._in_flight[task.id] = run
            run.add_done_callback(lambda done, task_id=task.id: self._run_finished(task_id, done))
            started.append(run)
            free -= 1
        return started

    async def run_task(self, task: ScheduledTask) -> ScheduledTask | None:
        """Run one claimed task to completion and record the outcome."""
        started_at = self._tasks.now()
        logger.info("Running scheduled task", task_id=task.id, group=task.group_id)

        result: ExecutionResult | None = None
        error: str | None = None
        fatal = False

        try:
            result = await self._coordinator.run(
                task.group_id,
                task.prompt,
                context_mode=task.context_mode,
                chat_id=task.chat_id,
                is_scheduled_task=True,
                timeout_s=self._task_timeout,
            )
        except SpawnError as err:
            error = str(err)
            fatal = True
            logger.error("Execution environment unavailable, task moved to error", task_id=task.id, error=error)
        except WardenError as err:
            error = str(err)
            logger.error("Task failed", task_id=task.id, error=error)
        except Exception as err:
            error = str(err) or type(err).__name__
            logger.exception("Task crashed", task_id=task.id)

        if result is not None and not result.success:
            logger.warning("Task run failed", task_id=task.id, failure=result.failure, error=result.error)

        updated = self._tasks.complete_run(task, started_at, result, error, fatal=fatal)
        if updated is None:
            return None

        if result is not None and result.success and result.payload and self._send_message:
            try:
                await self._send_message(task.chat_id, result.payload)
            except Exception:
                logger.exception("Failed to deliver task result", task_id=task.id, chat_id=task.chat_id)
        return updated

    def _run_finished(self, task_id: str, run: asyncio.Task[ScheduledTask | None]) -> None:
        self._in_flight.pop(task_id, None)
        if run.cancelled():
            logger.warning("Scheduled run cancelled", task_id=task_id)
            return
        err = run.exception()
        if err is not None:
            logger.error("Scheduled run raised", task_id=task_id, exc_info=err)
