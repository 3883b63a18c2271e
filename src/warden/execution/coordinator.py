"""Execution coordinator: one agent invocation at a time per group."""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from warden.errors import GroupBusyError
from warden.execution.agent_runner import AgentRunner
from warden.execution.types import ContextMode, ExecutionRequest, ExecutionResult
from warden.groups.types import ContainerConfig
from warden.groups.workspace import WorkspaceManager, sanitize_group_id
from warden.infrastructure.config import MAIN_GROUP_FOLDER, TimeoutConfig
from warden.infrastructure.logger import logger
from warden.sessions.manager import SessionManager


class ExecutionCoordinator:
    """Prepares the workspace, stages inputs, runs the agent, records the session.

    Invocations for the same group are serialized by a per-group lock held from
    staging until the result is back, so one run can never overwrite the staged
    inputs of another. Different groups run concurrently.
    """

    def __init__(
        self,
        runner: AgentRunner,
        workspace: WorkspaceManager | None = None,
        session_manager: SessionManager | None = None,
        timeouts: TimeoutConfig | None = None,
        get_group_config: Callable[[str], ContainerConfig | None] | None = None,
    ) -> None:
        self._runner = runner
        self._workspace = workspace or WorkspaceManager()
        self._sessions = session_manager
        self._timeouts = timeouts or TimeoutConfig()
        self._get_group_config = get_group_config
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def runner(self) -> AgentRunner:
        return self._runner

    def _lock_for(self, group_id: str) -> asyncio.Lock:
        lock = self._locks.get(group_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[group_id] = lock
        return lock

    def is_busy(self, group_id: str) -> bool:
        lock = self._locks.get(sanitize_group_id(group_id))
        return lock is not None and lock.locked()

    async def run(
        self,
        group_id: str,
        prompt: str,
        session_id: str | None = None,
        context_mode: ContextMode = "append",
        *,
        chat_id: str | None = None,
        is_scheduled_task: bool = False,
        timeout_s: float | None = None,
        wait: bool = True,
    ) -> ExecutionResult:
        """Run the agent for ``group_id`` and return its classified result.

        Raises WorkspaceError when the workspace cannot be prepared, SpawnError
        when the execution environment is unavailable, and GroupBusyError when
        ``wait`` is False and the group already has a run in flight. Agent-side
        failures (timeout, oversize output, non-zero exit) come back as a
        failed ExecutionResult.
        """
        paths = self._workspace.prepare(group_id)
        lock = self._lock_for(paths.group_id)
        if not wait and lock.locked():
            raise GroupBusyError(f"Group {paths.group_id} already has an invocation in flight")

        async with lock:
            if self._sessions is not None:
                resume = self._sessions.session_for_run(paths.group_id, context_mode, session_id)
            else:
                resume = session_id if context_mode == "append" else None

            config = self._get_group_config(paths.group_id) if self._get_group_config else None
            request = ExecutionRequest(
                prompt=prompt,
                group_id=paths.group_id,
                paths=paths,
                session_id=resume,
                chat_id=chat_id,
                is_main=paths.group_id == MAIN_GROUP_FOLDER,
                is_scheduled_task=is_scheduled_task,
                context_mode=context_mode,
                additional_mounts=(config.additional_mounts or []) if config else [],
            )
            self._workspace.stage_inputs(paths, request)

            deadline_s = timeout_s if timeout_s is not None else self._timeouts.for_group(config).deadline_s
            logger.info(
                "Invoking agent",
                group=paths.group_id,
                context_mode=context_mode,
                resume=resume is not None,
                deadline_s=deadline_s,
            )
            started = time.monotonic()
            result = await self._runner.invoke(request, deadline_s)

            if result.success and self._sessions is not None:
                self._sessions.record_result(paths.group_id, context_mode, result.session_id)

        logger.info(
            "Agent invocation finished",
            group=paths.group_id,
            success=result.success,
            classification=result.classification,
            failure=result.failure,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return result
