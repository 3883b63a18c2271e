"""Orchestrator class — composes services, wires subsystems."""

from __future__ import annotations

from typing import Awaitable, Callable

from warden.execution.agent_runner import AgentRunner, create_runner
from warden.execution.coordinator import ExecutionCoordinator
from warden.execution.types import ContextMode, ExecutionResult
from warden.groups.maintenance import WorkspaceMaintenance
from warden.groups.types import ContainerConfig
from warden.groups.workspace import WorkspaceManager
from warden.infrastructure.config import MAINTENANCE_INTERVAL, STALE_CLAIM_AFTER
from warden.infrastructure.database import AppDatabase, database
from warden.infrastructure.logger import logger
from warden.infrastructure.poll_loop import PollLoop, start_poll_loop
from warden.scheduling.scheduler import TaskScheduler
from warden.scheduling.task_service import TaskManager
from warden.sessions.manager import SessionManager

SendMessage = Callable[[str, str], Awaitable[None]]


def format_reply(result: ExecutionResult) -> str:
    """Text to relay back to the user for one invocation."""
    if result.success:
        return result.payload
    if result.failure == "timeout":
        return "Sorry, that took too long and was stopped."
    if result.failure == "output_too_large":
        return "Sorry, the response was too large to deliver."
    return f"Sorry, something went wrong: {result.error or 'unknown error'}"


async def _log_message(chat_id: str, text: str) -> None:
    logger.info("Outgoing message", chat_id=chat_id, text=text[:200])


class Orchestrator:
    """Composes all services and manages the application lifecycle."""

    def __init__(
        self,
        db: AppDatabase = database,
        runner: AgentRunner | None = None,
        workspace: WorkspaceManager | None = None,
        send_message: SendMessage | None = None,
        group_configs: dict[str, ContainerConfig] | None = None,
    ) -> None:
        self._db = db
        self._runner = runner
        self._workspace = workspace or WorkspaceManager()
        self._send_message = send_message or _log_message
        self._group_configs = group_configs or {}
        self.sessions: SessionManager | None = None
        self.coordinator: ExecutionCoordinator | None = None
        self.tasks: TaskManager | None = None
        self.scheduler: TaskScheduler | None = None
        self.maintenance = WorkspaceMaintenance(self._workspace)
        self._maintenance_loop: PollLoop | None = None

    def init(self) -> None:
        """Wire the services without starting background loops."""
        if not self._db.is_open:
            self._db.init()

        self.sessions = SessionManager(self._db.session_repo)
        self.sessions.load_from_db()

        self.coordinator = ExecutionCoordinator(
            runner=self._runner or create_runner(),
            workspace=self._workspace,
            session_manager=self.sessions,
            get_group_config=self._group_configs.get,
        )
        self.tasks = TaskManager(self._db.task_repo)
        self.scheduler = TaskScheduler(self.tasks, self.coordinator, send_message=self._send_message)

    async def start(self) -> None:
        logger.info("Starting Warden...")
        if self.scheduler is None:
            self.init()
        assert self.tasks is not None and self.scheduler is not None

        # Claims left by a previous process that died mid-run
        self.tasks.release_stale_claims(STALE_CLAIM_AFTER)
        self.scheduler.start()
        self._maintenance_loop = start_poll_loop("Maintenance", MAINTENANCE_INTERVAL, self.maintenance.tick)
        logger.info("Warden started successfully")

    async def handle_message(
        self,
        group_id: str,
        prompt: str,
        session_id: str | None = None,
        chat_id: str | None = None,
        context_mode: ContextMode = "append",
    ) -> ExecutionResult:
        """Run the agent for an interactive message and relay its reply."""
        if self.coordinator is None:
            self.init()
        assert self.coordinator is not None

        result = await self.coordinator.run(group_id, prompt, session_id, context_mode, chat_id=chat_id)
        if chat_id:
            await self._send_message(chat_id, format_reply(result))
        return result

    async def shutdown(self) -> None:
        """Gracefully shut down all services."""
        logger.info("Shutting down Warden...")
        if self._maintenance_loop:
            await self._maintenance_loop.stop()
            self._maintenance_loop = None
        if self.scheduler:
            await self.scheduler.stop(drain=True)

        if self.coordinator is not None:
            aclose = getattr(self.coordinator.runner, "aclose", None)
            if aclose is not None:
                await aclose()

        self._db.close()
        logger.info("Warden shut down complete")
