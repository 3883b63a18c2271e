"""Agent runner capability interface and the mode-based factory."""

from __future__ import annotations

from typing import Protocol

from warden.execution.types import ExecutionRequest, ExecutionResult
from warden.infrastructure.config import AGENT_RUNNER_MODE
from warden.infrastructure.logger import logger


class AgentRunner(Protocol):
    """Runs one agent invocation to completion or to its deadline."""

    async def invoke(self, request: ExecutionRequest, deadline_s: float) -> ExecutionResult: ...


def resolve_mode(mode: str | None = None) -> str:
    """'api' selects the direct API runner; anything else means 'container'."""
    return "api" if (mode or AGENT_RUNNER_MODE).strip().lower() == "api" else "container"


def create_runner(mode: str | None = None) -> AgentRunner:
    resolved = resolve_mode(mode)
    logger.info("Agent runner selected", mode=resolved)
    if resolved == "api":
        from warden.execution.api_runner import ApiRunner

        return ApiRunner()

    from warden.execution.container_runner import ContainerRunner

    return ContainerRunner()
