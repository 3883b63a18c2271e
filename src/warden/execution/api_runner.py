"""ApiRunner calls the Anthropic Messages API directly via httpx.

No container and no workspace mounts: the prompt goes straight to the model.
Used when AGENT_RUNNER_MODE=api.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from warden.errors import SpawnError
from warden.execution.types import ExecutionRequest, ExecutionResult
from warden.infrastructure.config import (
    ANTHROPIC_BASE_URL,
    ASSISTANT_NAME,
    CLAUDE_MODEL,
    CONTAINER_MAX_OUTPUT_SIZE,
    get_setting,
)
from warden.infrastructure.logger import logger

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 4096


def build_system_prompt(request: ExecutionRequest) -> str:
    lines = [f"You are {ASSISTANT_NAME}, a personal assistant.", ""]
    if request.is_main:
        lines.append("You are running in the main context.")
    else:
        lines.append("You are running in an isolated context.")
    if request.is_scheduled_task:
        lines.append("This is a scheduled task.")
    lines.append(f"Group folder: {request.group_id}")
    return "\n".join(lines) + "\n"


class ApiRunner:
    """AgentRunner backed by a single Messages API call."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = ANTHROPIC_BASE_URL,
        model: str = CLAUDE_MODEL,
        max_output_bytes: int = CONTAINER_MAX_OUTPUT_SIZE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        api_key = api_key or get_setting("ANTHROPIC_API_KEY")
        if not api_key:
            raise SpawnError("ANTHROPIC_API_KEY is required for API mode")

        self._url = f"{base_url.rstrip('/')}/v1/messages"
        self._model = model
        self._max_output_bytes = max_output_bytes
        self._client = client or httpx.AsyncClient()
        self._headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    async def invoke(self, request: ExecutionRequest, deadline_s: float) -> ExecutionResult:
        started = time.monotonic()
        body: dict[str, Any] = {
            "model": self._model,
            "max_tokens": MAX_TOKENS,
            "system": build_system_prompt(request),
            "messages": [{"role": "user", "content": request.prompt}],
        }

        try:
            response = await asyncio.wait_for(
                self._client.post(self._url, json=body, headers=self._headers, timeout=deadline_s),
                timeout=deadline_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("API request deadline exceeded", group=request.group_id, deadline_s=deadline_s)
            return ExecutionResult.failed("timeout", f"Agent timed out after {deadline_s:g}s", duration_ms=_elapsed_ms(started))
        except httpx.HTTPError as err:
            logger.error("API request failed", group=request.group_id, error=str(err))
            return ExecutionResult.failed("agent_error", f"HTTP request failed: {err}", duration_ms=_elapsed_ms(started))

        if len(response.content) > self._max_output_bytes:
            return ExecutionResult.failed(
                "output_too_large",
                f"Agent output exceeded {self._max_output_bytes} bytes",
                duration_ms=_elapsed_ms(started),
            )

        if response.is_error:
            return ExecutionResult.failed(
                "agent_error",
                f"API error ({response.status_code}): {response.text[:500]}",
                session_id=request.session_id,
                duration_ms=_elapsed_ms(started),
            )

        try:
            data = response.json()
        except ValueError:
            return ExecutionResult.failed("agent_error", "Failed to parse API response", duration_ms=_elapsed_ms(started))

        text = "\n".join(
            block["text"] for block in data.get("content", []) if isinstance(block, dict) and isinstance(block.get("text"), str)
        )
        return ExecutionResult(
            success=True,
            payload=text,
            session_id=request.session_id,
            classification="structured" if text else "empty",
            duration_ms=_elapsed_ms(started),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
