"""Execution domain types: one request in, one result out."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from warden.errors import AgentError, ExecutionTimeoutError, OutputTooLargeError
from warden.groups.types import AdditionalMount, WorkspacePaths

ContextMode = Literal["append", "replace", "isolated"]
Classification = Literal["structured", "plain-fallback", "empty", "error"]
FailureKind = Literal["timeout", "output_too_large", "exit_status", "agent_error", "incomplete"]


class ExecutionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    group_id: str
    paths: WorkspacePaths
    session_id: str | None = None
    chat_id: str | None = None
    is_main: bool = False
    is_scheduled_task: bool = False
    context_mode: ContextMode = "append"
    env: dict[str, str] = Field(default_factory=dict)
    additional_mounts: list[AdditionalMount] = Field(default_factory=list)

    def to_input_payload(self) -> dict[str, object]:
        """The JSON document the agent reads at startup (without secrets)."""
        return {
            "prompt": self.prompt,
            "sessionId": self.session_id,
            "groupFolder": self.group_id,
            "chatJid": self.chat_id,
            "isMain": self.is_main,
            "isScheduledTask": self.is_scheduled_task,
            "contextMode": self.context_mode,
        }


class ExecutionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    payload: str = ""
    session_id: str | None = None
    exit_code: int | None = None
    classification: Classification = "structured"
    failure: FailureKind | None = None
    error: str | None = None
    duration_ms: int = 0

    @classmethod
    def failed(cls, failure: FailureKind, error: str, **kwargs: object) -> ExecutionResult:
        return cls(success=False, classification="error", failure=failure, error=error, **kwargs)  # type: ignore[arg-type]

    def raise_for_failure(self) -> None:
        """Raise the typed error matching this result's failure, if any."""
        if self.success:
            return
        message = self.error or "Agent execution failed"
        if self.failure == "timeout":
            raise ExecutionTimeoutError(message)
        if self.failure == "output_too_large":
            raise OutputTooLargeError(message)
        raise AgentError(message)
