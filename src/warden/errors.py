"""Error taxonomy for agent execution and scheduling."""

from __future__ import annotations


class WardenError(Exception):
    """Base class for all errors raised by warden."""


class WorkspaceError(WardenError):
    """Preparing or staging a group workspace failed. Fatal for that invocation."""


class SpawnError(WardenError):
    """The execution environment is unavailable or misconfigured.

    Surfaced to the operator; a scheduled task hitting it moves to ``error``.
    """


class ExecutionTimeoutError(WardenError, TimeoutError):
    """The agent exceeded its wall-clock deadline and was killed."""


class OutputTooLargeError(WardenError):
    """The agent produced more output than the configured ceiling."""


class AgentError(WardenError):
    """The agent ran but reported failure (non-zero exit or error payload)."""


class ScheduleValidationError(WardenError, ValueError):
    """A schedule kind/value pair cannot produce run times."""


class GroupBusyError(WardenError):
    """A group already has an invocation in flight and the caller chose not to wait."""
