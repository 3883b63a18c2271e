"""Group domain types."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict


class AdditionalMount(BaseModel):
    host_path: str  # Absolute path on host (supports ~ for home)
    container_path: str | None = None  # Optional — defaults to basename of host_path
    readonly: bool = True


class AllowedRoot(BaseModel):
    path: str  # Absolute path or ~ for home
    allow_read_write: bool = False
    description: str | None = None


class MountAllowlist(BaseModel):
    allowed_roots: list[AllowedRoot]
    blocked_patterns: list[str]
    non_main_read_only: bool = True


class ContainerConfig(BaseModel):
    additional_mounts: list[AdditionalMount] | None = None
    timeout: int | None = None  # ms; default CONTAINER_TIMEOUT


class WorkspacePaths(BaseModel):
    """Resolved filesystem layout of one group's workspace."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    group_dir: Path  # groups/{group}
    memory_file: Path  # groups/{group}/CLAUDE.md
    logs_dir: Path  # groups/{group}/logs
    ipc_dir: Path  # data/ipc/{group}
    staging_dir: Path  # data/ipc/{group}/input
    sessions_dir: Path  # data/sessions/{group}/.claude
