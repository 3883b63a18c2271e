"""Per-group workspace preparation and input staging."""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path

from warden.errors import WorkspaceError
from warden.execution.types import ExecutionRequest
from warden.groups.types import WorkspacePaths
from warden.infrastructure.config import DATA_DIR, GROUPS_DIR, MEMORY_FILENAME
from warden.infrastructure.logger import logger

MAX_GROUP_ID_LENGTH = 64
_DIGEST_LENGTH = 8
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")

INPUT_FILENAME = "input.json"
PROMPT_FILENAME = "prompt.txt"


def sanitize_group_id(group_id: str) -> str:
    """Map a group identifier onto a safe directory name.

    Runs of characters outside [A-Za-z0-9_-] collapse to a single dash, so
    separators and dots can never form a path component like "..". When that
    rewrites or truncates the id, a digest of the raw id is appended so two
    distinct groups never share a folder.
    """
    safe = _UNSAFE_CHARS.sub("-", group_id.strip()).strip("-")
    if not safe:
        raise WorkspaceError(f"Invalid group identifier: {group_id!r}")
    if safe == group_id and len(safe) <= MAX_GROUP_ID_LENGTH:
        return safe
    digest = hashlib.sha256(group_id.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return f"{safe[: MAX_GROUP_ID_LENGTH - _DIGEST_LENGTH - 1]}-{digest}"


def _ensure_within(path: Path, root: Path) -> Path:
    resolved = path.resolve()
    if not resolved.is_relative_to(root.resolve()):
        raise WorkspaceError(f"Path escapes workspace root: {path}")
    return resolved


class WorkspaceManager:
    """Creates and stages the isolated filesystem area of each group.

    Layout:
        groups/{group}/CLAUDE.md            long-lived memory artifact
        groups/{group}/logs/
        data/ipc/{group}/input/             staging area, rewritten per invocation
        data/sessions/{group}/.claude/      agent session state
    """

    def __init__(self, groups_dir: Path = GROUPS_DIR, data_dir: Path = DATA_DIR) -> None:
        self._groups_dir = groups_dir
        self._data_dir = data_dir

    def paths_for(self, group_id: str) -> WorkspacePaths:
        """Resolve a group's paths without touching the filesystem."""
        folder = sanitize_group_id(group_id)
        group_dir = _ensure_within(self._groups_dir / folder, self._groups_dir)
        ipc_dir = _ensure_within(self._data_dir / "ipc" / folder, self._data_dir)
        return WorkspacePaths(
            group_id=folder,
            group_dir=group_dir,
            memory_file=group_dir / MEMORY_FILENAME,
            logs_dir=group_dir / "logs",
            ipc_dir=ipc_dir,
            staging_dir=ipc_dir / "input",
            sessions_dir=_ensure_within(self._data_dir / "sessions" / folder / ".claude", self._data_dir),
        )

    def list_groups(self) -> list[str]:
        """Folder names of the groups that have a workspace on disk."""
        if not self._groups_dir.is_dir():
            return []
        return sorted(
            p.name for p in self._groups_dir.iterdir()
            if p.is_dir() and _UNSAFE_CHARS.search(p.name) is None
        )

    def prepare(self, group_id: str) -> WorkspacePaths:
        """Create the group's directories if absent. Existing content is left untouched."""
        paths = self.paths_for(group_id)
        try:
            for directory in (paths.group_dir, paths.logs_dir, paths.staging_dir, paths.sessions_dir):
                directory.mkdir(parents=True, exist_ok=True)
            # "x" mode never truncates an existing memory artifact
            if not paths.memory_file.exists():
                with paths.memory_file.open("x"):
                    pass
        except FileExistsError:
            pass
        except OSError as err:
            raise WorkspaceError(f"Failed to prepare workspace for {paths.group_id}: {err}") from err

        logger.debug("Workspace prepared", group=paths.group_id, path=str(paths.group_dir))
        return paths

    def stage_inputs(self, paths: WorkspacePaths, request: ExecutionRequest) -> None:
        """Replace the staging area's content with this request's input artifacts."""
        try:
            paths.staging_dir.mkdir(parents=True, exist_ok=True)
            for stale in paths.staging_dir.iterdir():
                if stale.is_file():
                    stale.unlink()
            _atomic_write(paths.staging_dir / INPUT_FILENAME, json.dumps(request.to_input_payload(), indent=2))
            _atomic_write(paths.staging_dir / PROMPT_FILENAME, request.prompt)
        except OSError as err:
            raise WorkspaceError(f"Failed to stage inputs for {paths.group_id}: {err}") from err

    def read_staged_input(self, paths: WorkspacePaths) -> dict | None:
        input_file = paths.staging_dir / INPUT_FILENAME
        if not input_file.exists():
            return None
        return json.loads(input_file.read_text())


def _atomic_write(target: Path, content: str) -> None:
    """Write via tmp + rename so the agent never reads a partial file."""
    temp_path = target.with_suffix(target.suffix + ".tmp")
    temp_path.write_text(content)
    temp_path.rename(target)
