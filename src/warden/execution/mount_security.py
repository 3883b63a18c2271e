"""Mount allowlist validation for containers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from warden.groups.types import MountAllowlist
from warden.infrastructure.config import MOUNT_ALLOWLIST_PATH
from warden.infrastructure.logger import logger


class MountPolicy(Protocol):
    """Decides whether an additional host path may be mounted, and how."""

    def check(self, host_path: str, is_main: bool) -> tuple[bool, bool]:
        """Returns (allowed, read_only)."""
        ...


def load_mount_allowlist(path: Path = MOUNT_ALLOWLIST_PATH) -> MountAllowlist | None:
    """Load mount allowlist from config file. Returns None if not found."""
    if not path.exists():
        return None
    try:
        return MountAllowlist(**json.loads(path.read_text()))
    except (OSError, json.JSONDecodeError, ValidationError, TypeError):
        logger.warning("Failed to load mount allowlist", path=str(path))
        return None


def _expand_home(p: str) -> str:
    return str(Path(p).expanduser())


def _is_blocked(resolved: Path, pattern: str) -> bool:
    # Bare names (".ssh", "id_rsa") match any path component; anything else is a prefix
    if "/" not in pattern and not pattern.startswith("~"):
        return pattern in resolved.parts
    blocked = Path(_expand_home(pattern)).resolve()
    return resolved == blocked or resolved.is_relative_to(blocked)


def validate_mount(
    host_path: str,
    allowlist: MountAllowlist | None,
    is_main: bool,
) -> tuple[bool, bool]:
    """Validate a mount path against the allowlist.

    Returns (allowed, read_only):
        allowed: True if the mount is permitted.
        read_only: True if the mount should be read-only.
    """
    if allowlist is None:
        return False, True  # No allowlist = no additional mounts

    resolved = Path(_expand_home(host_path)).resolve()

    for pattern in allowlist.blocked_patterns:
        if _is_blocked(resolved, pattern):
            return False, True

    for root in allowlist.allowed_roots:
        root_path = Path(_expand_home(root.path)).resolve()
        if resolved == root_path or resolved.is_relative_to(root_path):
            read_only = not root.allow_read_write
            if not is_main and allowlist.non_main_read_only:
                read_only = True
            return True, read_only

    return False, True


class AllowlistMountPolicy:
    """MountPolicy backed by the JSON allowlist file."""

    def __init__(self, allowlist: MountAllowlist | None = None, path: Path = MOUNT_ALLOWLIST_PATH) -> None:
        self._allowlist = allowlist if allowlist is not None else load_mount_allowlist(path)

    def check(self, host_path: str, is_main: bool) -> tuple[bool, bool]:
        return validate_mount(host_path, self._allowlist, is_main)
