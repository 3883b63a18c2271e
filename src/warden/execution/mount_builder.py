"""Mount factory for building container mounts."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from warden.execution.container_runtime import Mount
from warden.execution.mount_security import AllowlistMountPolicy, MountPolicy
from warden.groups.types import AdditionalMount, WorkspacePaths
from warden.infrastructure.config import GROUPS_DIR, MAIN_GROUP_FOLDER, MEMORY_FILENAME
from warden.infrastructure.logger import logger


class MountFactory(Protocol):
    """Interface for building container mounts."""

    def build_mounts(
        self, paths: WorkspacePaths, is_main: bool, additional: list[AdditionalMount]
    ) -> list[Mount]: ...


class DefaultMountFactory:
    """The group's own tree read-write, everything else through the mount policy."""

    def __init__(self, policy: MountPolicy | None = None, groups_dir: Path = GROUPS_DIR) -> None:
        self._policy = policy or AllowlistMountPolicy()
        self._groups_dir = groups_dir

    def build_mounts(
        self, paths: WorkspacePaths, is_main: bool, additional: list[AdditionalMount]
    ) -> list[Mount]:
        mounts = [
            Mount(str(paths.group_dir), "/workspace/group"),
            Mount(str(paths.ipc_dir), "/workspace/ipc"),
            Mount(str(paths.sessions_dir), "/home/node/.claude"),
        ]

        # Main group's memory is shared read-only as global context
        if not is_main:
            main_memory = self._groups_dir / MAIN_GROUP_FOLDER / MEMORY_FILENAME
            if main_memory.exists():
                mounts.append(Mount(str(main_memory), f"/workspace/global/{MEMORY_FILENAME}", readonly=True))

        for mount in additional:
            validated = self._validated_mount(mount, is_main)
            if validated:
                mounts.append(validated)

        return mounts

    def _validated_mount(self, mount: AdditionalMount, is_main: bool) -> Mount | None:
        host_path = str(Path(mount.host_path).expanduser().resolve())

        allowed, force_ro = self._policy.check(host_path, is_main)
        if not allowed:
            logger.warning("Mount blocked by allowlist", host_path=host_path)
            return None

        container_path = mount.container_path or f"/workspace/extra/{Path(host_path).name}"
        return Mount(host_path, container_path, readonly=mount.readonly or force_ro)
