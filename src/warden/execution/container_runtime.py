"""Container runtime abstraction — Protocol + Docker/Podman implementations."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Protocol

from warden.errors import SpawnError


@dataclass(frozen=True)
class Mount:
    host_path: str
    container_path: str
    readonly: bool = False


class ContainerRuntime(Protocol):
    """Interface for container runtimes (Docker, Podman, etc.)."""

    @property
    def bin(self) -> str:
        """Path to the runtime binary (e.g. 'docker')."""
        ...

    def ensure_available(self) -> None:
        """Raise SpawnError if the runtime cannot start containers."""
        ...

    def run_args(self, name: str, mounts: list[Mount], env: dict[str, str], image: str) -> list[str]:
        """Full argv for an interactive, self-removing container run."""
        ...

    def stop_args(self, name: str) -> list[str]:
        """argv that force-stops a named container."""
        ...


class DockerRuntime:
    """Docker container runtime."""

    binary_name = "docker"

    def __init__(self, binary: str | None = None) -> None:
        self._bin = binary or shutil.which(self.binary_name) or self.binary_name

    @property
    def bin(self) -> str:
        return self._bin

    def ensure_available(self) -> None:
        if shutil.which(self._bin) is None:
            raise SpawnError(f"Container runtime not found: {self._bin}")

    def run_args(self, name: str, mounts: list[Mount], env: dict[str, str], image: str) -> list[str]:
        args = [self._bin, "run", "-i", "--rm", "--name", name]
        for mount in mounts:
            suffix = ":ro" if mount.readonly else ""
            args.extend(["-v", f"{mount.host_path}:{mount.container_path}{suffix}"])
        for key, value in env.items():
            args.extend(["-e", f"{key}={value}"])
        args.append(image)
        return args

    def stop_args(self, name: str) -> list[str]:
        return [self._bin, "kill", name]


class PodmanRuntime(DockerRuntime):
    """Podman runtime; CLI-compatible with Docker for the flags used here."""

    binary_name = "podman"


def get_runtime(name: str) -> ContainerRuntime:
    runtimes: dict[str, type[DockerRuntime]] = {"docker": DockerRuntime, "podman": PodmanRuntime}
    try:
        return runtimes[name]()
    except KeyError:
        raise SpawnError(f"Unknown container runtime: {name}") from None
