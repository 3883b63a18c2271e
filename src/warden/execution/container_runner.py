"""ContainerRunner — runs the agent inside a container via async subprocess."""

from __future__ import annotations

import asyncio
import json
import time

from warden.execution.container_runtime import ContainerRuntime, get_runtime
from warden.execution.mount_builder import DefaultMountFactory, MountFactory
from warden.execution.process_invoker import ProcessInvoker
from warden.execution.types import ExecutionRequest, ExecutionResult
from warden.infrastructure.config import (
    CONTAINER_IMAGE,
    CONTAINER_RUNTIME,
    OUTPUT_END_MARKER,
    OUTPUT_START_MARKER,
    read_env_file,
)
from warden.infrastructure.logger import logger

SECRET_KEYS = ["ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN"]
STOP_TIMEOUT = 15.0
_FORCED_FAILURES = ("timeout", "output_too_large")


class ContainerRunner:
    """AgentRunner that launches one throwaway container per invocation."""

    def __init__(
        self,
        runtime: ContainerRuntime | None = None,
        mount_factory: MountFactory | None = None,
        invoker: ProcessInvoker | None = None,
        image: str = CONTAINER_IMAGE,
    ) -> None:
        self._runtime = runtime or get_runtime(CONTAINER_RUNTIME)
        self._mount_factory = mount_factory or DefaultMountFactory()
        self._invoker = invoker or ProcessInvoker()
        self._image = image

    def build_args(self, request: ExecutionRequest, container_name: str) -> list[str]:
        mounts = self._mount_factory.build_mounts(request.paths, request.is_main, request.additional_mounts)

        env = {
            "WARDEN_GROUP_FOLDER": request.group_id,
            "WARDEN_IS_MAIN": "1" if request.is_main else "0",
            "WARDEN_CHAT_JID": request.chat_id or "",
            "WARDEN_OUTPUT_START": OUTPUT_START_MARKER,
            "WARDEN_OUTPUT_END": OUTPUT_END_MARKER,
            **request.env,
        }
        return self._runtime.run_args(container_name, mounts, env, self._image)

    async def invoke(self, request: ExecutionRequest, deadline_s: float) -> ExecutionResult:
        self._runtime.ensure_available()

        container_name = f"warden-{request.group_id}-{int(time.time() * 1000)}"
        args = self.build_args(request, container_name)

        # Secrets go over stdin only, never into argv, env or the staging area
        stdin_data = json.dumps({**request.to_input_payload(), "secrets": read_env_file(SECRET_KEYS)}).encode()

        logger.info(
            "Starting container",
            name=container_name,
            group=request.group_id,
            image=self._image,
            scheduled=request.is_scheduled_task,
        )
        try:
            result = await self._invoker.invoke(args, stdin_data, deadline_s, name=container_name)
        except asyncio.CancelledError:
            await self.stop_container(container_name)
            raise
        # Killing the CLI client does not stop the container it started
        if result.failure in _FORCED_FAILURES:
            await self.stop_container(container_name)
        logger.info("Container finished", name=container_name, success=result.success, failure=result.failure)
        return result

    async def stop_container(self, name: str) -> None:
        """Force-stop a container whose run was cut short. Failures are logged only."""
        args = self._runtime.stop_args(name)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            logger.warning("Failed to stop container", name=name, error=str(err))
            return
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=STOP_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Timed out stopping container", name=name)
            return
        if proc.returncode != 0:
            # Usually the container already exited on its own
            logger.debug("Container stop returned non-zero", name=name, code=proc.returncode,
                         stderr=stderr.decode(errors="replace").strip()[-200:])
        else:
            logger.warning("Force-stopped container", name=name)
