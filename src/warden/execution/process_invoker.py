"""ProcessInvoker runs one agent process under a deadline and an output ceiling."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence

from warden.errors import SpawnError
from warden.execution.output_parser import ParsedOutput, parse_output
from warden.execution.types import ExecutionResult
from warden.infrastructure.config import (
    CONTAINER_MAX_OUTPUT_SIZE,
    KILL_GRACE_PERIOD,
    OUTPUT_END_MARKER,
    OUTPUT_START_MARKER,
)
from warden.infrastructure.logger import logger

_CHUNK_SIZE = 64 * 1024
_STDERR_TAIL = 500


class ProcessInvoker:
    """Spawns a process, feeds it stdin, and collects its output.

    Two limits are enforced while the process runs:
      - wall-clock deadline: SIGTERM, then SIGKILL after ``kill_grace_s``;
      - combined stdout+stderr byte ceiling: buffering stops and the process
        is terminated the same way.
    A run cut short by either limit is never parsed for structure.
    """

    def __init__(
        self,
        max_output_bytes: int = CONTAINER_MAX_OUTPUT_SIZE,
        kill_grace_s: float = KILL_GRACE_PERIOD / 1000,
        start_marker: str = OUTPUT_START_MARKER,
        end_marker: str = OUTPUT_END_MARKER,
    ) -> None:
        self._max_output_bytes = max_output_bytes
        self._kill_grace_s = kill_grace_s
        self._start_marker = start_marker
        self._end_marker = end_marker

    async def invoke(
        self,
        argv: Sequence[str],
        stdin_data: bytes | None,
        deadline_s: float,
        *,
        name: str = "agent",
    ) -> ExecutionResult:
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as err:
            raise SpawnError(f"Failed to start {argv[0]!r}: {err}") from err

        logger.debug("Process started", name=name, pid=proc.pid)

        stdout_buf = bytearray()
        stderr_buf = bytearray()
        captured = 0
        overflow = asyncio.Event()

        async def feed_stdin() -> None:
            if stdin_data is None or proc.stdin is None:
                return
            try:
                proc.stdin.write(stdin_data)
                await proc.stdin.drain()
                proc.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("Process closed stdin early", name=name)

        async def pump(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
            nonlocal captured
            if stream is None:
                return
            while True:
                chunk = await stream.read(_CHUNK_SIZE)
                if not chunk:
                    return
                captured += len(chunk)
                if captured > self._max_output_bytes:
                    # Keep draining so the pipe reaches EOF once the process is gone
                    overflow.set()
                    continue
                sink.extend(chunk)

        completion = asyncio.ensure_future(
            asyncio.gather(feed_stdin(), pump(proc.stdout, stdout_buf), pump(proc.stderr, stderr_buf), proc.wait())
        )
        overflow_waiter = asyncio.ensure_future(overflow.wait())

        try:
            done, _ = await asyncio.wait(
                {completion, overflow_waiter},
                timeout=deadline_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await self._terminate(proc, name)
            await self._discard(completion)
            raise
        finally:
            overflow_waiter.cancel()

        if overflow.is_set():
            logger.warning("Output ceiling exceeded, terminating", name=name, limit=self._max_output_bytes)
            await self._terminate(proc, name)
            await self._discard(completion)
            return ExecutionResult.failed(
                "output_too_large",
                f"Agent output exceeded {self._max_output_bytes} bytes",
                exit_code=proc.returncode,
                duration_ms=_elapsed_ms(started),
            )

        if completion not in done:
            logger.warning("Process deadline exceeded, terminating", name=name, deadline_s=deadline_s)
            await self._terminate(proc, name)
            await self._discard(completion)
            return ExecutionResult.failed(
                "timeout",
                f"Agent timed out after {deadline_s:g}s",
                exit_code=proc.returncode,
                duration_ms=_elapsed_ms(started),
            )

        completion.result()  # re-raise reader failures
        stdout_text = stdout_buf.decode(errors="replace")
        stderr_text = stderr_buf.decode(errors="replace")
        for line in stderr_text.splitlines():
            if line.strip():
                logger.debug("Process stderr", name=name, line=line)

        parsed = parse_output(stdout_text, self._start_marker, self._end_marker)
        result = interpret_exit(parsed, proc.returncode, stdout_text, stderr_text, _elapsed_ms(started))
        logger.info(
            "Process finished",
            name=name,
            exit_code=proc.returncode,
            classification=result.classification,
            duration_ms=result.duration_ms,
        )
        return result

    async def _terminate(self, proc: asyncio.subprocess.Process, name: str) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._kill_grace_s)
        except asyncio.TimeoutError:
            logger.warning("Process ignored SIGTERM, killing", name=name)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    @staticmethod
    async def _discard(completion: asyncio.Future) -> None:
        """Stop the readers of a process whose output will not be used."""
        completion.cancel()
        await asyncio.gather(completion, return_exceptions=True)


def interpret_exit(
    parsed: ParsedOutput,
    exit_code: int | None,
    stdout_text: str,
    stderr_text: str,
    duration_ms: int,
) -> ExecutionResult:
    """Combine the parse result with the exit status. The exit status wins."""
    session_id = parsed.output.new_session_id if parsed.output else None

    if exit_code != 0:
        agent_error = parsed.output.error if parsed.output else None
        detail = agent_error or stderr_text.strip()[-_STDERR_TAIL:] or "no output"
        failure = "incomplete" if parsed.classification == "incomplete" else "exit_status"
        return ExecutionResult.failed(
            failure,
            f"Agent exited with code {exit_code}: {detail}",
            payload=parsed.payload,
            session_id=session_id,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )

    if parsed.classification == "incomplete":
        # Unterminated framing: treat the whole stream as plain text
        return ExecutionResult(
            success=True,
            payload=stdout_text.strip(),
            exit_code=exit_code,
            classification="plain-fallback",
            duration_ms=duration_ms,
        )

    if parsed.output and parsed.output.status == "error":
        return ExecutionResult.failed(
            "agent_error",
            parsed.output.error or "Agent reported an error",
            payload=parsed.payload,
            session_id=session_id,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )

    return ExecutionResult(
        success=True,
        payload=parsed.payload,
        session_id=session_id,
        exit_code=exit_code,
        classification=parsed.classification,
        duration_ms=duration_ms,
    )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
