"""Tests for the process invoker, using short-lived Python child processes."""

import json
import sys
import textwrap
import time

import pytest

from warden.errors import SpawnError
from warden.execution.output_parser import ParsedOutput
from warden.execution.process_invoker import ProcessInvoker, interpret_exit

START = "---START---"
END = "---END---"


def _script(body: str) -> list[str]:
    return [sys.executable, "-c", textwrap.dedent(body)]


@pytest.fixture
def invoker():
    return ProcessInvoker(max_output_bytes=64 * 1024, kill_grace_s=0.2, start_marker=START, end_marker=END)


class TestProcessInvoker:
    @pytest.mark.asyncio
    async def test_structured_output_with_noise(self, invoker):
        argv = _script(f"""
            import json, sys
            data = json.loads(sys.stdin.read())
            print("starting up")
            print("{START}")
            print(json.dumps({{"status": "success", "result": "echo: " + data["prompt"], "newSessionId": "s-9"}}))
            print("{END}")
            print("shutting down")
        """)
        result = await invoker.invoke(argv, json.dumps({"prompt": "hi"}).encode(), deadline_s=10)
        assert result.success
        assert result.classification == "structured"
        assert result.payload == "echo: hi"
        assert result.session_id == "s-9"
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_plain_output_without_markers(self, invoker):
        argv = _script("""
            print("just text")
        """)
        result = await invoker.invoke(argv, None, deadline_s=10)
        assert result.success
        assert result.classification == "plain-fallback"
        assert result.payload == "just text"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_failure_even_with_structured_output(self, invoker):
        argv = _script(f"""
            import sys
            print("{START}")
            print('{{"status": "success", "result": "looks fine"}}')
            print("{END}")
            sys.stderr.write("crashed later\\n")
            sys.exit(3)
        """)
        result = await invoker.invoke(argv, None, deadline_s=10)
        assert not result.success
        assert result.failure == "exit_status"
        assert result.exit_code == 3
        assert "code 3" in result.error

    @pytest.mark.asyncio
    async def test_agent_reported_error(self, invoker):
        argv = _script(f"""
            print("{START}")
            print('{{"status": "error", "error": "model refused"}}')
            print("{END}")
        """)
        result = await invoker.invoke(argv, None, deadline_s=10)
        assert not result.success
        assert result.failure == "agent_error"
        assert result.error == "model refused"

    @pytest.mark.asyncio
    async def test_unterminated_frame_with_clean_exit_falls_back(self, invoker):
        argv = _script(f"""
            print("before")
            print("{START}")
            print("partial")
        """)
        result = await invoker.invoke(argv, None, deadline_s=10)
        assert result.success
        assert result.classification == "plain-fallback"
        assert START in result.payload

    @pytest.mark.asyncio
    async def test_deadline_kills_process(self, invoker):
        argv = _script("""
            import time
            print("working", flush=True)
            time.sleep(30)
        """)
        started = time.monotonic()
        result = await invoker.invoke(argv, None, deadline_s=0.1)
        elapsed = time.monotonic() - started

        assert not result.success
        assert result.failure == "timeout"
        assert result.classification == "error"
        assert elapsed < 0.3

    @pytest.mark.asyncio
    async def test_sigterm_ignored_falls_back_to_kill(self):
        invoker = ProcessInvoker(kill_grace_s=0.1, start_marker=START, end_marker=END)
        argv = _script("""
            import signal, time
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
            print("ready", flush=True)
            time.sleep(30)
        """)
        started = time.monotonic()
        result = await invoker.invoke(argv, None, deadline_s=0.5)
        assert result.failure == "timeout"
        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_output_ceiling(self):
        invoker = ProcessInvoker(max_output_bytes=1024, kill_grace_s=0.2, start_marker=START, end_marker=END)
        argv = _script("""
            import sys, time
            for _ in range(1000):
                sys.stdout.write("x" * 1024 + "\\n")
                sys.stdout.flush()
            time.sleep(30)
        """)
        result = await invoker.invoke(argv, None, deadline_s=10)
        assert not result.success
        assert result.failure == "output_too_large"
        assert result.payload == ""

    @pytest.mark.asyncio
    async def test_missing_binary_raises_spawn_error(self, invoker):
        with pytest.raises(SpawnError):
            await invoker.invoke(["/nonexistent/warden-agent-binary"], None, deadline_s=1)


class TestInterpretExit:
    def test_incomplete_with_nonzero_exit(self):
        result = interpret_exit(ParsedOutput(classification="incomplete"), 1, "x", "boom", 5)
        assert not result.success
        assert result.failure == "incomplete"
        assert "boom" in result.error

    def test_empty_success(self):
        result = interpret_exit(ParsedOutput(classification="empty"), 0, "", "", 5)
        assert result.success
        assert result.classification == "empty"
        assert result.payload == ""
