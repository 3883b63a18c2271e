"""Tests for the orchestrator wiring."""

import pytest

from warden.app import Orchestrator, format_reply
from warden.execution.types import ExecutionResult
from warden.infrastructure.database import AppDatabase


class EchoRunner:
    async def invoke(self, request, deadline_s):
        return ExecutionResult(success=True, payload=f"echo: {request.prompt}", session_id="sess-1")


@pytest.fixture
def orchestrator(workspace):
    db = AppDatabase()
    db._init_test()
    sent = []

    async def send_message(chat_id, text):
        sent.append((chat_id, text))

    app = Orchestrator(db=db, runner=EchoRunner(), workspace=workspace, send_message=send_message)
    app.sent = sent
    return app


class TestFormatReply:
    def test_success_payload(self):
        assert format_reply(ExecutionResult(success=True, payload="hi")) == "hi"

    def test_timeout(self):
        assert "too long" in format_reply(ExecutionResult.failed("timeout", "Agent timed out after 1s"))

    def test_generic_failure(self):
        reply = format_reply(ExecutionResult.failed("exit_status", "Agent exited with code 2: boom"))
        assert "boom" in reply


class TestOrchestrator:
    @pytest.mark.asyncio
    async def test_handle_message_relays_reply(self, orchestrator):
        result = await orchestrator.handle_message("family", "hello", chat_id="chat-1")

        assert result.success
        assert orchestrator.sent == [("chat-1", "echo: hello")]
        assert orchestrator.sessions.get("family") == "sess-1"

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, orchestrator):
        await orchestrator.start()
        assert orchestrator.scheduler is not None
        task_id = orchestrator.tasks.create("family", "chat-1", "Hi", "once", "2099-01-01T00:00:00")
        assert orchestrator.tasks.get_by_id(task_id).status == "active"
        await orchestrator.shutdown()
