"""Recovers a structured payload from agent stdout framed by sentinel marker lines.

The agent prints a start marker line, one JSON document, and an end marker
line somewhere in otherwise free-form output. Structure is opportunistic:
when the framing is absent or the JSON is unreadable, the text is still
returned as a plain payload instead of being dropped.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Literal

from warden.infrastructure.config import OUTPUT_END_MARKER, OUTPUT_START_MARKER

ParseClassification = Literal["structured", "plain-fallback", "empty", "incomplete"]


@dataclass(frozen=True)
class AgentOutput:
    """Fields of the JSON document the agent emits between the markers."""

    status: str = "success"
    result: str | None = None
    new_session_id: str | None = None
    error: str | None = None
    has_result: bool = True


@dataclass(frozen=True)
class ParsedOutput:
    classification: ParseClassification
    payload: str = ""
    output: AgentOutput | None = None
    raw: str = ""  # verbatim text between the markers

    @property
    def is_structured(self) -> bool:
        return self.classification == "structured"


def _find_line(lines: list[str], marker: str) -> int:
    try:
        return lines.index(marker)
    except ValueError:
        return -1


def parse_output(
    stdout: str,
    start_marker: str = OUTPUT_START_MARKER,
    end_marker: str = OUTPUT_END_MARKER,
) -> ParsedOutput:
    """Parse a complete stdout capture. Never raises."""
    lines = stdout.splitlines()
    start_idx = _find_line(lines, start_marker)
    end_idx = _find_line(lines, end_marker)

    if start_idx >= 0 and end_idx < 0:
        return ParsedOutput(classification="incomplete")

    # No markers, a lone end marker, or an end marker at/before the start: corrupt framing
    if start_idx < 0 or end_idx <= start_idx:
        return ParsedOutput(classification="plain-fallback", payload=stdout.strip())

    inner = "\n".join(lines[start_idx + 1 : end_idx]).strip()
    if not inner:
        return ParsedOutput(classification="empty")

    output = _decode_payload(inner)
    if output is None:
        return ParsedOutput(classification="plain-fallback", payload=inner, raw=inner)

    # A document without a "result" key is relayed as-is
    payload = (output.result or "") if output.has_result else inner
    return ParsedOutput(classification="structured", payload=payload, output=output, raw=inner)


def _decode_payload(raw: str) -> AgentOutput | None:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    result = data.get("result")
    if result is not None and not isinstance(result, str):
        result = json.dumps(result)

    return AgentOutput(
        status=str(data.get("status") or "success"),
        result=result,
        new_session_id=data.get("newSessionId"),
        error=data.get("error"),
        has_result="result" in data,
    )


def frame_output(payload: dict, start_marker: str = OUTPUT_START_MARKER, end_marker: str = OUTPUT_END_MARKER) -> str:
    """Render a payload the way an agent is expected to print it."""
    return f"{start_marker}\n{json.dumps(payload)}\n{end_marker}\n"
