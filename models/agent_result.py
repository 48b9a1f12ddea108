import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

AgentEventType = Literal["system", "user", "thinking", "tool_call", "assistant", "result"]

KNOWN_EVENT_TYPES = {"system", "user", "thinking", "tool_call", "assistant", "result"}


@dataclass(frozen=True)
class AgentEvent:
    """One line of the agent's stream-json output."""

    type: AgentEventType
    subtype: str | None = None
    text: str | None = None  # assistant delta text
    tool_name: str | None = None
    duration_ms: int | None = None
    is_error: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_line(cls, line: str) -> "AgentEvent | None":
        """Parse one stdout line; returns None for anything that isn't a known event."""
        line = line.strip()
        if not line:
            return None
        try:
            payload = json.loads(line)
        except ValueError:
            return None
        if not isinstance(payload, dict) or payload.get("type") not in KNOWN_EVENT_TYPES:
            return None

        text = None
        message = payload.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, list) and content and isinstance(content[0], dict):
                chunk = content[0].get("text")
                if isinstance(chunk, str):
                    text = chunk

        tool_name = None
        tool_call = payload.get("tool_call")
        if isinstance(tool_call, dict):
            tool_name = tool_call.get("name")
            if not tool_name and tool_call:
                # {"webSearchToolCall": {...}} style payloads carry the tool as the key
                tool_name = next(iter(tool_call))

        duration = payload.get("duration_ms")
        return cls(
            type=payload["type"],
            subtype=payload.get("subtype"),
            text=text,
            tool_name=tool_name,
            duration_ms=int(duration) if isinstance(duration, (int, float)) else None,
            is_error=bool(payload.get("is_error", False)),
            raw=payload,
        )

    @property
    def is_terminal_success(self) -> bool:
        return self.type == "result" and not self.is_error and self.subtype != "error"


@dataclass(frozen=True)
class AgentResult:
    """Reduced outcome of one agent invocation."""

    success: bool
    text: str
    events: list[AgentEvent] = field(default_factory=list)
    error: str | None = None
    duration_ms: int = 0
    exit_code: int | None = None
    timed_out: bool = False

    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )
