"""
Events streamed to the caller while a widget is being generated.

All payloads are plain camelCase dicts so they can go straight onto the SSE
stream. ``ProgressEmitter`` guarantees that exactly one ``complete`` event is
delivered and that nothing follows it.
"""

import random
import time
from typing import Any, Callable

from models.agent_result import AgentEvent
from models.generation import DataResult, Plan
from orchestrator.pipeline_settings import AgentEventCatalog, PipelineSettings, ProgressStep
from utils.logger import get_logger

logger = get_logger(__name__)

UpdateCallback = Callable[[dict[str, Any]], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProgressEmitter:
    def __init__(self, on_update: UpdateCallback, settings: PipelineSettings):
        self._on_update = on_update
        self._settings = settings
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def _emit(self, event: dict[str, Any]) -> None:
        if self._completed:
            logger.warning(
                "Dropping event emitted after completion",
                extra={"extra_fields": {"event_type": event.get("type")}},
            )
            return
        try:
            self._on_update(event)
        except Exception as e:
            logger.error(
                f"Update callback failed: {e}",
                extra={"extra_fields": {"event_type": event.get("type")}},
                exc_info=True,
            )

    def _emit_step(self, step: ProgressStep) -> None:
        event: dict[str, Any] = {
            "type": "progress",
            "phase": step.phase,
            "message": step.message,
            "progress": step.progress,
        }
        if step.subtext:
            event["subtext"] = step.subtext
        self._emit(event)

    def progress(self, step_name: str) -> None:
        self._emit_step(self._settings.step(step_name))

    def fallback(self) -> None:
        self._emit_step(self._settings.fallback_step)

    def plan(self, plan: Plan) -> None:
        self._emit({"type": "plan", "plan": plan.to_dict()})

    def data(self, data: DataResult) -> None:
        self._emit({"type": "data", "dataResult": data.to_dict()})

    def agent_event(self, phase: str, message: str) -> None:
        self._emit({"type": "agent_event", "phase": phase, "message": message, "timestamp": _now_ms()})

    def complete(self, response: dict[str, Any]) -> bool:
        """Deliver the terminal event. Returns False if one was already sent."""
        if self._completed:
            logger.error("Second completion suppressed")
            return False
        self._emit({"type": "complete", "response": response})
        self._completed = True
        return True


class AgentEventTranslator:
    """
    Turns raw agent stream events into short human-readable status lines.

    At most one line per phase is let through every ``throttle_seconds``.
    One translator is used per pipeline attempt.
    """

    def __init__(
        self,
        catalog: AgentEventCatalog,
        emit: Callable[[str, str], None],
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self._catalog = catalog
        self._emit = emit
        self._clock = clock
        self._rng = rng or random.Random()
        self._thinking_counts: dict[str, int] = {}
        self._last_sent: dict[str, float] = {}

    def for_phase(self, phase: str) -> Callable[[AgentEvent], None]:
        return lambda event: self.handle(phase, event)

    def _pick(self, phase: str, kind: str) -> str | None:
        messages = self._catalog.messages(phase, kind)
        return self._rng.choice(messages) if messages else None

    def translate(self, phase: str, event: AgentEvent) -> str | None:
        if event.type == "thinking":
            if event.subtype == "delta":
                count = self._thinking_counts.get(phase, 0) + 1
                self._thinking_counts[phase] = count
                messages = self._catalog.messages(phase, "thinking")
                if not messages:
                    return None
                index = (count // self._catalog.thinking_deltas_per_message) % len(messages)
                return messages[index]
            if event.subtype == "completed":
                self._thinking_counts[phase] = 0
                return self._pick(phase, "complete")
            return None

        if event.type == "system":
            if event.subtype in ("init", "session_start"):
                return self._pick(phase, "init")
            return None

        if event.type == "tool_call":
            if event.tool_name in self._catalog.tools:
                return self._catalog.tools[event.tool_name]
            if event.subtype == "started":
                return self._pick(phase, "thinking")
            if event.subtype == "finished":
                return self._pick(phase, "complete")
            return None

        if event.type == "assistant" and event.text:
            first_line = event.text.split("\n", 1)[0].strip()
            if 10 < len(first_line) < 100 and not first_line.startswith(("{", "[", "```")):
                return first_line
            return None

        if event.type == "result" and event.subtype == "success":
            return self._pick(phase, "complete")
        return None

    def handle(self, phase: str, event: AgentEvent) -> None:
        message = self.translate(phase, event)
        if not message:
            return
        now = self._clock()
        last = self._last_sent.get(phase)
        if last is not None and now - last < self._catalog.throttle_seconds:
            return
        self._last_sent[phase] = now
        self._emit(phase, message)
