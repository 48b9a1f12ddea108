"""
WidgetOrchestrator - turns a user question into a widget tree.

Key guarantees:
- run() never raises and delivers exactly one ``complete`` event, always last
- phases run strictly in order: planning, data acquisition, widget generation, validating
- a failed attempt is retried once with synthetic data, then a static apology
  widget is returned
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from agent.base_invoker import BaseAgentInvoker
from agent.cli_invoker import CliAgentInvoker
from config.config import Config
from models.generation import DataResult, DataSource, Plan, Widget, WidgetType, coerce_data_source
from orchestrator.data_acquisition import DataAcquisition, phase_for
from orchestrator.errors import PipelineStateError, SchemaValidationError
from orchestrator.internal_database import InternalDatabase
from orchestrator.pipeline_settings import PipelineSettings
from orchestrator.planner import Planner
from orchestrator.progress import AgentEventTranslator, ProgressEmitter, UpdateCallback
from orchestrator.rate_limiter import RateLimiter
from orchestrator.schema_validator import check_widget_data, validate_plan, validate_widget
from orchestrator.widget_generator import WidgetGenerator
from utils.logger import get_logger

logger = get_logger(__name__)


class PipelineState(str, Enum):
    PLANNING = "planning"
    DATA_ACQUISITION = "data-acquisition"
    WIDGET_GENERATION = "widget-generation"
    VALIDATING = "validating"
    COMPLETE = "complete"
    FAILED = "failed"


STATE_ORDER = [
    PipelineState.PLANNING,
    PipelineState.DATA_ACQUISITION,
    PipelineState.WIDGET_GENERATION,
    PipelineState.VALIDATING,
    PipelineState.COMPLETE,
]

# wording for the apology widget
STATE_DESCRIPTIONS = {
    None: "processing your request",
    PipelineState.PLANNING: "planning the response",
    PipelineState.DATA_ACQUISITION: "gathering data",
    PipelineState.WIDGET_GENERATION: "generating the widget",
    PipelineState.VALIDATING: "validating the widget",
}


class GenerationRun:
    """Mutable state of one pipeline attempt. Owned by a single request thread."""

    def __init__(self, user_message: str, data_mode: DataSource | None, model: str | None):
        self.user_message = user_message
        self.data_mode = data_mode
        self.model = model
        self.state: PipelineState | None = None
        self.failed_in: PipelineState | None = None
        self.plan: Plan | None = None
        self.data: DataResult | None = None
        self.widget: Widget | None = None

    def advance(self, new_state: PipelineState) -> None:
        if new_state == PipelineState.FAILED:
            if self.state in (PipelineState.COMPLETE, PipelineState.FAILED):
                raise PipelineStateError(f"Cannot fail a run that is already {self.state.value}")
            self.failed_in = self.state
            self.state = new_state
            return

        expected = STATE_ORDER[0] if self.state is None else None
        if self.state in STATE_ORDER[:-1]:
            expected = STATE_ORDER[STATE_ORDER.index(self.state) + 1]
        if new_state != expected:
            current = self.state.value if self.state else "start"
            raise PipelineStateError(f"Illegal transition {current} -> {new_state.value}")
        self.state = new_state

    def fail(self) -> None:
        if self.state not in (PipelineState.COMPLETE, PipelineState.FAILED):
            self.advance(PipelineState.FAILED)


@dataclass(frozen=True)
class RefreshResult:
    allowed: bool
    data: Any = None
    source: str | None = None
    confidence: str | None = None
    refreshed_at: str | None = None
    remaining_refreshes: int = 0
    reason: str | None = None
    limit: str | None = None  # "ip" | "session" | "widget" when rejected
    paused: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "source": self.source,
            "confidence": self.confidence,
            "refreshedAt": self.refreshed_at,
            "remainingRefreshes": self.remaining_refreshes,
        }


def fallback_widget(user_message: str, phase: str) -> Widget:
    return Widget(
        type=WidgetType.METRIC_CARD,
        data={
            "label": "Unable to complete request",
            "value": "⚠️",
            "description": (
                f"I encountered an issue while {phase}. "
                "Please try rephrasing your question or try again."
            ),
            "context": user_message,
        },
        config={"variant": "warning", "size": "md"},
    )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class WidgetOrchestrator:
    def __init__(
        self,
        invoker: BaseAgentInvoker | None = None,
        rate_limiter: RateLimiter | None = None,
        settings: PipelineSettings | None = None,
        config: Config | None = None,
        database: InternalDatabase | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config or Config()
        self._settings = settings or PipelineSettings.from_yaml(self._config.PIPELINE_SETTINGS_PATH)
        self._invoker = invoker or CliAgentInvoker.from_config(self._config)
        self.rate_limiter = rate_limiter or RateLimiter(self._settings.rate_limits)
        self._clock = clock

        policy = self._settings.retry
        self._planner = Planner(self._invoker, policy, sleep=sleep)
        self._data = DataAcquisition(
            self._invoker,
            policy,
            database=database,
            database_path=self._config.INTERNAL_DATABASE_PATH,
            sleep=sleep,
        )
        self._widgets = WidgetGenerator(self._invoker, policy, sleep=sleep)

        logger.info(
            "Widget orchestrator initialized",
            extra={
                "extra_fields": {
                    "invoker": type(self._invoker).__name__,
                    "max_retries": policy.max_retries,
                    "backoff_ms": policy.backoff_ms,
                }
            },
        )

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    # ---------- helpers ----------

    def _resolve_mode(self, data_mode: DataSource | str | None) -> DataSource | None:
        try:
            return coerce_data_source(data_mode)
        except ValueError:
            logger.warning(f"Ignoring unknown data mode: {data_mode!r}")
            return None

    def _validate(self, widget: Widget) -> Widget:
        result = validate_widget(widget.to_dict())
        if not result.valid:
            raise SchemaValidationError(result.errors)
        for warning in result.warnings:
            logger.warning(warning, extra={"extra_fields": {"phase": "validating"}})
        issues = check_widget_data(result.value)
        if issues:
            logger.warning(
                "Widget data looks incomplete",
                extra={"extra_fields": {"phase": "validating", "issues": issues}},
            )
        return result.value

    def _execute(self, run: GenerationRun, emitter: ProgressEmitter) -> dict[str, Any]:
        translator = AgentEventTranslator(
            self._settings.agent_events, emitter.agent_event, clock=self._clock
        )
        message = run.user_message

        run.advance(PipelineState.PLANNING)
        emitter.progress("planning")
        plan = self._planner.plan(message, model=run.model, on_event=translator.for_phase("planning"))
        if run.data_mode is not None and run.data_mode != plan.data_source:
            logger.info(
                "Data mode overrides planned source",
                extra={
                    "extra_fields": {
                        "planned": plan.data_source.value,
                        "data_mode": run.data_mode.value,
                    }
                },
            )
            plan = plan.with_data_source(run.data_mode)
        run.plan = plan
        emitter.plan(plan)

        run.advance(PipelineState.DATA_ACQUISITION)
        data_phase = phase_for(plan.data_source)
        emitter.progress(data_phase)
        data = self._data.acquire(
            plan, message, model=run.model, on_event=translator.for_phase(data_phase)
        )
        run.data = data
        emitter.data(data)

        run.advance(PipelineState.WIDGET_GENERATION)
        emitter.progress("generating")
        widget = self._widgets.generate(
            message, plan, data, model=run.model, on_event=translator.for_phase("generating")
        )

        run.advance(PipelineState.VALIDATING)
        emitter.progress("validating")
        run.widget = self._validate(widget)

        run.advance(PipelineState.COMPLETE)
        return {"widget": run.widget.to_dict(), "source": data.source}

    def _attempt(
        self, run: GenerationRun, emitter: ProgressEmitter, strategy: int
    ) -> dict[str, Any] | None:
        try:
            return self._execute(run, emitter)
        except Exception as e:
            run.fail()
            logger.error(
                f"Generation attempt failed: {e}",
                extra={
                    "extra_fields": {
                        "strategy": strategy,
                        "failed_in": run.failed_in.value if run.failed_in else None,
                        "data_mode": run.data_mode.value if run.data_mode else None,
                        "error_type": type(e).__name__,
                    }
                },
                exc_info=True,
            )
            return None

    def _run_with_fallback(
        self,
        user_message: str,
        emitter: ProgressEmitter,
        model: str | None,
        mode: DataSource | None,
    ) -> dict[str, Any]:
        run = GenerationRun(user_message, mode, model)
        response = self._attempt(run, emitter, strategy=1)
        if response is not None:
            return response

        if mode != DataSource.SYNTHETIC_EXAMPLE:
            logger.info("Retrying with synthetic example data")
            emitter.fallback()
            run = GenerationRun(user_message, DataSource.SYNTHETIC_EXAMPLE, model)
            response = self._attempt(run, emitter, strategy=2)
            if response is not None:
                return response

        return self.fallback_response(user_message, run.failed_in)

    # ---------- public API ----------

    @staticmethod
    def fallback_response(user_message: str, failed_in: PipelineState | None = None) -> dict[str, Any]:
        phase = STATE_DESCRIPTIONS.get(failed_in, STATE_DESCRIPTIONS[None])
        return {"widget": fallback_widget(user_message, phase).to_dict(), "source": None}

    def run(
        self,
        user_message: str,
        on_update: UpdateCallback,
        model: str | None = None,
        data_mode: DataSource | str | None = None,
    ) -> None:
        """
        Generate a widget for ``user_message``, streaming events to ``on_update``.

        Blocks until done. Never raises; the last event is always ``complete``.
        """
        started = time.monotonic()
        emitter = ProgressEmitter(on_update, self._settings)
        mode = self._resolve_mode(data_mode)
        logger.info(
            "Generation started",
            extra={
                "extra_fields": {
                    "message_chars": len(user_message),
                    "model": model,
                    "data_mode": mode.value if mode else None,
                }
            },
        )

        try:
            response = self._run_with_fallback(user_message, emitter, model, mode)
        except Exception:
            logger.exception("run() failed")
            response = self.fallback_response(user_message)

        emitter.complete(response)
        logger.info(
            "Generation finished",
            extra={
                "extra_fields": {
                    "duration_ms": int((time.monotonic() - started) * 1000),
                    "widget_type": response.get("widget", {}).get("type"),
                }
            },
        )

    def generate(
        self,
        user_message: str,
        model: str | None = None,
        data_mode: DataSource | str | None = None,
    ) -> dict[str, Any]:
        """Blocking variant of run() that returns only the terminal response."""
        responses: list[dict[str, Any]] = []

        def collect(event: dict[str, Any]) -> None:
            if event.get("type") == "complete":
                responses.append(event["response"])

        self.run(user_message, collect, model=model, data_mode=data_mode)
        return responses[0]

    def refresh_data(
        self,
        plan: Plan | dict[str, Any],
        query: str,
        data_mode: DataSource | str | None,
        widget_id: str,
        *,
        client_ip: str | None = None,
        session_id: str | None = None,
        model: str | None = None,
    ) -> RefreshResult:
        """
        Re-run only the data phase for an existing live widget.

        Rate limits are checked first; a rejection comes back as a value with
        ``allowed=False`` and never touches the agent.

        Raises:
            SchemaValidationError: ``plan`` is not a valid plan payload
        """
        if not isinstance(plan, Plan):
            validation = validate_plan(plan)
            if not validation.valid:
                raise SchemaValidationError(validation.errors)
            plan = validation.value

        limiter = self.rate_limiter
        if client_ip and not limiter.check_ip_limit(client_ip):
            return RefreshResult(
                allowed=False,
                reason=(
                    "Too many refresh requests from this IP. "
                    f"Limit: {limiter.settings.ip_max_requests} per hour."
                ),
                limit="ip",
                remaining_refreshes=limiter.remaining_refreshes(widget_id),
            )
        if session_id and not limiter.check_session_limit(session_id):
            return RefreshResult(
                allowed=False,
                reason=f"Session refresh limit reached ({limiter.settings.session_max_requests} refreshes)",
                limit="session",
                remaining_refreshes=limiter.remaining_refreshes(widget_id),
            )
        decision = limiter.check_widget_limit(widget_id)
        if not decision.allowed:
            return RefreshResult(
                allowed=False,
                reason=decision.reason,
                limit="widget",
                paused=True,
                remaining_refreshes=limiter.remaining_refreshes(widget_id),
            )

        mode = self._resolve_mode(data_mode)
        if mode is not None:
            plan = plan.with_data_source(mode)

        data = self._data.acquire(plan, query, model=model)
        result = RefreshResult(
            allowed=True,
            data=data.data,
            source=data.source,
            confidence=data.confidence.value,
            refreshed_at=_utc_now_iso(),
            remaining_refreshes=limiter.remaining_refreshes(widget_id),
        )
        logger.info(
            "Widget data refreshed",
            extra={
                "extra_fields": {
                    "widget_id": widget_id,
                    "data_source": plan.data_source.value,
                    "remaining_refreshes": result.remaining_refreshes,
                }
            },
        )
        return result
