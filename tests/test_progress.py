import random

import pytest

from models.agent_result import AgentEvent
from models.generation import Confidence, DataResult, DataSource, DataStructure, Plan, WidgetType
from orchestrator.pipeline_settings import PipelineSettings, ProgressStep
from orchestrator.progress import AgentEventTranslator, ProgressEmitter


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestPipelineSettings:
    def test_bundled_settings_load(self, settings):
        assert settings.retry.max_attempts == 3
        assert settings.retry.backoff_ms == 500
        assert settings.rate_limits.ip_max_requests == 100
        assert settings.rate_limits.widget_min_spacing_seconds == 5
        assert settings.step("planning") == ProgressStep(
            phase="planning", message="Thinking", progress=10, subtext="Determining widget type"
        )
        assert settings.step("querying").progress == 40
        assert settings.fallback_step.phase == "preparing"
        assert settings.agent_events.tools["WebSearch"] == "Searching the internet..."

    def test_missing_progress_step_is_rejected(self):
        with pytest.raises(ValueError):
            PipelineSettings.from_dict({"progress": {"planning": {"message": "x", "progress": 1}}})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError):
            PipelineSettings.from_yaml(str(tmp_path / "missing.yaml"))

    def test_unknown_phase_uses_planning_messages(self, settings):
        catalog = settings.agent_events
        assert catalog.messages("mystery", "init") == catalog.messages("planning", "init")


class TestProgressEmitter:
    def test_event_shapes(self, settings):
        events = []
        emitter = ProgressEmitter(events.append, settings)
        plan = Plan(
            widget_type=WidgetType.CHART,
            data_source=DataSource.INTERNAL_DATABASE,
            data_structure=DataStructure.TIMESERIES,
            key_entities=["MRR"],
        )

        emitter.progress("planning")
        emitter.plan(plan)
        emitter.data(DataResult(data={"v": 1}, source="internal-database", confidence=Confidence.HIGH))
        emitter.fallback()
        emitter.agent_event("planning", "Analyzing your question...")

        assert events[0] == {
            "type": "progress",
            "phase": "planning",
            "message": "Thinking",
            "progress": 10,
            "subtext": "Determining widget type",
        }
        assert events[1] == {"type": "plan", "plan": plan.to_dict()}
        assert events[2]["dataResult"] == {"data": {"v": 1}, "source": "internal-database", "confidence": "high"}
        assert events[3] == {
            "type": "progress",
            "phase": "preparing",
            "message": "Trying alternative approach",
            "progress": 15,
        }
        assert events[4]["type"] == "agent_event"
        assert isinstance(events[4]["timestamp"], int)

    def test_single_completion_and_nothing_after(self, settings):
        events = []
        emitter = ProgressEmitter(events.append, settings)
        assert emitter.complete({"widget": None})
        assert not emitter.complete({"widget": "again"})
        emitter.progress("validating")
        assert events == [{"type": "complete", "response": {"widget": None}}]
        assert emitter.completed

    def test_callback_failure_is_contained(self, settings):
        def broken(event):
            raise RuntimeError("socket closed")

        emitter = ProgressEmitter(broken, settings)
        emitter.progress("planning")
        assert emitter.complete({})


class TestAgentEventTranslator:
    def make(self, settings):
        sent = []
        clock = FakeClock()
        translator = AgentEventTranslator(
            settings.agent_events,
            lambda phase, message: sent.append((phase, message)),
            clock=clock,
            rng=random.Random(0),
        )
        return translator, sent, clock

    def test_thinking_deltas_rotate_every_fifteen(self, settings):
        translator, _, _ = self.make(settings)
        thinking = settings.agent_events.messages("querying", "thinking")
        delta = AgentEvent(type="thinking", subtype="delta")
        messages = [translator.translate("querying", delta) for _ in range(30)]
        assert messages[0] == thinking[0]
        assert messages[13] == thinking[0]
        assert messages[14] == thinking[1]
        assert messages[29] == thinking[2]

    def test_thinking_completed_resets_counter(self, settings):
        translator, _, _ = self.make(settings)
        thinking = settings.agent_events.messages("planning", "thinking")
        delta = AgentEvent(type="thinking", subtype="delta")
        for _ in range(20):
            translator.translate("planning", delta)
        done = translator.translate("planning", AgentEvent(type="thinking", subtype="completed"))
        assert done in settings.agent_events.messages("planning", "complete")
        assert translator.translate("planning", delta) == thinking[0]

    def test_tool_calls_map_to_fixed_messages(self, settings):
        translator, _, _ = self.make(settings)
        event = AgentEvent(type="tool_call", subtype="started", tool_name="WebSearch")
        assert translator.translate("searching", event) == "Searching the internet..."
        other = AgentEvent(type="tool_call", subtype="started", tool_name="shellToolCall")
        assert translator.translate("searching", other) in settings.agent_events.messages(
            "searching", "thinking"
        )

    def test_system_init(self, settings):
        translator, _, _ = self.make(settings)
        message = translator.translate("generating", AgentEvent(type="system", subtype="init"))
        assert message in settings.agent_events.messages("generating", "init")

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Looking up the latest MRR snapshot\nmore", "Looking up the latest MRR snapshot"),
            ("short", None),
            ('{"widgetType": "chart", "dataSource": "internal-database"}', None),
            ("```json", None),
            ("x" * 150, None),
        ],
    )
    def test_assistant_text(self, settings, text, expected):
        translator, _, _ = self.make(settings)
        assert translator.translate("planning", AgentEvent(type="assistant", text=text)) == expected

    def test_result_success(self, settings):
        translator, _, _ = self.make(settings)
        message = translator.translate("validating", AgentEvent(type="result", subtype="success"))
        assert message in settings.agent_events.messages("validating", "complete")

    def test_throttled_per_phase(self, settings):
        translator, sent, clock = self.make(settings)
        init = AgentEvent(type="system", subtype="init")

        translator.handle("planning", init)
        clock.now = 1.0
        translator.handle("planning", init)
        translator.handle("querying", init)
        clock.now = 2.5
        translator.handle("planning", init)

        assert [phase for phase, _ in sent] == ["planning", "querying", "planning"]

    def test_untranslatable_events_do_not_consume_throttle(self, settings):
        translator, sent, clock = self.make(settings)
        translator.handle("planning", AgentEvent(type="user"))
        translator.handle("planning", AgentEvent(type="system", subtype="init"))
        assert len(sent) == 1
