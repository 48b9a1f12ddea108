import json
from typing import Any, Callable

import pytest
from dotenv import load_dotenv

from agent.base_invoker import BaseAgentInvoker
from config.config import Config
from models.agent_result import AgentEvent, AgentResult
from orchestrator.core import WidgetOrchestrator
from orchestrator.pipeline_settings import PipelineSettings

# Load environment variables from .env file for tests
load_dotenv()


class ScriptedInvoker(BaseAgentInvoker):
    """
    In-memory stand-in for the agent CLI.

    ``handler(prompt, system_prompt)`` returns either the agent's text or a
    complete AgentResult (for failures).
    """

    def __init__(self, handler: Callable[[str, str | None], Any]):
        super().__init__(default_model="test-model")
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    def invoke(self, prompt, *, system_prompt=None, model=None, force=True, on_event=None):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "model": model})
        outcome = self.handler(prompt, system_prompt)
        if isinstance(outcome, AgentResult):
            return outcome
        if isinstance(outcome, (dict, list)):
            outcome = json.dumps(outcome)
        if on_event:
            on_event(AgentEvent(type="assistant", text=outcome))
        return AgentResult(success=True, text=outcome)

    def calls_with(self, system_prompt: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["system_prompt"] == system_prompt]


@pytest.fixture(scope="session")
def settings():
    return PipelineSettings.from_yaml()


@pytest.fixture
def make_orchestrator(settings):
    """Build a WidgetOrchestrator around a scripted agent; no real sleeping."""

    def factory(handler, **kwargs):
        invoker = ScriptedInvoker(handler)
        orchestrator = WidgetOrchestrator(
            invoker=invoker,
            settings=kwargs.pop("settings", settings),
            config=Config(),
            sleep=lambda seconds: None,
            **kwargs,
        )
        return orchestrator, invoker

    return factory


@pytest.fixture
def failing_result():
    return AgentResult(success=False, text="", error="agent unavailable")
