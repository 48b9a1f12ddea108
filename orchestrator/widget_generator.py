"""Widget phase: turns the plan and the acquired data into a validated widget tree."""

import time
from typing import Callable, Optional

from agent.base_invoker import BaseAgentInvoker, EventCallback
from models.generation import DataResult, Plan, Widget
from orchestrator.prompts import WIDGET_GENERATION_PROMPT, build_widget_prompt
from orchestrator.retry_controller import RetryPolicy, retry_with_feedback
from orchestrator.schema_validator import validate_widget
from utils.logger import get_logger

logger = get_logger(__name__)


class WidgetGenerator:
    """
    Final agent phase: turns plan + data into a widget tree.

    Unlike planning and data acquisition there is nothing sensible to fall back
    to here, so PhaseFailedError propagates to the orchestrator.
    """

    def __init__(
        self,
        invoker: BaseAgentInvoker,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._invoker = invoker
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    def generate(
        self,
        user_message: str,
        plan: Plan,
        data: DataResult,
        *,
        model: Optional[str] = None,
        on_event: Optional[EventCallback] = None,
    ) -> Widget:
        prompt = build_widget_prompt(user_message, plan, data)

        def invoke(feedback: str):
            return self._invoker.invoke(
                prompt + feedback, system_prompt=WIDGET_GENERATION_PROMPT, model=model, on_event=on_event
            )

        widget = retry_with_feedback(
            invoke, validate_widget, phase="widget-generation", policy=self._policy, sleep=self._sleep
        )
        logger.info(
            "Widget generated",
            extra={
                "extra_fields": {
                    "phase": "widget-generation",
                    "widget_type": widget.type.value,
                    "children": len(widget.children),
                    "live": widget.is_live,
                }
            },
        )
        return widget
