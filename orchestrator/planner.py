"""Planning phase: asks the agent which widget answers the question and where its data comes from."""

import time
from typing import Callable, Optional

from agent.base_invoker import BaseAgentInvoker, EventCallback
from models.generation import DataSource, DataStructure, Plan, WidgetType
from orchestrator.errors import PhaseFailedError
from orchestrator.prompts import PLANNER_PROMPT, build_planner_prompt
from orchestrator.retry_controller import RetryPolicy, retry_with_feedback
from orchestrator.schema_validator import validate_plan
from utils.logger import get_logger

logger = get_logger(__name__)

FALLBACK_REASONING = "Fallback plan due to planning failure"


def fallback_plan(user_message: str) -> Plan:
    """Plan used when the planner never returns a valid answer."""
    return Plan(
        widget_type=WidgetType.METRIC_CARD,
        data_source=DataSource.SYNTHETIC_EXAMPLE,
        data_structure=DataStructure.SINGLE_VALUE,
        key_entities=[user_message],
        search_query=None,
        query_intent=None,
        reasoning=FALLBACK_REASONING,
    )


class Planner:
    """Asks the agent which widget to build and where its data comes from."""

    def __init__(
        self,
        invoker: BaseAgentInvoker,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._invoker = invoker
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    def plan(
        self,
        user_message: str,
        *,
        model: Optional[str] = None,
        on_event: Optional[EventCallback] = None,
    ) -> Plan:
        prompt = build_planner_prompt(user_message)

        def invoke(feedback: str):
            return self._invoker.invoke(
                prompt + feedback, system_prompt=PLANNER_PROMPT, model=model, on_event=on_event
            )

        try:
            plan = retry_with_feedback(
                invoke, validate_plan, phase="planning", policy=self._policy, sleep=self._sleep
            )
        except PhaseFailedError as e:
            logger.warning(
                f"Planning failed, using fallback plan: {e.last_error}",
                extra={"extra_fields": {"phase": "planning", "attempts": e.attempts}},
            )
            return fallback_plan(user_message)

        logger.info(
            "Plan ready",
            extra={
                "extra_fields": {
                    "phase": "planning",
                    "widget_type": plan.widget_type.value,
                    "data_source": plan.data_source.value,
                    "data_structure": plan.data_structure.value,
                }
            },
        )
        return plan
