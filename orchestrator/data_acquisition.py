"""Data phase: fetches or fabricates the numbers the widget will show."""

import time
from typing import Callable, Optional

from agent.base_invoker import BaseAgentInvoker, EventCallback
from models.generation import DataResult, DataSource, Plan
from orchestrator.errors import PhaseFailedError
from orchestrator.internal_database import InternalDatabase
from orchestrator.prompts import (
    INTERNAL_DATABASE_PROMPT,
    build_internal_database_prompt,
    build_synthetic_prompt,
    build_web_search_prompt,
    synthetic_system_prompt,
    web_search_system_prompt,
)
from orchestrator.retry_controller import RetryPolicy, retry_with_feedback
from orchestrator.schema_validator import validate_data
from utils.logger import get_logger

logger = get_logger(__name__)

# progress step / agent event phase per data source
SOURCE_PHASES = {
    DataSource.INTERNAL_DATABASE: "querying",
    DataSource.WEB_SEARCH: "searching",
    DataSource.SYNTHETIC_EXAMPLE: "preparing",
}


def phase_for(source: DataSource) -> str:
    return SOURCE_PHASES[source]


class DataAcquisition:
    def __init__(
        self,
        invoker: BaseAgentInvoker,
        policy: RetryPolicy | None = None,
        database: InternalDatabase | None = None,
        database_path: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._invoker = invoker
        self._policy = policy or RetryPolicy()
        self._database = database
        self._database_path = database_path
        self._sleep = sleep

    @property
    def database(self) -> InternalDatabase:
        if self._database is None:
            self._database = InternalDatabase.from_json(self._database_path)
            logger.info(
                "Internal database loaded",
                extra={"extra_fields": {"tables": self._database.stats()}},
            )
        return self._database

    def _prompts(self, plan: Plan, user_message: str) -> tuple[str, str]:
        if plan.data_source == DataSource.INTERNAL_DATABASE:
            snapshot = self.database.snapshot()
            return INTERNAL_DATABASE_PROMPT, build_internal_database_prompt(plan, user_message, snapshot)
        if plan.data_source == DataSource.WEB_SEARCH:
            return web_search_system_prompt(plan), build_web_search_prompt(plan, user_message)
        return synthetic_system_prompt(plan), build_synthetic_prompt(plan, user_message)

    def acquire(
        self,
        plan: Plan,
        user_message: str,
        *,
        model: Optional[str] = None,
        on_event: Optional[EventCallback] = None,
    ) -> DataResult:
        """
        Get data for ``plan.data_source``.

        Never raises for agent trouble: when every attempt fails the empty,
        low-confidence result is returned and widget generation carries on.
        """
        try:
            system_prompt, prompt = self._prompts(plan, user_message)
        except ValueError as e:
            logger.error(
                f"Internal database unavailable: {e}",
                extra={"extra_fields": {"phase": "data-acquisition"}},
            )
            return DataResult.empty()

        def invoke(feedback: str):
            return self._invoker.invoke(
                prompt + feedback, system_prompt=system_prompt, model=model, on_event=on_event
            )

        try:
            result = retry_with_feedback(
                invoke, validate_data, phase="data-acquisition", policy=self._policy, sleep=self._sleep
            )
        except PhaseFailedError as e:
            logger.warning(
                f"Data acquisition failed, continuing with empty data: {e.last_error}",
                extra={
                    "extra_fields": {
                        "phase": "data-acquisition",
                        "data_source": plan.data_source.value,
                        "attempts": e.attempts,
                    }
                },
            )
            return DataResult.empty()

        if plan.data_source == DataSource.INTERNAL_DATABASE:
            result = DataResult(
                data=result.data,
                source=DataSource.INTERNAL_DATABASE.value,
                confidence=result.confidence,
            )

        logger.info(
            "Data ready",
            extra={
                "extra_fields": {
                    "phase": "data-acquisition",
                    "data_source": plan.data_source.value,
                    "source": result.source,
                    "confidence": result.confidence.value,
                    "fields": result.field_count,
                }
            },
        )
        return result
