"""
Retry-with-feedback loop shared by every phase.

One attempt = invoke the agent, pull JSON out of its text, validate the shape.
Any of the three failing costs one attempt; the next attempt gets the failure
reason appended to its prompt so the agent can correct itself.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from models.agent_result import AgentResult
from orchestrator.errors import AgentInvocationError, PhaseFailedError, PipelineError, SchemaValidationError
from orchestrator.schema_validator import ValidationResult
from utils.json_extractor import JSONExtractionError, extract_json_with_repair
from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FEEDBACK_TEMPLATE = (
    "\n\nPREVIOUS ATTEMPT FAILED: {reason}\nPlease fix these issues and return valid JSON."
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    backoff_ms: int = 500

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def build_feedback(error: Exception | None) -> str:
    if error is None:
        return ""
    return FEEDBACK_TEMPLATE.format(reason=str(error))


def _attempt(
    invoke: Callable[[str], AgentResult],
    validate: Callable[[Any], ValidationResult[T]],
    feedback: str,
    phase: str,
) -> T:
    try:
        result = invoke(feedback)
    except PipelineError:
        raise
    except Exception as e:
        raise AgentInvocationError(f"Agent invocation raised {type(e).__name__}: {e}") from e
    if not result.success:
        raise AgentInvocationError(result.error or "Agent invocation failed", timed_out=result.timed_out)

    payload = extract_json_with_repair(result.text)

    validation = validate(payload)
    if not validation.valid:
        raise SchemaValidationError(validation.errors)
    for warning in validation.warnings:
        logger.warning(warning, extra={"extra_fields": {"phase": phase}})
    return validation.value


def retry_with_feedback(
    invoke: Callable[[str], AgentResult],
    validate: Callable[[Any], ValidationResult[T]],
    *,
    phase: str,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``invoke`` until its output validates or the attempts run out.

    Args:
        invoke: Called with the feedback suffix ("" on the first attempt)
        validate: One of the schema validators
        phase: Phase name, used for logs and the raised error
        policy: Attempt count and backoff
        sleep: Injected for tests

    Raises:
        PhaseFailedError: every attempt failed; carries the last error
    """
    policy = policy or RetryPolicy()
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            value = _attempt(invoke, validate, build_feedback(last_error), phase)
            if attempt > 1:
                logger.info(
                    "Phase succeeded after retry",
                    extra={"extra_fields": {"phase": phase, "attempt": attempt}},
                )
            return value
        except (PipelineError, JSONExtractionError) as e:
            last_error = e
            logger.warning(
                f"{phase} attempt {attempt}/{policy.max_attempts} failed: {e}",
                extra={
                    "extra_fields": {
                        "phase": phase,
                        "attempt": attempt,
                        "error_type": type(e).__name__,
                    }
                },
            )
            if attempt < policy.max_attempts:
                sleep(policy.backoff_ms / 1000)

    raise PhaseFailedError(phase, policy.max_attempts, last_error)
