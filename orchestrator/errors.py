"""Exceptions raised inside the generation pipeline."""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class AgentInvocationError(PipelineError):
    """The agent process could not be started, timed out, or reported failure."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class SchemaValidationError(PipelineError):
    """Parsed JSON did not match the expected shape."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Validation failed")


class PhaseFailedError(PipelineError):
    """A phase exhausted its retries."""

    def __init__(self, phase: str, attempts: int, last_error: Exception | None):
        self.phase = phase
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{phase} failed after {attempts} attempts: {last_error}")


class PipelineStateError(PipelineError):
    """Illegal state transition. Indicates a programming error, never retried."""
