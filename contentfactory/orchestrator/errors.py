"""Exception hierarchy for job orchestration.

Stage errors are handled per pipeline error policy. Persistence errors always
fail the enclosing job. JobCancelled is control flow, never an error message.
"""

from typing import Optional


class ContentFactoryError(Exception):
    """Base class for all orchestration errors."""


class StageError(ContentFactoryError):
    """A single stage's external call failed or returned an invalid result.

    Attributes:
        message: Human-readable description, surfaced as the job's
            error_message when the job aborts.
        retryable: Whether a retry could plausibly succeed. No stage is
            retried automatically by the orchestrator.
        abort_job: True forces the job to fail, False forces the pipeline
            to continue, None defers to the pipeline's error policy.
        stage: Name of the stage that raised, filled in by the runner.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        abort_job: Optional[bool] = None,
        stage: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.abort_job = abort_job
        self.stage = stage

    def __str__(self) -> str:
        return self.message


class GenerationTimeoutError(StageError):
    """External generation polling exhausted its attempt budget."""

    def __init__(self, operation: str, attempts: int, interval: float) -> None:
        super().__init__(
            f"Generation did not complete after {attempts} polls "
            f"({attempts * interval:.0f}s): {operation}",
            retryable=True,
        )
        self.operation = operation
        self.attempts = attempts


class PersistenceError(ContentFactoryError):
    """The job or entity store could not durably record state."""


class JobCancelled(ContentFactoryError):
    """Raised by a collaborator that observed a cancellation request."""


class InvalidTransitionError(ContentFactoryError):
    """A job state change not allowed by the state machine."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid job transition: {current} -> {target}")
        self.current = current
        self.target = target


class JobNotFoundError(ContentFactoryError):
    """No job exists with the requested id."""

    def __init__(self, job_id) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class PromptGenerationError(ContentFactoryError):
    """The video prompter could not get a usable prompt from the model."""
