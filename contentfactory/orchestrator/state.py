"""State machine constants and transition logic for the job orchestrator.

Jobs move forward only: pending -> running -> {completed | failed | cancelled}.
The three terminal states are sinks.
"""

from enum import Enum
from typing import Dict, FrozenSet

from contentfactory.orchestrator.errors import InvalidTransitionError


class JobState(str, Enum):
    """Lifecycle states of a job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Job states and their meaning
JOB_STATES = {
    JobState.PENDING: "Job record created, background task not yet started",
    JobState.RUNNING: "Stages are executing",
    JobState.COMPLETED: "Final stage returned successfully",
    JobState.FAILED: "Job aborted by a stage error or an unexpected error",
    JobState.CANCELLED: "Cancellation observed at a stage boundary",
}

TERMINAL_STATES: FrozenSet[JobState] = frozenset(
    {JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}
)

# Allowed transitions; running -> running is a progress update.
# pending -> failed|cancelled only applies to jobs whose task never started.
TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.PENDING: frozenset(
        {JobState.RUNNING, JobState.FAILED, JobState.CANCELLED}
    ),
    JobState.RUNNING: frozenset(
        {JobState.RUNNING, JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}
    ),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


def is_terminal(state: str | JobState) -> bool:
    """Check if a job state is terminal.

    Args:
        state: JobState or its string value

    Returns:
        True for completed, failed and cancelled
    """
    return JobState(state) in TERMINAL_STATES


def can_transition(current: str | JobState, target: str | JobState) -> bool:
    """Check whether a job may move from current to target state."""
    return JobState(target) in TRANSITIONS[JobState(current)]


def check_transition(current: str | JobState, target: str | JobState) -> JobState:
    """Validate a transition and return the target state.

    Raises:
        InvalidTransitionError: If the transition is not allowed by the
            state machine (including any move out of a terminal state).

    Examples:
        >>> check_transition("pending", "running")
        <JobState.RUNNING: 'running'>
        >>> check_transition("completed", "running")
        Traceback (most recent call last):
        ...
        contentfactory.orchestrator.errors.InvalidTransitionError: Invalid job transition: completed -> running
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(JobState(current).value, JobState(target).value)
    return JobState(target)
