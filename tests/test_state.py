"""Job state machine: forward-only transitions and terminal sinks."""

import pytest

from contentfactory.orchestrator.errors import InvalidTransitionError
from contentfactory.orchestrator.state import (
    JobState,
    TERMINAL_STATES,
    can_transition,
    check_transition,
    is_terminal,
)


def test_terminal_states():
    assert TERMINAL_STATES == {JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}
    assert is_terminal("completed")
    assert not is_terminal(JobState.RUNNING)
    assert not is_terminal("pending")


@pytest.mark.parametrize("target", ["running", "failed", "cancelled"])
def test_pending_moves_forward(target):
    assert can_transition("pending", target)


def test_pending_cannot_complete_without_running():
    assert not can_transition(JobState.PENDING, JobState.COMPLETED)


def test_running_progress_update_is_allowed():
    assert check_transition("running", "running") is JobState.RUNNING


@pytest.mark.parametrize("terminal", ["completed", "failed", "cancelled"])
@pytest.mark.parametrize("target", ["pending", "running", "completed", "failed", "cancelled"])
def test_terminal_states_are_sinks(terminal, target):
    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition(terminal, target)
    assert exc_info.value.current == terminal
    assert exc_info.value.target == target


def test_running_cannot_go_back_to_pending():
    assert not can_transition("running", "pending")
