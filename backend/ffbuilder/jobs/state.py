"""
State transition validation for jobs.

Job lifecycle: RUNNING → COMPLETED | FAILED | STOPPED

INVARIANT: Terminal job states (COMPLETED, FAILED, STOPPED) are immutable.
Once a job enters a terminal state, no state transition is allowed.
A job never re-enters RUNNING.
"""

from typing import FrozenSet, Set, Tuple
from .models import JobState
from .errors import InvalidStateTransitionError


TERMINAL_JOB_STATES: FrozenSet[JobState] = frozenset({
    JobState.COMPLETED,
    JobState.FAILED,
    JobState.STOPPED,
})


def is_job_terminal(state: JobState) -> bool:
    """
    Check if a job state is terminal (immutable).

    Args:
        state: The job state to check

    Returns:
        True if the state is terminal, False otherwise
    """
    return state in TERMINAL_JOB_STATES


# RUNNING is the only initial state; it is entered at successful spawn.
_JOB_TRANSITIONS: Set[Tuple[JobState, JobState]] = {
    # Natural exit
    (JobState.RUNNING, JobState.COMPLETED),
    (JobState.RUNNING, JobState.FAILED),

    # Explicit stop()
    (JobState.RUNNING, JobState.STOPPED),
}


def can_transition_job(from_state: JobState, to_state: JobState) -> bool:
    """
    Check if a job state transition is legal.

    Args:
        from_state: Current job state
        to_state: Target job state

    Returns:
        True if the transition is allowed, False otherwise
    """
    if is_job_terminal(from_state):
        return False

    return (from_state, to_state) in _JOB_TRANSITIONS


def validate_job_transition(job_id: str, from_state: JobState, to_state: JobState) -> None:
    """
    Validate a job state transition, raising an exception if illegal.

    Args:
        job_id: Job the transition applies to (for the error message)
        from_state: Current job state
        to_state: Target job state

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_job(from_state, to_state):
        raise InvalidStateTransitionError(job_id, from_state.value, to_state.value)
