"""
Job orchestration: registry of running ffmpeg processes and their lifecycle.

Job lifecycle: RUNNING → COMPLETED | FAILED | STOPPED
Terminal states are final; only RUNNING jobs live in the registry.
"""

from .errors import (
    JobError,
    DuplicateJobError,
    InvalidStateTransitionError,
    SpawnError,
)
from .models import (
    JobKind,
    JobState,
    Job,
)
from .state import (
    TERMINAL_JOB_STATES,
    can_transition_job,
    is_job_terminal,
)
from .registry import JobRegistry
from .runner import JobRunner, StopResult

__all__ = [
    # Errors
    "JobError",
    "DuplicateJobError",
    "InvalidStateTransitionError",
    "SpawnError",
    # Models
    "JobKind",
    "JobState",
    "Job",
    # State validation
    "TERMINAL_JOB_STATES",
    "can_transition_job",
    "is_job_terminal",
    # Registry
    "JobRegistry",
    # Runner
    "JobRunner",
    "StopResult",
]
