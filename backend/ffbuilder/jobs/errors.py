"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Errors are explicit and provide actionable messages.
"""


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class DuplicateJobError(JobError):
    """Raised when a job id is registered twice."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job with ID '{job_id}' already exists")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""

    def __init__(self, job_id: str, current_state: str, target_state: str):
        self.job_id = job_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid job state transition for {job_id}: "
            f"{current_state} -> {target_state}"
        )


class SpawnError(JobError):
    """
    Raised when the external tool cannot be launched.

    The executable is missing, not executable, or the OS refused to
    create the process. The job is never registered.
    """

    def __init__(self, job_id: str, program: str, reason: str):
        self.job_id = job_id
        self.program = program
        self.reason = reason
        super().__init__(f"Failed to spawn '{program}' for job {job_id}: {reason}")
