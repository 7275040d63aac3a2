"""
In-memory job registry.

The registry provides:
- Job storage and retrieval by ID
- Listing running job IDs in registration order
- Idempotent removal (stop() and the exit handler may race)

The registry holds only RUNNING jobs. Terminal outcomes are reported
through events, not kept here. All mutations are serialized by a single
lock; cardinality is low, so per-entry locking is not needed.
"""

import threading
from typing import Dict, List, Optional
from .models import Job
from .errors import DuplicateJobError


class JobRegistry:
    """
    Thread-safe registry of live jobs.

    Maps job_id -> Job. At most one live handle exists per job id.
    """

    def __init__(self):
        # job_id -> Job (dict preserves registration order)
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def add(self, job: Job) -> None:
        """
        Register a freshly spawned job.

        Args:
            job: The job to add

        Raises:
            DuplicateJobError: If a job with the same ID is already registered
        """
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateJobError(job.id)
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        """
        Retrieve a job by ID.

        Args:
            job_id: The job ID

        Returns:
            The job if registered, None otherwise
        """
        with self._lock:
            return self._jobs.get(job_id)

    def remove(self, job_id: str) -> Optional[Job]:
        """
        Remove a job from the registry.

        Removal is idempotent: removing an unknown or already removed
        job is a no-op that returns None.

        Args:
            job_id: The job ID to remove

        Returns:
            The removed job, or None if it was not registered
        """
        with self._lock:
            return self._jobs.pop(job_id, None)

    def list_ids(self) -> List[str]:
        """Return registered job IDs, oldest first."""
        with self._lock:
            return list(self._jobs.keys())

    def list_jobs(self) -> List[Job]:
        """Return registered jobs, oldest first."""
        with self._lock:
            return list(self._jobs.values())

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def count(self) -> int:
        """
        Get the number of running jobs.

        Returns:
            Number of registered jobs
        """
        with self._lock:
            return len(self._jobs)
