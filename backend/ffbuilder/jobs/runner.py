"""
Job runner: subprocess lifecycle for conversions.

Design rules:
- One subprocess per job, spawned synchronously by start()
- start() returns the job id without waiting for the process
- stdout + stderr chunks are forwarded as PROGRESS events as they arrive
- Exit code 0 = COMPLETED, non-zero = FAILED, explicit stop() = STOPPED
- Exactly one terminal event per job, always the last event for that id
- SIGTERM on stop(), escalated to SIGKILL after a grace period
- No retries, no timeouts on the process itself
"""

import codecs
import logging
import subprocess
import threading
import uuid
from enum import Enum
from typing import IO, Any, Dict, List, Mapping, Optional, Union, TYPE_CHECKING

from ..monitoring.events import JobEvent
from .errors import SpawnError
from .models import Job, JobKind, JobState
from .state import validate_job_transition

if TYPE_CHECKING:
    from ..execution.commands import CommandBuilder
    from ..monitoring.broadcaster import EventBroadcaster
    from .registry import JobRegistry

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class StopResult(str, Enum):
    """Outcome of a stop request. NOT_FOUND is a normal result, not an error."""

    STOPPED = "stopped"
    NOT_FOUND = "not_found"


class JobRunner:
    """
    Starts, observes and stops ffmpeg jobs.

    Each running job owns two reader threads (stdout, stderr) and one
    supervisor thread that reaps the process and publishes the terminal
    event. Control operations only touch the registry and never wait on
    process I/O.
    """

    def __init__(
        self,
        registry: "JobRegistry",
        broadcaster: "EventBroadcaster",
        command_builder: "CommandBuilder",
        stop_grace_seconds: float = 5.0,
        diagnostics_limit: int = 65536,
    ):
        """
        Initialize runner.

        Args:
            registry: Registry of running jobs (shared)
            broadcaster: Event broadcaster (shared)
            command_builder: Builds invocations from request parameters
            stop_grace_seconds: Delay between SIGTERM and SIGKILL on stop
            diagnostics_limit: Max characters of stderr kept per job
        """
        self._registry = registry
        self._broadcaster = broadcaster
        self._builder = command_builder
        self._stop_grace_seconds = stop_grace_seconds
        self._diagnostics_limit = diagnostics_limit
        self._kill_timers: Dict[str, threading.Timer] = {}
        self._timers_lock = threading.Lock()

    # =========================================================================
    # CONTROL OPERATIONS
    # =========================================================================

    def start(self, kind: Union[JobKind, str], params: Mapping[str, Any]) -> str:
        """
        Validate, build and spawn a conversion.

        Args:
            kind: Job kind
            params: Raw request parameters

        Returns:
            The new job id

        Raises:
            ValidationError: If params are invalid (nothing was created)
            OutputDirectoryError: If the output directory cannot be created
            SpawnError: If ffmpeg could not be launched (an ERROR event
                has already been published for the returned id)
        """
        job_kind = self._builder.resolve_kind(kind)
        invocation = self._builder.build(job_kind, params)
        job_id = str(uuid.uuid4())

        logger.info(f"[Runner] Starting {job_kind.label} conversion {job_id}: {invocation.display()}")

        try:
            process = subprocess.Popen(
                invocation.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            reason = e.strerror or str(e)
            logger.error(f"[Runner] {job_kind.label} conversion {job_id} failed to spawn: {reason}")
            self._broadcaster.publish(
                JobEvent.error(
                    job_id,
                    f"{job_kind.label} conversion error: {reason}",
                    state=JobState.FAILED.value,
                )
            )
            raise SpawnError(job_id, invocation.program, reason) from e

        job = Job(
            id=job_id,
            kind=job_kind,
            invocation=invocation,
            process=process,
            diagnostics_limit=self._diagnostics_limit,
        )
        self._registry.add(job)
        logger.info(f"[Runner] Started PID {process.pid} for job {job_id}")

        # Readers start only after registration so every event refers to a known job
        readers = [
            self._spawn_thread(f"{job_id[:8]}-stdout", self._pump_output, job, process.stdout, False),
            self._spawn_thread(f"{job_id[:8]}-stderr", self._pump_output, job, process.stderr, True),
        ]
        self._spawn_thread(f"{job_id[:8]}-supervisor", self._supervise, job, readers)

        return job_id

    def stop(self, job_id: str) -> StopResult:
        """
        Request termination of a running job.

        Does not wait for the process to exit; the supervisor publishes
        the terminal event once it does.

        Args:
            job_id: The job to stop

        Returns:
            STOPPED if the job was running, NOT_FOUND otherwise
        """
        job = self._registry.remove(job_id)
        if job is None:
            logger.info(f"[Runner] Stop requested for unknown job {job_id}")
            return StopResult.NOT_FOUND

        job.request_stop()
        logger.info(f"[Runner] Sending SIGTERM to PID {job.pid} for job {job_id}")
        try:
            job.process.terminate()
        except ProcessLookupError:
            pass  # Process already dead

        self._schedule_kill(job)
        return StopResult.STOPPED

    def list_ids(self) -> List[str]:
        """Job ids currently running, oldest first."""
        return self._registry.list_ids()

    def get(self, job_id: str) -> Optional[Job]:
        return self._registry.get(job_id)

    def shutdown(self) -> int:
        """
        Stop every running job.

        Returns:
            Number of jobs a stop was sent to
        """
        stopped = 0
        for job_id in self._registry.list_ids():
            if self.stop(job_id) is StopResult.STOPPED:
                stopped += 1

        if stopped:
            logger.info(f"[Runner] Shutdown stopped {stopped} running job(s)")
        return stopped

    # =========================================================================
    # BACKGROUND ACTIVITY
    # =========================================================================

    @staticmethod
    def _spawn_thread(name: str, target, *args) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, name=f"job-{name}", daemon=True)
        thread.start()
        return thread

    def _pump_output(self, job: Job, stream: IO[bytes], is_diagnostic: bool) -> None:
        """Forward raw chunks from one pipe until EOF. Chunks may split lines."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            with stream:
                while True:
                    chunk = stream.read1(READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    self._forward(job, decoder.decode(chunk), is_diagnostic)
                self._forward(job, decoder.decode(b"", final=True), is_diagnostic)
        except (OSError, ValueError) as e:
            logger.warning(f"[Runner] Output stream of job {job.id} closed unexpectedly: {e}")

    def _forward(self, job: Job, text: str, is_diagnostic: bool) -> None:
        if not text:
            return
        if is_diagnostic:
            job.append_diagnostics(text)
        self._broadcaster.publish(JobEvent.progress(job.id, text))

    def _supervise(self, job: Job, readers: List[threading.Thread]) -> None:
        """Wait for output and exit, then publish the single terminal event."""
        # All progress events must precede the terminal one
        for reader in readers:
            reader.join()

        exit_code = job.process.wait()
        logger.info(f"[Runner] PID {job.pid} exited with code {exit_code}")

        # None means stop() (or shutdown) removed the job first
        removed = self._registry.remove(job.id)
        stopped = removed is None or job.stop_requested
        self._cancel_kill(job.id)

        try:
            self._finish(job, exit_code, stopped)
        except Exception:
            logger.exception(f"[Runner] Failed to finalize job {job.id}")

    def _finish(self, job: Job, exit_code: int, stopped: bool) -> None:
        label = job.kind.label

        if stopped:
            target = JobState.STOPPED
        elif exit_code == 0:
            target = JobState.COMPLETED
        else:
            target = JobState.FAILED

        validate_job_transition(job.id, job.state, target)
        job.finish(target, exit_code)

        if target is JobState.COMPLETED:
            logger.info(f"[Runner] {label} conversion completed successfully ({job.id})")
            event = JobEvent.completed(job.id, f"{label} conversion completed successfully")
        elif target is JobState.STOPPED:
            logger.info(f"[Runner] {label} conversion stopped ({job.id}, exit code {exit_code})")
            event = JobEvent.error(
                job.id,
                f"{label} conversion stopped",
                detail=job.diagnostics or None,
                state=JobState.STOPPED.value,
            )
        else:
            diagnostics = job.diagnostics
            logger.error(f"[Runner] {label} conversion failed ({job.id}, code {exit_code}): {diagnostics[-2000:]}")
            event = JobEvent.error(
                job.id,
                f"{label} conversion failed with code {exit_code}",
                detail=diagnostics,
                state=JobState.FAILED.value,
            )

        self._broadcaster.publish(event)

    # =========================================================================
    # SIGKILL ESCALATION
    # =========================================================================

    def _schedule_kill(self, job: Job) -> None:
        if self._stop_grace_seconds <= 0:
            self._escalate(job)
            return

        timer = threading.Timer(self._stop_grace_seconds, self._escalate, args=(job,))
        timer.daemon = True
        with self._timers_lock:
            self._kill_timers[job.id] = timer
        timer.start()

    def _cancel_kill(self, job_id: str) -> None:
        with self._timers_lock:
            timer = self._kill_timers.pop(job_id, None)
        if timer is not None:
            timer.cancel()

    def _escalate(self, job: Job) -> None:
        with self._timers_lock:
            self._kill_timers.pop(job.id, None)

        if job.process.poll() is not None:
            return

        logger.warning(f"[Runner] PID {job.pid} did not terminate, sending SIGKILL")
        try:
            job.process.kill()
        except ProcessLookupError:
            pass  # Process already dead
