"""
Job data models.

A Job is one tracked invocation of ffmpeg. It owns the subprocess handle
exclusively from spawn until the process is reaped.
"""

import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..execution.commands import Invocation


class JobKind(str, Enum):
    """Closed set of conversions the service can run."""

    STREAM_INGEST = "stream-ingest"  # SRT stream -> HLS segments
    SEGMENT_REMUX = "segment-remux"  # HLS playlist -> single MP4

    @property
    def label(self) -> str:
        """Human-readable name used in event summaries and logs."""
        return _KIND_LABELS[self]


_KIND_LABELS: Dict[JobKind, str] = {
    JobKind.STREAM_INGEST: "SRT to HLS",
    JobKind.SEGMENT_REMUX: "HLS to MP4",
}


class JobState(str, Enum):
    """Lifecycle state of a job."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class Job:
    """
    Live handle of a running conversion.

    State changes go through JobRunner, which validates transitions.
    Diagnostic output is kept as a bounded tail so that long-running
    live ingests do not grow without limit.
    """

    id: str
    kind: JobKind
    invocation: "Invocation"
    process: subprocess.Popen
    diagnostics_limit: int = 65536
    state: JobState = JobState.RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    exit_code: Optional[int] = None
    stop_requested: bool = False
    _diagnostics: str = field(default="", repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def diagnostics(self) -> str:
        """Accumulated stderr output (tail)."""
        with self._lock:
            return self._diagnostics

    def append_diagnostics(self, text: str) -> None:
        with self._lock:
            combined = self._diagnostics + text
            if len(combined) > self.diagnostics_limit:
                combined = combined[-self.diagnostics_limit:]
            self._diagnostics = combined

    def request_stop(self) -> None:
        """Flag the job as stopped by the operator."""
        with self._lock:
            self.stop_requested = True

    def finish(self, state: JobState, exit_code: Optional[int]) -> None:
        """Record the terminal outcome. Caller validates the transition."""
        with self._lock:
            self.state = state
            self.exit_code = exit_code
            self.finished_at = datetime.now(timezone.utc)

    def to_summary(self) -> Dict[str, Any]:
        """Serializable snapshot for monitoring endpoints."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "state": self.state.value,
            "pid": self.pid,
            "started_at": self.started_at.isoformat(),
            "command": self.invocation.display(),
            "output_dir": str(self.invocation.output_dir),
        }
