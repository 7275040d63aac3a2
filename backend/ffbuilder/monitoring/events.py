"""
Event model for live job observation.

Defines immutable events pushed to observers.
All events are timestamped at creation and cannot be modified.

Events are fire-and-forget: they are not stored and are never replayed.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class EventKind(str, Enum):
    """Types of broadcast events."""
    PROGRESS = "progress"
    COMPLETED = "completed"
    ERROR = "error"


# Exactly one of these ends every job's event sequence
TERMINAL_EVENT_KINDS = frozenset({EventKind.COMPLETED, EventKind.ERROR})


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class JobEvent:
    """
    Immutable broadcast message.

    payload is raw output text for PROGRESS, a human-readable summary
    otherwise. state carries the terminal job state on terminal events;
    detail carries accumulated diagnostic output on ERROR events.
    """
    kind: EventKind
    job_id: str
    payload: str
    timestamp: str  # ISO 8601 format, always UTC
    state: Optional[str] = None
    detail: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_EVENT_KINDS

    @classmethod
    def progress(cls, job_id: str, data: str) -> "JobEvent":
        """Raw output chunk from the job's process."""
        return cls(kind=EventKind.PROGRESS, job_id=job_id, payload=data, timestamp=_utc_now())

    @classmethod
    def completed(cls, job_id: str, message: str) -> "JobEvent":
        return cls(
            kind=EventKind.COMPLETED,
            job_id=job_id,
            payload=message,
            timestamp=_utc_now(),
            state="completed",
        )

    @classmethod
    def error(
        cls,
        job_id: str,
        message: str,
        detail: Optional[str] = None,
        state: str = "failed",
    ) -> "JobEvent":
        return cls(
            kind=EventKind.ERROR,
            job_id=job_id,
            payload=message,
            timestamp=_utc_now(),
            state=state,
            detail=detail,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary (WebSocket wire form)."""
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "job_id": self.job_id,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }
        if self.state is not None:
            data["state"] = self.state
        if self.detail is not None:
            data["detail"] = self.detail
        return data
