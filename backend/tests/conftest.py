"""
Shared fixtures for the ffmpeg-builder test suite.

Runner and API tests never invoke ffmpeg. ScriptBuilder launches the
current Python interpreter with a small script taken from the request
parameters, so exit codes and output are fully controlled.
"""

import queue
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Union

import pytest

from ffbuilder.execution.commands import CommandBuilder, Invocation
from ffbuilder.jobs.models import JobKind
from ffbuilder.jobs.registry import JobRegistry
from ffbuilder.jobs.runner import JobRunner
from ffbuilder.monitoring.broadcaster import EventBroadcaster, QueueObserver
from ffbuilder.monitoring.events import JobEvent

EVENT_TIMEOUT = 10.0

SCRIPT_SUCCESS = "print('frame=1 fps=25', flush=True)"
SCRIPT_FAILURE = "import sys; sys.stderr.write('no such file'); sys.exit(1)"
SCRIPT_LONG_RUNNING = "import time; print('started', flush=True); time.sleep(60)"


class ScriptBuilder(CommandBuilder):
    """Builds `python -c <script>` instead of an ffmpeg command."""

    def __init__(self, output_base: Path, program: str = sys.executable):
        super().__init__(output_base, ffmpeg_binary=program)

    def build(self, kind: Union[JobKind, str], params: Mapping[str, Any]) -> Invocation:
        self.resolve_kind(kind)
        return Invocation(
            program=self.ffmpeg_binary,
            args=("-c", params["script"]),
            output_dir=self.output_base,
        )


def collect_until_all_terminal(
    observer: QueueObserver,
    job_ids: Iterable[str],
    timeout: float = EVENT_TIMEOUT,
) -> Dict[str, List[JobEvent]]:
    """
    Gather events per job until every job in job_ids has a terminal event.

    Jobs finish in any order, so events are grouped by id as they arrive.
    Events for ids outside job_ids are ignored.
    """
    events: Dict[str, List[JobEvent]] = {job_id: [] for job_id in job_ids}
    pending = set(events)
    deadline = time.monotonic() + timeout
    while pending:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise AssertionError(f"No terminal event for jobs {sorted(pending)} within {timeout}s")
        try:
            event = observer.get(timeout=remaining)
        except queue.Empty:
            continue
        if event.job_id not in events:
            continue
        events[event.job_id].append(event)
        if event.is_terminal:
            pending.discard(event.job_id)
    return events


def collect_until_terminal(observer: QueueObserver, job_id: str, timeout: float = EVENT_TIMEOUT) -> List[JobEvent]:
    """Gather events for job_id up to and including its terminal event."""
    return collect_until_all_terminal(observer, [job_id], timeout)[job_id]


def wait_for_event(observer: QueueObserver, predicate: Callable[[JobEvent], bool], timeout: float = EVENT_TIMEOUT) -> JobEvent:
    """Return the first event matching predicate."""
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise AssertionError(f"No matching event within {timeout}s")
        event = observer.get(timeout=remaining)
        if predicate(event):
            return event


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def broadcaster():
    return EventBroadcaster()


@pytest.fixture
def observer(broadcaster):
    return broadcaster.subscribe()


@pytest.fixture
def script_builder(tmp_path):
    return ScriptBuilder(tmp_path / "output")


@pytest.fixture
def runner(registry, broadcaster, script_builder):
    job_runner = JobRunner(
        registry=registry,
        broadcaster=broadcaster,
        command_builder=script_builder,
        stop_grace_seconds=2.0,
    )
    yield job_runner
    job_runner.shutdown()


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: spawns real subprocesses and waits for them"
    )
