"""
Tests for JobRunner subprocess lifecycle.

Verifies:
- start() returns immediately with a fresh id and registers the job
- stdout and stderr chunks arrive as PROGRESS events
- Exactly one terminal event per job, always last
- Non-zero exit publishes ERROR carrying the diagnostic output
- stop() removes the job at once; repeated stop() is NOT_FOUND
- Spawn failures are reported synchronously and never registered

Jobs run the current Python interpreter, never ffmpeg.
"""

import threading
import time

import pytest

from conftest import (
    EVENT_TIMEOUT,
    SCRIPT_FAILURE,
    SCRIPT_LONG_RUNNING,
    SCRIPT_SUCCESS,
    ScriptBuilder,
    collect_until_all_terminal,
    collect_until_terminal,
    wait_for_event,
)
from ffbuilder.execution.errors import ValidationError
from ffbuilder.jobs.errors import SpawnError
from ffbuilder.jobs.models import JobKind, JobState
from ffbuilder.jobs.runner import JobRunner, StopResult
from ffbuilder.monitoring.broadcaster import Observer
from ffbuilder.monitoring.events import EventKind

pytestmark = pytest.mark.slow

SCRIPT_CHATTY = "while True: print('frame=' * 512, flush=True)"


class RecordingObserver(Observer):
    """Counts progress events and keeps the terminal one, never refusing delivery."""

    def __init__(self):
        super().__init__()
        self.progress_count = 0
        self.terminal = None
        self.finished = threading.Event()

    def deliver(self, event):
        if event.is_terminal:
            self.terminal = event
            self.finished.set()
        else:
            self.progress_count += 1


class TestStart:

    def test_start_returns_id_and_registers(self, runner, observer):
        job_id = runner.start(JobKind.SEGMENT_REMUX, {"script": SCRIPT_LONG_RUNNING})

        assert job_id in runner.list_ids()
        assert runner.get(job_id).state is JobState.RUNNING

        runner.stop(job_id)
        collect_until_terminal(observer, job_id)

    def test_start_accepts_kind_string(self, runner, observer):
        job_id = runner.start("segment-remux", {"script": SCRIPT_SUCCESS})
        events = collect_until_terminal(observer, job_id)
        assert events[-1].kind is EventKind.COMPLETED

    def test_unknown_kind_is_validation_error(self, runner, registry):
        with pytest.raises(ValidationError):
            runner.start("transmogrify", {"script": SCRIPT_SUCCESS})
        assert registry.count() == 0

    def test_ids_are_unique(self, runner, observer):
        job_ids = [runner.start(JobKind.SEGMENT_REMUX, {"script": SCRIPT_SUCCESS}) for _ in range(5)]

        assert len(set(job_ids)) == 5
        events = collect_until_all_terminal(observer, job_ids)
        assert all(events[job_id][-1].kind is EventKind.COMPLETED for job_id in job_ids)


class TestCompletion:

    def test_success_publishes_progress_then_completed(self, runner, observer):
        job_id = runner.start(JobKind.SEGMENT_REMUX, {"script": SCRIPT_SUCCESS})
        events = collect_until_terminal(observer, job_id)

        progress = [e for e in events if e.kind is EventKind.PROGRESS]
        assert "frame=1 fps=25" in "".join(e.payload for e in progress)

        terminal = events[-1]
        assert terminal.kind is EventKind.COMPLETED
        assert terminal.state == "completed"
        assert terminal.payload == "HLS to MP4 conversion completed successfully"
        assert job_id not in runner.list_ids()

    def test_stderr_is_forwarded_as_progress(self, runner, observer):
        script = "import sys; sys.stderr.write('size=  1024kB time=00:00:01'); sys.stderr.flush()"
        job_id = runner.start(JobKind.STREAM_INGEST, {"script": script})
        events = collect_until_terminal(observer, job_id)

        progress_text = "".join(e.payload for e in events if e.kind is EventKind.PROGRESS)
        assert "size=  1024kB" in progress_text
        assert events[-1].kind is EventKind.COMPLETED

    def test_nonzero_exit_publishes_single_error(self, runner, observer):
        job_id = runner.start(JobKind.SEGMENT_REMUX, {"script": SCRIPT_FAILURE})
        events = collect_until_terminal(observer, job_id)

        assert job_id not in runner.list_ids()

        terminal = events[-1]
        assert terminal.kind is EventKind.ERROR
        assert terminal.state == "failed"
        assert "no such file" in terminal.detail
        assert "failed with code 1" in terminal.payload

        # Nothing follows the terminal event
        time.sleep(0.2)
        assert [e for e in observer.drain() if e.job_id == job_id] == []

    def test_exactly_one_terminal_event(self, runner, observer):
        job_id = runner.start(JobKind.SEGMENT_REMUX, {"script": SCRIPT_FAILURE})
        events = collect_until_terminal(observer, job_id)
        time.sleep(0.2)
        events += [e for e in observer.drain() if e.job_id == job_id]

        terminals = [e for e in events if e.is_terminal]
        assert len(terminals) == 1
        assert events[-1] is terminals[0]

    def test_invalid_utf8_is_replaced(self, runner, observer):
        script = "import sys; sys.stdout.buffer.write(b'ok\\xff\\n'); sys.stdout.flush()"
        job_id = runner.start(JobKind.SEGMENT_REMUX, {"script": script})
        events = collect_until_terminal(observer, job_id)

        text = "".join(e.payload for e in events if e.kind is EventKind.PROGRESS)
        assert text.startswith("ok\ufffd")


class TestStop:

    def test_stop_mid_run(self, runner, observer):
        job_id = runner.start(JobKind.STREAM_INGEST, {"script": SCRIPT_LONG_RUNNING})
        wait_for_event(observer, lambda e: e.job_id == job_id and "started" in e.payload)

        assert runner.stop(job_id) is StopResult.STOPPED
        assert job_id not in runner.list_ids()

        events = collect_until_terminal(observer, job_id)
        terminal = events[-1]
        assert terminal.kind is EventKind.ERROR
        assert terminal.state == "stopped"
        assert terminal.payload == "SRT to HLS conversion stopped"

    def test_second_stop_is_not_found(self, runner, observer):
        job_id = runner.start(JobKind.STREAM_INGEST, {"script": SCRIPT_LONG_RUNNING})

        assert runner.stop(job_id) is StopResult.STOPPED
        assert runner.stop(job_id) is StopResult.NOT_FOUND

        collect_until_terminal(observer, job_id)
        assert runner.stop(job_id) is StopResult.NOT_FOUND

    def test_stop_unknown_job(self, runner):
        assert runner.stop("does-not-exist") is StopResult.NOT_FOUND

    def test_stop_after_completion_is_not_found(self, runner, observer):
        job_id = runner.start(JobKind.SEGMENT_REMUX, {"script": SCRIPT_SUCCESS})
        collect_until_terminal(observer, job_id)

        assert runner.stop(job_id) is StopResult.NOT_FOUND

    def test_sigterm_ignored_escalates_to_sigkill(self, registry, broadcaster, script_builder):
        observer = broadcaster.subscribe()
        runner = JobRunner(registry, broadcaster, script_builder, stop_grace_seconds=0.5)
        script = (
            "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
            "print('armed', flush=True); time.sleep(60)"
        )
        job_id = runner.start(JobKind.STREAM_INGEST, {"script": script})
        wait_for_event(observer, lambda e: e.job_id == job_id and "armed" in e.payload)

        runner.stop(job_id)
        events = collect_until_terminal(observer, job_id)

        assert events[-1].state == "stopped"

    def test_shutdown_stops_everything(self, runner, observer):
        job_ids = [runner.start(JobKind.STREAM_INGEST, {"script": SCRIPT_LONG_RUNNING}) for _ in range(3)]

        assert runner.shutdown() == 3
        assert runner.list_ids() == []
        events = collect_until_all_terminal(observer, job_ids)

        for job_id in job_ids:
            terminals = [e for e in events[job_id] if e.is_terminal]
            assert len(terminals) == 1
            assert terminals[0].state == "stopped"

    def test_control_does_not_wait_on_heavy_output(self, runner, broadcaster):
        """list_ids() and stop() stay prompt while a job floods its pipes."""
        recorder = broadcaster.subscribe(RecordingObserver())
        job_id = runner.start(JobKind.STREAM_INGEST, {"script": SCRIPT_CHATTY})

        deadline = time.monotonic() + EVENT_TIMEOUT
        while recorder.progress_count < 50:
            assert time.monotonic() < deadline, "job produced no output"
            time.sleep(0.01)

        started = time.monotonic()
        for _ in range(20):
            assert job_id in runner.list_ids()
        assert time.monotonic() - started < 1.0

        started = time.monotonic()
        assert runner.stop(job_id) is StopResult.STOPPED
        assert time.monotonic() - started < 0.5
        assert job_id not in runner.list_ids()

        assert recorder.finished.wait(EVENT_TIMEOUT)
        assert recorder.terminal.job_id == job_id
        assert recorder.terminal.state == "stopped"


class TestSpawnFailure:

    def test_missing_executable(self, registry, broadcaster, tmp_path):
        observer = broadcaster.subscribe()
        builder = ScriptBuilder(tmp_path, program=str(tmp_path / "no-such-ffmpeg"))
        runner = JobRunner(registry, broadcaster, builder)

        with pytest.raises(SpawnError) as exc_info:
            runner.start(JobKind.SEGMENT_REMUX, {"script": SCRIPT_SUCCESS})

        assert registry.count() == 0

        event = observer.get(timeout=1)
        assert event.job_id == exc_info.value.job_id
        assert event.kind is EventKind.ERROR
        assert "HLS to MP4 conversion error" in event.payload
        assert observer.drain() == []
