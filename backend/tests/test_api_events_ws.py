"""
WebSocket event stream tests.

A connected client receives progress and terminal events for jobs
started over HTTP, as JSON objects.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import SCRIPT_FAILURE, SCRIPT_LONG_RUNNING, SCRIPT_SUCCESS, ScriptBuilder
from ffbuilder.config import Settings
from ffbuilder.main import create_app

pytestmark = pytest.mark.slow

TERMINAL_KINDS = {"completed", "error"}


def receive_until_terminal(websocket, job_id):
    messages = []
    while True:
        message = websocket.receive_json()
        if message["job_id"] != job_id:
            continue
        messages.append(message)
        if message["kind"] in TERMINAL_KINDS:
            return messages


@pytest.fixture
def test_client(tmp_path):
    settings = Settings(output_path=tmp_path / "out", log_dir=None, stop_grace_seconds=1.0)
    app = create_app(settings, command_builder=ScriptBuilder(tmp_path / "out"))
    with TestClient(app) as client:
        yield client


class TestEventStream:

    def test_completed_job(self, test_client):
        with test_client.websocket_connect("/ws") as websocket:
            job_id = test_client.post("/api/convert/hls-to-mp4", json={"script": SCRIPT_SUCCESS}).json()["job_id"]
            messages = receive_until_terminal(websocket, job_id)

        progress = [m for m in messages if m["kind"] == "progress"]
        assert "frame=1" in "".join(m["payload"] for m in progress)

        terminal = messages[-1]
        assert terminal["kind"] == "completed"
        assert terminal["state"] == "completed"
        assert terminal["payload"] == "HLS to MP4 conversion completed successfully"
        assert "timestamp" in terminal

    def test_failed_job_carries_detail(self, test_client):
        with test_client.websocket_connect("/ws") as websocket:
            job_id = test_client.post("/api/convert/srt-to-hls", json={"script": SCRIPT_FAILURE}).json()["job_id"]
            terminal = receive_until_terminal(websocket, job_id)[-1]

        assert terminal["kind"] == "error"
        assert terminal["state"] == "failed"
        assert "no such file" in terminal["detail"]

    def test_stopped_job(self, test_client):
        with test_client.websocket_connect("/ws") as websocket:
            job_id = test_client.post("/api/convert/srt-to-hls", json={"script": SCRIPT_LONG_RUNNING}).json()["job_id"]
            test_client.post(f"/api/stop/{job_id}")
            terminal = receive_until_terminal(websocket, job_id)[-1]

        assert terminal["kind"] == "error"
        assert terminal["state"] == "stopped"
        assert terminal["payload"] == "SRT to HLS conversion stopped"

    def test_client_messages_are_ignored(self, test_client):
        with test_client.websocket_connect("/ws") as websocket:
            websocket.send_text("hello")
            job_id = test_client.post("/api/convert/hls-to-mp4", json={"script": SCRIPT_SUCCESS}).json()["job_id"]
            terminal = receive_until_terminal(websocket, job_id)[-1]

        assert terminal["kind"] == "completed"

    def test_observer_count_tracks_connections(self, test_client):
        with test_client.websocket_connect("/ws"):
            assert test_client.get("/monitor/jobs").json()["observers"] == 1

    def test_two_clients_both_receive(self, test_client):
        with test_client.websocket_connect("/ws") as first, test_client.websocket_connect("/ws") as second:
            job_id = test_client.post("/api/convert/hls-to-mp4", json={"script": SCRIPT_SUCCESS}).json()["job_id"]

            first_terminal = receive_until_terminal(first, job_id)[-1]
            second_terminal = receive_until_terminal(second, job_id)[-1]

        assert first_terminal == second_terminal
