"""
Tests for the fetch backend transports.
"""
import json
from unittest.mock import Mock, patch

import pytest
import requests

from fetch_backend.commands import BackendCommandError, HttpBackendCommands, build_session
from fetch_backend.events import SseEventSource, iter_sse_payloads
from fetch_backend.models import ErrorKind, FetchMode, FetchOptions, FetchPhase, Provider
from fetch_backend.worker import WorkerProcessBackend


@pytest.fixture
def options():
    return FetchOptions(provider=Provider.CLAUDE, mode=FetchMode.BY_ID, ids=("2401.12345",))


def make_response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    response.text = text
    return response


class TestHttpBackendCommands:
    """Test the HTTP command transport."""

    def test_start_posts_options_and_key(self, options):
        session = Mock()
        session.post.return_value = make_response(200, {"message": "accepted"})
        commands = HttpBackendCommands("http://backend:8765/", lambda p: f"key-{p.value}", session=session)

        ack = commands.start_fetch(options)

        assert ack.accepted
        assert ack.message == "accepted"
        url = session.post.call_args[0][0]
        body = session.post.call_args[1]["json"]
        assert url == "http://backend:8765/fetch/start"
        assert body["api_key"] == "key-claude"
        assert body["options"]["arxiv_ids"] == ["2401.12345"]

    def test_cancel(self):
        session = Mock()
        session.post.return_value = make_response(200, text="ok")
        commands = HttpBackendCommands("http://backend", lambda p: "", session=session)

        assert commands.cancel_fetch().message == "ok"
        assert session.post.call_args[0][0] == "http://backend/fetch/cancel"

    def test_transport_failure_is_system_error(self, options):
        session = Mock()
        session.post.side_effect = requests.ConnectionError("refused")
        commands = HttpBackendCommands("http://backend", lambda p: "", session=session)

        with pytest.raises(BackendCommandError) as exc_info:
            commands.start_fetch(options)
        error = exc_info.value.to_error_info()
        assert error.kind == ErrorKind.SYSTEM
        assert error.retryable

    def test_http_error_uses_backend_message(self, options):
        session = Mock()
        session.post.return_value = make_response(409, {"error": "already running"})
        commands = HttpBackendCommands("http://backend", lambda p: "", session=session)

        with pytest.raises(BackendCommandError, match="already running"):
            commands.start_fetch(options)

    def test_http_error_without_body(self, options):
        session = Mock()
        session.post.return_value = make_response(500)
        commands = HttpBackendCommands("http://backend", lambda p: "", session=session)

        with pytest.raises(BackendCommandError, match="HTTP 500"):
            commands.start_fetch(options)

    def test_build_session_proxy(self):
        session = build_session("http://proxy:3128")
        assert session.proxies["https"] == "http://proxy:3128"


class TestSseParsing:
    """Test server-sent event framing."""

    def test_payload_grouping(self):
        lines = [
            ": keep-alive",
            'data: {"seq": 1,',
            'data:  "status": "fetching"}',
            "",
            "event: progress",
            b'data: {"seq": 2, "status": "completed"}',
            "",
            'data: {"seq": 3, "status": "error"}',
        ]
        payloads = list(iter_sse_payloads(lines))
        assert len(payloads) == 3
        assert json.loads(payloads[0]) == {"seq": 1, "status": "fetching"}
        assert json.loads(payloads[1])["seq"] == 2
        assert json.loads(payloads[2])["seq"] == 3


class TestSseEventSource:
    """Test the SSE subscription."""

    def test_yields_events_and_drops_malformed(self):
        response = Mock()
        response.iter_lines.return_value = iter([
            'data: {"seq": 1, "status": "fetching", "progress": 0.1}',
            "",
            "data: not-json",
            "",
            'data: {"seq": 2, "status": {"phase": "completed", "progress": 1.0}}',
            "",
        ])
        session = Mock()
        session.get.return_value = response
        source = SseEventSource("http://backend", max_reconnects=0, session=session)

        events = list(source.subscribe())

        assert [e.seq for e in events] == [1, 2]
        assert events[1].status.phase == FetchPhase.COMPLETED
        assert session.get.call_args[0][0] == "http://backend/fetch/events"
        response.close.assert_called()

    def test_gives_up_after_reconnects(self):
        session = Mock()
        session.get.side_effect = requests.ConnectionError("down")
        source = SseEventSource("http://backend", max_reconnects=2, reconnect_delay=0, session=session)

        assert list(source.subscribe()) == []
        assert session.get.call_count == 3

    def test_closed_source_yields_nothing(self):
        session = Mock()
        source = SseEventSource("http://backend", session=session)
        source.close()

        assert list(source.subscribe()) == []
        session.get.assert_not_called()


class FakeProcess:
    """Stands in for subprocess.Popen in worker tests."""

    def __init__(self, lines, return_code=0):
        self.stdout = iter(lines)
        self.pid = 4242
        self.return_code = return_code
        self.terminated = False

    def poll(self):
        return None if not self.terminated else self.return_code

    def wait(self, timeout=None):
        return self.return_code

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.terminated = True


class TestWorkerProcessBackend:
    """Test the local worker transport."""

    def make_backend(self, tmp_path):
        return WorkerProcessBackend(tmp_path, "fetch_worker.py", lambda p: "secret", cancel_grace_seconds=0.1)

    def test_command_prefers_uv(self, tmp_path, options):
        backend = self.make_backend(tmp_path)
        with patch("fetch_backend.worker.shutil.which", side_effect=lambda name: f"/usr/bin/{name}"):
            cmd = backend.build_worker_command(options)

        assert cmd.command[:4] == ["uv", "run", "python", "fetch_worker.py"]
        assert json.loads(cmd.command[4])["arxiv_ids"] == ["2401.12345"]
        assert cmd.working_directory == str(tmp_path)

    def test_command_falls_back_to_python(self, tmp_path, options):
        backend = self.make_backend(tmp_path)
        which = {"python": "/usr/bin/python"}
        with patch("fetch_backend.worker.shutil.which", side_effect=which.get):
            cmd = backend.build_worker_command(options)
        assert cmd.command[0] == "/usr/bin/python"

    def test_missing_interpreter(self, tmp_path, options):
        backend = self.make_backend(tmp_path)
        with patch("fetch_backend.worker.shutil.which", return_value=None):
            with pytest.raises(BackendCommandError):
                backend.build_worker_command(options)

    def test_output_becomes_sequenced_events(self, tmp_path):
        backend = self.make_backend(tmp_path)
        process = FakeProcess([
            '{"status": "fetching", "progress": 0.2}\n',
            "Loading model...\n",
            '{"status": "completed", "progress": 1.0, "papers_saved": 2}\n',
        ])
        backend._process = process

        backend._pump_output(process)
        backend.close()
        events = list(backend.subscribe())

        assert [e.seq for e in events] == [1, 2]
        assert events[-1].status.phase == FetchPhase.COMPLETED

    def test_crash_without_terminal_status(self, tmp_path):
        backend = self.make_backend(tmp_path)
        process = FakeProcess(['{"status": "analyzing", "progress": 0.5}\n'], return_code=1)
        backend._process = process
        backend._pump_output(process)
        backend.close()
        events = list(backend.subscribe())

        final = events[-1].status
        assert final.phase == FetchPhase.ERROR
        assert final.progress == 0.5
        assert final.error.kind == ErrorKind.SYSTEM
        assert final.error.retryable

    def test_replaced_worker_output_dropped(self, tmp_path):
        backend = self.make_backend(tmp_path)
        old = FakeProcess(['{"status": "fetching", "progress": 0.3}\n'], return_code=1)
        backend._process = FakeProcess([])

        backend._pump_output(old)
        backend.close()

        assert list(backend.subscribe()) == []
        assert backend._process is not None

    def test_seq_continues_across_workers(self, tmp_path):
        backend = self.make_backend(tmp_path)
        for _ in range(2):
            process = FakeProcess(['{"status": "completed", "progress": 1.0}\n'])
            backend._process = process
            backend._pump_output(process)
        backend.close()

        assert [e.seq for e in backend.subscribe()] == [1, 2]

    def test_start_and_cancel(self, tmp_path, options):
        backend = self.make_backend(tmp_path)
        process = FakeProcess([])
        with patch("fetch_backend.worker.shutil.which", side_effect=lambda name: f"/usr/bin/{name}"), \
                patch("fetch_backend.worker.subprocess.Popen", return_value=process) as popen, \
                patch("fetch_backend.worker.threading.Thread"):
            ack = backend.start_fetch(options)

            assert ack.accepted
            assert popen.call_args[1]["env"]["FETCH_API_KEY"] == "secret"
            with pytest.raises(BackendCommandError, match="already running"):
                backend.start_fetch(options)

        backend.cancel_fetch()
        assert process.terminated

        # The reader thread reports the cancellation once the process exits
        backend._pump_output(process)
        backend.close()
        final = list(backend.subscribe())[-1].status
        assert final.error.kind == ErrorKind.CANCELLED
        assert not final.error.retryable

    def test_cancel_without_worker(self, tmp_path):
        backend = self.make_backend(tmp_path)
        with pytest.raises(BackendCommandError) as exc_info:
            backend.cancel_fetch()
        assert exc_info.value.retryable is False
