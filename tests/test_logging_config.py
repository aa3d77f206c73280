"""
Tests for the queue-based logging setup.
"""
import io
import logging

import pytest

from fetch_backend.logging_config import FetchLoggingConfig, PollingRequestFilter, SessionContextFilter


def make_record(name="fetch_app.session.state", level=logging.INFO, msg="hello", args=()):
    return logging.LogRecord(name, level, __file__, 1, msg, args, None)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestFilters:
    """Test the record filters."""

    def test_session_context(self):
        session_filter = SessionContextFilter()
        record = make_record()
        assert session_filter.filter(record)
        assert record.fetch_session == "-"

        session_filter.provider = lambda: 7
        session_filter.filter(record)
        assert record.fetch_session == "#7"

    def test_polling_requests_dropped(self):
        polling = PollingRequestFilter()
        stream_hit = make_record("werkzeug", msg='%s - - "%s" 200 -', args=("127.0.0.1", "GET /api/fetch/stream HTTP/1.1"))
        start_hit = make_record("werkzeug", msg='%s - - "%s" 202 -', args=("127.0.0.1", "POST /api/fetch/start HTTP/1.1"))
        stream_error = make_record("werkzeug", level=logging.ERROR, msg="GET /api/fetch/stream failed")

        assert not polling.filter(stream_hit)
        assert polling.filter(start_hit)
        assert polling.filter(stream_error)
        assert polling.filter(make_record(msg="GET /api/fetch/state"))


class TestFetchLoggingConfig:
    """Test setup and teardown of the queue listener."""

    def test_records_reach_stream_with_session(self, restore_root_logger):
        output = io.StringIO()
        config = FetchLoggingConfig()
        config.setup(stream=output)
        config.attach_session(lambda: 3)
        assert config.running

        logging.getLogger("fetch_app.test").info("session started")
        logging.getLogger("werkzeug").info("GET /healthz HTTP/1.1 200")
        config.stop()

        text = output.getvalue()
        assert "[session #3] session started" in text
        assert "/healthz" not in text
        assert not config.running
        assert config.session_filter.provider is None

    def test_debug_keeps_request_lines(self, restore_root_logger):
        output = io.StringIO()
        config = FetchLoggingConfig()
        config.setup(debug=True, stream=output)

        logging.getLogger("werkzeug").info("GET /healthz HTTP/1.1 200")
        config.stop()

        assert "/healthz" in output.getvalue()
        assert logging.getLogger().level == logging.DEBUG
