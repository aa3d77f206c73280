"""
Logging configuration for the fetch session service.

The progress reducer, the worker reader threads and the Flask request threads
all log concurrently, so every record is pushed onto one queue and written by
a single QueueListener. Records carry the id of the fetch session that was
current when they were emitted.
"""

import logging
import logging.handlers
import sys
from queue import Queue
from typing import Callable, Iterable, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [session %(fetch_session)s] %(message)s"

# Routes that browsers poll or hold open; one access line per hit is noise
QUIET_REQUEST_PATHS = (
    "/api/fetch/stream",
    "/api/fetch/state",
    "/api/fetch/notifications",
    "/api/fetch/views/",
    "/healthz",
)

SessionIdProvider = Callable[[], int]


class SessionContextFilter(logging.Filter):
    """Stamp each record with the current fetch session id."""

    def __init__(self, provider: Optional[SessionIdProvider] = None):
        super().__init__()
        self.provider = provider

    def filter(self, record: logging.LogRecord) -> bool:
        session_id = self.provider() if self.provider else 0
        record.fetch_session = f"#{session_id}" if session_id else "-"
        return True


class PollingRequestFilter(logging.Filter):
    """Drop werkzeug access lines for polled and streaming routes."""

    def __init__(self, paths: Iterable[str] = QUIET_REQUEST_PATHS):
        super().__init__()
        self.paths = tuple(paths)

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith("werkzeug") or record.levelno >= logging.WARNING:
            return True
        message = record.getMessage()
        return not any(path in message for path in self.paths)


class FetchLoggingConfig:
    """Owns the log queue, its listener and the session context filter."""

    def __init__(self):
        self._listener: Optional[logging.handlers.QueueListener] = None
        self._queue: Optional[Queue] = None
        self.session_filter = SessionContextFilter()

    @property
    def running(self) -> bool:
        return self._listener is not None

    def setup(self, debug: bool = False, quiet_paths: Iterable[str] = QUIET_REQUEST_PATHS,
              stream=None) -> None:
        """
        Route the root logger through a queue.

        Args:
            debug: Log at DEBUG and keep every request line
            quiet_paths: Request paths whose access lines are dropped
            stream: Output stream for the console handler, stdout by default
        """
        if self._listener:
            self.stop()

        self._queue = Queue()
        queue_handler = logging.handlers.QueueHandler(self._queue)
        # The filter runs on the emitting thread, before the record is queued
        queue_handler.addFilter(self.session_filter)
        if not debug:
            queue_handler.addFilter(PollingRequestFilter(quiet_paths))

        console_handler = logging.StreamHandler(stream or sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        self._listener = logging.handlers.QueueListener(
            self._queue, console_handler, respect_handler_level=True
        )
        self._listener.start()

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.addHandler(queue_handler)
        root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

        for name in ("urllib3", "requests"):
            logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    def attach_session(self, provider: SessionIdProvider) -> None:
        """Read session ids from provider from now on."""
        self.session_filter.provider = provider

    def stop(self) -> None:
        if self._listener:
            self._listener.stop()
            self._listener = None
        self._queue = None
        self.session_filter.provider = None


logging_config = FetchLoggingConfig()


def setup_logging(debug: bool = False) -> None:
    logging_config.setup(debug)


def attach_session_context(provider: SessionIdProvider) -> None:
    logging_config.attach_session(provider)


def stop_logging() -> None:
    logging_config.stop()
