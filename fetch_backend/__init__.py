# Fetch backend package: command interface and progress topic of the fetch worker

from .commands import (
    Ack,
    BackendCommandError,
    BackendCommands,
    HttpBackendCommands,
    build_session,
)
from .events import (
    EventSource,
    SseEventSource,
    iter_sse_payloads,
)
from .worker import (
    WorkerCommand,
    WorkerProcessBackend,
)
from .logging_config import (
    FetchLoggingConfig,
    attach_session_context,
    setup_logging,
    stop_logging,
)

__all__ = [
    "Ack",
    "BackendCommandError",
    "BackendCommands",
    "HttpBackendCommands",
    "build_session",
    "EventSource",
    "SseEventSource",
    "iter_sse_payloads",
    "WorkerCommand",
    "WorkerProcessBackend",
    "FetchLoggingConfig",
    "attach_session_context",
    "setup_logging",
    "stop_logging",
]
