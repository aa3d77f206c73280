"""
Factory for creating fetch module.
"""
from fetch_backend.commands import BackendCommands
from fetch_app.fetch_config import ConfigurationBuilder
from fetch_app.session import CacheRegistry, NotificationOutbox, SessionState
from .services import FetchService
from .routes import create_fetch_routes


def create_fetch_module(
    state: SessionState,
    commands: BackendCommands,
    builder: ConfigurationBuilder,
    outbox: NotificationOutbox,
    caches: CacheRegistry,
    stall_timeout_seconds: float = 0,
    heartbeat_seconds: float = 15.0,
) -> dict:
    """Create fetch module with services and routes.

    Args:
        state: Process-wide session store
        commands: Backend command interface used to start and cancel fetches
        builder: Configuration builder for submitted form state
        outbox: Notification outbox drained by the state stream
        caches: Cache registry whose versions are published with the state
        stall_timeout_seconds: Silence after which a session counts as stalled
        heartbeat_seconds: Interval between keep-alive frames on the stream

    Returns:
        Dictionary containing the service and blueprint
    """
    fetch_service = FetchService(state, commands, builder)

    blueprint = create_fetch_routes(
        fetch_service,
        state,
        builder,
        outbox,
        caches,
        stall_timeout_seconds=stall_timeout_seconds,
        heartbeat_seconds=heartbeat_seconds,
    )

    return {
        "service": fetch_service,
        "blueprint": blueprint
    }
