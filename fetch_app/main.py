"""
Flask application wiring for the fetch session service.

Builds the process-wide session store, connects it to the configured fetch
backend and registers the fetch and observer blueprints.
"""
import logging
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from config_manager import ConfigManager
from fetch_backend.commands import BackendCommands, HttpBackendCommands, build_session
from fetch_backend.events import EventSource, SseEventSource
from fetch_backend.models import Provider
from fetch_backend.worker import WorkerProcessBackend
from fetch_app.fetch.factory import create_fetch_module
from fetch_app.fetch_config import ConfigurationBuilder, PersistedConfigStore
from fetch_app.observers.factory import create_observer_module
from fetch_app.session import (
    CacheRegistry,
    EventListener,
    NotificationOutbox,
    SessionSideEffects,
    SessionState,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent

# Client-side query caches refreshed after a completed fetch
CACHE_KEYS = ["papers", "paperCount"]


def create_backend(config_manager: ConfigManager) -> tuple[BackendCommands, EventSource]:
    """Build the command interface and progress topic for the configured transport."""
    backend_config = config_manager.get_backend_config()
    credentials = config_manager.get_credentials_config()

    def api_key_lookup(provider: Provider) -> str:
        return credentials.get_api_key(provider.value)

    if backend_config.transport == "worker":
        worker = WorkerProcessBackend(
            working_directory=PROJECT_ROOT,
            worker_script=backend_config.worker_command,
            api_key_lookup=api_key_lookup,
            cancel_grace_seconds=backend_config.cancel_grace_seconds,
        )
        logger.info(f"Using worker backend: {backend_config.worker_command}")
        return worker, worker

    session = build_session(backend_config.proxy_url)
    commands = HttpBackendCommands(
        backend_config.base_url,
        api_key_lookup,
        timeout=backend_config.timeout,
        session=session,
    )
    events = SseEventSource(
        backend_config.base_url,
        max_reconnects=backend_config.max_reconnects,
        reconnect_delay=backend_config.reconnect_delay,
    )
    logger.info(f"Using HTTP backend at {backend_config.base_url}")
    return commands, events


def create_app(
    config_manager: Optional[ConfigManager] = None,
    commands: Optional[BackendCommands] = None,
    events: Optional[EventSource] = None,
    start_listener: bool = True,
) -> Flask:
    """Create the Flask app.

    Args:
        config_manager: Loaded configuration; a default ConfigManager is used if omitted
        commands: Backend command interface overriding the configured transport
        events: Progress topic overriding the configured transport
        start_listener: Whether to subscribe to progress events immediately

    Returns:
        Configured Flask application. Its ``extensions["fetch_session"]`` holds
        the session store, listener and modules.
    """
    config_manager = config_manager or ConfigManager()
    paths_config = config_manager.get_paths_config()
    session_config = config_manager.get_session_config()
    credentials = config_manager.get_credentials_config()

    data_dir = PROJECT_ROOT / paths_config.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)

    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1, x_prefix=1)

    if commands is None or events is None:
        default_commands, default_events = create_backend(config_manager)
        commands = commands or default_commands
        events = events or default_events

    store = PersistedConfigStore(data_dir / paths_config.fetch_settings_file)
    try:
        default_provider = Provider(session_config.default_provider)
    except ValueError:
        logger.warning(f"Unknown default provider {session_config.default_provider!r}, using glm")
        default_provider = Provider.GLM
    builder = ConfigurationBuilder(
        store,
        has_credential=lambda provider: credentials.has_credential(provider.value),
        default_categories=session_config.default_categories,
        default_provider=default_provider,
    )

    state = SessionState()
    outbox = NotificationOutbox()
    caches = CacheRegistry(CACHE_KEYS)
    side_effects = SessionSideEffects(outbox, caches, notifications_enabled=session_config.notifications_enabled)
    side_effects.install(state)

    listener = EventListener(state, events)

    fetch_module = create_fetch_module(
        state,
        commands,
        builder,
        outbox,
        caches,
        stall_timeout_seconds=session_config.stall_timeout_seconds,
        heartbeat_seconds=session_config.heartbeat_seconds,
    )
    observer_module = create_observer_module(
        state,
        builder,
        fetch_module["service"],
        stall_timeout_seconds=session_config.stall_timeout_seconds,
    )

    # Register blueprints
    app.register_blueprint(fetch_module["blueprint"])
    app.register_blueprint(observer_module["blueprint"])

    @app.route("/healthz")
    def healthz():
        return jsonify({"status": "ok", "listener_running": listener.is_running})

    app.extensions["fetch_session"] = {
        "state": state,
        "listener": listener,
        "builder": builder,
        "store": store,
        "outbox": outbox,
        "caches": caches,
        "commands": commands,
        "events": events,
        "fetch_module": fetch_module,
        "observer_module": observer_module,
    }

    if start_listener:
        listener.start()

    return app
