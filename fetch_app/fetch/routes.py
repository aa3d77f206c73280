"""
Fetch subsystem routes: session commands and the state stream.
"""
import logging
from typing import Any, Dict

from flask import Blueprint, Response, jsonify, request, stream_with_context

from fetch_app.fetch_config import ConfigurationBuilder, FormState
from fetch_app.session import CacheRegistry, NotificationOutbox, SessionState
from .models import FetchCommandResult
from .services import FetchService

logger = logging.getLogger(__name__)

# HTTP status per failure reason; successes use the per-route default
FAILURE_STATUS = {
    "config": 400,
    "already_running": 409,
    "not_running": 409,
    "not_retryable": 409,
    "backend_error": 502,
}


def _respond(result: FetchCommandResult, success_status: int = 200):
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), FAILURE_STATUS.get(result.reason, 400)


def create_fetch_routes(
    fetch_service: FetchService,
    state: SessionState,
    builder: ConfigurationBuilder,
    outbox: NotificationOutbox,
    caches: CacheRegistry,
    stall_timeout_seconds: float = 0,
    heartbeat_seconds: float = 15.0,
) -> Blueprint:
    """Create fetch routes."""
    bp = Blueprint("fetch", __name__, url_prefix="/api/fetch")

    def state_payload() -> Dict[str, Any]:
        snapshot = state.snapshot()
        now = state.now()
        return {
            "session": snapshot.to_dict(),
            "session_id": state.session_id,
            "stalled": snapshot.is_stalled(now, stall_timeout_seconds),
            "elapsed_seconds": snapshot.elapsed(now),
            "cache_versions": caches.versions(),
        }

    @bp.route("/start", methods=["POST"])
    def start_fetch():
        """Validate the submitted form fields and start a session."""
        body = request.get_json(silent=True) or {}
        result = fetch_service.submit(FormState.from_dict(body))
        return _respond(result, success_status=202)

    @bp.route("/cancel", methods=["POST"])
    def cancel_fetch():
        return _respond(fetch_service.cancel())

    @bp.route("/retry", methods=["POST"])
    def retry_fetch():
        return _respond(fetch_service.retry(), success_status=202)

    @bp.route("/dismiss", methods=["POST"])
    def dismiss_fetch():
        return _respond(fetch_service.dismiss())

    @bp.route("/state", methods=["GET"])
    def get_state():
        payload = state_payload()
        payload["defaults"] = builder.defaults()
        return jsonify(payload)

    @bp.route("/notifications", methods=["GET"])
    def get_notifications():
        since = request.args.get("since", default=0, type=int)
        return jsonify({"notifications": [n.to_dict() for n in outbox.since(since)]})

    @bp.route("/stream", methods=["GET"])
    def stream_state():
        """Push the session state to the browser whenever it changes."""
        last_notification_id = request.args.get("since", default=0, type=int)
        logger.debug(f"Fetch state stream opened from {request.remote_addr}")

        def generate():
            try:
                for event in fetch_service.stream_updates(
                    state_payload,
                    outbox,
                    last_notification_id=last_notification_id,
                    heartbeat_seconds=heartbeat_seconds,
                ):
                    yield event.to_sse()
            except GeneratorExit:
                logger.debug("Fetch state stream closed by client")
                raise

        return Response(
            stream_with_context(generate()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return bp
