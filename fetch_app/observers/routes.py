"""
Observer routes: rendered views of the fetch session.
"""
from flask import Blueprint, jsonify, request

from fetch_app.fetch_config import FormState
from fetch_app.session import SessionState
from .dialog import FetchDialog
from .floating_card import FloatingCard
from .slim_bar import render_slim_bar

COMMAND_STATUS = {
    "config": 400,
    "already_running": 409,
    "backend_error": 502,
}


def create_observer_routes(
    state: SessionState,
    dialog: FetchDialog,
    card: FloatingCard,
    stall_timeout_seconds: float = 0,
) -> Blueprint:
    """Create observer routes."""
    bp = Blueprint("fetch_observers", __name__, url_prefix="/api/fetch")

    def dialog_response():
        return jsonify(dialog.render(state.snapshot(), state.now()).to_dict())

    @bp.route("/views/slim-bar", methods=["GET"])
    def slim_bar_view():
        view = render_slim_bar(state.snapshot(), state.now(), stall_timeout_seconds)
        return jsonify(view.to_dict())

    @bp.route("/views/floating-card", methods=["GET"])
    def floating_card_view():
        return jsonify(card.render(state.snapshot(), state.now()).to_dict())

    @bp.route("/views/floating-card/toggle", methods=["POST"])
    def toggle_floating_card():
        card.toggle()
        return jsonify(card.render(state.snapshot(), state.now()).to_dict())

    @bp.route("/dialog", methods=["GET"])
    def dialog_view():
        return dialog_response()

    @bp.route("/dialog/open", methods=["POST"])
    def open_dialog():
        dialog.open()
        return dialog_response()

    @bp.route("/dialog/close", methods=["POST"])
    def close_dialog():
        dialog.close()
        return dialog_response()

    @bp.route("/dialog/draft", methods=["PUT"])
    def update_draft():
        dialog.update_draft(FormState.from_dict(request.get_json(silent=True)))
        return dialog_response()

    @bp.route("/dialog/reset", methods=["POST"])
    def reset_draft():
        dialog.reset_draft()
        return dialog_response()

    @bp.route("/dialog/submit", methods=["POST"])
    def submit_dialog():
        result = dialog.submit()
        payload = {
            "result": result.to_dict(),
            "dialog": dialog.render(state.snapshot(), state.now()).to_dict(),
        }
        status = 202 if result.success else COMMAND_STATUS.get(result.reason, 400)
        return jsonify(payload), status

    return bp
