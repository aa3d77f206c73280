"""
Factory for creating the observer module.
"""
from fetch_app.fetch.services import FetchService
from fetch_app.fetch_config import ConfigurationBuilder
from fetch_app.session import SessionState
from .dialog import FetchDialog
from .floating_card import FloatingCard
from .routes import create_observer_routes


def create_observer_module(
    state: SessionState,
    builder: ConfigurationBuilder,
    fetch_service: FetchService,
    stall_timeout_seconds: float = 0,
) -> dict:
    """Create the dialog, slim bar and floating card observers.

    Returns:
        Dictionary containing the dialog, card and blueprint
    """
    dialog = FetchDialog(state, builder, fetch_service, stall_timeout_seconds=stall_timeout_seconds)
    card = FloatingCard(stall_timeout_seconds=stall_timeout_seconds)

    blueprint = create_observer_routes(state, dialog, card, stall_timeout_seconds=stall_timeout_seconds)

    return {
        "dialog": dialog,
        "card": card,
        "blueprint": blueprint
    }
