"""
Floating detail card in the bottom-right corner.

Shows the full progress breakdown without taking space at the top of the
window. The expanded/collapsed toggle is the card's only local state.
"""
import threading

from fetch_app.session import ProtocolState, SessionSnapshot
from .models import FloatingCardView
from .projection import (
    error_payload,
    error_title,
    is_completed,
    percent_of,
    progress_details,
    session_actions,
    status_color,
)


def card_title(snapshot: SessionSnapshot) -> str:
    if snapshot.error_active:
        return "Fetch Failed"
    if is_completed(snapshot):
        return "Fetch Complete"
    state = snapshot.protocol_state
    if state == ProtocolState.CANCELLING:
        return "Cancelling..."
    if state == ProtocolState.STARTING:
        return "Starting Fetch"
    return "Fetching Papers"


def render_floating_card(
    snapshot: SessionSnapshot,
    now: float,
    stall_timeout_seconds: float = 0,
    expanded: bool = False,
) -> FloatingCardView:
    """Project the session onto the card.

    Hidden while idle, and while running with neither a status nor an error
    to show.
    """
    if not (snapshot.running or snapshot.completing):
        return FloatingCardView(visible=False)
    if snapshot.latest_status is None and not snapshot.error_active:
        return FloatingCardView(visible=False)

    percent = percent_of(snapshot)
    finished = snapshot.error_active or is_completed(snapshot)
    return FloatingCardView(
        visible=True,
        title=card_title(snapshot),
        color=status_color(snapshot),
        percent=percent,
        bar_percent=100 if finished else percent,
        expanded=expanded,
        progress=progress_details(snapshot, now),
        error_title=error_title(snapshot.error_info) if snapshot.error_active else None,
        error=error_payload(snapshot.error_info) if snapshot.error_active else None,
        warning=error_payload(snapshot.warning),
        stalled=snapshot.is_stalled(now, stall_timeout_seconds),
        connection_lost=snapshot.connection_lost,
        actions=session_actions(snapshot, now, stall_timeout_seconds),
    )


class FloatingCard:
    """Card observer holding the expand toggle."""

    def __init__(self, stall_timeout_seconds: float = 0):
        self.stall_timeout_seconds = stall_timeout_seconds
        self._expanded = False
        self._lock = threading.Lock()

    @property
    def expanded(self) -> bool:
        return self._expanded

    def toggle(self) -> bool:
        with self._lock:
            self._expanded = not self._expanded
            return self._expanded

    def render(self, snapshot: SessionSnapshot, now: float) -> FloatingCardView:
        return render_floating_card(snapshot, now, self.stall_timeout_seconds, expanded=self._expanded)
