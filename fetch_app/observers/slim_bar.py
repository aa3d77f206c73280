"""
Slim progress bar across the top of the window.
"""
from fetch_app.session import SessionSnapshot
from .models import SlimBarView
from .projection import percent_of, status_color


def render_slim_bar(snapshot: SessionSnapshot, now: float, stall_timeout_seconds: float = 0) -> SlimBarView:
    """Project the session onto the slim bar. Hidden while idle."""
    if not (snapshot.running or snapshot.completing):
        return SlimBarView(visible=False)

    percent = percent_of(snapshot)
    show_label = 0 < percent < 100
    return SlimBarView(
        visible=True,
        percent=percent,
        color=status_color(snapshot),
        show_label=show_label,
        label=f"{percent}%" if show_label else "",
        degraded=snapshot.connection_lost or snapshot.is_stalled(now, stall_timeout_seconds),
    )
