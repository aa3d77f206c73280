"""
Elapsed time and ETA helpers.

ETA is never stored; observers recompute it from live values on every render.
"""
from typing import Optional

from fetch_app.session import SessionSnapshot


def estimate_remaining(
    progress: float,
    elapsed: float,
    completing: bool = False,
    error_active: bool = False,
) -> Optional[float]:
    """Seconds remaining, extrapolated linearly from progress so far.

    Defined only while 0 < progress < 1 and the session is neither
    completing nor errored; otherwise None.
    """
    if completing or error_active:
        return None
    if not 0.0 < progress < 1.0:
        return None
    return elapsed / progress - elapsed


def session_eta(snapshot: SessionSnapshot, now: float) -> Optional[float]:
    if not snapshot.running or snapshot.latest_status is None:
        return None
    return estimate_remaining(
        snapshot.progress,
        snapshot.elapsed(now),
        completing=snapshot.completing,
        error_active=snapshot.error_active,
    )


def format_duration(seconds: float) -> str:
    """Format a duration as ``45s``, ``2m`` or ``2m 5s``."""
    total = int(max(0, seconds))
    if total < 60:
        return f"{total}s"
    minutes, remaining = divmod(total, 60)
    return f"{minutes}m {remaining}s" if remaining > 0 else f"{minutes}m"
