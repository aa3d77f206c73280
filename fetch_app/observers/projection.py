"""
Projection helpers shared by every observer.
"""
from typing import Any, Dict, Optional

from fetch_backend.models import ErrorInfo, ErrorKind, FetchPhase
from fetch_app.session import SessionSnapshot
from .eta import format_duration, session_eta
from .models import ProgressDetails, SessionActions

ERROR_TITLES = {
    ErrorKind.LLM_RATE_LIMIT: "Rate limited",
    ErrorKind.LLM_AUTH: "Authentication failed",
    ErrorKind.NETWORK: "Network error",
    ErrorKind.CANCELLED: "Fetch cancelled",
    ErrorKind.WARNING: "Notice",
}


def percent_of(snapshot: SessionSnapshot) -> int:
    return int(round(snapshot.progress * 100))


def is_completed(snapshot: SessionSnapshot) -> bool:
    status = snapshot.latest_status
    return snapshot.completing or (status is not None and status.phase == FetchPhase.COMPLETED)


def status_color(snapshot: SessionSnapshot) -> str:
    if snapshot.error_active:
        return "red"
    if is_completed(snapshot):
        return "green"
    return "blue"


def error_title(info: Optional[ErrorInfo]) -> Optional[str]:
    if info is None:
        return None
    return ERROR_TITLES.get(info.kind, "Error")


def error_payload(info: Optional[ErrorInfo]) -> Optional[Dict[str, Any]]:
    return info.model_dump(mode="json") if info else None


def progress_details(snapshot: SessionSnapshot, now: float) -> Optional[ProgressDetails]:
    """Progress block for a running session, or None before the first event."""
    status = snapshot.latest_status
    if not snapshot.running or status is None:
        return None

    elapsed = snapshot.elapsed(now)
    eta = session_eta(snapshot, now)
    concurrency = None
    if status.has_concurrency_telemetry:
        concurrency = {
            "queue_size": status.queue_size or 0,
            "active_tasks": status.active_tasks or 0,
            "completed_tasks": status.completed_tasks or 0,
            "failed_tasks": status.failed_tasks or 0,
        }
    return ProgressDetails(
        phase=status.phase.value,
        percent=percent_of(snapshot),
        current_step=status.current_step,
        elapsed_seconds=elapsed,
        elapsed_text=format_duration(elapsed),
        eta_seconds=eta,
        eta_text=format_duration(eta) if eta is not None else None,
        counters={
            "found": status.papers_found,
            "analyzed": status.papers_analyzed,
            "saved": status.papers_saved,
            "filtered": status.papers_filtered,
            "duplicates": status.papers_duplicates,
            "cache_hits": status.papers_cache_hits,
        },
        concurrency=concurrency,
        errors=list(status.errors),
    )


def session_actions(snapshot: SessionSnapshot, now: float, stall_timeout_seconds: float) -> SessionActions:
    """Which controls apply to the session right now."""
    if not snapshot.running:
        return SessionActions()
    finished = snapshot.error_active or is_completed(snapshot)
    # A lost or stalled session can only be dismissed; nothing else will end it
    degraded = snapshot.connection_lost or snapshot.is_stalled(now, stall_timeout_seconds)
    return SessionActions(
        can_cancel=not finished,
        can_retry=snapshot.can_retry,
        can_dismiss=finished or degraded,
    )
