"""
Session models for the fetch session store.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from fetch_backend.models import ErrorInfo, FetchStatus


class ProtocolState(Enum):
    """Client-side position in the start/cancel protocol."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETING = "completing"
    ERROR = "error"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only projection of the session store at one instant."""
    running: bool = False
    completing: bool = False
    error_active: bool = False
    error_info: Optional[ErrorInfo] = None
    latest_status: Optional[FetchStatus] = None
    start_time: Optional[float] = None
    acknowledged: bool = False
    cancel_requested: bool = False
    warning: Optional[ErrorInfo] = None
    connection_lost: bool = False
    last_event_time: Optional[float] = None

    @property
    def protocol_state(self) -> ProtocolState:
        if not self.running:
            return ProtocolState.IDLE
        if self.error_active:
            return ProtocolState.ERROR
        if self.completing:
            return ProtocolState.COMPLETING
        if self.cancel_requested:
            return ProtocolState.CANCELLING
        if not self.acknowledged and self.latest_status is None:
            return ProtocolState.STARTING
        return ProtocolState.RUNNING

    @property
    def progress(self) -> float:
        return self.latest_status.progress if self.latest_status else 0.0

    @property
    def is_terminal(self) -> bool:
        return self.completing or self.error_active

    @property
    def can_retry(self) -> bool:
        return self.running and self.error_active and bool(self.error_info and self.error_info.retryable)

    def elapsed(self, now: float) -> float:
        """Seconds since the session started, or 0 when idle."""
        if self.start_time is None:
            return 0.0
        return max(0.0, now - self.start_time)

    def is_stalled(self, now: float, timeout_seconds: float) -> bool:
        """Running, not terminal, and silent for longer than *timeout_seconds*."""
        if not self.running or self.is_terminal or timeout_seconds <= 0:
            return False
        reference = self.last_event_time or self.start_time
        if reference is None:
            return False
        return now - reference > timeout_seconds

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "running": self.running,
            "completing": self.completing,
            "error_active": self.error_active,
            "error_info": self.error_info.model_dump(mode="json") if self.error_info else None,
            "latest_status": self.latest_status.model_dump(mode="json") if self.latest_status else None,
            "start_time": datetime.fromtimestamp(self.start_time).isoformat() if self.start_time else None,
            "acknowledged": self.acknowledged,
            "cancel_requested": self.cancel_requested,
            "warning": self.warning.model_dump(mode="json") if self.warning else None,
            "connection_lost": self.connection_lost,
            "protocol_state": self.protocol_state.value,
        }
