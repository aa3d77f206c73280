"""
Fetch subsystem models for session control requests.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fetch_backend.models import ErrorInfo
from fetch_app.fetch_config.models import ValidationFailure


@dataclass
class FetchCommandResult:
    """Outcome of a start, cancel, retry, dismiss or submit request."""
    success: bool
    action: str  # 'submit', 'start', 'cancel', 'retry', 'dismiss'
    message: str = ""
    reason: Optional[str] = None  # 'config', 'already_running', 'backend_error', 'not_running', 'not_retryable'
    failures: List[ValidationFailure] = field(default_factory=list)
    error_info: Optional[ErrorInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": "success" if self.success else "error",
            "action": self.action,
            "message": self.message,
            "reason": self.reason,
            "failures": [f.to_dict() for f in self.failures],
            "error": self.error_info.model_dump(mode="json") if self.error_info else None,
        }


@dataclass
class StreamEvent:
    """Server-sent event pushed to the browser shell."""
    event_type: str  # 'state', 'notification', 'heartbeat'
    data: Dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        payload = {"type": self.event_type, **self.data}
        return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
