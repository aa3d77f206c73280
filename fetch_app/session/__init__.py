"""
Fetch session module: the process-wide session store, the progress listener
that feeds it, and the side effects fired when a session finishes.
"""

from .models import ProtocolState, SessionSnapshot
from .state import SessionState
from .listener import EventListener
from .side_effects import CacheRegistry, Notification, NotificationOutbox, SessionSideEffects

__all__ = [
    "ProtocolState",
    "SessionSnapshot",
    "SessionState",
    "EventListener",
    "CacheRegistry",
    "Notification",
    "NotificationOutbox",
    "SessionSideEffects",
]
