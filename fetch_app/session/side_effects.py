"""
One-time side effects of a finished fetch session.

When a session completes the user gets a notification and the cached paper
queries are invalidated so lists refetch. A failed or cancelled session only
produces a notification.
"""
import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from fetch_backend.models import ErrorKind
from .models import SessionSnapshot
from .state import SessionState

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """Desktop notification queued for the browser shell to display."""
    id: int
    title: str
    body: str
    tag: str
    require_interaction: bool = False
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "tag": self.tag,
            "require_interaction": self.require_interaction,
            "created_at": self.created_at,
        }


class NotificationOutbox:
    """Bounded, thread-safe queue of notifications waiting to be shown."""

    def __init__(self, max_size: int = 50):
        self._lock = threading.Lock()
        self._items: Deque[Notification] = deque(maxlen=max_size)
        self._ids = itertools.count(1)

    def push(self, title: str, body: str, tag: str, require_interaction: bool = False) -> Notification:
        with self._lock:
            notification = Notification(
                id=next(self._ids),
                title=title,
                body=body,
                tag=tag,
                require_interaction=require_interaction,
            )
            self._items.append(notification)
        logger.info(f"Notification queued: {title} - {body}")
        return notification

    def since(self, last_id: int = 0) -> List[Notification]:
        """Notifications newer than *last_id*, oldest first."""
        with self._lock:
            return [n for n in self._items if n.id > last_id]


class CacheRegistry:
    """Version counters for client-side query caches.

    Clients compare versions and refetch a query whose version moved.
    """

    def __init__(self, keys: Optional[List[str]] = None):
        self._lock = threading.Lock()
        self._versions: Dict[str, int] = {k: 0 for k in (keys or [])}

    def invalidate(self, key: str) -> int:
        with self._lock:
            self._versions[key] = self._versions.get(key, 0) + 1
            version = self._versions[key]
        logger.debug(f"Invalidated cache {key!r} -> v{version}")
        return version

    def invalidate_all(self) -> None:
        for key in self.versions():
            self.invalidate(key)

    def versions(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._versions)


class SessionSideEffects:
    """Wires notifications and cache invalidation into the session store hooks."""

    def __init__(
        self,
        outbox: NotificationOutbox,
        caches: CacheRegistry,
        notifications_enabled: bool = True,
    ):
        self.outbox = outbox
        self.caches = caches
        self.notifications_enabled = notifications_enabled

    def install(self, state: SessionState) -> None:
        state.on_completed(self.handle_completed)
        state.on_failed(self.handle_failed)

    def handle_completed(self, snapshot: SessionSnapshot) -> None:
        status = snapshot.latest_status
        saved = status.papers_saved if status else 0
        filtered = status.papers_filtered if status else 0

        self.caches.invalidate_all()
        if self.notifications_enabled:
            self.outbox.push(
                title="PaperFuse: Fetch Complete",
                body=f"{saved} papers saved, {filtered} filtered out",
                tag="fetch-complete",
            )

    def handle_failed(self, snapshot: SessionSnapshot) -> None:
        if not self.notifications_enabled:
            return
        info = snapshot.error_info
        if info is not None and info.kind == ErrorKind.CANCELLED:
            self.outbox.push(
                title="PaperFuse: Fetch Cancelled",
                body="The fetch operation was cancelled",
                tag="fetch-cancelled",
            )
            return
        self.outbox.push(
            title="PaperFuse: Fetch Failed",
            body=info.message if info and info.message else "The fetch operation failed",
            tag="fetch-error",
            require_interaction=True,
        )
