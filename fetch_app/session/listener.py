"""
Progress event listener.

One subscriber thread copies events from the backend topic into a typed
inbound queue; one reducer thread applies them to the session store in
order. Sequence checks and deduplication live here and nowhere else.
"""
import logging
import queue
import threading
from typing import Optional

from fetch_backend.events import EventSource
from fetch_backend.models import ProgressEvent
from .state import SessionState

logger = logging.getLogger(__name__)

_STOP = object()


class EventListener:
    """Process-lifetime subscription to the backend progress topic."""

    def __init__(self, state: SessionState, source: EventSource):
        self._state = state
        self._source = source
        self._inbox: "queue.Queue" = queue.Queue()
        # One watermark for the process: the topic is not scoped to a session
        self._last_sequence: Optional[int] = None
        self._subscriber: Optional[threading.Thread] = None
        self._reducer: Optional[threading.Thread] = None
        self._stopping = False
        self.applied_count = 0
        self.dropped_count = 0

    @property
    def is_running(self) -> bool:
        return self._subscriber is not None and self._subscriber.is_alive()

    def start(self) -> None:
        """Start the subscriber and reducer threads. Calling twice is a no-op."""
        if self._reducer is not None:
            return
        self._reducer = threading.Thread(target=self._reduce_loop, name="fetch-event-reducer", daemon=True)
        self._subscriber = threading.Thread(target=self._subscribe_loop, name="fetch-event-subscriber", daemon=True)
        self._reducer.start()
        self._subscriber.start()
        logger.info("Fetch progress listener started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stopping = True
        self._source.close()
        self._inbox.put(_STOP)
        if self._reducer is not None:
            self._reducer.join(timeout)
        if self._subscriber is not None:
            self._subscriber.join(timeout)

    def dispatch(self, event: ProgressEvent) -> None:
        """Queue an event for the reducer."""
        self._inbox.put(event)

    def wait_until_drained(self) -> None:
        """Block until every queued event has been reduced."""
        self._inbox.join()

    def handle_event(self, event: ProgressEvent) -> bool:
        """Apply one event to the session store.

        Events whose sequence number is not greater than the last applied one
        are dropped, including replays that arrive after a new session began.

        Returns:
            True if the event changed the session store
        """
        if event.seq is not None:
            if self._last_sequence is not None and event.seq <= self._last_sequence:
                self.dropped_count += 1
                logger.debug(f"Dropping stale progress event seq={event.seq} (last={self._last_sequence})")
                return False
            self._last_sequence = event.seq

        applied = self._state.apply_status(event.status)
        if applied:
            self.applied_count += 1
        return applied

    def _reduce_loop(self) -> None:
        while True:
            event = self._inbox.get()
            try:
                if event is _STOP:
                    return
                self.handle_event(event)
            except Exception as e:
                logger.error(f"Failed to apply progress event: {e}", exc_info=True)
            finally:
                self._inbox.task_done()

    def _subscribe_loop(self) -> None:
        try:
            for event in self._source.subscribe():
                self._inbox.put(event)
        except Exception as e:
            logger.error(f"Progress subscription failed: {e}", exc_info=True)
        finally:
            if not self._stopping:
                # Known gap: a session may still be running on the backend
                logger.error("Progress subscription ended; session outcome can no longer be observed")
                self._state.mark_connection_lost(True)
