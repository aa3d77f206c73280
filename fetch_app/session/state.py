"""
Session state store.

Holds the single process-wide view of the fetch job. Every write goes through
one of the effect methods below; readers get immutable snapshots.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from fetch_backend.models import ErrorInfo, FetchOptions, FetchPhase, FetchStatus
from .models import SessionSnapshot

logger = logging.getLogger(__name__)

SessionHook = Callable[[SessionSnapshot], None]


class SessionState:
    """Thread-safe store for the one fetch session the process may run."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._clock = clock
        self._completed_hooks: List[SessionHook] = []
        self._failed_hooks: List[SessionHook] = []
        self._version = 0
        self._session_id = 0
        self._connection_lost = False
        self._reset()

    def _reset(self) -> None:
        # Caller holds the lock (or is __init__)
        self._running = False
        self._completing = False
        self._error_active = False
        self._error_info: Optional[ErrorInfo] = None
        self._latest_status: Optional[FetchStatus] = None
        self._start_time: Optional[float] = None
        self._acknowledged = False
        self._cancel_requested = False
        self._warning: Optional[ErrorInfo] = None
        self._last_event_time: Optional[float] = None
        self._completed_once = False
        self._failed_once = False

    def _touch(self) -> None:
        self._version += 1
        self._changed.notify_all()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def on_completed(self, hook: SessionHook) -> None:
        """Register a side effect run once per session when it completes."""
        with self._lock:
            self._completed_hooks.append(hook)

    def on_failed(self, hook: SessionHook) -> None:
        """Register a side effect run once per session when it errors."""
        with self._lock:
            self._failed_hooks.append(hook)

    def _run_hooks(self, hooks: List[SessionHook], snapshot: SessionSnapshot) -> None:
        for hook in hooks:
            try:
                hook(snapshot)
            except Exception as e:
                logger.error(f"Session hook {getattr(hook, '__name__', hook)!r} failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def start_session(self, options: Optional[FetchOptions] = None) -> bool:
        """Begin a new session.

        Returns:
            True if a session was started, False if one is already running
        """
        return self.open_session(options) is not None

    def open_session(self, options: Optional[FetchOptions] = None) -> Optional[int]:
        """Like ``start_session`` but returns the new session id, or None."""
        with self._lock:
            if self._running:
                logger.info("start_session ignored: a fetch session is already running")
                return None
            return self._begin(options)

    def restart_session(self, options: Optional[FetchOptions] = None) -> Optional[int]:
        """Replace a session that failed with a retryable error by a fresh one.

        The check and the reset happen under one lock, so of two concurrent
        retries only the first gets a session.

        Returns:
            The new session id, or None if the current session is not retryable
        """
        with self._lock:
            info = self._error_info
            if not (self._running and self._error_active and info is not None and info.retryable):
                logger.info("restart_session ignored: no retryable fetch session")
                return None
            logger.info(f"Stopped fetch session #{self._session_id} for retry")
            return self._begin(options)

    def _begin(self, options: Optional[FetchOptions]) -> int:
        # Caller holds the lock
        self._reset()
        self._running = True
        self._start_time = self._clock()
        self._session_id += 1
        self._touch()
        logger.info(
            f"Started fetch session #{self._session_id}"
            + (f" (mode={options.mode.value}, provider={options.provider.value})" if options else "")
        )
        return self._session_id

    def _is_stale(self, session_id: Optional[int]) -> bool:
        # Caller holds the lock
        return session_id is not None and session_id != self._session_id

    def apply_status(self, status: FetchStatus) -> bool:
        """Replace the latest status with *status*.

        A completed phase triggers ``mark_completing`` and an error phase
        triggers ``set_error``; both are idempotent within a session and are
        bound to the session that received the status.

        Returns:
            True if the status was applied, False if no session is running
        """
        with self._lock:
            if not self._running:
                logger.debug(f"Dropping {status.phase.value} status: no session is running")
                return False

            self._latest_status = status
            self._last_event_time = self._clock()
            self._acknowledged = True
            if status.error is not None and status.error.is_warning and status.phase != FetchPhase.ERROR:
                self._warning = status.error
            self._touch()
            session_id = self._session_id

        if status.phase == FetchPhase.COMPLETED:
            self.mark_completing(session_id=session_id)
        elif status.phase == FetchPhase.ERROR:
            info = status.error or ErrorInfo.system(status.current_step or "Fetch failed")
            self.set_error(True, info, session_id=session_id)
        return True

    def mark_completing(self, session_id: Optional[int] = None) -> bool:
        """Enter the completing window and fire completion side effects.

        Args:
            session_id: When given, do nothing unless it is still the current session

        Returns:
            True on the first call of a session, False afterwards
        """
        with self._lock:
            if not self._running or self._completed_once or self._is_stale(session_id):
                return False
            self._completed_once = True
            self._completing = True
            self._touch()
            snapshot = self._snapshot()
            hooks = list(self._completed_hooks)
            current = self._session_id

        logger.info(f"Fetch session #{current} completed")
        self._run_hooks(hooks, snapshot)
        return True

    def set_error(self, active: bool, info: Optional[ErrorInfo], session_id: Optional[int] = None) -> None:
        """Set or clear the session error.

        Warnings never end a session; they are recorded separately and
        ``error_active`` is left alone. A *session_id* that is no longer
        current makes this a no-op.
        """
        fire = False
        with self._lock:
            if self._is_stale(session_id):
                logger.debug(f"set_error ignored: session #{session_id} has ended")
                return
            if active and not self._running:
                logger.debug("set_error ignored: no session is running")
                return
            if active and info is not None and info.is_warning:
                self._warning = info
                self._touch()
                return

            self._error_active = active
            self._error_info = info if active else None
            if active and self._running and not self._failed_once:
                self._failed_once = True
                fire = True
            self._touch()
            snapshot = self._snapshot()
            hooks = list(self._failed_hooks)
            current = self._session_id

        if fire:
            logger.warning(
                f"Fetch session #{current} failed: "
                f"{info.kind.value if info else 'unknown'}: {info.message if info else ''}"
            )
            self._run_hooks(hooks, snapshot)

    def stop_session(self) -> bool:
        """Reset every session field to idle. The only way ``running`` becomes False.

        Returns:
            True if a session was running
        """
        with self._lock:
            was_running = self._running
            self._reset()
            self._touch()
            current = self._session_id
        if was_running:
            logger.info(f"Stopped fetch session #{current}")
        return was_running

    def mark_acknowledged(self, session_id: Optional[int] = None) -> None:
        with self._lock:
            if self._running and not self._acknowledged and not self._is_stale(session_id):
                self._acknowledged = True
                self._touch()

    def mark_cancel_requested(self) -> None:
        with self._lock:
            if self._running and not (self._completing or self._error_active):
                self._cancel_requested = True
                self._touch()

    def mark_connection_lost(self, lost: bool = True) -> None:
        with self._lock:
            if self._connection_lost != lost:
                self._connection_lost = lost
                self._touch()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> int:
        """Generation number, bumped by every successful ``start_session``."""
        with self._lock:
            return self._session_id

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def now(self) -> float:
        return self._clock()

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            running=self._running,
            completing=self._completing,
            error_active=self._error_active,
            error_info=self._error_info,
            latest_status=self._latest_status,
            start_time=self._start_time,
            acknowledged=self._acknowledged,
            cancel_requested=self._cancel_requested,
            warning=self._warning,
            connection_lost=self._connection_lost,
            last_event_time=self._last_event_time,
        )

    def wait_for_change(self, since_version: int, timeout: Optional[float] = None) -> int:
        """Block until the store changes past *since_version* or *timeout* elapses.

        Returns:
            The current version
        """
        with self._changed:
            self._changed.wait_for(lambda: self._version != since_version, timeout=timeout)
            return self._version
