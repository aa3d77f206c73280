"""
Fetch subsystem services: the start/cancel protocol.

The session store is updated optimistically before each command is sent, so
observers see the intended state while the backend call is in flight.
"""
import logging
import threading
from typing import Any, Callable, Dict, Generator, Optional

from fetch_backend.commands import BackendCommandError, BackendCommands
from fetch_backend.models import ErrorInfo, FetchOptions
from fetch_app.fetch_config import ConfigurationBuilder, FormState, ValidationFailure
from fetch_app.session import NotificationOutbox, SessionState
from .models import FetchCommandResult, StreamEvent

logger = logging.getLogger(__name__)


class FetchService:
    """Drives one fetch session through start, cancel, retry and dismissal."""

    def __init__(self, state: SessionState, commands: BackendCommands, builder: Optional[ConfigurationBuilder] = None):
        self.state = state
        self.commands = commands
        self.builder = builder
        self._lock = threading.Lock()
        self._last_options: Optional[FetchOptions] = None

    @property
    def last_options(self) -> Optional[FetchOptions]:
        with self._lock:
            return self._last_options

    def submit(self, form: FormState) -> FetchCommandResult:
        """Validate dialog form state and start a session with the result.

        Validation failures are returned to the caller and never reach the
        session store. The touched fields are persisted only once the session
        has been opened.
        """
        if self.builder is None:
            raise RuntimeError("FetchService was created without a configuration builder")

        result = self.builder.build(form, persist=False)
        if not result.ok:
            return FetchCommandResult(
                success=False,
                action="submit",
                message=result.error_message(),
                reason="config",
                failures=result.failures,
                error_info=result.to_error_info(),
            )
        outcome = self._start(result.options, on_opened=lambda: self.builder.save(result))
        outcome.action = "submit"
        return outcome

    def start(self, options: FetchOptions) -> FetchCommandResult:
        """Start a session with already validated *options*."""
        return self._start(options)

    def _start(self, options: FetchOptions, on_opened: Optional[Callable[[], None]] = None) -> FetchCommandResult:
        rejected = self._check_credential(options, "start")
        if rejected is not None:
            return rejected

        session_id = self.state.open_session(options)
        if session_id is None:
            return FetchCommandResult(
                success=False,
                action="start",
                message="A fetch is already running",
                reason="already_running",
            )
        if on_opened is not None:
            on_opened()
        return self._send_start(options, session_id, "start")

    def _check_credential(self, options: FetchOptions, action: str) -> Optional[FetchCommandResult]:
        if not options.deep_analysis or self.builder is None or self.builder.has_credential(options.provider):
            return None
        failure = ValidationFailure(
            "deep_analysis",
            f"Deep analysis requires a {options.provider.value} API key. "
            "Please configure one in Settings or disable deep analysis.",
        )
        return FetchCommandResult(
            success=False,
            action=action,
            message=failure.reason,
            reason="config",
            failures=[failure],
            error_info=ErrorInfo.config(failure.reason),
        )

    def _send_start(self, options: FetchOptions, session_id: int, action: str) -> FetchCommandResult:
        with self._lock:
            self._last_options = options

        try:
            ack = self.commands.start_fetch(options)
        except BackendCommandError as exc:
            return self._start_failed(exc.message, session_id, action)
        except Exception as exc:
            # Any transport exception is a retryable system error
            logger.error(f"start_fetch raised unexpectedly: {exc}", exc_info=True)
            return self._start_failed(str(exc) or "Failed to start fetch", session_id, action)

        self.state.mark_acknowledged(session_id=session_id)
        logger.info("start_fetch command acknowledged")
        return FetchCommandResult(success=True, action=action, message=ack.message or "Fetch started")

    def _start_failed(self, message: str, session_id: int, action: str) -> FetchCommandResult:
        logger.error(f"start_fetch command failed: {message}")
        info = ErrorInfo.system(message or "Failed to start fetch")
        self.state.set_error(True, info, session_id=session_id)
        return FetchCommandResult(
            success=False,
            action=action,
            message=info.message,
            reason="backend_error",
            error_info=info,
        )

    def cancel(self) -> FetchCommandResult:
        """Request cancellation. The session stays running until a terminal event arrives."""
        snapshot = self.state.snapshot()
        if not snapshot.running or snapshot.is_terminal:
            return FetchCommandResult(success=False, action="cancel", message="No fetch is running", reason="not_running")

        try:
            ack = self.commands.cancel_fetch()
        except Exception as exc:
            # Session is still considered running; the user may try again
            logger.error(f"Failed to cancel fetch: {exc}")
            return FetchCommandResult(success=False, action="cancel", message=str(exc), reason="backend_error")

        self.state.mark_cancel_requested()
        return FetchCommandResult(success=True, action="cancel", message=ack.message or "Cancel requested")

    def retry(self) -> FetchCommandResult:
        """Resubmit the last options after a retryable error."""
        options = self.last_options
        if options is None or not self.state.snapshot().can_retry:
            return self._not_retryable()
        rejected = self._check_credential(options, "retry")
        if rejected is not None:
            return rejected

        # Check and restart in one step; a concurrent retry finds no error left
        session_id = self.state.restart_session(options)
        if session_id is None:
            return self._not_retryable()

        logger.info("Retrying fetch with the last submitted options")
        return self._send_start(options, session_id, "retry")

    @staticmethod
    def _not_retryable() -> FetchCommandResult:
        return FetchCommandResult(
            success=False,
            action="retry",
            message="The current session cannot be retried",
            reason="not_retryable",
        )

    def dismiss(self) -> FetchCommandResult:
        """Acknowledge the finished session and return to idle."""
        was_running = self.state.stop_session()
        return FetchCommandResult(
            success=True,
            action="dismiss",
            message="Session dismissed" if was_running else "No session to dismiss",
        )

    def stream_updates(
        self,
        render: Callable[[], Dict[str, Any]],
        outbox: NotificationOutbox,
        last_notification_id: int = 0,
        heartbeat_seconds: float = 15.0,
        max_events: Optional[int] = None,
    ) -> Generator[StreamEvent, None, None]:
        """Yield state pushes whenever the session store changes.

        Between changes a heartbeat is sent every *heartbeat_seconds* so
        proxies keep the connection open. Pending notifications follow each
        push.
        """
        version = None
        sent = 0
        while max_events is None or sent < max_events:
            current = self.state.version if version is None else self.state.wait_for_change(version, timeout=heartbeat_seconds)
            if current == version:
                event = StreamEvent(event_type="heartbeat")
            else:
                version = current
                event = StreamEvent(event_type="state", data={"state": render()})
            yield event
            sent += 1

            for notification in outbox.since(last_notification_id):
                last_notification_id = notification.id
                yield StreamEvent(event_type="notification", data={"notification": notification.to_dict()})
