"""
Fetch configuration dialog.

The dialog keeps a local draft and its last validation failures so it can be
closed and reopened freely. Whenever a session is running it shows the
global session instead of the draft.
"""
import logging
import threading
from typing import Tuple

from fetch_app.fetch.models import FetchCommandResult
from fetch_app.fetch.services import FetchService
from fetch_app.fetch_config import ConfigurationBuilder, FormState, ValidationFailure
from fetch_app.session import SessionSnapshot, SessionState
from .models import Configuring, DialogMode, DialogView, Observing
from .projection import error_payload, error_title, progress_details, session_actions

logger = logging.getLogger(__name__)


def reconcile(snapshot: SessionSnapshot, local: Configuring) -> DialogMode:
    """Pick what the dialog shows: the global session if one is running, else the draft."""
    if snapshot.running:
        return Observing(session=snapshot)
    return local


class FetchDialog:
    """Dialog observer with its own pre-submission state."""

    def __init__(
        self,
        state: SessionState,
        builder: ConfigurationBuilder,
        service: FetchService,
        stall_timeout_seconds: float = 0,
    ):
        self.state = state
        self.builder = builder
        self.service = service
        self.stall_timeout_seconds = stall_timeout_seconds
        self._lock = threading.Lock()
        self._open = False
        self._draft = FormState()
        self._failures: Tuple[ValidationFailure, ...] = ()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def draft(self) -> FormState:
        with self._lock:
            return FormState(values=dict(self._draft.values))

    def open(self) -> None:
        with self._lock:
            self._open = True
            if not self.state.snapshot().running:
                # Stale failures from an earlier attempt
                self._failures = ()

    def close(self) -> None:
        """Hide the dialog. A running session is left untouched."""
        with self._lock:
            self._open = False
            if not self.state.snapshot().running:
                self._failures = ()

    def update_draft(self, changes: FormState) -> None:
        with self._lock:
            self._draft = self._draft.merged_with(changes)

    def reset_draft(self) -> None:
        with self._lock:
            self._draft = FormState()
            self._failures = ()

    def submit(self) -> FetchCommandResult:
        """Validate the draft and start a session."""
        draft = self.draft
        result = self.service.submit(draft)
        with self._lock:
            if result.reason == "config":
                self._failures = tuple(result.failures)
            elif result.reason == "already_running":
                # Nothing was persisted; keep the draft for the next attempt
                self._failures = ()
            else:
                self._failures = ()
                # Choices are persisted now and come back as defaults
                self._draft = FormState()
        return result

    def local_state(self) -> Configuring:
        with self._lock:
            draft = self._draft
            failures = self._failures
        values = self.builder.resolve(draft)
        return Configuring(draft=values, failures=failures, can_start=self.builder.can_start(values))

    def mode(self, snapshot: SessionSnapshot) -> DialogMode:
        return reconcile(snapshot, self.local_state())

    def render(self, snapshot: SessionSnapshot, now: float) -> DialogView:
        mode = self.mode(snapshot)
        if isinstance(mode, Configuring):
            return DialogView(
                is_open=self._open,
                title="Fetch Papers",
                description="Configure and start a new fetch",
                mode=mode,
            )

        session = mode.session
        return DialogView(
            is_open=self._open,
            title="Fetching Papers",
            description="Progress continues in the background if you close this dialog",
            mode=mode,
            progress=progress_details(session, now),
            error_title=error_title(session.error_info) if session.error_active else None,
            error=error_payload(session.error_info) if session.error_active else None,
            actions=session_actions(session, now, self.stall_timeout_seconds),
        )
