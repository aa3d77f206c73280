"""
View models produced by the fetch observers.

Every view is a frozen value computed from a session snapshot; none of them
holds a reference back to the session store.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from fetch_app.fetch_config.models import ValidationFailure
from fetch_app.session import SessionSnapshot


@dataclass(frozen=True)
class ProgressDetails:
    """Progress block shared by the dialog and the floating card."""
    phase: str
    percent: int
    current_step: str
    elapsed_seconds: float
    elapsed_text: str
    eta_seconds: Optional[float]
    eta_text: Optional[str]
    counters: Dict[str, int]
    concurrency: Optional[Dict[str, int]]
    errors: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "percent": self.percent,
            "current_step": self.current_step,
            "elapsed_seconds": self.elapsed_seconds,
            "elapsed_text": self.elapsed_text,
            "eta_seconds": self.eta_seconds,
            "eta_text": self.eta_text,
            "counters": dict(self.counters),
            "concurrency": dict(self.concurrency) if self.concurrency is not None else None,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class Configuring:
    """Dialog is editing a not-yet-submitted configuration."""
    draft: Dict[str, Any]
    failures: Tuple[ValidationFailure, ...] = ()
    can_start: bool = True

    kind = "configuring"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "draft": dict(self.draft),
            "failures": [f.to_dict() for f in self.failures],
            "can_start": self.can_start,
        }


@dataclass(frozen=True)
class Observing:
    """Dialog mirrors the global session."""
    session: SessionSnapshot

    kind = "observing"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "session": self.session.to_dict()}


DialogMode = Union[Configuring, Observing]


@dataclass(frozen=True)
class SessionActions:
    can_cancel: bool = False
    can_retry: bool = False
    can_dismiss: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"can_cancel": self.can_cancel, "can_retry": self.can_retry, "can_dismiss": self.can_dismiss}


@dataclass(frozen=True)
class DialogView:
    is_open: bool
    title: str
    description: str
    mode: DialogMode
    progress: Optional[ProgressDetails] = None
    error_title: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    actions: SessionActions = field(default_factory=SessionActions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_open": self.is_open,
            "title": self.title,
            "description": self.description,
            "mode": self.mode.to_dict(),
            "progress": self.progress.to_dict() if self.progress else None,
            "error_title": self.error_title,
            "error": self.error,
            "actions": self.actions.to_dict(),
        }


@dataclass(frozen=True)
class SlimBarView:
    visible: bool
    percent: int = 0
    color: str = "blue"
    show_label: bool = False
    label: str = ""
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "visible": self.visible,
            "percent": self.percent,
            "color": self.color,
            "show_label": self.show_label,
            "label": self.label,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class FloatingCardView:
    visible: bool
    title: str = ""
    color: str = "blue"
    percent: int = 0
    bar_percent: int = 0
    expanded: bool = False
    progress: Optional[ProgressDetails] = None
    error_title: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    warning: Optional[Dict[str, Any]] = None
    stalled: bool = False
    connection_lost: bool = False
    actions: SessionActions = field(default_factory=SessionActions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "visible": self.visible,
            "title": self.title,
            "color": self.color,
            "percent": self.percent,
            "bar_percent": self.bar_percent,
            "expanded": self.expanded,
            "progress": self.progress.to_dict() if self.progress else None,
            "error_title": self.error_title,
            "error": self.error,
            "warning": self.warning,
            "stalled": self.stalled,
            "connection_lost": self.connection_lost,
            "actions": self.actions.to_dict(),
        }
