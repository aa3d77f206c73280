"""
Fetch observers: the configuration dialog, the slim progress bar and the
floating detail card. Each one is a projection of the session store.
"""

from .eta import estimate_remaining, format_duration, session_eta
from .models import (
    Configuring,
    DialogMode,
    DialogView,
    FloatingCardView,
    Observing,
    ProgressDetails,
    SessionActions,
    SlimBarView,
)
from .slim_bar import render_slim_bar
from .floating_card import FloatingCard, render_floating_card
from .dialog import FetchDialog, reconcile
from .factory import create_observer_module

__all__ = [
    "estimate_remaining",
    "format_duration",
    "session_eta",
    "Configuring",
    "DialogMode",
    "DialogView",
    "FloatingCardView",
    "Observing",
    "ProgressDetails",
    "SessionActions",
    "SlimBarView",
    "render_slim_bar",
    "FloatingCard",
    "render_floating_card",
    "FetchDialog",
    "reconcile",
    "create_observer_module",
]
