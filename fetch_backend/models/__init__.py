"""
Models package for fetch backend payloads.

This package contains the Pydantic definitions for the options submitted to
the backend and the progress snapshots it pushes back.
"""

from .options import (
    ARXIV_ID_PATTERN,
    is_valid_arxiv_id,
    Provider,
    FetchMode,
    DateRangeMode,
    ConcurrencyMode,
    ResponseLanguage,
    FetchOptions,
)

from .status import (
    FetchPhase,
    ErrorKind,
    ErrorInfo,
    FetchStatus,
    ProgressEvent,
)

from .utils import (
    clean_event_line,
    parse_progress_event,
)
