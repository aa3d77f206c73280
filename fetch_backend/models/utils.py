"""
Parsing helpers for wire payloads.
"""

import json
from typing import Any, Dict, Union

from .status import FetchStatus, ProgressEvent


def clean_event_line(line: str) -> str:
    """Strip SSE framing and whitespace from one line of event output."""
    cleaned = line.strip()
    if cleaned.startswith("data:"):
        cleaned = cleaned[len("data:"):].strip()
    return cleaned


def parse_progress_event(raw: Union[str, bytes, Dict[str, Any]]) -> ProgressEvent:
    """Parse a progress event from JSON text or an already decoded dict.

    Accepts both the enveloped form ``{"seq": 3, "status": {...}}`` and a bare
    status snapshot with an optional top-level ``seq``.

    Raises:
        ValueError: if the payload is not a valid progress event
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(clean_event_line(raw)) if isinstance(raw, str) else raw
        if not isinstance(data, dict):
            raise ValueError("event payload is not an object")

        if isinstance(data.get("status"), dict):
            return ProgressEvent.model_validate(data)

        body = dict(data)
        seq = body.pop("seq", None)
        return ProgressEvent(seq=seq, status=FetchStatus.model_validate(body))
    except Exception as e:
        raise ValueError(f"Failed to parse progress event: {e}")
