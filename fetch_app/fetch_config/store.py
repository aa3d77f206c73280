"""
Persisted key/value store for the fetch dialog's last-used options.

Values are kept in their serialized primitive form (decimal strings for
numbers, "true"/"false" for booleans, "null" for None) and parsed
defensively on read: a missing or malformed entry falls back to the
caller's default and never raises.
"""
import json
import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

KEY_PROVIDER = "fetch_provider"
KEY_MODE = "fetch_mode"
KEY_CATEGORIES = "fetch_categories"
KEY_MAX_PAPERS = "fetch_maxPapers"
KEY_DATE_RANGE_MODE = "fetch_dateRangeMode"
KEY_DAYS_BACK = "fetch_daysBack"
KEY_DATE_FROM = "fetch_dateFrom"
KEY_DATE_TO = "fetch_dateTo"
KEY_MIN_RELEVANCE = "fetch_minRelevance"
KEY_DEEP_ANALYSIS = "fetch_deepAnalysis"
KEY_DEEP_ANALYSIS_THRESHOLD = "fetch_deepAnalysisThreshold"
KEY_CONCURRENCY_MODE = "fetch_asyncMode"
KEY_MAX_CONCURRENT = "fetch_maxConcurrent"
KEY_LANGUAGE = "fetch_language"
KEY_ARXIV_IDS = "fetch_arxivIds"


def serialize_value(value: Any) -> str:
    """Serialize a primitive into its stored string form."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class PersistedConfigStore:
    """String-keyed store backed by a JSON file, surviving restarts."""

    def __init__(self, persistence_file: Optional[Path] = None):
        self._lock = threading.RLock()
        self._values: Dict[str, str] = {}
        self._persistence_file = persistence_file
        self._load_persistence()

    def _load_persistence(self) -> None:
        if not self._persistence_file or not self._persistence_file.exists():
            return
        try:
            with open(self._persistence_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("stored options are not an object")
            with self._lock:
                self._values = {str(k): str(v) for k, v in data.items() if v is not None}
        except Exception as e:
            logger.warning(f"Failed to load persisted fetch options, using defaults: {e}")

    def _save_persistence(self) -> None:
        # Caller holds the lock
        if not self._persistence_file:
            return
        try:
            self._persistence_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = self._persistence_file.with_suffix(self._persistence_file.suffix + ".tmp")
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(self._values, f, indent=2, ensure_ascii=False)
            os.replace(tmp_file, self._persistence_file)
            logger.debug(f"Saved {len(self._values)} fetch options to {self._persistence_file}")
        except Exception as e:
            logger.warning(f"Failed to save persisted fetch options: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Raw access
    # ------------------------------------------------------------------

    def get_raw(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set_value(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Dict[str, Any]) -> None:
        """Write several values with a single save."""
        if not values:
            return
        with self._lock:
            for key, value in values.items():
                self._values[key] = serialize_value(value)
            self._save_persistence()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._values.pop(key, None) is not None:
                self._save_persistence()

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._values)

    # ------------------------------------------------------------------
    # Typed reads
    # ------------------------------------------------------------------

    def get_str(self, key: str, default: str, allowed: Optional[Iterable[str]] = None) -> str:
        raw = self.get_raw(key)
        if raw is None or raw == "":
            return default
        if allowed is not None and raw not in set(allowed):
            logger.debug(f"Ignoring stored {key}={raw!r}: not one of the allowed values")
            return default
        return raw

    def get_int(self, key: str, default: int, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            value = int(raw.strip())
        except ValueError:
            logger.debug(f"Ignoring malformed stored {key}={raw!r}")
            return default
        if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
            return default
        return value

    def get_optional_int(self, key: str, default: Optional[int], minimum: Optional[int] = None) -> Optional[int]:
        """Like ``get_int`` but "null" reads back as None."""
        raw = self.get_raw(key)
        if raw is None:
            return default
        if raw.strip() == "null":
            return None
        try:
            value = int(raw.strip())
        except ValueError:
            logger.debug(f"Ignoring malformed stored {key}={raw!r}")
            return default
        if minimum is not None and value < minimum:
            return default
        return value

    def get_bool(self, key: str, default: Optional[bool]) -> Optional[bool]:
        raw = self.get_raw(key)
        if raw == "true":
            return True
        if raw == "false":
            return False
        return default

    def get_list(self, key: str, default: List[str]) -> List[str]:
        raw = self.get_raw(key)
        if raw is None:
            return list(default)
        items = [item.strip() for item in raw.split(",") if item.strip()]
        return items or list(default)
