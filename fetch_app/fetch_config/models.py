"""
Fetch configuration models for the dialog form.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fetch_backend.models import ErrorInfo, FetchOptions

FORM_FIELDS = (
    "provider",
    "mode",
    "categories",
    "max_papers",
    "date_range_mode",
    "days_back",
    "date_from",
    "date_to",
    "min_relevance",
    "deep_analysis",
    "deep_analysis_threshold",
    "concurrency_mode",
    "max_concurrent",
    "response_language",
    "arxiv_ids",
)


@dataclass
class FormState:
    """Raw per-field form values; only the fields the user touched are present."""
    values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FormState":
        """Create FormState from a request body, ignoring unknown keys."""
        data = data or {}
        return cls(values={k: data[k] for k in FORM_FIELDS if k in data})

    def touched_fields(self) -> List[str]:
        return [name for name in FORM_FIELDS if name in self.values]

    def merged_with(self, other: "FormState") -> "FormState":
        """Return a new draft with *other*'s fields layered on top."""
        values = dict(self.values)
        values.update(other.values)
        return FormState(values=values)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.values)


@dataclass(frozen=True)
class ValidationFailure:
    """One reason the form cannot be submitted."""
    field: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "reason": self.reason}


@dataclass
class BuildResult:
    """Outcome of building options: validated options or the failures."""
    options: Optional[FetchOptions] = None
    failures: List[ValidationFailure] = field(default_factory=list)
    # Persisted keys and values of the fields the user touched
    touched: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.options is not None and not self.failures

    def error_message(self) -> str:
        return "; ".join(f.reason for f in self.failures)

    def to_error_info(self) -> Optional[ErrorInfo]:
        if self.ok:
            return None
        return ErrorInfo.config(self.error_message())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "options": self.options.model_dump(mode="json") if self.options else None,
            "failures": [f.to_dict() for f in self.failures],
        }
