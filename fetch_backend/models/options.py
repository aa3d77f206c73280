"""
Fetch option models.

This module contains the Pydantic model describing one submitted fetch job
and the enums its fields draw from.
"""

import re
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, model_validator


# YYMM.NNNNN with an optional version suffix (e.g. 2401.12345v2)
ARXIV_ID_PATTERN = re.compile(r"^[0-9]{4}\.[0-9]{4,5}(v[0-9]+)?$")


def is_valid_arxiv_id(arxiv_id: str) -> bool:
    """Check whether a string is a well-formed new-style arXiv ID."""
    return bool(ARXIV_ID_PATTERN.match(arxiv_id.strip()))


class Provider(str, Enum):
    """Analysis engine used for relevance scoring and deep analysis."""
    GLM = "glm"
    CLAUDE = "claude"


class FetchMode(str, Enum):
    """How papers are selected for a fetch."""
    BY_CATEGORY = "category"
    BY_ID = "id"


class DateRangeMode(str, Enum):
    """Whether a category fetch uses a preset day window or explicit dates."""
    PRESET = "preset"
    CUSTOM = "custom"


class ConcurrencyMode(str, Enum):
    """Backend analysis scheduling."""
    SEQUENTIAL = "sync"
    CONCURRENT = "async"


class ResponseLanguage(str, Enum):
    """Language of generated analysis text."""
    EN = "en"
    ZH = "zh"


class FetchOptions(BaseModel):
    """Validated options for one fetch session. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    provider: Provider = Field(description="Analysis engine selection")
    mode: FetchMode = Field(default=FetchMode.BY_CATEGORY, description="Category search or explicit ID list")
    categories: Tuple[str, ...] = Field(default=(), description="arXiv categories searched in category mode")
    max_papers: int = Field(default=10, gt=0, description="Upper bound on papers retrieved in category mode")
    days_back: Optional[int] = Field(default=7, ge=0, description="Preset window in days; None means all time")
    date_from: Optional[str] = Field(default=None, description="Custom range start (YYYY-MM-DD)")
    date_to: Optional[str] = Field(default=None, description="Custom range end (YYYY-MM-DD)")
    ids: Tuple[str, ...] = Field(default=(), description="arXiv IDs fetched in ID mode, in submission order")
    min_relevance: int = Field(default=60, ge=0, le=100, description="Relevance score required to keep a paper")
    deep_analysis: bool = Field(default=False, description="Run deep analysis on highly relevant papers")
    deep_analysis_threshold: int = Field(default=70, ge=0, le=100, description="Relevance needed for deep analysis")
    concurrency_mode: ConcurrencyMode = Field(default=ConcurrencyMode.SEQUENTIAL, description="Backend scheduling")
    max_concurrent: int = Field(default=1, ge=1, le=5, description="Worker pool size in concurrent mode")
    response_language: ResponseLanguage = Field(default=ResponseLanguage.EN, description="Language of analysis output")

    @model_validator(mode="after")
    def _check_mode_fields(self) -> "FetchOptions":
        if self.mode == FetchMode.BY_ID:
            if not self.ids:
                raise ValueError("ID mode needs at least one arXiv ID")
            invalid = [arxiv_id for arxiv_id in self.ids if not is_valid_arxiv_id(arxiv_id)]
            if invalid:
                raise ValueError(f"Invalid arXiv IDs: {', '.join(invalid)}")
            return self

        if not self.categories:
            raise ValueError("Category mode needs at least one category")
        if self.uses_custom_range:
            if self.date_from is None or self.date_to is None:
                raise ValueError("A custom date range needs both date_from and date_to")
            if self.days_back is not None:
                raise ValueError("Use either days_back or a custom date range, not both")
        return self

    @property
    def uses_custom_range(self) -> bool:
        return self.date_from is not None or self.date_to is not None

    def to_command_payload(self) -> Dict[str, Any]:
        """Serialize into the field names the backend's start command expects.

        Fields that do not apply to the selected mode are left out.
        """
        payload: Dict[str, Any] = {
            "llm_provider": self.provider.value,
            "min_relevance": self.min_relevance,
            "deep_analysis": self.deep_analysis,
            "async_mode": self.concurrency_mode.value,
            "language": self.response_language.value,
            "fetch_by_id": self.mode == FetchMode.BY_ID,
        }
        if self.mode == FetchMode.BY_ID:
            payload["arxiv_ids"] = list(self.ids)
        else:
            payload["categories"] = list(self.categories)
            payload["max_papers"] = self.max_papers
            if self.uses_custom_range:
                payload["date_from"] = self.date_from
                payload["date_to"] = self.date_to
            elif self.days_back is not None:
                payload["days_back"] = self.days_back
        if self.deep_analysis:
            payload["deep_analysis_threshold"] = self.deep_analysis_threshold
        if self.concurrency_mode == ConcurrencyMode.CONCURRENT:
            payload["max_concurrent"] = self.max_concurrent
        return payload
