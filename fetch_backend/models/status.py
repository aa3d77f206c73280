"""
Progress and error models.

These mirror the payloads the fetch backend pushes on its progress topic.
Every payload is a full snapshot of the running job, never a delta.
"""

import logging
from enum import Enum
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class FetchPhase(str, Enum):
    """Coarse lifecycle stage reported by the backend."""
    IDLE = "idle"
    FETCHING = "fetching"
    FILTERING = "filtering"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (FetchPhase.COMPLETED, FetchPhase.ERROR)

    @property
    def is_active(self) -> bool:
        return self in (FetchPhase.FETCHING, FetchPhase.FILTERING, FetchPhase.ANALYZING)


class ErrorKind(str, Enum):
    """Error taxonomy shared by local validation and the backend."""
    CONFIG = "config"
    SYSTEM = "system"
    NETWORK = "network"
    LLM_RATE_LIMIT = "llm_rate_limit"
    LLM_AUTH = "llm_auth"
    CANCELLED = "cancelled"
    WARNING = "warning"

    @classmethod
    def is_valid(cls, kind: str) -> bool:
        try:
            cls(kind)
            return True
        except ValueError:
            return False


class ErrorInfo(BaseModel):
    """Classified error attached to a session."""
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind = Field(
        validation_alias=AliasChoices("kind", "error_type"),
        description="Error category",
    )
    message: str = Field(default="", description="Human-readable description")
    retryable: bool = Field(
        default=False,
        validation_alias=AliasChoices("retryable", "is_retryable"),
        description="Whether resubmitting the same options is a reasonable remedy",
    )

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_unknown_kind(cls, value):
        if isinstance(value, str) and not ErrorKind.is_valid(value):
            logger.warning(f"Unknown error kind from backend: {value!r}, treating as system")
            return ErrorKind.SYSTEM
        return value

    @property
    def is_warning(self) -> bool:
        return self.kind == ErrorKind.WARNING

    @classmethod
    def system(cls, message: str) -> "ErrorInfo":
        """Transport failure of a command; always retryable."""
        return cls(kind=ErrorKind.SYSTEM, message=message, retryable=True)

    @classmethod
    def config(cls, message: str) -> "ErrorInfo":
        """Local validation failure; never retryable."""
        return cls(kind=ErrorKind.CONFIG, message=message, retryable=False)


class FetchStatus(BaseModel):
    """Full progress snapshot of the running fetch job."""
    model_config = ConfigDict(frozen=True)

    phase: FetchPhase = Field(
        default=FetchPhase.IDLE,
        validation_alias=AliasChoices("phase", "status"),
        description="Authoritative lifecycle marker",
    )
    progress: float = Field(default=0.0, ge=0.0, le=1.0, description="Fraction complete in [0, 1]")
    current_step: str = Field(default="", description="Description of the active stage")
    papers_found: int = Field(default=0, ge=0)
    papers_analyzed: int = Field(default=0, ge=0)
    papers_saved: int = Field(default=0, ge=0)
    papers_filtered: int = Field(default=0, ge=0)
    papers_duplicates: int = Field(default=0, ge=0)
    papers_cache_hits: int = Field(default=0, ge=0)
    # Only reported when the backend runs in concurrent mode
    queue_size: Optional[int] = Field(default=None, ge=0)
    active_tasks: Optional[int] = Field(default=None, ge=0)
    completed_tasks: Optional[int] = Field(default=None, ge=0)
    failed_tasks: Optional[int] = Field(default=None, ge=0)
    errors: List[str] = Field(default_factory=list, description="Non-fatal errors accumulated so far")
    error: Optional[ErrorInfo] = Field(default=None, description="Classification of a terminal error or warning")

    @property
    def has_concurrency_telemetry(self) -> bool:
        return self.queue_size is not None or self.active_tasks is not None

    @property
    def accounted_papers(self) -> int:
        """Papers with a final disposition (saved, filtered out or duplicate)."""
        return self.papers_saved + self.papers_filtered + self.papers_duplicates


class ProgressEvent(BaseModel):
    """Envelope delivered on the progress topic."""
    model_config = ConfigDict(frozen=True)

    seq: Optional[int] = Field(default=None, description="Monotonic sequence number assigned by the emitter")
    status: FetchStatus = Field(description="Snapshot carried by this event")
