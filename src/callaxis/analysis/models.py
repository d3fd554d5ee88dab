"""
Domain models for recordings and their analyses.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from callaxis.shared.exceptions import AppError


class ProcessingStatus(str, Enum):
    """Status shared by recordings and analyses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


def normalize_processing_status(raw: str | ProcessingStatus) -> ProcessingStatus:
    """Map any casing ("Processing", "COMPLETED") to ProcessingStatus."""
    if isinstance(raw, ProcessingStatus):
        return raw
    return ProcessingStatus(str(raw).strip().lower().replace("-", "_").replace(" ", "_"))


class NoRecordingError(AppError):
    """The call has no recording URL to analyze."""


class DispatchError(AppError):
    """Every transport tier failed to deliver the analysis job."""


def recording_file_name(call_id: str, created_at: datetime | None) -> str:
    """Name a recording after its call: ``call_<id>_<timestamp>``.

    The timestamp is the call's UTC creation time in ISO form with ``:`` and
    ``.`` replaced by ``-``.

    >>> recording_file_name("42", datetime(2024, 5, 1, 10, 20, 30, 123000, tzinfo=timezone.utc))
    'call_42_2024-05-01T10-20-30-123Z'
    """
    moment = created_at or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"call_{call_id}_{stamp.replace(':', '-').replace('.', '-')}"


class _RowMixin:
    @classmethod
    def _known(cls, row: dict[str, Any]) -> dict[str, Any]:
        names = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        data = {k: v for k, v in row.items() if k in names}
        data["status"] = normalize_processing_status(data["status"])
        return data

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)  # type: ignore[call-overload]
        row["status"] = self.status.value  # type: ignore[attr-defined]
        return {k: v for k, v in row.items() if v is not None}


@dataclass
class Recording(_RowMixin):
    """A recording handed to the analysis processor (``recordings`` row)."""

    source_url: str
    file_name: str
    status: ProcessingStatus = ProcessingStatus.PENDING
    id: str | None = None
    owner_id: str | None = None
    company_id: str | None = None
    call_id: str | None = None
    transcript: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Recording":
        return cls(**cls._known(row))


@dataclass
class Analysis(_RowMixin):
    """Processor output for one call (``analyses`` row)."""

    recording_id: str
    call_id: str
    status: ProcessingStatus = ProcessingStatus.PROCESSING
    id: str | None = None
    owner_id: str | None = None
    company_id: str | None = None
    sentiment_score: float | None = None
    engagement_score: float | None = None
    confidence_score_executive: float | None = None
    confidence_score_person: float | None = None
    short_summary: str | None = None
    next_steps: str | None = None
    improvements: str | None = None
    call_outcome: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Analysis":
        return cls(**cls._known(row))


@dataclass(frozen=True)
class AnalysisHandle:
    """What a caller gets back from a successful submission."""

    call_id: str
    recording_id: str
    analysis_id: str
    status: ProcessingStatus
    recording_created: bool
    analysis_created: bool
    dispatched_via: str
