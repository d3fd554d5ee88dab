"""
Domain models for placed calls.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any

from callaxis.telephony.interface import CallStatus


class CallOutcome(str, Enum):
    """Outcome of a placed call.

    Covers both provider-terminal mapping and human-entered disposition.
    """

    COMPLETED = "completed"
    NOT_ANSWERED = "not_answered"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no_answer"
    FOLLOW_UP = "follow_up"
    CONVERTED = "converted"
    NOT_INTERESTED = "not_interested"


DISPOSITION_OUTCOMES: frozenset[CallOutcome] = frozenset(
    {
        CallOutcome.COMPLETED,
        CallOutcome.CONVERTED,
        CallOutcome.FOLLOW_UP,
        CallOutcome.NOT_INTERESTED,
        CallOutcome.NOT_ANSWERED,
        CallOutcome.FAILED,
    }
)

# Lead status written when an operator records a disposition
LEAD_STATUS_BY_OUTCOME: dict[CallOutcome, str] = {
    CallOutcome.COMPLETED: "converted",
    CallOutcome.CONVERTED: "converted",
    CallOutcome.NOT_INTERESTED: "not_interested",
    CallOutcome.FOLLOW_UP: "follow_up",
}
DEFAULT_LEAD_STATUS = "contacted"


def normalize_outcome(raw: str | CallOutcome) -> CallOutcome:
    """Map any casing/spelling ("Not-Answered", "FOLLOW UP") to CallOutcome.

    Raises:
        ValueError: If the value is not a known outcome.
    """
    if isinstance(raw, CallOutcome):
        return raw
    return CallOutcome(str(raw).strip().lower().replace("-", "_").replace(" ", "_"))


@dataclass
class CallAttempt:
    """In-memory view of a call while it is being polled."""

    provider_call_id: str
    from_number: str
    to_number: str
    caller_id: str
    company_id: str
    employee_id: str | None
    started_at: datetime
    lead_id: str | None = None
    status: CallStatus = CallStatus.INITIATING


@dataclass
class CallRecord:
    """Durable record of one placed call (``call_history`` row)."""

    outcome: CallOutcome
    provider_call_id: str | None = None
    id: str | None = None
    lead_id: str | None = None
    employee_id: str | None = None
    company_id: str | None = None
    notes: str | None = None
    provider_status: str | None = None
    from_number: str | None = None
    to_number: str | None = None
    caller_id: str | None = None
    recording_url: str | None = None
    duration_seconds: int | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    answered_by: str | None = None
    direction: str | None = None
    next_follow_up: datetime | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CallRecord":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in known}
        data["outcome"] = normalize_outcome(data["outcome"])
        data["raw_payload"] = data.get("raw_payload") or {}
        return cls(**data)

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["outcome"] = self.outcome.value
        return {k: v for k, v in row.items() if v is not None}
