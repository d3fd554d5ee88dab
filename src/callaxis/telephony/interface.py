"""
Telephony gateway interface definition.

The gateway is a thin request/response wrapper around the provider's
"place call" and "get call status" operations. It keeps no state, does
not normalize phone numbers and never retries; retry policy belongs to
the poller and the analysis pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from callaxis.shared.exceptions import AppError


class CallStatus(str, Enum):
    """Canonical call status values."""

    INITIATING = "initiating"
    RINGING = "ringing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no_answer"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[CallStatus] = frozenset(
    {CallStatus.COMPLETED, CallStatus.FAILED, CallStatus.BUSY, CallStatus.NO_ANSWER}
)

# Provider spellings that differ from the canonical value after lower/snake casing
_STATUS_ALIASES: dict[str, CallStatus] = {
    "queued": CallStatus.INITIATING,
    "initiated": CallStatus.INITIATING,
    "answered": CallStatus.IN_PROGRESS,
    "canceled": CallStatus.FAILED,
    "cancelled": CallStatus.FAILED,
}


def normalize_call_status(raw: str | CallStatus) -> CallStatus:
    """Map any provider spelling ("in-progress", "No Answer", ...) to CallStatus.

    Raises:
        ValueError: If the value is not a known status.
    """
    if isinstance(raw, CallStatus):
        return raw
    key = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    if key in _STATUS_ALIASES:
        return _STATUS_ALIASES[key]
    return CallStatus(key)


@dataclass(frozen=True)
class TenantContext:
    """Authorization context sent with every provider request."""

    company_id: str
    access_token: str


@dataclass(frozen=True)
class ProviderCallSnapshot:
    """Provider view of one call at a point in time."""

    provider_call_id: str
    status: CallStatus
    duration_seconds: int | None = None
    recording_url: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    answered_by: str | None = None
    direction: str | None = None
    from_number: str | None = None
    to_number: str | None = None
    caller_id: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class GatewayError(AppError):
    """A provider request failed.

    Carries the HTTP status (None for transport failures) and the
    provider-supplied error message.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, details={"status_code": status_code})
        self.status_code = status_code
        self.provider_response = provider_response or {}


class CallGateway(ABC):
    """Abstract interface for telephony providers."""

    @abstractmethod
    async def place_call(
        self,
        from_number: str,
        to_number: str,
        caller_id: str,
        tenant: TenantContext,
    ) -> str:
        """Place an outbound call and return the provider call identifier.

        Raises:
            GatewayError: If the provider rejects the request or is unreachable.
        """
        ...

    @abstractmethod
    async def get_call_status(
        self,
        provider_call_id: str,
        tenant: TenantContext,
    ) -> ProviderCallSnapshot:
        """Fetch the current provider snapshot for a call.

        Raises:
            GatewayError: If the provider rejects the request or is unreachable.
        """
        ...

    async def close(self) -> None:
        """Release any pooled connections."""
        return None
