"""
In-memory feed of call session events.

Receives poll ticks and terminal outcomes from the session manager and the
disposition prompt from the reconciler. Clients read it incrementally by
sequence number, so the dashboard can follow every call it placed without
polling each session.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from itertools import count
from typing import TYPE_CHECKING

from callaxis.calls.models import CallRecord
from callaxis.shared.logging import get_logger

if TYPE_CHECKING:
    from callaxis.calls.sessions import CallSession

logger = get_logger(__name__)


class CallEventType(str, Enum):
    STATUS = "status"
    FINISHED = "finished"
    DISPOSITION_REQUIRED = "disposition_required"


@dataclass(frozen=True)
class CallEvent:
    seq: int
    type: CallEventType
    provider_call_id: str | None
    company_id: str | None
    status: str | None = None
    outcome: str | None = None
    call_id: str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CallEventFeed:
    """Bounded, ordered log of call events, shared by every session."""

    def __init__(self, max_events: int = 1000) -> None:
        if max_events < 1:
            raise ValueError("max_events must be positive")
        self._events: deque[CallEvent] = deque(maxlen=max_events)
        self._seq = count(1)

    @property
    def last_seq(self) -> int:
        return self._events[-1].seq if self._events else 0

    def since(self, after: int = 0, company_id: str | None = None) -> list[CallEvent]:
        """Events with a sequence number above ``after``, oldest first."""
        return [
            e
            for e in self._events
            if e.seq > after and (company_id is None or e.company_id == company_id)
        ]

    async def session_updated(self, session: CallSession) -> None:
        self._append(
            CallEventType.STATUS,
            provider_call_id=session.provider_call_id,
            company_id=session.attempt.company_id,
            status=session.attempt.status.value,
        )

    async def session_finished(self, session: CallSession) -> None:
        record = session.record
        self._append(
            CallEventType.FINISHED,
            provider_call_id=session.provider_call_id,
            company_id=session.attempt.company_id,
            status=session.attempt.status.value,
            outcome=record.outcome.value if record else None,
            call_id=record.id if record else None,
        )

    async def disposition_required(self, record: CallRecord) -> None:
        self._append(
            CallEventType.DISPOSITION_REQUIRED,
            provider_call_id=record.provider_call_id,
            company_id=record.company_id,
            outcome=record.outcome.value,
            call_id=record.id,
        )

    def _append(self, event_type: CallEventType, **values: str | None) -> None:
        event = CallEvent(seq=next(self._seq), type=event_type, **values)  # type: ignore[arg-type]
        self._events.append(event)
        logger.debug(
            "Call event",
            extra={"seq": event.seq, "event": event_type.value, "provider_call_id": event.provider_call_id},
        )
