"""
Call outcome reconciler.

Converts one terminal provider snapshot into exactly one durable call
record. The provider call id is the natural key: a second reconciliation
of the same call (e.g. the UI re-subscribed after a reload) updates the
existing record instead of inserting a sibling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from callaxis.calls.models import CallAttempt, CallOutcome, CallRecord
from callaxis.calls.repository import CallRecordRepositoryProtocol
from callaxis.shared.exceptions import AppError
from callaxis.shared.logging import get_logger
from callaxis.shared.phone import normalize_phone_number
from callaxis.store.interface import MultipleRowsError
from callaxis.telephony.interface import CallStatus, ProviderCallSnapshot

logger = get_logger(__name__)

# Outcomes the reconciler itself writes; anything else came from an operator
PROVISIONAL_OUTCOMES: frozenset[CallOutcome] = frozenset({CallOutcome.COMPLETED, CallOutcome.NOT_ANSWERED})


class ReconciliationConflict(AppError):
    """More than one call record exists for a provider call id."""


class DispositionNotifier(Protocol):
    """Receives the "collect human disposition" signal for completed calls."""

    async def disposition_required(self, record: CallRecord) -> None: ...


@dataclass(frozen=True)
class ReconcileResult:
    record: CallRecord
    created: bool
    requires_disposition: bool


def _not_answered_note(status: CallStatus, dialed: str) -> str:
    label = status.value.replace("_", " ")
    return f"Call was not answered by the recipient ({label}). Dialed number: {dialed}"


class CallOutcomeReconciler:
    """Maps terminal snapshots into call records, once per provider call id."""

    def __init__(
        self,
        repository: CallRecordRepositoryProtocol,
        notifier: DispositionNotifier | None = None,
    ) -> None:
        self._repository = repository
        self._notifier = notifier

    async def reconcile(self, snapshot: ProviderCallSnapshot, attempt: CallAttempt) -> ReconcileResult:
        """Persist a terminal snapshot.

        Raises:
            ValueError: If the snapshot is not terminal.
            ReconciliationConflict: If the natural key is already duplicated.
        """
        if not snapshot.is_terminal:
            raise ValueError(f"Cannot reconcile non-terminal status {snapshot.status.value}")

        try:
            existing = await self._repository.get_by_provider_call_id(snapshot.provider_call_id)
        except MultipleRowsError as e:
            logger.error(
                "Reconciliation conflict: duplicate call records for provider call id",
                extra={"provider_call_id": snapshot.provider_call_id, "details": e.details},
            )
            raise ReconciliationConflict(
                f"Duplicate call records for {snapshot.provider_call_id}",
                details={"provider_call_id": snapshot.provider_call_id},
            ) from e

        fields = self._provider_fields(snapshot, attempt)
        provisional = self._provisional_outcome(snapshot.status)

        if existing is None:
            record = await self._repository.insert(
                CallRecord(
                    outcome=provisional,
                    notes=None if provisional is CallOutcome.COMPLETED
                    else _not_answered_note(snapshot.status, attempt.to_number),
                    **fields,
                )
            )
            created = True
            logger.info(
                "Call record created",
                extra={
                    "provider_call_id": snapshot.provider_call_id,
                    "outcome": record.outcome.value,
                    "call_record_id": record.id,
                },
            )
        else:
            patch: dict[str, Any] = dict(fields)
            # an operator disposition outranks the provider's terminal label
            if existing.outcome in PROVISIONAL_OUTCOMES:
                patch["outcome"] = provisional
                if not existing.notes and provisional is CallOutcome.NOT_ANSWERED:
                    patch["notes"] = _not_answered_note(snapshot.status, attempt.to_number)
            updated = await self._repository.update(existing.id, patch)
            record = updated or existing
            created = False
            logger.info(
                "Call record already present; updated in place",
                extra={
                    "provider_call_id": snapshot.provider_call_id,
                    "outcome": record.outcome.value,
                    "call_record_id": record.id,
                },
            )

        requires_disposition = record.outcome is CallOutcome.COMPLETED
        if requires_disposition and self._notifier is not None:
            await self._notifier.disposition_required(record)

        return ReconcileResult(record=record, created=created, requires_disposition=requires_disposition)

    @staticmethod
    def _provisional_outcome(status: CallStatus) -> CallOutcome:
        if status is CallStatus.COMPLETED:
            return CallOutcome.COMPLETED
        return CallOutcome.NOT_ANSWERED

    @staticmethod
    def _provider_fields(snapshot: ProviderCallSnapshot, attempt: CallAttempt) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "provider_call_id": snapshot.provider_call_id,
            "company_id": attempt.company_id,
            "employee_id": attempt.employee_id,
            "lead_id": attempt.lead_id,
            "provider_status": snapshot.status.value,
            "from_number": normalize_phone_number(attempt.from_number)
            or normalize_phone_number(snapshot.from_number),
            "to_number": normalize_phone_number(attempt.to_number)
            or normalize_phone_number(snapshot.to_number),
            "caller_id": attempt.caller_id or snapshot.caller_id,
            "raw_payload": dict(snapshot.raw_payload),
        }
        optional = {
            "recording_url": snapshot.recording_url,
            "duration_seconds": snapshot.duration_seconds,
            "started_at": snapshot.started_at or attempt.started_at,
            "ended_at": snapshot.ended_at,
            "answered_by": snapshot.answered_by,
            "direction": snapshot.direction,
        }
        fields.update({k: v for k, v in optional.items() if v is not None})
        return {k: v for k, v in fields.items() if v is not None}
