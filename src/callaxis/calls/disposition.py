"""
Operator disposition and manual call capture.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from callaxis.calls.models import (
    DEFAULT_LEAD_STATUS,
    DISPOSITION_OUTCOMES,
    LEAD_STATUS_BY_OUTCOME,
    CallOutcome,
    CallRecord,
    normalize_outcome,
)
from callaxis.calls.repository import CallRecordRepository
from callaxis.shared.exceptions import NotFoundError, ValidationError
from callaxis.shared.logging import get_logger
from callaxis.shared.phone import normalize_phone_number
from callaxis.store.interface import Store, Table

logger = get_logger(__name__)


def lead_status_for(outcome: CallOutcome) -> str:
    return LEAD_STATUS_BY_OUTCOME.get(outcome, DEFAULT_LEAD_STATUS)


def _parse_outcome(raw: str | CallOutcome) -> CallOutcome:
    try:
        return normalize_outcome(raw)
    except ValueError as e:
        raise ValidationError(f"Unknown call outcome: {raw}", details={"outcome": str(raw)}) from e


class DispositionService:
    """Writes human-entered outcomes onto call records and their leads."""

    def __init__(self, repository: CallRecordRepository, store: Store) -> None:
        self._repository = repository
        self._store = store

    async def record_disposition(
        self,
        provider_call_id: str,
        outcome: str | CallOutcome,
        notes: str | None = None,
        next_follow_up: datetime | None = None,
    ) -> CallRecord:
        """Finalize a reconciled call with the operator's disposition.

        Raises:
            ValidationError: If the outcome is not a disposition outcome.
            NotFoundError: If the call has not been reconciled yet.
        """
        disposition = _parse_outcome(outcome)
        if disposition not in DISPOSITION_OUTCOMES:
            raise ValidationError(
                f"{disposition.value} is not a valid disposition",
                details={"allowed": sorted(o.value for o in DISPOSITION_OUTCOMES)},
            )

        record = await self._repository.get_by_provider_call_id(provider_call_id)
        if record is None or record.id is None:
            raise NotFoundError(f"No call record for {provider_call_id}")

        patch: dict[str, Any] = {"outcome": disposition}
        if notes is not None:
            patch["notes"] = notes
        if next_follow_up is not None:
            patch["next_follow_up"] = next_follow_up
        updated = await self._repository.update(record.id, patch) or record

        await self._propagate_to_lead(updated)
        logger.info(
            "Disposition recorded",
            extra={
                "provider_call_id": provider_call_id,
                "outcome": disposition.value,
                "lead_id": updated.lead_id,
            },
        )
        return updated

    async def record_manual_call(
        self,
        company_id: str,
        to_number: str,
        outcome: str | CallOutcome,
        employee_id: str | None = None,
        lead_id: str | None = None,
        notes: str | None = None,
        duration_seconds: int | None = None,
        recording_url: str | None = None,
        provider_call_id: str | None = None,
        started_at: datetime | None = None,
        raw_payload: dict[str, Any] | None = None,
    ) -> CallRecord:
        """Capture a call that was made outside the dialer.

        When a provider call id is given the record is upserted on it, so an
        external system may post the same call more than once.
        """
        parsed = _parse_outcome(outcome)
        record = CallRecord(
            outcome=parsed,
            provider_call_id=provider_call_id,
            company_id=company_id,
            employee_id=employee_id,
            lead_id=lead_id,
            notes=notes,
            to_number=normalize_phone_number(to_number) or None,
            duration_seconds=duration_seconds,
            recording_url=(recording_url or "").strip() or None,
            started_at=started_at or datetime.now(timezone.utc),
            raw_payload={"source": "manual", **(raw_payload or {})},
        )

        existing = (
            await self._repository.get_by_provider_call_id(provider_call_id) if provider_call_id else None
        )
        if existing is not None and existing.id is not None:
            patch = {k: v for k, v in record.to_row().items() if k not in ("id", "created_at")}
            saved = await self._repository.update(existing.id, patch) or existing
        else:
            saved = await self._repository.insert(record)

        await self._propagate_to_lead(saved)
        logger.info(
            "Manual call captured",
            extra={"call_record_id": saved.id, "company_id": company_id, "outcome": parsed.value},
        )
        return saved

    async def _propagate_to_lead(self, record: CallRecord) -> None:
        if not record.lead_id:
            return
        status = lead_status_for(record.outcome)
        rows = await self._store.update(
            Table.LEADS,
            {"id": record.lead_id},
            {"status": status, "updated_at": datetime.now(timezone.utc)},
        )
        if not rows:
            logger.warning("Lead not found for disposition", extra={"lead_id": record.lead_id})
