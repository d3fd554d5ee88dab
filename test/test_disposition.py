"""
Tests for operator disposition and manual call capture.
"""

from datetime import datetime, timezone

import pytest

from callaxis.calls.disposition import DispositionService, lead_status_for
from callaxis.calls.models import CallAttempt, CallOutcome
from callaxis.calls.reconciler import CallOutcomeReconciler
from callaxis.calls.repository import CallRecordRepository
from callaxis.shared.exceptions import NotFoundError, ValidationError
from callaxis.store.interface import Table
from callaxis.store.memory import InMemoryStore
from callaxis.telephony.interface import CallStatus, ProviderCallSnapshot


@pytest.fixture
def service(call_repository: CallRecordRepository, store: InMemoryStore) -> DispositionService:
    return DispositionService(call_repository, store)


async def _reconciled(reconciler: CallOutcomeReconciler, attempt: CallAttempt) -> None:
    await reconciler.reconcile(ProviderCallSnapshot("CA-1", CallStatus.COMPLETED, duration_seconds=30), attempt)


class TestLeadStatusMapping:
    @pytest.mark.parametrize(
        ("outcome", "status"),
        [
            (CallOutcome.COMPLETED, "converted"),
            (CallOutcome.CONVERTED, "converted"),
            (CallOutcome.NOT_INTERESTED, "not_interested"),
            (CallOutcome.FOLLOW_UP, "follow_up"),
            (CallOutcome.NOT_ANSWERED, "contacted"),
            (CallOutcome.FAILED, "contacted"),
        ],
    )
    def test_mapping(self, outcome: CallOutcome, status: str) -> None:
        assert lead_status_for(outcome) == status


class TestRecordDisposition:
    @pytest.mark.asyncio
    async def test_disposition_updates_record_and_lead(
        self,
        store: InMemoryStore,
        service: DispositionService,
        reconciler: CallOutcomeReconciler,
        attempt: CallAttempt,
    ) -> None:
        await store.insert(Table.LEADS, {"id": "lead-1", "status": "new"})
        await _reconciled(reconciler, attempt)
        follow_up = datetime(2024, 5, 3, 9, 0, tzinfo=timezone.utc)

        record = await service.record_disposition("CA-1", "Follow-Up", notes="Call back Friday", next_follow_up=follow_up)

        assert record.outcome is CallOutcome.FOLLOW_UP
        assert record.notes == "Call back Friday"
        assert record.next_follow_up == follow_up
        assert record.duration_seconds == 30
        lead = await store.select_one(Table.LEADS, {"id": "lead-1"})
        assert lead is not None
        assert lead["status"] == "follow_up"
        assert "updated_at" in lead

    @pytest.mark.asyncio
    async def test_notes_left_untouched_when_omitted(
        self, service: DispositionService, reconciler: CallOutcomeReconciler, attempt: CallAttempt
    ) -> None:
        await _reconciled(reconciler, attempt)

        first = await service.record_disposition("CA-1", CallOutcome.CONVERTED, notes="Booked a visit")
        second = await service.record_disposition("CA-1", CallOutcome.CONVERTED)

        assert first.notes == second.notes == "Booked a visit"

    @pytest.mark.asyncio
    async def test_missing_lead_is_not_an_error(
        self, service: DispositionService, reconciler: CallOutcomeReconciler, attempt: CallAttempt
    ) -> None:
        await _reconciled(reconciler, attempt)

        record = await service.record_disposition("CA-1", "not_interested")

        assert record.outcome is CallOutcome.NOT_INTERESTED

    @pytest.mark.asyncio
    async def test_unknown_outcome_rejected(self, service: DispositionService) -> None:
        with pytest.raises(ValidationError):
            await service.record_disposition("CA-1", "maybe later")

    @pytest.mark.asyncio
    async def test_provider_only_outcome_rejected(self, service: DispositionService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.record_disposition("CA-1", CallOutcome.BUSY)
        assert "follow_up" in exc_info.value.details["allowed"]

    @pytest.mark.asyncio
    async def test_unreconciled_call_not_found(self, store: InMemoryStore, service: DispositionService) -> None:
        with pytest.raises(NotFoundError):
            await service.record_disposition("CA-404", "converted")
        assert store.writes == []


class TestManualCall:
    @pytest.mark.asyncio
    async def test_manual_call_inserted(self, store: InMemoryStore, service: DispositionService) -> None:
        await store.insert(Table.LEADS, {"id": "lead-9", "status": "new"})

        record = await service.record_manual_call(
            company_id="company-1",
            to_number="073146 26705",
            outcome="converted",
            employee_id="employee-1",
            lead_id="lead-9",
            recording_url="  ",
            raw_payload={"device": "desk-phone"},
        )

        assert record.id is not None
        assert record.to_number == "7314626705"
        assert record.recording_url is None
        assert record.raw_payload == {"source": "manual", "device": "desk-phone"}
        assert record.started_at is not None
        lead = await store.select_one(Table.LEADS, {"id": "lead-9"})
        assert lead is not None and lead["status"] == "converted"

    @pytest.mark.asyncio
    async def test_manual_call_upserts_on_provider_call_id(
        self, store: InMemoryStore, service: DispositionService
    ) -> None:
        first = await service.record_manual_call(
            company_id="company-1", to_number="7314626705", outcome="follow_up", provider_call_id="EXT-1"
        )
        second = await service.record_manual_call(
            company_id="company-1",
            to_number="7314626705",
            outcome="not_interested",
            provider_call_id="EXT-1",
            notes="Changed mind",
        )

        assert second.id == first.id
        assert second.outcome is CallOutcome.NOT_INTERESTED
        assert second.notes == "Changed mind"
        assert store.count(Table.CALL_HISTORY) == 1

    @pytest.mark.asyncio
    async def test_manual_call_without_id_always_inserts(
        self, store: InMemoryStore, service: DispositionService
    ) -> None:
        for _ in range(2):
            await service.record_manual_call(company_id="company-1", to_number="7314626705", outcome="failed")
        assert store.count(Table.CALL_HISTORY) == 2
