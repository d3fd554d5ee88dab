"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from callaxis.analysis.dispatch import AnalysisDispatcher
from callaxis.analysis.inflight import InFlightSet
from callaxis.analysis.pipeline import AnalysisSubmissionPipeline
from callaxis.analysis.repository import AnalysisRepository, RecordingRepository
from callaxis.calls.models import CallAttempt, CallOutcome, CallRecord
from callaxis.calls.reconciler import CallOutcomeReconciler
from callaxis.calls.repository import CallRecordRepository
from callaxis.calls.sessions import CallSessionManager
from callaxis.shared.database import DatabaseManager
from callaxis.shared.retry import poll_policy
from callaxis.store.memory import InMemoryStore
from callaxis.store.sql import SqlAlchemyStore
from callaxis.telephony.interface import TenantContext
from callaxis.telephony.mock_adapter import MockCallGateway


class ScriptedTier:
    """Dispatch tier that fails or succeeds on demand and records calls."""

    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.payloads: list[dict[str, Any]] = []

    async def send(self, url: str, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)
        if self.fail:
            raise OSError(f"{self.name} unreachable")


class ScriptedBackend:
    """Generative backend returning one canned reply per call."""

    def __init__(self, replies: list[str | Exception]) -> None:
        self._replies = list(replies)
        self.calls: list[str] = []

    async def generate(self, model: str, prompt: str) -> str:
        self.calls.append(model)
        reply = self._replies[len(self.calls) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(company_id="company-1", access_token="token-abc")


@pytest.fixture
def gateway() -> MockCallGateway:
    return MockCallGateway()


@pytest.fixture
def call_repository(store: InMemoryStore) -> CallRecordRepository:
    return CallRecordRepository(store)


@pytest.fixture
def reconciler(call_repository: CallRecordRepository) -> CallOutcomeReconciler:
    return CallOutcomeReconciler(call_repository)


@pytest.fixture
def session_manager(gateway: MockCallGateway, reconciler: CallOutcomeReconciler) -> CallSessionManager:
    # zero interval: each tick only yields to the event loop
    return CallSessionManager(gateway, reconciler, policy=poll_policy(interval_seconds=0.0))


@pytest.fixture
def attempt() -> CallAttempt:
    return CallAttempt(
        provider_call_id="CA-1",
        from_number="9876543210",
        to_number="7314626705",
        caller_id="08047112233",
        company_id="company-1",
        employee_id="employee-1",
        lead_id="lead-1",
        started_at=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def tiers() -> list[ScriptedTier]:
    return [ScriptedTier("standard"), ScriptedTier("opaque"), ScriptedTier("threaded")]


@pytest.fixture
def pipeline(store: InMemoryStore, tiers: list[ScriptedTier]) -> AnalysisSubmissionPipeline:
    return AnalysisSubmissionPipeline(
        RecordingRepository(store),
        AnalysisRepository(store),
        AnalysisDispatcher("https://processor.test/webhook", tiers=tiers),
        in_flight=InFlightSet(),
        source="test-suite",
    )


@pytest_asyncio.fixture
async def completed_call(call_repository: CallRecordRepository) -> CallRecord:
    return await call_repository.insert(
        CallRecord(
            outcome=CallOutcome.COMPLETED,
            provider_call_id="CA-100",
            company_id="company-1",
            employee_id="employee-1",
            notes="Interested in the 2BHK",
            recording_url="https://x/y.mp3",
            duration_seconds=42,
            created_at=datetime(2024, 5, 1, 10, 20, 30, 123000, tzinfo=timezone.utc),
        )
    )


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncGenerator[SqlAlchemyStore, None]:
    database = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await database.create_all()
    try:
        yield SqlAlchemyStore(database.session_factory)
    finally:
        await database.close()
