"""
API integration tests for the call, analysis and insight endpoints.
"""

import json
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from callaxis.analysis.models import ProcessingStatus
from callaxis.api.container import ServiceContainer, build_container
from callaxis.config import Settings
from callaxis.main import create_app
from callaxis.shared.retry import poll_policy
from callaxis.store.interface import Table
from callaxis.store.memory import InMemoryStore
from callaxis.telephony.interface import CallStatus, ProviderCallSnapshot
from callaxis.telephony.mock_adapter import MockCallGateway

from conftest import ScriptedBackend, ScriptedTier

HEADERS = {
    "X-Company-Id": "company-1",
    "X-Employee-Id": "employee-1",
    "Authorization": "Bearer token-abc",
}

INSIGHTS = json.dumps([{"title": "Keep going", "message": "Your reach is improving.", "type": "success"}])


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def api_tiers() -> list[ScriptedTier]:
    return [ScriptedTier("standard"), ScriptedTier("opaque"), ScriptedTier("threaded")]


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend([INSIGHTS])


@pytest_asyncio.fixture
async def container(
    api_tiers: list[ScriptedTier], backend: ScriptedBackend
) -> AsyncGenerator[ServiceContainer, None]:
    container = build_container(
        settings=Settings(store_backend="memory"),
        store=InMemoryStore(),
        gateway=MockCallGateway(),
        dispatch_tiers=api_tiers,
        insight_backend=backend,
        poll=poll_policy(interval_seconds=0.0),
    )
    yield container
    await container.aclose()


@pytest_asyncio.fixture
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def _place_completed_call(client: AsyncClient, container: ServiceContainer) -> str:
    gateway = container.gateway
    assert isinstance(gateway, MockCallGateway)
    gateway.script(
        gateway.peek_next_call_id(),
        [
            CallStatus.RINGING,
            ProviderCallSnapshot("", CallStatus.COMPLETED, duration_seconds=42, recording_url="https://x/y.mp3"),
        ],
    )
    response = await client.post(
        "/api/calls",
        json={"from_number": "9876543210", "to_number": "7314626705", "lead_id": "lead-1"},
        headers=HEADERS,
    )
    assert response.status_code == 201
    provider_call_id = response.json()["provider_call_id"]

    session = container.sessions.get(provider_call_id)
    assert session is not None and session.poller is not None
    await session.poller.wait()
    return provider_call_id


# ============================================================================
# Health
# ============================================================================


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


# ============================================================================
# Calls
# ============================================================================


class TestCallsApi:
    @pytest.mark.asyncio
    async def test_place_call_and_follow_to_disposition(
        self, client: AsyncClient, container: ServiceContainer
    ) -> None:
        await container.store.insert(Table.LEADS, {"id": "lead-1", "status": "new"})
        provider_call_id = await _place_completed_call(client, container)

        response = await client.get(f"/api/calls/{provider_call_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "terminal"
        assert body["status"] == "completed"
        assert body["requires_disposition"] is True
        assert body["record"]["outcome"] == "completed"
        assert body["record"]["duration_seconds"] == 42

        response = await client.post(
            f"/api/calls/{provider_call_id}/disposition",
            json={"outcome": "converted", "notes": "Site visit booked"},
        )
        assert response.status_code == 200
        assert response.json()["outcome"] == "converted"
        assert container.sessions.get(provider_call_id) is None
        lead = await container.store.select_one(Table.LEADS, {"id": "lead-1"})
        assert lead is not None and lead["status"] == "converted"

    @pytest.mark.asyncio
    async def test_event_feed_follows_placed_calls(
        self, client: AsyncClient, container: ServiceContainer
    ) -> None:
        provider_call_id = await _place_completed_call(client, container)

        response = await client.get("/api/calls/events", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert [e["type"] for e in body["events"]] == [
            "status",
            "status",
            "disposition_required",
            "finished",
        ]
        assert body["events"][-1]["provider_call_id"] == provider_call_id
        assert body["events"][-1]["outcome"] == "completed"

        after = body["last_seq"]
        response = await client.get("/api/calls/events", params={"after": after}, headers=HEADERS)
        assert response.json() == {"events": [], "last_seq": after}

        other = {"X-Company-Id": "company-2"}
        assert (await client.get("/api/calls/events", headers=other)).json()["events"] == []

    @pytest.mark.asyncio
    async def test_missing_company_header_is_422(self, client: AsyncClient) -> None:
        response = await client.post("/api/calls", json={"from_number": "1", "to_number": "2"})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_non_bearer_authorization_is_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/calls",
            json={"from_number": "9876543210", "to_number": "7314626705"},
            headers={"X-Company-Id": "company-1", "Authorization": "Basic abc"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_numbers_without_digits_are_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/calls", json={"from_number": "agent", "to_number": "7314626705"}, headers=HEADERS
        )
        assert response.status_code == 400
        assert "digits" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_provider_rejection_is_502(self, client: AsyncClient, container: ServiceContainer) -> None:
        gateway = container.gateway
        assert isinstance(gateway, MockCallGateway)
        gateway.configure_failure(error_message="Insufficient balance", status_code=402)

        response = await client.post(
            "/api/calls", json={"from_number": "9876543210", "to_number": "7314626705"}, headers=HEADERS
        )

        assert response.status_code == 502
        assert response.json()["detail"] == "Insufficient balance"

    @pytest.mark.asyncio
    async def test_cancel_call(self, client: AsyncClient, container: ServiceContainer) -> None:
        gateway = container.gateway
        assert isinstance(gateway, MockCallGateway)
        gateway.script(gateway.peek_next_call_id(), [CallStatus.IN_PROGRESS])
        response = await client.post(
            "/api/calls", json={"from_number": "9876543210", "to_number": "7314626705"}, headers=HEADERS
        )
        provider_call_id = response.json()["provider_call_id"]

        response = await client.delete(f"/api/calls/{provider_call_id}")

        assert response.status_code == 200
        assert response.json() == {"provider_call_id": provider_call_id, "cancelled": True}
        assert (await client.get(f"/api/calls/{provider_call_id}")).json()["state"] == "cancelled"

    @pytest.mark.asyncio
    async def test_unknown_call_is_404(self, client: AsyncClient) -> None:
        assert (await client.get("/api/calls/CA-404")).status_code == 404
        assert (await client.delete("/api/calls/CA-404")).status_code == 404
        response = await client.post("/api/calls/CA-404/disposition", json={"outcome": "converted"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_reattach(self, client: AsyncClient, container: ServiceContainer) -> None:
        gateway = container.gateway
        assert isinstance(gateway, MockCallGateway)
        gateway.script("CA-OLD", [CallStatus.BUSY])

        response = await client.post(
            "/api/calls/CA-OLD/reattach",
            json={"from_number": "9876543210", "to_number": "7314626705"},
            headers=HEADERS,
        )
        assert response.status_code == 200

        session = container.sessions.get("CA-OLD")
        assert session is not None and session.poller is not None
        await session.poller.wait()
        body = (await client.get("/api/calls/CA-OLD")).json()
        assert body["record"]["outcome"] == "not_answered"
        assert body["requires_disposition"] is False

    @pytest.mark.asyncio
    async def test_manual_call(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/calls/manual",
            json={"to_number": "07314626705", "outcome": "follow_up", "duration_seconds": 60},
            headers=HEADERS,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["outcome"] == "follow_up"
        assert body["to_number"] == "7314626705"

    @pytest.mark.asyncio
    async def test_manual_call_bad_outcome(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/calls/manual", json={"to_number": "7314626705", "outcome": "maybe"}, headers=HEADERS
        )
        assert response.status_code == 400


# ============================================================================
# Analysis
# ============================================================================


class TestAnalysisApi:
    @pytest.mark.asyncio
    async def test_submit_and_refresh(self, client: AsyncClient, container: ServiceContainer) -> None:
        provider_call_id = await _place_completed_call(client, container)
        record = await container.calls.get_by_provider_call_id(provider_call_id)
        assert record is not None and record.id is not None

        response = await client.post(f"/api/analysis/{record.id}", headers=HEADERS)

        assert response.status_code == 202
        handle = response.json()
        assert handle["status"] == "processing"
        assert handle["dispatched_via"] == "standard"
        assert (await client.get("/api/analysis/in-flight")).json() == {"call_ids": [record.id]}

        await container.analyses.set_status(handle["analysis_id"], ProcessingStatus.COMPLETED)
        response = await client.post("/api/analysis/refresh")

        assert response.status_code == 200
        body = response.json()
        assert [a["call_id"] for a in body["completed"]] == [record.id]
        assert body["in_flight"] == []

    @pytest.mark.asyncio
    async def test_submit_without_recording_is_400(self, client: AsyncClient, container: ServiceContainer) -> None:
        response = await client.post(
            "/api/calls/manual", json={"to_number": "7314626705", "outcome": "completed"}, headers=HEADERS
        )
        call_id = response.json()["id"]

        response = await client.post(f"/api/analysis/{call_id}", headers=HEADERS)

        assert response.status_code == 400
        assert container.store.count(Table.RECORDINGS) == 0

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_502(
        self, client: AsyncClient, container: ServiceContainer, api_tiers: list[ScriptedTier]
    ) -> None:
        for tier in api_tiers:
            tier.fail = True
        response = await client.post(
            "/api/calls/manual",
            json={"to_number": "7314626705", "outcome": "completed", "recording_url": "https://x/y.mp3"},
            headers=HEADERS,
        )
        call_id = response.json()["id"]

        response = await client.post(f"/api/analysis/{call_id}", json={"owner_id": "manager-7"}, headers=HEADERS)

        assert response.status_code == 502
        body = response.json()
        assert body["retryable"] is True
        assert body["detail"] == "Failed to send recording for analysis"
        assert (await client.get("/api/analysis/in-flight")).json() == {"call_ids": []}

    @pytest.mark.asyncio
    async def test_unknown_call_is_404(self, client: AsyncClient) -> None:
        assert (await client.post("/api/analysis/nope", headers=HEADERS)).status_code == 404


# ============================================================================
# Insights
# ============================================================================


class TestInsightsApi:
    @pytest.mark.asyncio
    async def test_insights_generated_from_calls(
        self, client: AsyncClient, backend: ScriptedBackend
    ) -> None:
        await client.post(
            "/api/calls/manual", json={"to_number": "7314626705", "outcome": "converted"}, headers=HEADERS
        )

        response = await client.get("/api/insights", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["model"] == "gemini-2.0-flash-exp"
        assert body["insights"][0]["title"] == "Keep going"
        assert body["statistics"]["total_calls"] == 1
        assert body["statistics"]["completion_rate"] == 100
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_insights_disabled_is_503(self) -> None:
        container = build_container(
            settings=Settings(store_backend="memory", insights_enabled=False),
            store=InMemoryStore(),
            gateway=MockCallGateway(),
            dispatch_tiers=[ScriptedTier("standard")],
        )
        app = create_app(container)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/insights", headers=HEADERS)
        await container.aclose()

        assert response.status_code == 503
