"""
API routes for calls, analysis and insights.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from callaxis.api.dependencies import Container, EmployeeId, Tenant
from callaxis.api.schemas import (
    AnalysisHandleResponse,
    AnalysisRefreshResponse,
    AnalysisSubmitRequest,
    AnalysisSummary,
    CallRecordResponse,
    CallEventResponse,
    CallEventsResponse,
    CallSessionResponse,
    CancelResponse,
    DispositionRequest,
    InFlightResponse,
    InsightsResponse,
    ManualCallRequest,
    PlaceCallRequest,
    ReattachRequest,
)
from callaxis.calls.models import CallAttempt
from callaxis.shared.exceptions import NotFoundError
from callaxis.shared.logging import get_logger

logger = get_logger(__name__)

calls_router = APIRouter(prefix="/api/calls", tags=["calls"])
analysis_router = APIRouter(prefix="/api/analysis", tags=["analysis"])
insights_router = APIRouter(prefix="/api/insights", tags=["insights"])


@calls_router.post(
    "",
    response_model=CallSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place a call and start polling its status",
)
async def place_call(
    body: PlaceCallRequest,
    container: Container,
    tenant: Tenant,
    employee_id: EmployeeId,
) -> CallSessionResponse:
    session = await container.sessions.start_call(
        from_number=body.from_number,
        to_number=body.to_number,
        tenant=tenant,
        employee_id=employee_id,
        lead_id=body.lead_id,
        caller_id=body.caller_id,
    )
    return CallSessionResponse.from_session(session)


@calls_router.post(
    "/manual",
    response_model=CallRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Capture a call made outside the dialer",
)
async def capture_manual_call(
    body: ManualCallRequest,
    container: Container,
    tenant: Tenant,
    employee_id: EmployeeId,
) -> CallRecordResponse:
    record = await container.disposition.record_manual_call(
        company_id=tenant.company_id,
        to_number=body.to_number,
        outcome=body.outcome,
        employee_id=employee_id,
        lead_id=body.lead_id,
        notes=body.notes,
        duration_seconds=body.duration_seconds,
        recording_url=body.recording_url,
        provider_call_id=body.provider_call_id,
        started_at=body.started_at,
    )
    return CallRecordResponse.from_record(record)


@calls_router.get(
    "/events",
    response_model=CallEventsResponse,
    summary="Status ticks, outcomes and disposition prompts for the caller's company",
)
async def list_call_events(
    container: Container,
    tenant: Tenant,
    after: Annotated[int, Query(ge=0)] = 0,
) -> CallEventsResponse:
    events = container.events.since(after, company_id=tenant.company_id)
    return CallEventsResponse(
        events=[CallEventResponse.from_event(e) for e in events],
        last_seq=events[-1].seq if events else after,
    )


@calls_router.get("/{provider_call_id}", response_model=CallSessionResponse)
async def get_call(provider_call_id: str, container: Container) -> CallSessionResponse:
    session = container.sessions.get(provider_call_id)
    if session is None:
        raise NotFoundError(f"No call session for {provider_call_id}")
    return CallSessionResponse.from_session(session)


@calls_router.post("/{provider_call_id}/reattach", response_model=CallSessionResponse)
async def reattach_call(
    provider_call_id: str,
    body: ReattachRequest,
    container: Container,
    tenant: Tenant,
    employee_id: EmployeeId,
) -> CallSessionResponse:
    attempt = CallAttempt(
        provider_call_id=provider_call_id,
        from_number=body.from_number,
        to_number=body.to_number,
        caller_id=body.caller_id or body.from_number,
        company_id=tenant.company_id,
        employee_id=employee_id,
        lead_id=body.lead_id,
        started_at=body.started_at or datetime.now(timezone.utc),
    )
    session = container.sessions.reattach(attempt, tenant)
    return CallSessionResponse.from_session(session)


@calls_router.delete("/{provider_call_id}", response_model=CancelResponse)
async def cancel_call(provider_call_id: str, container: Container) -> CancelResponse:
    cancelled = container.sessions.cancel(provider_call_id)
    return CancelResponse(provider_call_id=provider_call_id, cancelled=cancelled)


@calls_router.post("/{provider_call_id}/disposition", response_model=CallRecordResponse)
async def record_disposition(
    provider_call_id: str,
    body: DispositionRequest,
    container: Container,
) -> CallRecordResponse:
    record = await container.disposition.record_disposition(
        provider_call_id,
        outcome=body.outcome,
        notes=body.notes,
        next_follow_up=body.next_follow_up,
    )
    container.sessions.forget(provider_call_id)
    return CallRecordResponse.from_record(record)


@analysis_router.post("/refresh", response_model=AnalysisRefreshResponse)
async def refresh_analyses(container: Container) -> AnalysisRefreshResponse:
    completed = await container.pipeline.refresh()
    return AnalysisRefreshResponse(
        completed=[AnalysisSummary.from_analysis(a) for a in completed],
        in_flight=list(container.in_flight),
    )


@analysis_router.get("/in-flight", response_model=InFlightResponse)
async def list_in_flight(container: Container) -> InFlightResponse:
    return InFlightResponse(call_ids=list(container.in_flight))


@analysis_router.post(
    "/{call_id}",
    response_model=AnalysisHandleResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Send a call recording for analysis",
)
async def submit_for_analysis(
    call_id: str,
    container: Container,
    employee_id: EmployeeId,
    body: AnalysisSubmitRequest | None = None,
) -> AnalysisHandleResponse:
    record = await container.calls.get_by_id(call_id)
    if record is None:
        raise NotFoundError(f"Call {call_id} not found")
    owner_id = (body.owner_id if body else None) or employee_id
    handle = await container.pipeline.submit_for_analysis(record, owner_id=owner_id)
    return AnalysisHandleResponse.from_handle(handle)


@insights_router.get("", response_model=InsightsResponse)
async def get_insights(
    container: Container,
    tenant: Tenant,
    employee_id: EmployeeId,
    refresh: Annotated[bool, Query(description="Regenerate even if the report is fresh")] = False,
) -> InsightsResponse:
    refresher = await container.refresher_for(tenant.company_id, employee_id)
    if refresher is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Insights are disabled")
    report = await refresher.refresh(force=refresh)
    return InsightsResponse.from_report(report, refresher.last_error)
