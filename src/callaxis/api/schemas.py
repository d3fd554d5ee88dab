"""
Pydantic schemas for the call and analysis API.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from callaxis.analysis.models import Analysis, AnalysisHandle
from callaxis.calls.events import CallEvent
from callaxis.calls.models import CallRecord
from callaxis.calls.sessions import CallSession
from callaxis.insights.models import CallStatistics, Insight, InsightReport


class PlaceCallRequest(BaseModel):
    """Request to dial a lead."""

    from_number: str = Field(..., min_length=1, max_length=32, description="Agent's phone number")
    to_number: str = Field(..., min_length=1, max_length=32, description="Number to dial")
    caller_id: str | None = Field(None, max_length=64, description="Exophone to present")
    lead_id: str | None = None


class ReattachRequest(PlaceCallRequest):
    """Resume polling a call placed earlier in another page session."""

    started_at: datetime | None = None


class CallRecordResponse(BaseModel):
    id: str | None
    provider_call_id: str | None
    outcome: str
    provider_status: str | None = None
    notes: str | None = None
    lead_id: str | None = None
    to_number: str | None = None
    recording_url: str | None = None
    duration_seconds: int | None = None
    next_follow_up: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: CallRecord) -> "CallRecordResponse":
        return cls(
            id=record.id,
            provider_call_id=record.provider_call_id,
            outcome=record.outcome.value,
            provider_status=record.provider_status,
            notes=record.notes,
            lead_id=record.lead_id,
            to_number=record.to_number,
            recording_url=record.recording_url,
            duration_seconds=record.duration_seconds,
            next_follow_up=record.next_follow_up,
            created_at=record.created_at,
        )


class CallSessionResponse(BaseModel):
    """Live view of a poll session."""

    provider_call_id: str
    status: str
    state: str
    from_number: str
    to_number: str
    lead_id: str | None = None
    requires_disposition: bool = False
    error: str | None = None
    record: CallRecordResponse | None = None
    updated_at: datetime

    @classmethod
    def from_session(cls, session: CallSession) -> "CallSessionResponse":
        return cls(
            provider_call_id=session.provider_call_id,
            status=session.attempt.status.value,
            state=session.state.value,
            from_number=session.attempt.from_number,
            to_number=session.attempt.to_number,
            lead_id=session.attempt.lead_id,
            requires_disposition=session.requires_disposition,
            error=session.error,
            record=CallRecordResponse.from_record(session.record) if session.record else None,
            updated_at=session.updated_at,
        )


class CallEventResponse(BaseModel):
    seq: int
    type: str
    provider_call_id: str | None = None
    status: str | None = None
    outcome: str | None = None
    call_id: str | None = None
    at: datetime

    @classmethod
    def from_event(cls, event: CallEvent) -> "CallEventResponse":
        return cls(
            seq=event.seq,
            type=event.type.value,
            provider_call_id=event.provider_call_id,
            status=event.status,
            outcome=event.outcome,
            call_id=event.call_id,
            at=event.at,
        )


class CallEventsResponse(BaseModel):
    """Events after the requested sequence number; pass ``last_seq`` back as ``after``."""

    events: list[CallEventResponse]
    last_seq: int


class CancelResponse(BaseModel):
    provider_call_id: str
    cancelled: bool


class DispositionRequest(BaseModel):
    outcome: str = Field(..., min_length=1, description="Final outcome chosen by the operator")
    notes: str | None = Field(None, max_length=5000)
    next_follow_up: datetime | None = None


class ManualCallRequest(BaseModel):
    """A call made outside the dialer, entered by hand or by an external system."""

    to_number: str = Field(..., min_length=1, max_length=32)
    outcome: str = Field(..., min_length=1)
    lead_id: str | None = None
    notes: str | None = Field(None, max_length=5000)
    duration_seconds: int | None = Field(None, ge=0)
    recording_url: str | None = None
    provider_call_id: str | None = None
    started_at: datetime | None = None


class AnalysisSubmitRequest(BaseModel):
    owner_id: str | None = Field(None, description="Recording owner; defaults to the caller")


class AnalysisHandleResponse(BaseModel):
    call_id: str
    recording_id: str
    analysis_id: str
    status: str
    recording_created: bool
    analysis_created: bool
    dispatched_via: str

    @classmethod
    def from_handle(cls, handle: AnalysisHandle) -> "AnalysisHandleResponse":
        return cls(
            call_id=handle.call_id,
            recording_id=handle.recording_id,
            analysis_id=handle.analysis_id,
            status=handle.status.value,
            recording_created=handle.recording_created,
            analysis_created=handle.analysis_created,
            dispatched_via=handle.dispatched_via,
        )


class AnalysisSummary(BaseModel):
    id: str | None
    call_id: str
    status: str
    short_summary: str | None = None
    call_outcome: str | None = None

    @classmethod
    def from_analysis(cls, analysis: Analysis) -> "AnalysisSummary":
        return cls(
            id=analysis.id,
            call_id=analysis.call_id,
            status=analysis.status.value,
            short_summary=analysis.short_summary,
            call_outcome=analysis.call_outcome,
        )


class InFlightResponse(BaseModel):
    call_ids: list[str]


class AnalysisRefreshResponse(BaseModel):
    completed: list[AnalysisSummary]
    in_flight: list[str]


class InsightsResponse(BaseModel):
    insights: list[Insight] = Field(default_factory=list)
    model: str | None = None
    generated_at: datetime | None = None
    statistics: CallStatistics | None = None
    last_error: str | None = None

    @classmethod
    def from_report(cls, report: InsightReport | None, last_error: str | None) -> "InsightsResponse":
        if report is None:
            return cls(last_error=last_error)
        return cls(
            insights=report.insights,
            model=report.model,
            generated_at=report.generated_at,
            statistics=report.statistics,
            last_error=last_error,
        )
