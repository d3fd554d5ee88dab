"""
Analysis submission pipeline.

Ensures one Recording row per (owner, recording URL) and one Analysis row
per call, then hands the job to the external processor. A failed dispatch
keeps the rows; the caller may submit again.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from callaxis.analysis.dispatch import AnalysisDispatcher
from callaxis.analysis.inflight import InFlightSet
from callaxis.analysis.models import (
    Analysis,
    AnalysisHandle,
    DispatchError,
    NoRecordingError,
    ProcessingStatus,
    Recording,
    recording_file_name,
)
from callaxis.analysis.repository import AnalysisRepository, RecordingRepository
from callaxis.calls.models import CallRecord
from callaxis.shared.exceptions import ValidationError
from callaxis.shared.logging import get_logger

logger = get_logger(__name__)


class AnalysisSubmissionPipeline:
    """Idempotent submit-and-track of call recordings for analysis."""

    def __init__(
        self,
        recordings: RecordingRepository,
        analyses: AnalysisRepository,
        dispatcher: AnalysisDispatcher,
        in_flight: InFlightSet | None = None,
        source: str = "callaxis-dashboard",
    ) -> None:
        self._recordings = recordings
        self._analyses = analyses
        self._dispatcher = dispatcher
        self.in_flight = in_flight or InFlightSet()
        self._source = source
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def submit_for_analysis(self, call: CallRecord, owner_id: str | None = None) -> AnalysisHandle:
        """Persist recording/analysis rows for a call and dispatch the job.

        Args:
            call: A reconciled call record.
            owner_id: User the recording belongs to; defaults to the call's employee.

        Raises:
            NoRecordingError: If the call has no recording URL. Nothing is written.
            ValidationError: If the call record has no id.
            DispatchError: If every transport tier failed. Rows are kept.
        """
        url = (call.recording_url or "").strip()
        if not url:
            raise NoRecordingError(
                "No recording available for this call",
                details={"call_id": call.id},
            )
        if not call.id:
            raise ValidationError("Call record must be persisted before analysis")

        owner = owner_id or call.employee_id
        async with self._call_lock(call.id):
            existing = await self._analyses.get_by_call_id(call.id)
            if existing is None:
                recording, recording_created = await self._ensure_recording(call, url, owner)
                analysis = await self._create_analysis(call, recording, owner)
                analysis_created = True
            else:
                recording, recording_created = await self._linked_recording(existing, call, url, owner)
                analysis, recording = await self._reset_for_resubmission(existing, recording)
                analysis_created = False

        self.in_flight.add(call.id)
        payload = self._payload(call, recording, analysis, owner)
        try:
            tier = await self._dispatcher.dispatch(payload)
        except DispatchError:
            self.in_flight.discard(call.id)
            logger.error(
                "Analysis dispatch failed; rows kept for retry",
                extra={"call_id": call.id, "recording_id": recording.id, "analysis_id": analysis.id},
            )
            raise

        logger.info(
            "Recording sent for analysis",
            extra={"call_id": call.id, "analysis_id": analysis.id, "tier": tier},
        )
        return AnalysisHandle(
            call_id=call.id,
            recording_id=recording.id or "",
            analysis_id=analysis.id or "",
            status=analysis.status,
            recording_created=recording_created,
            analysis_created=analysis_created,
            dispatched_via=tier,
        )

    async def refresh(self) -> list[Analysis]:
        """Drop finished calls from the in-flight set.

        Returns:
            Analyses that completed since the last refresh.
        """
        call_ids = self.in_flight.snapshot()
        if not call_ids:
            return []

        analyses = {a.call_id: a for a in await self._analyses.list_by_call_ids(call_ids)}
        recordings = {
            r.id: r for r in await self._recordings.list_by_ids({a.recording_id for a in analyses.values()})
        }

        completed: list[Analysis] = []
        for call_id in call_ids:
            analysis = analyses.get(call_id)
            if analysis is None:
                self.in_flight.discard(call_id)
                continue
            recording = recordings.get(analysis.recording_id)
            recording_done = recording is not None and recording.status.is_terminal
            if not (recording_done or analysis.status.is_terminal):
                continue
            self.in_flight.discard(call_id)
            if analysis.status is ProcessingStatus.COMPLETED or (
                recording is not None and recording.status is ProcessingStatus.COMPLETED
            ):
                completed.append(analysis)

        if completed:
            logger.info("Analyses completed", extra={"call_ids": [a.call_id for a in completed]})
        return completed

    async def _ensure_recording(
        self, call: CallRecord, url: str, owner: str | None
    ) -> tuple[Recording, bool]:
        existing = await self._recordings.find_by_source(owner, url)
        if existing is not None:
            return existing, False
        recording = await self._recordings.insert(
            Recording(
                source_url=url,
                file_name=recording_file_name(call.id or "", call.created_at),
                status=ProcessingStatus.PENDING,
                owner_id=owner,
                company_id=call.company_id,
                call_id=call.id,
                transcript=call.notes or None,
            )
        )
        logger.info("Recording created", extra={"recording_id": recording.id, "call_id": call.id})
        return recording, True

    @asynccontextmanager
    async def _call_lock(self, call_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(call_id, asyncio.Lock())
        self._lock_users[call_id] = self._lock_users.get(call_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[call_id] -= 1
            if not self._lock_users[call_id]:
                del self._lock_users[call_id]
                del self._locks[call_id]

    async def _create_analysis(self, call: CallRecord, recording: Recording, owner: str | None) -> Analysis:
        analysis = await self._analyses.insert(
            Analysis(
                recording_id=recording.id or "",
                call_id=call.id or "",
                status=ProcessingStatus.PROCESSING,
                owner_id=owner,
                company_id=call.company_id,
            )
        )
        logger.info("Analysis created", extra={"analysis_id": analysis.id, "call_id": call.id})
        return analysis

    async def _linked_recording(
        self, analysis: Analysis, call: CallRecord, url: str, owner: str | None
    ) -> tuple[Recording, bool]:
        recording = await self._recordings.get(analysis.recording_id) if analysis.recording_id else None
        if recording is not None:
            return recording, False
        logger.warning(
            "Analysis points at a missing recording; resolving by source",
            extra={"analysis_id": analysis.id, "recording_id": analysis.recording_id},
        )
        return await self._ensure_recording(call, url, owner)

    async def _reset_for_resubmission(
        self, analysis: Analysis, recording: Recording
    ) -> tuple[Analysis, Recording]:
        if recording.status is not ProcessingStatus.PROCESSING and recording.id:
            recording = await self._recordings.set_status(recording.id, ProcessingStatus.PROCESSING) or recording
        if analysis.status is not ProcessingStatus.PROCESSING and analysis.id:
            analysis = await self._analyses.set_status(analysis.id, ProcessingStatus.PROCESSING) or analysis
        return analysis, recording

    def _payload(
        self, call: CallRecord, recording: Recording, analysis: Analysis, owner: str | None
    ) -> dict[str, Any]:
        return {
            "url": recording.source_url,
            "name": recording.file_name,
            "recording_id": recording.id,
            "analysis_id": analysis.id,
            "user_id": owner,
            "call_id": call.id,
            "company_id": call.company_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": self._source,
        }
