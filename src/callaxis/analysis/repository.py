"""
Repositories for recordings and analyses.
"""

from datetime import datetime, timezone
from typing import Iterable, Sequence

from callaxis.analysis.models import Analysis, ProcessingStatus, Recording
from callaxis.store.interface import Store, Table

UNFINISHED = [ProcessingStatus.PENDING.value, ProcessingStatus.PROCESSING.value]


class RecordingRepository:
    """Recording operations over the generic store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def find_by_source(self, owner_id: str | None, source_url: str) -> Recording | None:
        """Natural-key lookup on (owner, source URL).

        Raises:
            MultipleRowsError: If the natural key is not unique in the store.
        """
        row = await self._store.select_one(
            Table.RECORDINGS, {"owner_id": owner_id, "source_url": source_url}
        )
        return Recording.from_row(row) if row else None

    async def get(self, recording_id: str) -> Recording | None:
        row = await self._store.select_one(Table.RECORDINGS, {"id": recording_id})
        return Recording.from_row(row) if row else None

    async def list_by_ids(self, recording_ids: Iterable[str]) -> Sequence[Recording]:
        ids = list(recording_ids)
        if not ids:
            return []
        rows = await self._store.select_many(Table.RECORDINGS, {"id": ids})
        return [Recording.from_row(row) for row in rows]

    async def insert(self, recording: Recording) -> Recording:
        row = await self._store.insert(Table.RECORDINGS, recording.to_row())
        return Recording.from_row(row)

    async def set_status(self, recording_id: str, status: ProcessingStatus) -> Recording | None:
        rows = await self._store.update(
            Table.RECORDINGS,
            {"id": recording_id},
            {"status": status.value, "updated_at": datetime.now(timezone.utc)},
        )
        return Recording.from_row(rows[0]) if rows else None


class AnalysisRepository:
    """Analysis operations over the generic store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def get_by_call_id(self, call_id: str) -> Analysis | None:
        """Natural-key lookup on call id.

        Raises:
            MultipleRowsError: If the natural key is not unique in the store.
        """
        row = await self._store.select_one(Table.ANALYSES, {"call_id": call_id})
        return Analysis.from_row(row) if row else None

    async def list_by_call_ids(self, call_ids: Iterable[str]) -> Sequence[Analysis]:
        ids = list(call_ids)
        if not ids:
            return []
        rows = await self._store.select_many(Table.ANALYSES, {"call_id": ids})
        return [Analysis.from_row(row) for row in rows]

    async def list_unfinished(self) -> Sequence[Analysis]:
        rows = await self._store.select_many(Table.ANALYSES, {"status": UNFINISHED})
        return [Analysis.from_row(row) for row in rows]

    async def list_for_company(self, company_id: str) -> Sequence[Analysis]:
        rows = await self._store.select_many(
            Table.ANALYSES, {"company_id": company_id}, order_by="created_at", descending=True
        )
        return [Analysis.from_row(row) for row in rows]

    async def insert(self, analysis: Analysis) -> Analysis:
        row = await self._store.insert(Table.ANALYSES, analysis.to_row())
        return Analysis.from_row(row)

    async def set_status(self, analysis_id: str, status: ProcessingStatus) -> Analysis | None:
        rows = await self._store.update(
            Table.ANALYSES,
            {"id": analysis_id},
            {"status": status.value, "updated_at": datetime.now(timezone.utc)},
        )
        return Analysis.from_row(rows[0]) if rows else None
