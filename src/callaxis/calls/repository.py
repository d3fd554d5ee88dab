"""
Repository for call history records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, Sequence

from callaxis.calls.models import CallRecord
from callaxis.store.interface import Store, Table


class CallRecordRepositoryProtocol(Protocol):
    """Protocol for call record repository operations."""

    async def get_by_provider_call_id(self, provider_call_id: str) -> CallRecord | None:
        """Get the call record for a provider call identifier."""
        ...

    async def insert(self, record: CallRecord) -> CallRecord:
        """Insert a new call record."""
        ...

    async def update(self, record_id: str, patch: dict[str, Any]) -> CallRecord | None:
        """Patch an existing call record."""
        ...


class CallRecordRepository:
    """Call record operations over the generic store."""

    def __init__(self, store: Store) -> None:
        """Initialize repository with a store.

        Args:
            store: Record store holding the ``call_history`` table.
        """
        self._store = store

    async def get_by_provider_call_id(self, provider_call_id: str) -> CallRecord | None:
        """Get call record by provider call identifier (e.g., Exotel CallSid).

        Raises:
            MultipleRowsError: If the natural key is not unique in the store.
        """
        row = await self._store.select_one(Table.CALL_HISTORY, {"provider_call_id": provider_call_id})
        return CallRecord.from_row(row) if row else None

    async def get_by_id(self, record_id: str) -> CallRecord | None:
        row = await self._store.select_one(Table.CALL_HISTORY, {"id": record_id})
        return CallRecord.from_row(row) if row else None

    async def insert(self, record: CallRecord) -> CallRecord:
        row = await self._store.insert(Table.CALL_HISTORY, record.to_row())
        return CallRecord.from_row(row)

    async def update(self, record_id: str, patch: dict[str, Any]) -> CallRecord | None:
        """Patch a call record; ``updated_at`` is always refreshed.

        Returns:
            Updated CallRecord if found, None otherwise.
        """
        values = {k: (v.value if isinstance(v, Enum) else v) for k, v in patch.items()}
        values["updated_at"] = datetime.now(timezone.utc)
        rows = await self._store.update(Table.CALL_HISTORY, {"id": record_id}, values)
        return CallRecord.from_row(rows[0]) if rows else None

    async def list_for_company(
        self,
        company_id: str,
        employee_id: str | None = None,
        since: datetime | None = None,
    ) -> Sequence[CallRecord]:
        """Call records of a company (optionally one employee), newest first."""
        match: dict[str, Any] = {"company_id": company_id}
        if employee_id is not None:
            match["employee_id"] = employee_id
        rows = await self._store.select_many(
            Table.CALL_HISTORY, match, order_by="created_at", descending=True
        )
        records = [CallRecord.from_row(row) for row in rows]
        if since is not None:
            records = [r for r in records if r.created_at is None or _aware(r.created_at) >= _aware(since)]
        return records


def _aware(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
