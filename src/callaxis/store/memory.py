"""
In-memory store for development and tests.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from uuid import uuid4

from callaxis.store.interface import MultipleRowsError, Row, Table, matches, table_name


class InMemoryStore:
    """Dict-backed implementation of the Store protocol.

    Every write is appended to ``writes`` as ``(operation, table)`` so tests
    can assert on side effects.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Row]] = {}
        self._lock = asyncio.Lock()
        self.writes: list[tuple[str, str]] = []

    def _table(self, table: Table | str) -> dict[str, Row]:
        return self._tables.setdefault(table_name(table), {})

    async def insert(self, table: Table | str, row: Row) -> Row:
        async with self._lock:
            stored = copy.deepcopy(row)
            stored.setdefault("id", str(uuid4()))
            stored.setdefault("created_at", datetime.now(timezone.utc))
            self._table(table)[stored["id"]] = stored
            self.writes.append(("insert", table_name(table)))
            return copy.deepcopy(stored)

    async def update(self, table: Table | str, match: Row, patch: Row) -> list[Row]:
        async with self._lock:
            updated: list[Row] = []
            for row in self._table(table).values():
                if matches(row, match):
                    row.update(copy.deepcopy(patch))
                    updated.append(copy.deepcopy(row))
            self.writes.append(("update", table_name(table)))
            return updated

    async def select_one(self, table: Table | str, match: Row) -> Row | None:
        found = [row for row in self._table(table).values() if matches(row, match)]
        if len(found) > 1:
            raise MultipleRowsError(
                f"{len(found)} rows in {table_name(table)} match {match}",
                details={"table": table_name(table), "match": match},
            )
        return copy.deepcopy(found[0]) if found else None

    async def select_many(
        self,
        table: Table | str,
        match: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        rows = [copy.deepcopy(row) for row in self._table(table).values() if matches(row, match)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, table: Table | str) -> int:
        return len(self._table(table))
