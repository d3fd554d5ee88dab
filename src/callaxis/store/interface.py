"""
Generic record store contract.

The store does not enforce natural-key uniqueness for these tables; callers
keep it by looking up before they write.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from callaxis.shared.exceptions import AppError

Row = dict[str, Any]


class Table(str, Enum):
    """Tables the orchestration core reads and writes."""

    CALL_HISTORY = "call_history"
    RECORDINGS = "recordings"
    ANALYSES = "analyses"
    LEADS = "leads"


class StoreError(AppError):
    """The store rejected an operation."""


class MultipleRowsError(StoreError):
    """select_one matched more than one row."""


class Store(Protocol):
    """Insert/update/select-by-filter over named tables.

    Match values that are lists, tuples or sets match any of their members.
    """

    async def insert(self, table: Table | str, row: Row) -> Row:
        """Insert a row and return it with generated fields filled in."""
        ...

    async def update(self, table: Table | str, match: Row, patch: Row) -> list[Row]:
        """Apply patch to every matching row and return the updated rows."""
        ...

    async def select_one(self, table: Table | str, match: Row) -> Row | None:
        """Return the single matching row, None, or raise MultipleRowsError."""
        ...

    async def select_many(
        self,
        table: Table | str,
        match: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Return all matching rows."""
        ...


def table_name(table: Table | str) -> str:
    return table.value if isinstance(table, Table) else str(table)


def matches(row: Row, match: Row | None) -> bool:
    """Evaluate a match filter against a plain row."""
    for key, expected in (match or {}).items():
        value = row.get(key)
        if is_multi(expected):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def is_multi(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))
