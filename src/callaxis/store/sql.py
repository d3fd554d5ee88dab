"""
Store implementation over async SQLAlchemy sessions.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callaxis.shared.database import Base
from callaxis.shared.logging import get_logger
from callaxis.store.interface import MultipleRowsError, Row, StoreError, Table, is_multi, table_name
from callaxis.store.models import TABLE_MODELS

logger = get_logger(__name__)


def _to_row(obj: Base) -> Row:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


class SqlAlchemyStore:
    """Store protocol backed by the ORM models in ``callaxis.store.models``.

    Each operation runs in its own short session and commits before
    returning, so a caller's look-before-write sees every earlier write.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    def _model(self, table: Table | str) -> type[Base]:
        name = table_name(table)
        model = TABLE_MODELS.get(name)
        if model is None:
            raise StoreError(f"Unknown table: {name}")
        return model

    def _check_columns(self, model: type[Base], fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(model.__table__.columns.keys())
        if unknown:
            raise StoreError(
                f"Unknown columns for {model.__tablename__}: {sorted(unknown)}",
                details={"table": model.__tablename__, "columns": sorted(unknown)},
            )

    def _where(self, model: type[Base], match: Row | None) -> list[Any]:
        self._check_columns(model, match or {})
        clauses = []
        for key, expected in (match or {}).items():
            column = model.__table__.columns[key]
            if is_multi(expected):
                clauses.append(column.in_(list(expected)))
            elif expected is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == expected)
        return clauses

    async def insert(self, table: Table | str, row: Row) -> Row:
        model = self._model(table)
        self._check_columns(model, row)
        async with self._session_factory() as session:
            obj = model(**row)
            session.add(obj)
            await session.commit()
            await session.refresh(obj)
            return _to_row(obj)

    async def update(self, table: Table | str, match: Row, patch: Row) -> list[Row]:
        model = self._model(table)
        self._check_columns(model, patch)
        async with self._session_factory() as session:
            result = await session.execute(select(model).where(*self._where(model, match)))
            objs = list(result.scalars().all())
            for obj in objs:
                for key, value in patch.items():
                    setattr(obj, key, value)
            await session.commit()
            return [_to_row(obj) for obj in objs]

    async def select_one(self, table: Table | str, match: Row) -> Row | None:
        rows = await self.select_many(table, match, limit=2)
        if len(rows) > 1:
            logger.error(
                "Natural-key lookup matched several rows",
                extra={"table": table_name(table), "match": match},
            )
            raise MultipleRowsError(
                f"Several rows in {table_name(table)} match {match}",
                details={"table": table_name(table), "match": match},
            )
        return rows[0] if rows else None

    async def select_many(
        self,
        table: Table | str,
        match: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        model = self._model(table)
        stmt = select(model).where(*self._where(model, match))
        if order_by:
            column = model.__table__.columns[order_by]
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_row(obj) for obj in result.scalars().all()]
