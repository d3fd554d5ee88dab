"""
Durable store access.

NOTE: keep this lightweight. The SQLAlchemy-backed store lives in
``callaxis.store.sql`` and is imported explicitly where needed.
"""

from callaxis.store.interface import MultipleRowsError, Row, Store, StoreError, Table
from callaxis.store.memory import InMemoryStore

__all__ = [
    "InMemoryStore",
    "MultipleRowsError",
    "Row",
    "Store",
    "StoreError",
    "Table",
]
