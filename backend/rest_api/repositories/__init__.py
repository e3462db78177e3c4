"""
Order store implementations and the request-scoped dependency.

Usage:
    from rest_api.repositories import OrderStore, get_order_store

    @router.get("/orders/{order_id}")
    def get_order(order_id: int, store: OrderStore = Depends(get_order_store)):
        ...

The backend (``sql`` or ``memory``) comes from ``settings.persistence_backend``
and is checked once at startup by ``validate_persistence_backend``.
"""

import threading
from typing import Generator

from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from .base import OrderFilters, OrderStore
from .memory_store import InMemoryDatabase, InMemoryOrderStore
from .sql_store import SqlOrderStore

PERSISTENCE_BACKENDS = ("sql", "memory")

_memory_database: InMemoryDatabase | None = None
_memory_lock = threading.Lock()


def validate_persistence_backend() -> str:
    """Return the configured backend or raise ValueError for an unknown one."""
    backend = settings.persistence_backend.strip().lower()
    if backend not in PERSISTENCE_BACKENDS:
        raise ValueError(
            f"Unknown PERSISTENCE_BACKEND '{settings.persistence_backend}'. "
            f"Expected one of: {', '.join(PERSISTENCE_BACKENDS)}"
        )
    return backend


def get_memory_database() -> InMemoryDatabase:
    """Process-wide in-memory database (created on first use)."""
    global _memory_database
    if _memory_database is None:
        with _memory_lock:
            if _memory_database is None:
                _memory_database = InMemoryDatabase()
    return _memory_database


def get_order_store() -> Generator[OrderStore, None, None]:
    """
    FastAPI dependency yielding one unit of work per request.

    Anything not committed by the handler is rolled back afterwards.
    """
    if validate_persistence_backend() == "memory":
        store = InMemoryOrderStore(get_memory_database())
        try:
            yield store
        finally:
            store.rollback()
        return

    # Committed rows are serialized on the event loop after the worker thread returns
    db = SessionLocal(expire_on_commit=False)
    try:
        yield SqlOrderStore(db)
    finally:
        db.close()


__all__ = [
    "OrderFilters",
    "OrderStore",
    "SqlOrderStore",
    "InMemoryOrderStore",
    "InMemoryDatabase",
    "PERSISTENCE_BACKENDS",
    "validate_persistence_backend",
    "get_memory_database",
    "get_order_store",
]
