"""
Persistence adapters.

``DocumentGateway`` is the only component that talks to a storage backend
(in-memory or SQL). Entity repositories depend on the gateway and hand typed
domain objects to services.
"""

from __future__ import annotations

from typing import Optional

from clientdesk.core.config import Settings, get_settings

from .errors import (
    AlreadyExistsError,
    ConflictError,
    InvalidUpdateError,
    NotFoundError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from .gateway import DocumentGateway, mean_progress
from .memory_storage import MemoryBackend


def build_gateway(settings: Optional[Settings] = None) -> DocumentGateway:
    """Pick the backend named by ``STORE_BACKEND`` and wrap it in a gateway."""
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        backend = MemoryBackend()
    else:
        from .sql_storage import SQLBackend

        backend = SQLBackend()
    return DocumentGateway(backend, timeout=settings.store_timeout_seconds)


async def init_store(settings: Optional[Settings] = None) -> None:
    """Create the SQL schema when the SQL backend is configured."""
    settings = settings or get_settings()
    if settings.store_backend != "sql":
        return
    from clientdesk.db.session import create_tables

    await create_tables()


__all__ = [
    "AlreadyExistsError",
    "ConflictError",
    "DocumentGateway",
    "InvalidUpdateError",
    "MemoryBackend",
    "NotFoundError",
    "StoreError",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "build_gateway",
    "init_store",
    "mean_progress",
]
