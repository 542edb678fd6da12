"""Document backend persisted through SQLAlchemy's asyncio extension."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from clientdesk.db.models import Document
from clientdesk.db.session import get_engine, make_sessionmaker

from .codec import Record, add_to_field
from .errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


def _row(table: str, key: str):
    return (Document.table_name == table, Document.id == key)


class SQLBackend:
    """Stores every logical table as JSON rows of the ``documents`` table."""

    def __init__(self, engine: AsyncEngine | None = None):
        self.engine = engine or get_engine()
        self._sessions = make_sessionmaker(self.engine)

    @asynccontextmanager
    async def _transaction(self, table: str, key: str | None = None) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions.begin() as session:
                yield session
        except IntegrityError as exc:
            raise AlreadyExistsError(f"{table}/{key} already exists", table=table, key=key) from exc
        except OperationalError as exc:
            logger.warning("Store unavailable on %s/%s: %s", table, key, exc)
            raise StoreUnavailableError("document store unavailable", table=table, key=key) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StoreUnavailableError("document store connection lost", table=table, key=key) from exc
            raise StoreError("document store error", table=table, key=key) from exc
        except SQLAlchemyError as exc:
            raise StoreError("document store error", table=table, key=key) from exc

    async def get(self, table: str, key: str) -> Optional[tuple[Record, int]]:
        async with self._transaction(table, key) as session:
            row = await session.get(Document, (table, key))
            if row is None:
                return None
            return dict(row.data or {}), int(row.version)

    async def scan(self, table: str) -> list[Record]:
        async with self._transaction(table) as session:
            result = await session.execute(select(Document.data).where(Document.table_name == table))
            return [dict(data or {}) for data in result.scalars().all()]

    async def insert(self, table: str, key: str, record: Record) -> int:
        async with self._transaction(table, key) as session:
            session.add(Document(table_name=table, id=key, data=record, version=1))
        return 1

    async def compare_and_swap(
        self, table: str, key: str, record: Record, expected_version: Optional[int] = None
    ) -> int:
        async with self._transaction(table, key) as session:
            stmt = update(Document).where(*_row(table, key))
            if expected_version is not None:
                stmt = stmt.where(Document.version == expected_version)
            stmt = stmt.values(data=record, version=Document.version + 1, updated_at=func.now()).execution_options(
                synchronize_session=False
            )
            result = await session.execute(stmt)
            if result.rowcount:
                version = await session.scalar(select(Document.version).where(*_row(table, key)))
                return int(version)
            if expected_version is None:
                session.add(Document(table_name=table, id=key, data=record, version=1))
                try:
                    await session.flush()
                except IntegrityError as exc:
                    # another writer created the row between the update and the insert
                    raise ConflictError(f"{table}/{key} was created concurrently", table=table, key=key) from exc
                return 1
            exists = await session.scalar(select(Document.version).where(*_row(table, key)))
        if exists is None:
            raise NotFoundError(f"{table}/{key} not found", table=table, key=key)
        raise ConflictError(
            f"{table}/{key} is at version {exists}, expected {expected_version}", table=table, key=key
        )

    async def increment(self, table: str, key: str, field: str, delta: int | float, updated_at: str) -> Record:
        """Add ``delta`` under a row lock, retrying only if the version still moved."""
        while True:
            async with self._transaction(table, key) as session:
                found = (
                    await session.execute(
                        select(Document.data, Document.version).where(*_row(table, key)).with_for_update()
                    )
                ).first()
                if found is None:
                    raise NotFoundError(f"{table}/{key} not found", table=table, key=key)
                data = add_to_field(dict(found.data or {}), field, delta, table=table, key=key)
                data["updatedAt"] = updated_at
                result = await session.execute(
                    update(Document)
                    .where(*_row(table, key), Document.version == found.version)
                    .values(data=data, version=Document.version + 1, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount:
                    return data
            logger.debug("Version of %s/%s moved during increment; retrying", table, key)

    async def delete(self, table: str, key: str) -> None:
        async with self._transaction(table, key) as session:
            await session.execute(delete(Document).where(*_row(table, key)))

    async def close(self) -> None:
        await self.engine.dispose()
