"""
Single chokepoint for document storage.

Every entity repository reduces to the primitives exposed here: point
lookup, filtered scan, conditional insert, full put, partial update, atomic
increment and delete, plus the nested-collection upsert used by list-valued
fields such as project modules or client invoices.

Partial updates run as compare-and-swap loops on the row's version token, so
concurrent writers touching the same row never lose each other's changes.
Increments are a backend primitive: the read and the add happen in one
atomic step, with no retry budget to exhaust. ``upsert_nested`` is a read-modify-write of the whole
collection: with ``check_version`` it fails with ``ConflictError`` when the
parent moved underneath it, without it the last writer wins.

Scans read the whole table and filter in process; cost grows with table size.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import math
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Protocol, Sequence, TypeVar

from .codec import Record, new_id, stamp_created, utc_now_iso
from .errors import ConflictError, InvalidUpdateError, NotFoundError, StoreTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

IMMUTABLE_FIELDS = frozenset({"id", "createdAt"})


class DocumentBackend(Protocol):
    async def get(self, table: str, key: str) -> Optional[tuple[Record, int]]: ...

    async def scan(self, table: str) -> list[Record]: ...

    async def insert(self, table: str, key: str, record: Record) -> int: ...

    async def compare_and_swap(
        self, table: str, key: str, record: Record, expected_version: Optional[int] = None
    ) -> int: ...

    async def increment(self, table: str, key: str, field: str, delta: int | float, updated_at: str) -> Record: ...

    async def delete(self, table: str, key: str) -> None: ...

    async def close(self) -> None: ...


def mean_progress(items: Iterable[Mapping[str, Any]], field: str = "progress") -> int:
    """Average of ``field`` over ``items`` rounded half up; ``0`` for no items."""
    values = []
    for item in items:
        try:
            values.append(float(item.get(field) or 0))
        except (TypeError, ValueError):
            values.append(0.0)
    if not values:
        return 0
    return int(math.floor(sum(values) / len(values) + 0.5))


def _matches(record: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    return all(record.get(attr) == value for attr, value in where.items())


class DocumentGateway:
    """Stateless facade over a document backend."""

    def __init__(self, backend: DocumentBackend, *, timeout: float = 0.0, max_attempts: int = 100):
        self.backend = backend
        self.timeout = timeout
        self.max_attempts = max_attempts

    async def _call(self, awaitable: Awaitable[T], table: str, key: Optional[str] = None) -> T:
        if self.timeout <= 0:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Store call on %s/%s exceeded %.3fs", table, key, self.timeout)
            raise StoreTimeoutError(f"{table}/{key} timed out", table=table, key=key) from exc

    # -------------------------------------- reads --------------------------------------
    async def get(self, table: str, key: str) -> Optional[Record]:
        found = await self.get_versioned(table, key)
        return found[0] if found else None

    async def get_versioned(self, table: str, key: str) -> Optional[tuple[Record, int]]:
        if not key:
            return None
        return await self._call(self.backend.get(table, key), table, key)

    async def scan(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        *,
        match: Optional[Callable[[Record], bool]] = None,
        sort_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Record]:
        rows = await self._call(self.backend.scan(table), table)
        if where:
            rows = [row for row in rows if _matches(row, where)]
        if match is not None:
            rows = [row for row in rows if match(row)]
        if sort_by:
            # rows missing the attribute go last when ascending
            rows.sort(key=lambda row: (row.get(sort_by) is None, row.get(sort_by)), reverse=descending)
        return rows

    # -------------------------------------- writes --------------------------------------
    async def insert_if_absent(self, table: str, record: Record) -> Record:
        item = copy.deepcopy(dict(record))
        if not item.get("id"):
            item["id"] = new_id()
        now = utc_now_iso()
        item.setdefault("createdAt", now)
        item.setdefault("updatedAt", now)
        await self._call(self.backend.insert(table, item["id"], item), table, item["id"])
        logger.debug("Inserted %s/%s", table, item["id"])
        return item

    async def put(self, table: str, record: Record, *, expected_version: Optional[int] = None) -> Record:
        """Overwrite the whole row with ``record``.

        ``createdAt`` is whatever ``record`` carries; a record without one is
        stamped as new, so callers replacing an existing row must carry the
        stored value over (``upsert_nested`` does). With ``expected_version``
        a row that moved fails with ``ConflictError`` and a missing row with
        ``NotFoundError``; without it a row created concurrently by another
        writer also fails with ``ConflictError``.
        """
        item = copy.deepcopy(dict(record))
        key = item.get("id")
        if not key:
            raise InvalidUpdateError("put requires a record id", table=table)
        now = utc_now_iso()
        item.setdefault("createdAt", now)
        item["updatedAt"] = now
        try:
            await self._call(self.backend.compare_and_swap(table, key, item, expected_version), table, key)
        except ConflictError:
            logger.warning("Stale write rejected on %s/%s (expected version %s)", table, key, expected_version)
            raise
        logger.debug("Put %s/%s", table, key)
        return item

    async def partial_update(self, table: str, key: str, changes: Mapping[str, Any]) -> Record:
        forbidden = IMMUTABLE_FIELDS.intersection(changes)
        if forbidden:
            raise InvalidUpdateError(
                f"cannot change {', '.join(sorted(forbidden))} of {table}/{key}", table=table, key=key
            )

        def apply(current: Record) -> Record:
            current.update(copy.deepcopy(dict(changes)))
            return current

        updated = await self._mutate(table, key, apply)
        logger.debug("Updated %s/%s fields %s", table, key, sorted(changes))
        return updated

    async def increment(self, table: str, key: str, field: str, delta: int | float = 1) -> Record:
        if field in IMMUTABLE_FIELDS:
            raise InvalidUpdateError(f"cannot increment {field} of {table}/{key}", table=table, key=key)
        if isinstance(delta, bool) or not isinstance(delta, (int, float)):
            raise InvalidUpdateError(f"increment of {table}/{key}.{field} needs a number", table=table, key=key)
        updated = await self._call(self.backend.increment(table, key, field, delta, utc_now_iso()), table, key)
        logger.debug("Incremented %s/%s.%s by %s", table, key, field, delta)
        return updated

    async def _mutate(self, table: str, key: str, apply: Callable[[Record], Record]) -> Record:
        for _ in range(self.max_attempts):
            found = await self.get_versioned(table, key)
            if found is None:
                raise NotFoundError(f"{table}/{key} not found", table=table, key=key)
            current, version = found
            updated = apply(current)
            updated["updatedAt"] = utc_now_iso()
            try:
                await self._call(self.backend.compare_and_swap(table, key, updated, version), table, key)
            except ConflictError:
                continue
            return updated
        raise ConflictError(f"{table}/{key} kept changing; gave up after {self.max_attempts} attempts", table=table, key=key)

    async def delete(self, table: str, key: str) -> None:
        await self._call(self.backend.delete(table, key), table, key)
        logger.debug("Deleted %s/%s", table, key)

    # -------------------------------------- nested collections --------------------------------------
    async def upsert_nested(
        self,
        parent_table: str,
        parent_id: str,
        collection_field: str,
        sub_record: Mapping[str, Any],
        aggregate_field: Optional[str] = None,
        aggregate_fn: Optional[Callable[[Sequence[Record]], Any]] = None,
        *,
        check_version: bool = True,
        must_exist: bool = False,
    ) -> Record:
        """Merge ``sub_record`` into the parent's list by id, or append it.

        A matching entry keeps its position and any fields ``sub_record``
        does not mention. With ``must_exist`` an unknown sub-record id fails
        with ``NotFoundError`` instead of appending.
        """
        found = await self.get_versioned(parent_table, parent_id)
        if found is None:
            raise NotFoundError(f"{parent_table}/{parent_id} not found", table=parent_table, key=parent_id)
        parent, version = found

        items = list(parent.get(collection_field) or [])
        incoming = copy.deepcopy(dict(sub_record))
        sub_id = incoming.get("id")
        index = next((i for i, item in enumerate(items) if sub_id and item.get("id") == sub_id), None)

        if index is not None:
            incoming.pop("createdAt", None)
            merged = {**items[index], **incoming}
            merged["updatedAt"] = utc_now_iso()
            items[index] = merged
        elif must_exist:
            raise NotFoundError(
                f"{collection_field} entry {sub_id} not found on {parent_table}/{parent_id}",
                table=parent_table,
                key=parent_id,
            )
        else:
            items.append(stamp_created(incoming))

        parent[collection_field] = items
        if aggregate_field:
            parent[aggregate_field] = (aggregate_fn or mean_progress)(items)

        return await self.put(parent_table, parent, expected_version=version if check_version else None)

    async def close(self) -> None:
        await self.backend.close()
