"""
In-process document backend.

Keeps every table in a dict and copies documents on the way in and out, so
callers never share state with the store. Each primitive yields to the event
loop first, the way a network round trip would, which keeps coroutine
interleavings in tests honest. The check and the write inside a primitive
happen without suspending, so each primitive is atomic.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Optional

from .codec import Record, add_to_field
from .errors import AlreadyExistsError, ConflictError, NotFoundError


class MemoryBackend:
    """Dict-backed implementation of the gateway backend primitives."""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self._tables: dict[str, dict[str, tuple[Record, int]]] = {}

    async def _io(self) -> None:
        await asyncio.sleep(self.latency)

    def _table(self, table: str) -> dict[str, tuple[Record, int]]:
        return self._tables.setdefault(table, {})

    async def get(self, table: str, key: str) -> Optional[tuple[Record, int]]:
        await self._io()
        entry = self._table(table).get(key)
        if entry is None:
            return None
        data, version = entry
        return copy.deepcopy(data), version

    async def scan(self, table: str) -> list[Record]:
        await self._io()
        return [copy.deepcopy(data) for data, _ in self._table(table).values()]

    async def insert(self, table: str, key: str, record: Record) -> int:
        await self._io()
        rows = self._table(table)
        if key in rows:
            raise AlreadyExistsError(f"{table}/{key} already exists", table=table, key=key)
        rows[key] = (copy.deepcopy(record), 1)
        return 1

    async def compare_and_swap(
        self, table: str, key: str, record: Record, expected_version: Optional[int] = None
    ) -> int:
        await self._io()
        rows = self._table(table)
        current = rows.get(key)
        if expected_version is not None:
            if current is None:
                raise NotFoundError(f"{table}/{key} not found", table=table, key=key)
            if current[1] != expected_version:
                raise ConflictError(
                    f"{table}/{key} is at version {current[1]}, expected {expected_version}",
                    table=table,
                    key=key,
                )
        version = current[1] + 1 if current else 1
        rows[key] = (copy.deepcopy(record), version)
        return version

    async def increment(self, table: str, key: str, field: str, delta: int | float, updated_at: str) -> Record:
        await self._io()
        rows = self._table(table)
        current = rows.get(key)
        if current is None:
            raise NotFoundError(f"{table}/{key} not found", table=table, key=key)
        data, version = current
        data = add_to_field(copy.deepcopy(data), field, delta, table=table, key=key)
        data["updatedAt"] = updated_at
        rows[key] = (data, version + 1)
        return copy.deepcopy(data)

    async def delete(self, table: str, key: str) -> None:
        await self._io()
        self._table(table).pop(key, None)

    async def close(self) -> None:
        return None
