"""
Behaviour of the document gateway over the in-memory backend.
"""
from __future__ import annotations

import asyncio

import pytest

from clientdesk.repositories.errors import (
    AlreadyExistsError,
    ConflictError,
    InvalidUpdateError,
    NotFoundError,
    StoreTimeoutError,
)
from clientdesk.repositories.gateway import DocumentGateway, mean_progress
from clientdesk.repositories.memory_storage import MemoryBackend

TABLE = "test-things"


async def test_get_returns_what_insert_wrote(gateway):
    written = await gateway.insert_if_absent(TABLE, {"id": "a1", "status": "Open", "tags": ["x"], "meta": {"n": 1}})

    stored = await gateway.get(TABLE, "a1")

    assert stored == written
    assert stored["createdAt"] == stored["updatedAt"]


async def test_get_missing_row_is_none(gateway):
    assert await gateway.get(TABLE, "nope") is None
    assert await gateway.get(TABLE, "") is None


async def test_insert_if_absent_rejects_second_insert(gateway):
    first = await gateway.insert_if_absent(TABLE, {"id": "same", "name": "first"})

    with pytest.raises(AlreadyExistsError) as exc_info:
        await gateway.insert_if_absent(TABLE, {"id": "same", "name": "second"})

    assert exc_info.value.table == TABLE
    assert exc_info.value.key == "same"
    assert await gateway.get(TABLE, "same") == first


async def test_insert_assigns_id_when_missing(gateway):
    written = await gateway.insert_if_absent(TABLE, {"name": "anon"})

    assert len(written["id"]) == 36
    assert await gateway.get(TABLE, written["id"]) == written


async def test_put_overwrites_and_moves_updated_at_forward(gateway):
    original = await gateway.insert_if_absent(TABLE, {"id": "p1", "name": "old", "extra": True})

    replaced = await gateway.put(TABLE, {"id": "p1", "name": "new", "createdAt": original["createdAt"]})

    stored = await gateway.get(TABLE, "p1")
    assert stored == replaced
    assert "extra" not in stored
    assert stored["updatedAt"] >= original["updatedAt"]


async def test_put_requires_id(gateway):
    with pytest.raises(InvalidUpdateError):
        await gateway.put(TABLE, {"name": "no id"})


async def test_partial_update_touches_only_named_fields(gateway):
    before = await gateway.insert_if_absent(
        TABLE, {"id": "t1", "status": "Active", "subject": "Printer", "nested": {"a": [1, 2]}}
    )

    after = await gateway.partial_update(TABLE, "t1", {"status": "Closed"})

    assert after["status"] == "Closed"
    assert after["updatedAt"] >= before["updatedAt"]
    for key in ("id", "subject", "nested", "createdAt"):
        assert after[key] == before[key]
    assert await gateway.get(TABLE, "t1") == after


async def test_partial_update_missing_row(gateway):
    with pytest.raises(NotFoundError):
        await gateway.partial_update(TABLE, "ghost", {"status": "Closed"})


@pytest.mark.parametrize("field", ["id", "createdAt"])
async def test_partial_update_rejects_immutable_fields(gateway, field):
    await gateway.insert_if_absent(TABLE, {"id": "t2"})

    with pytest.raises(InvalidUpdateError):
        await gateway.partial_update(TABLE, "t2", {field: "other", "status": "x"})

    assert "status" not in await gateway.get(TABLE, "t2")


async def test_increment_treats_missing_field_as_zero(gateway):
    await gateway.insert_if_absent(TABLE, {"id": "job"})

    updated = await gateway.increment(TABLE, "job", "applicationsCount", 2)

    assert updated["applicationsCount"] == 2


async def test_increment_rejects_non_numeric(gateway):
    await gateway.insert_if_absent(TABLE, {"id": "job", "applicationsCount": "many"})

    with pytest.raises(InvalidUpdateError):
        await gateway.increment(TABLE, "job", "applicationsCount", 1)


async def test_concurrent_increments_do_not_lose_updates(gateway):
    await gateway.insert_if_absent(TABLE, {"id": "counter", "count": 0})

    await asyncio.gather(*(gateway.increment(TABLE, "counter", "count", 1) for _ in range(150)))

    assert (await gateway.get(TABLE, "counter"))["count"] == 150


async def test_increments_survive_contention_with_other_writers():
    gateway = DocumentGateway(MemoryBackend(latency=0.001), max_attempts=1)
    await gateway.insert_if_absent(TABLE, {"id": "job", "applicationsCount": 0})

    await asyncio.gather(
        *(gateway.increment(TABLE, "job", "applicationsCount", 1) for _ in range(30)),
        *(gateway.partial_update(TABLE, "job", {"title": f"t{i}"}) for i in range(3)),
        return_exceptions=True,
    )

    assert (await gateway.get(TABLE, "job"))["applicationsCount"] == 30


async def test_increment_missing_row_and_bad_delta(gateway):
    with pytest.raises(NotFoundError):
        await gateway.increment(TABLE, "ghost", "count", 1)

    await gateway.insert_if_absent(TABLE, {"id": "job"})
    with pytest.raises(InvalidUpdateError):
        await gateway.increment(TABLE, "job", "count", True)
    with pytest.raises(InvalidUpdateError):
        await gateway.increment(TABLE, "job", "createdAt", 1)


async def test_concurrent_partial_updates_keep_both_fields(gateway):
    await gateway.insert_if_absent(TABLE, {"id": "row"})

    await asyncio.gather(
        gateway.partial_update(TABLE, "row", {"status": "Closed"}),
        gateway.partial_update(TABLE, "row", {"priority": "High"}),
    )

    stored = await gateway.get(TABLE, "row")
    assert stored["status"] == "Closed"
    assert stored["priority"] == "High"


async def test_delete_is_idempotent(gateway):
    await gateway.insert_if_absent(TABLE, {"id": "d1"})

    await gateway.delete(TABLE, "d1")
    await gateway.delete(TABLE, "d1")

    assert await gateway.get(TABLE, "d1") is None


async def test_scan_filters_by_equality_and_callable(gateway):
    await gateway.insert_if_absent(TABLE, {"id": "1", "clientId": "c1", "status": "Open"})
    await gateway.insert_if_absent(TABLE, {"id": "2", "clientId": "c1", "status": "Closed"})
    await gateway.insert_if_absent(TABLE, {"id": "3", "clientId": "c2", "status": "Open"})

    by_client = await gateway.scan(TABLE, {"clientId": "c1"})
    both = await gateway.scan(TABLE, {"clientId": "c1", "status": "Open"})
    matched = await gateway.scan(TABLE, match=lambda row: row["id"] in {"2", "3"})

    assert {row["id"] for row in by_client} == {"1", "2"}
    assert [row["id"] for row in both] == ["1"]
    assert {row["id"] for row in matched} == {"2", "3"}
    assert await gateway.scan("test-empty") == []


async def test_scan_sorts_descending(gateway):
    for key, created in (("a", "2025-01-01T00:00:00.000Z"), ("b", "2025-03-01T00:00:00.000Z"), ("c", "2025-02-01T00:00:00.000Z")):
        await gateway.insert_if_absent(TABLE, {"id": key, "createdAt": created})

    rows = await gateway.scan(TABLE, sort_by="createdAt", descending=True)

    assert [row["id"] for row in rows] == ["b", "c", "a"]


async def test_scan_sorts_numbers_including_zero_and_missing(gateway):
    await gateway.insert_if_absent(TABLE, {"id": "three", "applicationsCount": 3})
    await gateway.insert_if_absent(TABLE, {"id": "none"})
    await gateway.insert_if_absent(TABLE, {"id": "zero", "applicationsCount": 0})
    await gateway.insert_if_absent(TABLE, {"id": "one", "applicationsCount": 1})

    ascending = await gateway.scan(TABLE, sort_by="applicationsCount")
    descending = await gateway.scan(TABLE, sort_by="applicationsCount", descending=True)

    assert [row["id"] for row in ascending] == ["zero", "one", "three", "none"]
    assert [row["id"] for row in descending] == ["none", "three", "one", "zero"]


async def test_returned_records_are_copies(gateway):
    written = await gateway.insert_if_absent(TABLE, {"id": "c1", "items": [{"id": "i1"}]})
    written["items"].append({"id": "i2"})

    fetched = await gateway.get(TABLE, "c1")
    fetched["items"].clear()

    assert (await gateway.get(TABLE, "c1"))["items"] == [{"id": "i1"}]


async def test_timeout_surfaces_retryable_error():
    slow = DocumentGateway(MemoryBackend(latency=0.05), timeout=0.001)

    with pytest.raises(StoreTimeoutError) as exc_info:
        await slow.get(TABLE, "anything")

    assert exc_info.value.retryable is True


# -------------------------------------- nested collections --------------------------------------
async def _project_with_modules(gateway, *progress):
    modules = [{"id": f"m{i}", "name": f"Module {i}", "progress": p} for i, p in enumerate(progress)]
    return await gateway.insert_if_absent("test-projects", {"id": "proj", "modules": modules, "progress": 0})


async def test_upsert_nested_replaces_matching_entry_in_place(gateway):
    await _project_with_modules(gateway, 0, 50, 100)

    parent = await gateway.upsert_nested(
        "test-projects", "proj", "modules", {"id": "m1", "progress": 80}, aggregate_field="progress"
    )

    modules = parent["modules"]
    assert [m["id"] for m in modules] == ["m0", "m1", "m2"]
    assert modules[1]["progress"] == 80
    assert modules[1]["name"] == "Module 1"
    assert "updatedAt" in modules[1]
    assert modules[0] == {"id": "m0", "name": "Module 0", "progress": 0}
    assert modules[2] == {"id": "m2", "name": "Module 2", "progress": 100}
    assert parent["progress"] == 60
    assert await gateway.get("test-projects", "proj") == parent


async def test_upsert_nested_appends_unknown_or_missing_id(gateway):
    await _project_with_modules(gateway, 10)

    parent = await gateway.upsert_nested("test-projects", "proj", "modules", {"id": "new", "progress": 30})
    parent = await gateway.upsert_nested("test-projects", "proj", "modules", {"progress": 50})

    modules = parent["modules"]
    assert [m["id"] for m in modules[:2]] == ["m0", "new"]
    assert len(modules) == 3
    assert modules[2]["id"]
    assert modules[2]["createdAt"] == modules[2]["updatedAt"]


async def test_upsert_nested_defaults_missing_collection(gateway):
    await gateway.insert_if_absent("test-progress", {"id": "client"})

    parent = await gateway.upsert_nested("test-progress", "client", "invoices", {"id": "inv-1", "amount": 10})

    assert [inv["id"] for inv in parent["invoices"]] == ["inv-1"]


async def test_upsert_nested_missing_parent(gateway):
    with pytest.raises(NotFoundError):
        await gateway.upsert_nested("test-projects", "nope", "modules", {"id": "m"})


async def test_upsert_nested_must_exist(gateway):
    await _project_with_modules(gateway, 10)

    with pytest.raises(NotFoundError):
        await gateway.upsert_nested("test-projects", "proj", "modules", {"id": "zzz"}, must_exist=True)


async def test_upsert_nested_keeps_sub_record_created_at(gateway):
    parent = await gateway.insert_if_absent("test-progress", {"id": "client"})
    parent = await gateway.upsert_nested("test-progress", "client", "projects", {"id": "p", "name": "A"})
    created = parent["projects"][0]["createdAt"]

    parent = await gateway.upsert_nested(
        "test-progress", "client", "projects", {"id": "p", "name": "B", "createdAt": None}
    )

    assert parent["projects"][0]["createdAt"] == created
    assert parent["projects"][0]["name"] == "B"


async def test_upsert_nested_keeps_parent_created_at(gateway):
    parent = await _project_with_modules(gateway, 10)

    updated = await gateway.upsert_nested("test-projects", "proj", "modules", {"id": "m0", "progress": 90})

    assert updated["createdAt"] == parent["createdAt"]
    assert (await gateway.get("test-projects", "proj"))["createdAt"] == parent["createdAt"]


async def test_concurrent_upserts_conflict_with_version_check(gateway):
    """Increments never lose updates; nested upserts detect the race instead."""
    await gateway.insert_if_absent("test-progress", {"id": "client", "invoices": []})

    results = await asyncio.gather(
        gateway.upsert_nested("test-progress", "client", "invoices", {"id": "a"}),
        gateway.upsert_nested("test-progress", "client", "invoices", {"id": "b"}),
        return_exceptions=True,
    )

    assert sum(isinstance(result, ConflictError) for result in results) == 1
    stored = await gateway.get("test-progress", "client")
    assert len(stored["invoices"]) == 1


async def test_concurrent_upserts_without_version_check_lose_a_write(gateway):
    await gateway.insert_if_absent("test-progress", {"id": "client", "invoices": []})

    await asyncio.gather(
        gateway.upsert_nested("test-progress", "client", "invoices", {"id": "a"}, check_version=False),
        gateway.upsert_nested("test-progress", "client", "invoices", {"id": "b"}, check_version=False),
    )

    stored = await gateway.get("test-progress", "client")
    assert len(stored["invoices"]) == 1


@pytest.mark.parametrize(
    "values, expected",
    [
        ([0, 50, 100], 50),
        ([], 0),
        ([33, 34], 34),
        ([10, 11], 11),
        ([1, 1, 2], 1),
        ([None, 40], 20),
    ],
)
def test_mean_progress_rounds_half_up(values, expected):
    assert mean_progress([{"progress": v} for v in values]) == expected
