"""
Conversion between domain dataclasses and schemaless records.

Records are plain dicts with camelCase attribute names, ISO-8601 timestamps
and string ids. Unknown attributes survive a decode/encode cycle through the
entity's ``extra`` mapping.
"""

from __future__ import annotations

import dataclasses
import typing
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Type, TypeVar

from .errors import InvalidUpdateError

Record = Dict[str, Any]
T = TypeVar("T")

EXTRA_FIELD = "extra"


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """Millisecond precision UTC timestamp, e.g. ``2025-01-31T09:15:00.123Z``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def stamp_created(record: Record) -> Record:
    """Assign an id if missing and set both timestamps to now."""
    now = utc_now_iso()
    if not record.get("id"):
        record["id"] = new_id()
    record["createdAt"] = now
    record["updatedAt"] = now
    return record


def stamp_updated(record: Record) -> Record:
    record["updatedAt"] = utc_now_iso()
    return record


def camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@lru_cache(maxsize=None)
def _field_types(cls: type) -> dict[str, Any]:
    return typing.get_type_hints(cls)


def _nested_dataclass(annotation: Any) -> type | None:
    """Return the dataclass held by ``list[X]`` / ``Optional[list[X]]`` annotations."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union:
        for arg in typing.get_args(annotation):
            found = _nested_dataclass(arg)
            if found is not None:
                return found
        return None
    if origin in (list, typing.List):
        args = typing.get_args(annotation)
        if args and dataclasses.is_dataclass(args[0]):
            return args[0]
    return None


def encode(entity: Any) -> Record:
    """Flatten a dataclass into a record, lifting ``extra`` to the top level."""
    record: Record = {}
    extra = getattr(entity, EXTRA_FIELD, None) or {}
    record.update(extra)
    for field in dataclasses.fields(entity):
        if field.name == EXTRA_FIELD:
            continue
        value = getattr(entity, field.name)
        if isinstance(value, list):
            value = [encode(item) if dataclasses.is_dataclass(item) else item for item in value]
        elif dataclasses.is_dataclass(value):
            value = encode(value)
        record[field.metadata.get("attr", camel(field.name))] = value
    return record


def _default(field: dataclasses.Field) -> Any:
    if field.default is not dataclasses.MISSING:
        return field.default
    if field.default_factory is not dataclasses.MISSING:  # type: ignore[misc]
        return field.default_factory()  # type: ignore[misc]
    return dataclasses.MISSING


def encode_changes(entity: Any) -> Record:
    """Like ``encode`` but drops fields still at their default value.

    Used when a dataclass is merged into an existing record; a field left at
    its default says nothing and must not overwrite the stored value.
    """
    record = encode(entity)
    for field in dataclasses.fields(entity):
        if field.name != EXTRA_FIELD and getattr(entity, field.name) == _default(field):
            record.pop(field.metadata.get("attr", camel(field.name)), None)
    return record


def add_to_field(
    record: Record, field: str, delta: int | float, *, table: str | None = None, key: str | None = None
) -> Record:
    """Add ``delta`` to a numeric attribute in place; a missing attribute counts as 0."""
    value = record.get(field) or 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidUpdateError(f"{table}/{key}.{field} is not numeric", table=table, key=key)
    record[field] = value + delta
    return record


def decode(cls: Type[T], record: Record | None) -> T:
    """Build ``cls`` from a record; attributes with no matching field go to ``extra``."""
    data = dict(record or {})
    hints = _field_types(cls)
    kwargs: dict[str, Any] = {}
    has_extra = False
    for field in dataclasses.fields(cls):
        if field.name == EXTRA_FIELD:
            has_extra = True
            continue
        attr = field.metadata.get("attr", camel(field.name))
        if attr not in data:
            continue
        value = data.pop(attr)
        nested = _nested_dataclass(hints.get(field.name))
        if nested is not None and isinstance(value, list):
            value = [decode(nested, item) if isinstance(item, dict) else item for item in value]
        kwargs[field.name] = value
    if has_extra:
        kwargs[EXTRA_FIELD] = data
    return cls(**kwargs)
