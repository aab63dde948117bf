from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol, TypeVar, runtime_checkable

Id = str


@runtime_checkable
class Identifiable(Protocol):
    """anything with a stable id"""

    id: Id


T = TypeVar("T")


class MalformedStoreError(ValueError):
    """persisted state exists but cannot be read back as a collection"""


def record_id(record: Any, id_field: str = "id") -> Id:
    # plain dicts carry the id as a key, everything else as an attribute
    if isinstance(record, Mapping):
        return record[id_field]
    return getattr(record, id_field)


def checked_id(record: Any, id_field: str = "id", expected: Optional[Id] = None) -> Id:
    # keys are json object keys, so only non-empty strings; 1 and "1" would collide on disk
    key = record_id(record, id_field)
    if not isinstance(key, str) or not key:
        raise ValueError(f"{id_field} must be a non-empty string, got {key!r}")
    if expected is not None and key != expected:
        raise ValueError(f"record {id_field} {key!r} does not match {expected!r}")
    return key


class Storage(Protocol[T]):
    """async crud contract shared by every backend (memory, json file, dynamodb)

    update() replaces the stored value in full; merging fields is up to the caller.
    """

    async def get_all(self) -> List[T]:
        """every stored record; empty list when nothing was stored yet"""
        ...

    async def get_by_id(self, id: Id) -> Optional[T]:
        """fetch by id or return none"""
        ...

    async def create(self, item: T) -> T:
        """store the item, overwriting any record with the same id"""
        ...

    async def update(self, id: Id, item: T) -> Optional[T]:
        """replace an existing record; none (and no write) if id is unknown"""
        ...

    async def upsert(self, item: T) -> T:
        """create or replace"""
        ...

    async def delete(self, id: Id) -> bool:
        """delete by id; return whether something was removed"""
        ...

    async def clear(self) -> None:
        """remove every record; no-op when already empty"""
        ...

    async def exists(self, id: Id) -> bool:
        ...

    async def count(self) -> int:
        ...
