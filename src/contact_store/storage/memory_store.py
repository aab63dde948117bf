from __future__ import annotations

from typing import Dict, Generic, List, Optional, TypeVar

from .base import Id, checked_id

T = TypeVar("T")


class MemoryStorage(Generic[T]):
    """volatile dict-backed storage; handy for tests and dry runs"""

    def __init__(self, id_field: str = "id"):
        self.id_field = id_field
        self._items: Dict[Id, T] = {}

    async def get_all(self) -> List[T]:
        return list(self._items.values())

    async def get_by_id(self, id: Id) -> Optional[T]:
        return self._items.get(id)

    async def create(self, item: T) -> T:
        self._items[checked_id(item, self.id_field)] = item
        return item

    async def update(self, id: Id, item: T) -> Optional[T]:
        if id not in self._items:
            return None
        checked_id(item, self.id_field, expected=id)
        self._items[id] = item
        return item

    async def upsert(self, item: T) -> T:
        self._items[checked_id(item, self.id_field)] = item
        return item

    async def delete(self, id: Id) -> bool:
        if id not in self._items:
            return False
        del self._items[id]
        return True

    async def clear(self) -> None:
        self._items.clear()

    async def exists(self, id: Id) -> bool:
        return id in self._items

    async def count(self) -> int:
        return len(self._items)
