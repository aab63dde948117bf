from __future__ import annotations

from typing import Generic, List, Optional, TypeVar

from .models import Contact
from .storage.base import Id, Storage
from .storage.dynamodb_store import DynamoStorage
from .storage.json_store import JsonStorage
from .storage.memory_store import MemoryStorage

T = TypeVar("T")


class Repository(Generic[T]):
    """pass-through over any storage backend; holds a storage rather than extending one"""

    def __init__(self, storage: Storage[T]):
        self.storage = storage

    async def get_all(self) -> List[T]:
        return await self.storage.get_all()

    async def get_by_id(self, id: Id) -> Optional[T]:
        return await self.storage.get_by_id(id)

    async def create(self, item: T) -> T:
        return await self.storage.create(item)

    async def update(self, id: Id, item: T) -> Optional[T]:
        return await self.storage.update(id, item)

    async def upsert(self, item: T) -> T:
        return await self.storage.upsert(item)

    async def delete(self, id: Id) -> bool:
        return await self.storage.delete(id)

    async def clear(self) -> None:
        await self.storage.clear()

    async def exists(self, id: Id) -> bool:
        return await self.storage.exists(id)

    async def count(self) -> int:
        return await self.storage.count()


# contact wiring ------------------------------------------------------

def json_contacts(file_path: str) -> Repository[Contact]:
    return Repository(JsonStorage(file_path, encode=Contact.to_dict, decode=Contact.from_dict))


def memory_contacts() -> Repository[Contact]:
    return Repository(MemoryStorage())


def dynamo_contacts(table_name: Optional[str] = None, region: Optional[str] = None) -> Repository[Contact]:
    return Repository(DynamoStorage(table_name, region, encode=Contact.to_dict, decode=Contact.from_dict))
