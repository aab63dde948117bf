from .base import Id, Identifiable, MalformedStoreError, Storage
from .dynamodb_store import DynamoStorage
from .json_store import JsonStorage
from .memory_store import MemoryStorage

__all__ = [
    "Id",
    "Identifiable",
    "MalformedStoreError",
    "Storage",
    "MemoryStorage",
    "JsonStorage",
    "DynamoStorage",
]
