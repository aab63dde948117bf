from __future__ import annotations

import asyncio
import os
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from .base import Id, checked_id

T = TypeVar("T")

_INTERNAL = {"PK", "SK", "entity"}


def _identity(x: Any) -> Any:
    return x


def _json_safe(x: Any) -> Any:
    # dynamodb hands numbers back as decimal
    if isinstance(x, list):
        return [_json_safe(i) for i in x]
    if isinstance(x, dict):
        return {k: _json_safe(v) for k, v in x.items()}
    if isinstance(x, Decimal):
        return int(x) if x == x.to_integral_value() else float(x)
    return x


class DynamoStorage(Generic[T]):
    """dynamodb implementation of the storage interface
    uses a simple key design: pk = sk = f"CONTACT#{id}"
    every boto3 call runs in a worker thread so the event loop stays free
    """

    def __init__(
        self,
        table_name: Optional[str] = None,
        region: Optional[str] = None,
        *,
        table: Any = None,
        encode: Optional[Callable[[T], Dict[str, Any]]] = None,
        decode: Optional[Callable[[Dict[str, Any]], T]] = None,
        entity: str = "CONTACT",
    ):
        self.region = region or os.environ.get("AWS_REGION", "eu-west-1")
        self.table_name = table_name or os.environ.get("DDB_TABLE", "contacts")
        self.entity = entity
        self._encode = encode or _identity
        self._decode = decode or _identity
        if table is None:
            dynamodb = boto3.resource("dynamodb", region_name=self.region)
            table = dynamodb.Table(self.table_name)
        self.table = table

    # helpers ----------------------------------------------------------
    def _pk(self, id: Id) -> str:
        return f"{self.entity}#{id}"

    def _key(self, id: Id) -> Dict[str, str]:
        return {"PK": self._pk(id), "SK": self._pk(id)}

    def _to_item(self, id: Id, item: T) -> Dict[str, Any]:
        # drop none values, dynamodb has no use for them
        data = {k: v for k, v in dict(self._encode(item)).items() if v is not None}
        return {**self._key(id), "entity": self.entity, **data}

    def _from_item(self, item: Dict[str, Any]) -> T:
        return self._decode(_json_safe({k: v for k, v in item.items() if k not in _INTERNAL}))

    def _scan_pages(self, **kwargs: Any) -> Iterator[Dict[str, Any]]:
        kwargs.setdefault("FilterExpression", Attr("entity").eq(self.entity))
        while True:
            res = self.table.scan(**kwargs)
            yield res
            last = res.get("LastEvaluatedKey")
            if not last:
                return
            kwargs["ExclusiveStartKey"] = last

    # sync bodies ------------------------------------------------------
    def _get_all_sync(self) -> List[T]:
        out: List[T] = []
        for page in self._scan_pages():
            out.extend(self._from_item(it) for it in page.get("Items", []))
        return out

    def _get_sync(self, id: Id) -> Optional[Dict[str, Any]]:
        res = self.table.get_item(Key=self._key(id))
        return res.get("Item")

    def _put_sync(self, id: Id, item: T) -> None:
        self.table.put_item(Item=self._to_item(id, item))

    def _update_sync(self, id: Id, item: T) -> bool:
        try:
            self.table.put_item(Item=self._to_item(id, item), ConditionExpression="attribute_exists(PK)")
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def _delete_sync(self, id: Id) -> bool:
        res = self.table.delete_item(Key=self._key(id), ReturnValues="ALL_OLD")
        return bool(res.get("Attributes"))

    def _clear_sync(self) -> None:
        keys: List[Dict[str, str]] = []
        for page in self._scan_pages(ProjectionExpression="PK, SK"):
            keys.extend({"PK": it["PK"], "SK": it["SK"]} for it in page.get("Items", []))
        if not keys:
            return
        with self.table.batch_writer() as batch:
            for key in keys:
                batch.delete_item(Key=key)

    def _count_sync(self) -> int:
        return sum(int(page.get("Count", 0)) for page in self._scan_pages(Select="COUNT"))

    # interface methods -----------------------------------------------
    async def get_all(self) -> List[T]:
        return await asyncio.to_thread(self._get_all_sync)

    async def get_by_id(self, id: Id) -> Optional[T]:
        it = await asyncio.to_thread(self._get_sync, id)
        return self._from_item(it) if it else None

    async def create(self, item: T) -> T:
        await asyncio.to_thread(self._put_sync, checked_id(self._encode(item)), item)
        return item

    async def update(self, id: Id, item: T) -> Optional[T]:
        checked_id(self._encode(item), expected=id)
        ok = await asyncio.to_thread(self._update_sync, id, item)
        return item if ok else None

    async def upsert(self, item: T) -> T:
        await asyncio.to_thread(self._put_sync, checked_id(self._encode(item)), item)
        return item

    async def delete(self, id: Id) -> bool:
        return await asyncio.to_thread(self._delete_sync, id)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    async def exists(self, id: Id) -> bool:
        return await asyncio.to_thread(self._get_sync, id) is not None

    async def count(self) -> int:
        return await asyncio.to_thread(self._count_sync)
