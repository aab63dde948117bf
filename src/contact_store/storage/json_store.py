from __future__ import annotations

import asyncio
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from .base import Id, MalformedStoreError, checked_id

T = TypeVar("T")

Document = Dict[Id, Dict[str, Any]]


def _identity(x: Any) -> Any:
    return x


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


class JsonStorage(Generic[T]):
    """single json file storage

    every call re-reads the file; there is no cache between calls. mutations
    rewrite the whole document through a temp file + os.replace, so readers
    only ever see a complete document. one asyncio lock per instance keeps
    read-modify-write cycles from interleaving.

    accepts an array of records or an object keyed by id on read; always
    writes the object form.
    """

    def __init__(
        self,
        file_path: str | os.PathLike,
        *,
        encode: Optional[Callable[[T], Dict[str, Any]]] = None,
        decode: Optional[Callable[[Dict[str, Any]], T]] = None,
        id_field: str = "id",
    ):
        # nothing touches the disk until the first write
        self.path = Path(file_path)
        self.id_field = id_field
        self._encode = encode or _identity
        self._decode = decode or _identity
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    # internal helpers -------------------------------------------------
    def _mutation_lock(self) -> asyncio.Lock:
        # one lock per running loop; a lock bound to an earlier asyncio.run cannot be awaited again
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _normalize(self, data: Any) -> Document:
        # the only place that cares about the on-disk shape
        if isinstance(data, dict):
            out: Document = {}
            for key, raw in data.items():
                if not isinstance(raw, dict):
                    raise MalformedStoreError(f"{self.path}: record {key!r} is not an object")
                if raw.get(self.id_field) != key:
                    raise MalformedStoreError(f"{self.path}: record {key!r} carries {self.id_field!r} {raw.get(self.id_field)!r}")
                out[key] = raw
            return out
        if isinstance(data, list):
            out = {}
            for idx, raw in enumerate(data):
                if not isinstance(raw, dict):
                    raise MalformedStoreError(f"{self.path}: item {idx} is not an object")
                key = raw.get(self.id_field)
                if not isinstance(key, str) or not key:
                    raise MalformedStoreError(f"{self.path}: item {idx} has no usable {self.id_field!r}")
                out[key] = raw
            return out
        raise MalformedStoreError(f"{self.path}: expected a json array or object, got {type(data).__name__}")

    def _read_sync(self) -> Optional[Document]:
        # none means the file does not exist (as opposed to an empty collection)
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedStoreError(f"{self.path}: invalid json ({e})") from e
        return self._normalize(data)

    def _write_sync(self, doc: Document) -> None:
        payload = json.dumps(doc, ensure_ascii=False, indent=2)
        # temp file must live in the same directory for os.replace to be atomic;
        # a missing directory raises FileNotFoundError here
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            # mkstemp makes 0600 files; keep the mode the store already had
            try:
                shutil.copymode(self.path, tmp)
            except FileNotFoundError:
                os.chmod(tmp, 0o666 & ~_current_umask())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    async def _load(self) -> Document:
        doc = await asyncio.to_thread(self._read_sync)
        return doc if doc is not None else {}

    async def _save(self, doc: Document) -> None:
        await asyncio.to_thread(self._write_sync, doc)

    def _put(self, doc: Document, item: T, expected: Optional[Id] = None) -> None:
        raw = dict(self._encode(item))
        doc[checked_id(raw, self.id_field, expected)] = raw

    # interface methods -----------------------------------------------
    async def get_all(self) -> List[T]:
        doc = await self._load()
        return [self._decode(raw) for raw in doc.values()]

    async def get_by_id(self, id: Id) -> Optional[T]:
        doc = await self._load()
        raw = doc.get(id)
        return self._decode(raw) if raw is not None else None

    async def create(self, item: T) -> T:
        async with self._mutation_lock():
            doc = await self._load()
            self._put(doc, item)
            await self._save(doc)
        return item

    async def update(self, id: Id, item: T) -> Optional[T]:
        async with self._mutation_lock():
            doc = await self._load()
            if id not in doc:
                return None
            self._put(doc, item, expected=id)
            await self._save(doc)
        return item

    async def upsert(self, item: T) -> T:
        async with self._mutation_lock():
            doc = await self._load()
            self._put(doc, item)
            await self._save(doc)
        return item

    async def delete(self, id: Id) -> bool:
        async with self._mutation_lock():
            doc = await self._load()
            if id not in doc:
                return False
            del doc[id]
            await self._save(doc)
        return True

    async def clear(self) -> None:
        async with self._mutation_lock():
            # no parse here, so clear also recovers a damaged file
            if not await asyncio.to_thread(self.path.exists):
                return
            await self._save({})

    async def exists(self, id: Id) -> bool:
        doc = await self._load()
        return id in doc

    async def count(self) -> int:
        doc = await self._load()
        return len(doc)
