import asyncio
import json
import os
from pathlib import Path

import pytest

from contact_store.storage import JsonStorage, MalformedStoreError, MemoryStorage

ITEMS = [
    {"id": "1", "name": "item 1"},
    {"id": "2", "name": "item 2"},
]


def write_array(path: Path, items=ITEMS):
    path.write_text(json.dumps(items), encoding="utf-8")


def write_object(path: Path, items=ITEMS):
    path.write_text(json.dumps({it["id"]: it for it in items}), encoding="utf-8")


@pytest.fixture
def db(tmp_path: Path) -> Path:
    return tmp_path / "data.json"


def test_missing_file_reads_as_empty_and_is_not_created(db: Path):
    store = JsonStorage(db)

    async def go():
        assert await store.get_all() == []
        assert await store.get_by_id("1") is None
        assert await store.exists("1") is False
        assert await store.count() == 0
        assert await store.delete("1") is False
        assert await store.update("1", {"id": "1", "name": "x"}) is None
        await store.clear()

    asyncio.run(go())
    assert not db.exists()


def test_get_all_reads_array_file(db: Path):
    write_array(db)
    assert asyncio.run(JsonStorage(db).get_all()) == ITEMS


@pytest.mark.parametrize("writer", [write_array, write_object])
def test_shapes_normalize_to_same_view(db: Path, writer):
    writer(db)
    store = JsonStorage(db)

    async def go():
        return await store.get_all(), await store.get_by_id("2"), await store.count(), await store.get_by_id("3")

    all_items, second, n, missing = asyncio.run(go())
    assert all_items == ITEMS
    assert second == ITEMS[1]
    assert n == 2
    assert missing is None


def test_create_writes_object_keyed_by_id(db: Path):
    store = JsonStorage(db)
    item = {"id": "3", "name": "item 3"}
    assert asyncio.run(store.create(item)) == item
    assert json.loads(db.read_text(encoding="utf-8")) == {"3": item}


def test_create_overwrites_same_id(db: Path):
    write_array(db)
    store = JsonStorage(db)

    async def go():
        await store.create({"id": "1", "name": "again"})
        return await store.get_all()

    items = asyncio.run(go())
    assert len(items) == 2
    assert {"id": "1", "name": "again"} in items


def test_round_trip_survives_new_instance(db: Path):
    item = {"id": "abc", "name": "durable", "tags": ["x", "ÿ"]}
    asyncio.run(JsonStorage(db).create(item))
    assert asyncio.run(JsonStorage(db).get_by_id("abc")) == item


def test_update_replaces_existing(db: Path):
    write_object(db)
    store = JsonStorage(db)
    updated = {"id": "1", "name": "updated item 1"}

    async def go():
        res = await store.update("1", updated)
        return res, await store.get_all()

    res, items = asyncio.run(go())
    assert res == updated
    assert len(items) == 2
    assert items[0] == updated


def test_update_unknown_id_does_not_create_or_write(db: Path):
    write_array(db)
    before = db.read_text(encoding="utf-8")
    store = JsonStorage(db)

    async def go():
        res = await store.update("3", {"id": "3", "name": "nope"})
        return res, await store.count()

    res, n = asyncio.run(go())
    assert res is None
    assert n == 2
    # untouched, still in array shape
    assert db.read_text(encoding="utf-8") == before


def test_upsert_inserts_then_replaces(db: Path):
    write_array(db)
    store = JsonStorage(db)

    async def go():
        await store.upsert({"id": "3", "name": "item 3"})
        n1 = await store.count()
        await store.upsert({"id": "1", "name": "changed"})
        n2 = await store.count()
        return n1, n2, await store.get_by_id("1")

    n1, n2, first = asyncio.run(go())
    assert n1 == 3
    assert n2 == 3
    assert first == {"id": "1", "name": "changed"}


def test_upsert_twice_is_idempotent(db: Path):
    store = JsonStorage(db)
    item = {"id": "9", "name": "same"}

    async def go():
        await store.upsert(item)
        n1 = await store.count()
        await store.upsert(item)
        return n1, await store.count(), await store.get_all()

    n1, n2, items = asyncio.run(go())
    assert n1 == n2 == 1
    assert items == [item]


def test_delete_then_get(db: Path):
    write_object(db)
    store = JsonStorage(db)

    async def go():
        ok = await store.delete("1")
        return ok, await store.get_by_id("1"), await store.get_all()

    ok, gone, rest = asyncio.run(go())
    assert ok is True
    assert gone is None
    assert rest == [ITEMS[1]]


def test_delete_unknown_returns_false(db: Path):
    write_object(db)
    store = JsonStorage(db)
    assert asyncio.run(store.delete("3")) is False
    assert asyncio.run(store.count()) == 2


def test_clear_empties_existing_file(db: Path):
    write_object(db)
    store = JsonStorage(db)

    async def go():
        await store.clear()
        await store.clear()
        return await store.get_all(), await store.count()

    items, n = asyncio.run(go())
    assert items == []
    assert n == 0
    assert json.loads(db.read_text(encoding="utf-8")) == {}


def test_clear_recovers_damaged_file(db: Path):
    db.write_text("{not json", encoding="utf-8")
    store = JsonStorage(db)
    asyncio.run(store.clear())
    assert asyncio.run(store.count()) == 0


def test_empty_file_is_empty_collection(db: Path):
    db.write_text("  \n", encoding="utf-8")
    assert asyncio.run(JsonStorage(db).get_all()) == []


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "42",
        '"text"',
        "[1, 2]",
        '[{"name": "no id"}]',
        '{"1": "not an object"}',
        '{"k1": {"name": "no id"}}',
        '{"k1": {"id": "k2", "name": "wrong id"}}',
    ],
)
def test_malformed_file_raises(db: Path, content: str):
    db.write_text(content, encoding="utf-8")
    store = JsonStorage(db)
    with pytest.raises(MalformedStoreError):
        asyncio.run(store.get_all())
    # writes read first, so they refuse too and leave the file alone
    with pytest.raises(MalformedStoreError):
        asyncio.run(store.create({"id": "1"}))
    assert db.read_text(encoding="utf-8") == content


def test_missing_directory_fails_on_write(tmp_path: Path):
    store = JsonStorage(tmp_path / "nope" / "data.json")
    assert asyncio.run(store.get_all()) == []
    with pytest.raises(FileNotFoundError):
        asyncio.run(store.create({"id": "1"}))
    assert not (tmp_path / "nope").exists()


def test_failed_write_keeps_previous_document(db: Path, monkeypatch):
    write_object(db)
    store = JsonStorage(db)

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)
    with pytest.raises(OSError):
        asyncio.run(store.create({"id": "3", "name": "lost"}))
    monkeypatch.undo()

    # old document is intact and parseable; no temp files left behind
    assert asyncio.run(store.get_all()) == ITEMS
    assert [p.name for p in db.parent.iterdir()] == [db.name]


def test_failed_serialization_keeps_previous_document(db: Path):
    write_object(db)
    store = JsonStorage(db)
    with pytest.raises(TypeError):
        asyncio.run(store.create({"id": "3", "value": object()}))
    assert asyncio.run(store.count()) == 2


def test_sequential_ops_match_memory_reference(db: Path):
    ops = [
        ("create", {"id": "a", "v": 1}),
        ("create", {"id": "b", "v": 2}),
        ("update", "a", {"id": "a", "v": 10}),
        ("update", "zz", {"id": "zz", "v": 0}),
        ("create", {"id": "c", "v": 3}),
        ("delete", "b"),
        ("upsert", {"id": "d", "v": 4}),
        ("delete", "nope"),
        ("upsert", {"id": "c", "v": 30}),
        ("create", {"id": "b", "v": 20}),
    ]

    async def apply(store):
        for op, *args in ops:
            await getattr(store, op)(*args)
        return sorted(await store.get_all(), key=lambda r: r["id"])

    expected = asyncio.run(apply(MemoryStorage()))
    assert asyncio.run(apply(JsonStorage(db))) == expected
    assert asyncio.run(JsonStorage(db).count()) == len(expected)


def test_concurrent_creates_are_not_lost(db: Path):
    store = JsonStorage(db)

    async def go():
        await asyncio.gather(*(store.create({"id": str(i), "n": i}) for i in range(25)))
        return await store.count()

    assert asyncio.run(go()) == 25
    assert sorted(json.loads(db.read_text(encoding="utf-8"))) == sorted(str(i) for i in range(25))


def test_encode_decode_hooks(db: Path):
    class Box:
        def __init__(self, id, label):
            self.id = id
            self.label = label

    store = JsonStorage(
        db,
        encode=lambda b: {"id": b.id, "label": b.label},
        decode=lambda d: Box(d["id"], d["label"]),
    )

    async def go():
        await store.create(Box("x", "hello"))
        return await store.get_by_id("x")

    got = asyncio.run(go())
    assert isinstance(got, Box)
    assert got.label == "hello"


def test_update_rejects_record_with_other_id(db: Path):
    store = JsonStorage(db)

    async def go():
        await store.create({"id": "a", "v": 1})
        await store.create({"id": "b", "v": 2})
        with pytest.raises(ValueError):
            await store.update("a", {"id": "b", "v": 3})
        return await store.get_all()

    items = asyncio.run(go())
    assert items == [{"id": "a", "v": 1}, {"id": "b", "v": 2}]
    assert len({it["id"] for it in items}) == len(items)


@pytest.mark.parametrize("bad", [1, "", None])
def test_non_string_ids_are_rejected_on_write(db: Path, bad):
    store = JsonStorage(db)
    asyncio.run(store.create({"id": "1", "v": "text"}))
    with pytest.raises(ValueError):
        asyncio.run(store.create({"id": bad, "v": "number"}))
    # the file still holds exactly one "1" key
    assert db.read_text(encoding="utf-8").count('"1":') == 1
    assert asyncio.run(store.get_all()) == [{"id": "1", "v": "text"}]


def test_lock_survives_a_second_event_loop(db: Path):
    store = JsonStorage(db)

    async def burst(prefix):
        await asyncio.gather(*(store.create({"id": f"{prefix}{i}"}) for i in range(3)))

    asyncio.run(burst("a"))
    asyncio.run(burst("b"))
    assert asyncio.run(store.count()) == 6


@pytest.mark.skipif(os.name == "nt", reason="posix file modes")
def test_write_keeps_file_mode(db: Path):
    import stat

    store = JsonStorage(db)
    asyncio.run(store.create({"id": "1"}))
    mask = os.umask(0)
    os.umask(mask)
    assert stat.S_IMODE(db.stat().st_mode) == 0o666 & ~mask

    os.chmod(db, 0o644)
    asyncio.run(store.create({"id": "2"}))
    assert stat.S_IMODE(db.stat().st_mode) == 0o644
