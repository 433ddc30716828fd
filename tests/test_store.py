import asyncio
import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from cephcrypto import CryptoSession, JsonFileKeyStore, MemoryKeyStore
from cephcrypto.errors import Unavailable
from cephcrypto.store import KeyBundle


@pytest.mark.asyncio
async def test_memory_store_read_write_remove():
    store = MemoryKeyStore()
    store.init("db", "crypto")
    bundle = KeyBundle(public_export="$ceph1-publ$jwk$abc")
    await store.write_item("path", bundle)
    assert await store.read_item("path") is bundle
    await store.remove_item("path")
    assert await store.read_item("path") is None
    await store.remove_item("path")


@pytest.mark.asyncio
async def test_store_must_be_initialized():
    store = MemoryKeyStore()
    assert not store.is_ready()
    with pytest.raises(Unavailable):
        await store.read_item("path")


@pytest.mark.asyncio
async def test_store_cannot_switch_database_once_used():
    store = MemoryKeyStore()
    store.init("first", "crypto")
    await store.read_item("path")
    with pytest.raises(Unavailable):
        store.init("second", "crypto")


@pytest.mark.asyncio
async def test_json_store_persists_key_pair(tmp_path):
    s = CryptoSession("persisted", JsonFileKeyStore(str(tmp_path), secret="at-rest"))
    await s.generate_key_pair("pw")

    raw = json.loads((tmp_path / "persisted.json").read_text(encoding="utf-8"))
    rec = raw["crypto"]["default"]
    assert rec["publicExport"] == s.get_public_key_string()
    assert rec["privateExport"] == s.get_private_key_string()
    assert "ENCRYPTED PRIVATE KEY" in rec["private"]

    fresh = CryptoSession("persisted", JsonFileKeyStore(str(tmp_path), secret="at-rest"))
    await fresh.load_key_pair()
    assert fresh.has_key_pair()
    assert fresh.get_public_key_string() == s.get_public_key_string()

    envelope = await s.encrypt_object({"hello": "disk"})
    assert await fresh.decrypt_object(envelope["key"], envelope["message"]) == {"hello": "disk"}


@pytest.mark.asyncio
async def test_json_store_remove_is_idempotent(tmp_path):
    store = JsonFileKeyStore(str(tmp_path), secret="at-rest")
    s = CryptoSession("gone", store)
    await s.generate_key_pair()
    await s.remove_key_pair()
    await s.remove_key_pair()
    assert await store.read_item("default") is None


@pytest.mark.asyncio
async def test_json_store_without_secret_refuses_private_keys(tmp_path):
    s = CryptoSession("plain", JsonFileKeyStore(str(tmp_path), secret=""))
    with pytest.raises(Unavailable):
        await s.generate_key_pair()
    assert not s.has_key_pair()

    path = tmp_path / "plain.json"
    assert not path.exists() or "PRIVATE KEY" not in path.read_text(encoding="utf-8")


def test_json_store_concurrent_writers_keep_every_record(tmp_path):
    store = JsonFileKeyStore(str(tmp_path), secret="")
    store.init("busy", "crypto")

    def write(i):
        asyncio.run(store.write_item(f"path-{i}", KeyBundle()))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(write, range(40)))

    raw = json.loads((tmp_path / "busy.json").read_text(encoding="utf-8"))
    assert sorted(raw["crypto"]) == sorted(f"path-{i}" for i in range(40))
    assert list(tmp_path.glob("*.json")) == [tmp_path / "busy.json"]


def test_json_store_writers_on_separate_instances_share_the_file(tmp_path):
    stores = []
    for _ in range(4):
        s = JsonFileKeyStore(str(tmp_path), secret="")
        s.init("shared", "crypto")
        stores.append(s)

    def write(i):
        asyncio.run(stores[i % 4].write_item(f"k{i}", KeyBundle()))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(write, range(20)))

    raw = json.loads((tmp_path / "shared.json").read_text(encoding="utf-8"))
    assert len(raw["crypto"]) == 20
