import asyncio
from datetime import datetime

import pytest

from fincore import events
from fincore.persistence import InMemoryBackend, LocalCache, LocalCacheBackend, StorageSyncBridge, cache_key
from fincore.store import FinanceStore

NOW = datetime(2026, 10, 18, 12, 0)


def make_store(directory, owner="user-1"):
    cache = LocalCache(directory)
    store = FinanceStore(LocalCacheBackend(cache), owner, clock=lambda: NOW)
    return cache, store


def add_salary(store):
    return store.incomes.add(source="Salary", amount=3000, frequency="monthly")


def test_cache_key_uses_storage_key_and_owner():
    assert cache_key("credit_cards", "user-1") == "finance_credit_cards:user-1"


def test_local_cache_round_trip(tmp_path):
    cache = LocalCache(tmp_path)
    assert cache.get("missing", []) == []
    cache.set("finance_goals:u", [{"id": "g1"}])
    assert cache.get("finance_goals:u") == [{"id": "g1"}]
    assert cache.path_for("finance_goals:u").name == "finance_goals_u.json"
    cache.remove("finance_goals:u")
    assert cache.get("finance_goals:u") is None


def test_local_cache_rejects_corrupt_entry(tmp_path):
    cache = LocalCache(tmp_path)
    cache.path_for("k").write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        cache.get("k")


def test_changed_keys_sees_other_writers(tmp_path):
    mine, theirs = LocalCache(tmp_path), LocalCache(tmp_path)
    mine.watch("k")
    assert mine.changed_keys() == []

    theirs.set("k", [1])
    assert mine.changed_keys() == ["k"]

    mine.get("k")
    assert mine.changed_keys() == []


@pytest.mark.asyncio
async def test_in_memory_backend_contract():
    backend = InMemoryBackend()
    await backend.insert("loans", "u", {"id": "l1", "name": "Car"})
    with pytest.raises(ValueError):
        await backend.insert("loans", "u", {"id": "l1", "name": "Car"})
    with pytest.raises(LookupError):
        await backend.update("loans", "other", "l1", {"name": "Boat"})
    await backend.update("loans", "u", "l1", {"name": "Boat"})
    assert await backend.load_all("loans", "u") == [{"id": "l1", "name": "Boat"}]
    await backend.delete("loans", "u", "l1")
    with pytest.raises(LookupError):
        await backend.delete("loans", "u", "l1")


@pytest.mark.asyncio
async def test_local_cache_backend_persists_across_stores(tmp_path):
    _, first = make_store(tmp_path)
    income = add_salary(first)
    assert await first.flush() == []

    _, second = make_store(tmp_path)
    assert await second.load_all() == []
    assert second.incomes.list() == (income,)


@pytest.mark.asyncio
async def test_local_cache_backend_reports_missing_rows(tmp_path):
    backend = LocalCacheBackend(LocalCache(tmp_path))
    with pytest.raises(LookupError):
        await backend.update("incomes", "u", "nope", {"amount": 1})


@pytest.mark.asyncio
async def test_sync_bridge_delivers_other_process_writes(tmp_path):
    _, writer = make_store(tmp_path)
    reader_cache, reader = make_store(tmp_path)
    bridge = StorageSyncBridge(reader_cache, reader, "user-1")
    seen = []
    reader.bus.subscribe(events.INCOMES_CHANGED, lambda e, p: seen.append(p["origin"]))

    income = add_salary(writer)
    await writer.flush()

    assert bridge.poll() == ["incomes"]
    assert reader.incomes.list() == (income,)
    assert seen == ["external"]
    assert bridge.poll() == []


@pytest.mark.asyncio
async def test_sync_bridge_ignores_own_writes(tmp_path):
    cache, store = make_store(tmp_path)
    bridge = StorageSyncBridge(cache, store, "user-1")
    add_salary(store)
    await store.flush()
    assert bridge.poll() == []


@pytest.mark.asyncio
async def test_sync_bridge_empties_collection_on_corrupt_write(tmp_path):
    cache, store = make_store(tmp_path)
    bridge = StorageSyncBridge(cache, store, "user-1")
    add_salary(store)
    await store.flush()

    cache.path_for(cache_key("incomes", "user-1")).write_text("garbage", encoding="utf-8")

    assert bridge.poll() == ["incomes"]
    assert len(store.incomes) == 0


def sources(store):
    return sorted(i.source for i in store.incomes)


@pytest.mark.asyncio
async def test_sync_bridge_reloads_rows_merged_during_own_flush(tmp_path):
    cache_a, a = make_store(tmp_path)
    cache_b, b = make_store(tmp_path)
    bridge = StorageSyncBridge(cache_a, a, "user-1")

    b.incomes.add(source="From B", amount=100, frequency="monthly")
    await b.flush()
    a.incomes.add(source="From A", amount=200, frequency="monthly")
    await a.flush()

    assert bridge.poll() == ["incomes"]
    assert sources(a) == ["From A", "From B"]
    assert bridge.poll() == []


@pytest.mark.asyncio
async def test_sync_bridge_defers_reload_while_local_writes_are_queued(tmp_path):
    cache_a, a = make_store(tmp_path)
    cache_b, b = make_store(tmp_path)
    bridge = StorageSyncBridge(cache_a, a, "user-1")

    a.incomes.add(source="From A", amount=200, frequency="monthly")
    b.incomes.add(source="From B", amount=100, frequency="monthly")
    await b.flush()

    assert bridge.poll() == []
    assert sources(a) == ["From A"]

    assert await a.flush() == []
    assert bridge.poll() == ["incomes"]
    assert sources(a) == ["From A", "From B"]
    assert [r["source"] for r in cache_b.get(cache_key("incomes", "user-1"))] == ["From B", "From A"]


def test_local_cache_write_over_foreign_change_stays_changed(tmp_path):
    mine, theirs = LocalCache(tmp_path), LocalCache(tmp_path)
    mine.watch("k")
    theirs.set("k", [1])
    mine.set("k", [1, 2])
    assert mine.changed_keys() == ["k"]

    mine.get("k")
    mine.set("k", [1, 2, 3])
    assert mine.changed_keys() == []


@pytest.mark.asyncio
async def test_sync_bridge_run_stops_on_event(tmp_path):
    cache, store = make_store(tmp_path)
    bridge = StorageSyncBridge(cache, store, "user-1")
    stop = asyncio.Event()
    stop.set()
    await asyncio.wait_for(bridge.run(0.01, stop), timeout=1)
