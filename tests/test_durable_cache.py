"""
Durable Cache Tests
===================
Cold-start load, write-behind, degradation and the conditional write.
"""
import asyncio

import pytest

from bountyboard.services.background import BackgroundQueue
from bountyboard.services.durable_cache import CacheRegistry, DurableCache
from bountyboard.services.row_store import RowStoreError


def test_load_populates_memory_and_opens_gate(store):
    store.tables["bounties"] = {"1": {"uuid": "u-1", "status": "open"}, "2": {"uuid": "u-2", "status": "claimed"}}

    async def run_test():
        cache = DurableCache("bounties", store, BackgroundQueue("w"), secondary_field="uuid")
        assert cache.is_ready is False
        loaded = await cache.load()
        assert loaded == 2
        assert cache.is_ready is True
        assert cache.get("2")["status"] == "claimed"
        assert cache.get("u-1")["status"] == "open"
        assert cache.resolve_key("u-2") == "2"

    asyncio.run(run_test())


def test_memory_only_load_is_ready_immediately():
    async def run_test():
        cache = DurableCache("bounties", None, BackgroundQueue("w"))
        assert await cache.load() == 0
        await asyncio.wait_for(cache.ready(), timeout=1)
        assert cache.is_durable is False

    asyncio.run(run_test())


def test_failed_load_degrades_to_memory(store):
    store.fail_reads = True

    async def run_test():
        cache = DurableCache("bounties", store, BackgroundQueue("w"))
        assert await cache.load() == 0
        assert cache.is_ready is True
        cache.set("1", {"status": "open"})
        assert cache.get("1") == {"status": "open"}

    asyncio.run(run_test())


def test_set_and_delete_are_written_behind(store):
    async def run_test():
        registry = CacheRegistry(store)
        cache = registry.collection("agents")
        await registry.load_all()
        cache.set("0xabc", {"name": "A"})
        assert cache.get("0xabc") == {"name": "A"}
        await cache.flush()
        assert store.tables["agents"]["0xabc"] == {"name": "A"}

        cache.delete("0xabc")
        assert cache.has("0xabc") is False
        await cache.flush()
        assert "0xabc" not in store.tables["agents"]
        await registry.close()

    asyncio.run(run_test())


def test_failed_remote_write_keeps_memory(store):
    async def run_test():
        writer = BackgroundQueue("w")
        cache = DurableCache("agents", store, writer)
        store.fail_writes = True
        cache.set("0xabc", {"name": "A"})
        await cache.flush()
        assert cache.get("0xabc") == {"name": "A"}
        assert writer.failures == 1
        await writer.close()

    asyncio.run(run_test())


def test_secondary_key_follows_updates():
    async def run_test():
        cache = DurableCache("bounties", None, BackgroundQueue("w"), secondary_field="uuid")
        cache.set("1", {"uuid": "old"})
        cache.set("1", {"uuid": "new"})
        assert cache.get("old") is None
        assert cache.get("new") == {"uuid": "new"}
        cache.delete("new")
        assert len(cache) == 0

    asyncio.run(run_test())


def test_insert_uses_store_key_or_local_sequence(store):
    async def run_test():
        durable = DurableCache("bounties", store, BackgroundQueue("w"))
        assert await durable.insert({"title": "a"}) == "1"
        assert await durable.insert({"title": "b"}) == "2"

        local = DurableCache("bounties", None, BackgroundQueue("w"))
        assert await local.insert({"title": "a"}) == "1"
        assert await local.insert({"title": "b"}) == "2"

    asyncio.run(run_test())


def test_compare_and_set_durable(store):
    store.tables["bounties"] = {"1": {"status": "open"}}

    async def run_test():
        cache = DurableCache("bounties", store, BackgroundQueue("w"))
        await cache.load()
        assert await cache.compare_and_set("1", {"status": "claimed", "claimant": "a"}, "status", "open")
        assert cache.get("1")["claimant"] == "a"
        assert not await cache.compare_and_set("1", {"status": "claimed", "claimant": "b"}, "status", "open")
        assert cache.get("1")["claimant"] == "a"
        assert store.tables["bounties"]["1"]["claimant"] == "a"

    asyncio.run(run_test())


def test_compare_and_set_sees_pending_write_behind(store):
    store.tables["bounties"] = {"1": {"status": "submitted"}}

    async def run_test():
        cache = DurableCache("bounties", store, BackgroundQueue("w"))
        await cache.load()
        cache.set("1", {"status": "open"})
        assert await cache.compare_and_set("1", {"status": "claimed"}, "status", "open")

    asyncio.run(run_test())


def test_compare_and_set_memory_only_logs_unsafe(caplog):
    async def run_test():
        cache = DurableCache("bounties", None, BackgroundQueue("w"))
        cache.set("1", {"status": "open"})
        assert await cache.compare_and_set("1", {"status": "claimed"}, "status", "open")
        assert not await cache.compare_and_set("1", {"status": "claimed"}, "status", "open")

    with caplog.at_level("WARNING"):
        asyncio.run(run_test())
    assert "Non-atomic compare-and-set" in caplog.text


def test_compare_and_set_propagates_store_failure(store):
    store.tables["bounties"] = {"1": {"status": "open"}}

    async def run_test():
        cache = DurableCache("bounties", store, BackgroundQueue("w"))
        await cache.load()
        store.fail_writes = True
        with pytest.raises(RowStoreError):
            await cache.compare_and_set("1", {"status": "claimed"}, "status", "open")
        assert cache.get("1") == {"status": "open"}

    asyncio.run(run_test())


def test_refresh_reads_store(store):
    store.tables["bounties"] = {"1": {"status": "open"}}

    async def run_test():
        cache = DurableCache("bounties", store, BackgroundQueue("w"))
        await cache.load()
        store.tables["bounties"]["1"] = {"status": "cancelled"}
        assert (await cache.refresh("1"))["status"] == "cancelled"
        assert cache.get("1")["status"] == "cancelled"

    asyncio.run(run_test())


def test_refresh_failure_raises_and_keeps_memory(store):
    store.tables["bounties"] = {"1": {"status": "open"}}

    async def run_test():
        cache = DurableCache("bounties", store, BackgroundQueue("w"))
        await cache.load()
        store.fail_reads = True
        with pytest.raises(RowStoreError):
            await cache.refresh("1")
        assert cache.get("1") == {"status": "open"}

    asyncio.run(run_test())
