"""Tests for the persistent TTL cache."""

from __future__ import annotations

import pytest

from itsm_grounding.cache.application import PersistentCache
from itsm_grounding.cache.application.services import CACHE_KEY_PREFIX
from itsm_grounding.cache.infrastructure import InMemoryKeyValueStore, TTLPolicyManager
from itsm_grounding.cache.domain import TTLPolicy
from tests.fakes.fake_clock import FakeClock


class StaticPolicy:
    def __init__(self, policy: TTLPolicy) -> None:
        self._policy = policy

    def get_policy(self) -> TTLPolicy:
        return self._policy


class BrokenStore(InMemoryKeyValueStore):
    async def get(self, key):
        raise RuntimeError("disk gone")

    async def set(self, key, value):
        raise RuntimeError("disk gone")


class TestGetSet:
    @pytest.mark.asyncio
    async def test_hit_returns_stored_data(self, cache: PersistentCache) -> None:
        assert await cache.set("incidents", {"top": 10}, [{"RecId": "1"}])
        assert await cache.get("incidents", {"top": 10}) == [{"RecId": "1"}]

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, cache: PersistentCache) -> None:
        assert await cache.get("incidents", {"top": 10}) is None

    @pytest.mark.asyncio
    async def test_parameter_order_hits_same_entry(self, cache: PersistentCache) -> None:
        await cache.set("searchResults", {"term": "vpn", "top": 5}, ["a"])
        assert await cache.get("searchResults", {"top": 5, "term": "vpn"}) == ["a"]

    @pytest.mark.asyncio
    async def test_none_is_never_cached(self, cache: PersistentCache, store: InMemoryKeyValueStore) -> None:
        assert await cache.set("incidents", {}, None) is False
        assert await store.items() == []

    @pytest.mark.asyncio
    async def test_invalid_type_is_a_miss_not_an_error(self, cache: PersistentCache) -> None:
        assert await cache.set("bad type", {}, [1]) is False
        assert await cache.get("bad type", {}) is None

    @pytest.mark.asyncio
    async def test_payload_is_sanitized(self, cache: PersistentCache) -> None:
        await cache.set("incidents", {}, {"Subject": "<script>x()</script>VPN down", "bad-key": 1})
        assert await cache.get("incidents", {}) == {"Subject": "VPN down"}

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_miss(self, clock: FakeClock) -> None:
        cache = PersistentCache(BrokenStore(), clock=clock)
        assert await cache.set("incidents", {}, [1]) is False
        assert await cache.get("incidents", {}) is None

    @pytest.mark.asyncio
    async def test_unloaded_policy_drops_write(self, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
        cache = PersistentCache(store, TTLPolicyManager(), clock=clock)

        assert await cache.set("incidents", {}, [1]) is False
        assert await store.items(CACHE_KEY_PREFIX) == []


class TestExpiry:
    @pytest.mark.asyncio
    async def test_one_second_ttl(self, cache: PersistentCache, clock: FakeClock) -> None:
        await cache.set("incidents", {"page": 1}, ["fresh"], ttl_override=1.0)

        clock.advance(0.5)
        assert await cache.get("incidents", {"page": 1}) == ["fresh"]

        clock.advance(0.5)
        assert await cache.get("incidents", {"page": 1}) is None

    @pytest.mark.asyncio
    async def test_expired_entry_is_deleted_on_read(
        self, cache: PersistentCache, store: InMemoryKeyValueStore, clock: FakeClock
    ) -> None:
        await cache.set("incidents", {}, [1], ttl_override=10)
        clock.advance(11)
        await cache.get("incidents", {})
        assert await store.items(CACHE_KEY_PREFIX) == []

    @pytest.mark.asyncio
    async def test_malformed_entry_is_deleted_on_read(
        self, cache: PersistentCache, store: InMemoryKeyValueStore
    ) -> None:
        await store.set(f"{CACHE_KEY_PREFIX}incidents:", {"data": [1], "timestamp": "yesterday"})
        assert await cache.get("incidents", {}) is None
        assert await store.get(f"{CACHE_KEY_PREFIX}incidents:") is None

    @pytest.mark.asyncio
    async def test_per_type_policy_is_applied(self, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
        policy = TTLPolicy(default_ttl_seconds=300, type_ttls={"employees": 60})
        cache = PersistentCache(store, StaticPolicy(policy), clock=clock)
        await cache.set("employees", {}, ["e"])
        await cache.set("teams", {}, ["t"])

        clock.advance(61)
        assert await cache.get("employees", {}) is None
        assert await cache.get("teams", {}) == ["t"]

    @pytest.mark.asyncio
    async def test_purge_expired(self, cache: PersistentCache, clock: FakeClock) -> None:
        await cache.set("incidents", {"a": 1}, [1], ttl_override=5)
        await cache.set("incidents", {"a": 2}, [2], ttl_override=50)
        clock.advance(10)
        assert await cache.purge_expired() == 1
        assert await cache.get("incidents", {"a": 2}) == [2]


class TestCapacity:
    @pytest.mark.asyncio
    async def test_oldest_entries_are_evicted_at_capacity(self, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
        cache = PersistentCache(store, max_entries_per_type=5, eviction_fraction=0.4, clock=clock)
        for index in range(5):
            await cache.set("searchResults", {"i": index}, [index])
            clock.advance(1)

        await cache.set("searchResults", {"i": 5}, [5])

        assert await cache.get("searchResults", {"i": 0}) is None
        assert await cache.get("searchResults", {"i": 1}) is None
        for index in range(2, 6):
            assert await cache.get("searchResults", {"i": index}) == [index]

    @pytest.mark.asyncio
    async def test_eviction_is_per_type(self, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
        cache = PersistentCache(store, max_entries_per_type=2, eviction_fraction=0.5, clock=clock)
        await cache.set("employees", {}, ["keep"])
        for index in range(3):
            clock.advance(1)
            await cache.set("searchResults", {"i": index}, [index])
        assert await cache.get("employees", {}) == ["keep"]

    @pytest.mark.asyncio
    async def test_overwrite_does_not_evict(self, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
        cache = PersistentCache(store, max_entries_per_type=2, eviction_fraction=0.5, clock=clock)
        await cache.set("teams", {"i": 0}, [0])
        await cache.set("teams", {"i": 1}, [1])
        await cache.set("teams", {"i": 1}, ["again"])
        assert await cache.get("teams", {"i": 0}) == [0]
        assert await cache.get("teams", {"i": 1}) == ["again"]


class TestQuota:
    @pytest.mark.asyncio
    async def test_write_succeeds_after_purging_expired(self, clock: FakeClock) -> None:
        store = InMemoryKeyValueStore(quota_bytes=600)
        cache = PersistentCache(store, clock=clock)
        assert await cache.set("incidents", {"i": 1}, "x" * 300, ttl_override=10)
        clock.advance(20)

        assert await cache.set("employees", {"i": 2}, "y" * 300)
        assert await cache.get("employees", {"i": 2}) == "y" * 300
        assert await store.get(f"{CACHE_KEY_PREFIX}incidents:i=1") is None

    @pytest.mark.asyncio
    async def test_write_is_dropped_when_quota_stays_exceeded(self, clock: FakeClock) -> None:
        store = InMemoryKeyValueStore(quota_bytes=600)
        cache = PersistentCache(store, clock=clock)
        assert await cache.set("incidents", {"i": 1}, "x" * 300)

        assert await cache.set("employees", {"i": 2}, "y" * 300) is False
        assert await cache.get("incidents", {"i": 1}) == "x" * 300


class TestInvalidateAndStats:
    @pytest.mark.asyncio
    async def test_invalidate_single_entry(self, cache: PersistentCache) -> None:
        await cache.set("incidents", {"a": 1}, [1])
        await cache.set("incidents", {"a": 2}, [2])
        assert await cache.invalidate("incidents", {"a": 1}) == 1
        assert await cache.get("incidents", {"a": 2}) == [2]

    @pytest.mark.asyncio
    async def test_invalidate_type(self, cache: PersistentCache) -> None:
        await cache.set("incidents", {"a": 1}, [1])
        await cache.set("incidents", {"a": 2}, [2])
        await cache.set("employees", {}, ["e"])
        assert await cache.invalidate("incidents") == 2
        assert await cache.get("employees", {}) == ["e"]

    @pytest.mark.asyncio
    async def test_clear_all_leaves_other_keys(self, cache: PersistentCache, store: InMemoryKeyValueStore) -> None:
        await store.set("snapshot:current", {"schema_version": 4})
        await cache.set("incidents", {}, [1])
        await cache.set("employees", {}, [2])

        assert await cache.clear_all() == 2
        assert await store.get("snapshot:current") == {"schema_version": 4}

    @pytest.mark.asyncio
    async def test_stats(self, cache: PersistentCache, store: InMemoryKeyValueStore, clock: FakeClock) -> None:
        first = clock()
        await cache.set("incidents", {"a": 1}, [1])
        clock.advance(30)
        await cache.set("incidents", {"a": 2}, [2])
        await cache.set("employees", {}, ["e"])
        await store.set(f"{CACHE_KEY_PREFIX}teams:", "garbage")

        stats = await cache.stats()

        assert stats.total_entries == 3
        assert stats.entries_by_type == {"incidents": 2, "employees": 1}
        assert stats.oldest_entry == first
        assert stats.newest_entry == first + 30

    @pytest.mark.asyncio
    async def test_stats_of_empty_cache(self, cache: PersistentCache) -> None:
        stats = await cache.stats()
        assert stats.total_entries == 0
        assert stats.oldest_entry is None
