"""Tests for the SQLAlchemy and in-memory key/value stores."""

from __future__ import annotations

import pytest
import pytest_asyncio

from itsm_grounding.cache.infrastructure import InMemoryKeyValueStore, SQLAlchemyKeyValueStore
from itsm_grounding.core import RepositoryException, StorageQuotaExceeded
from itsm_grounding.infrastructure.database import close_database, create_tables, init_database


@pytest_asyncio.fixture(params=["sql", "memory"])
async def kv_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryKeyValueStore(quota_bytes=2_000)
        return
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await create_tables()
    yield SQLAlchemyKeyValueStore(quota_bytes=2_000)
    await close_database()


class TestKeyValueStore:
    @pytest.mark.asyncio
    async def test_set_get_overwrite(self, kv_store) -> None:
        await kv_store.set("cache:incidents:", {"data": [1]})
        assert await kv_store.get("cache:incidents:") == {"data": [1]}

        await kv_store.set("cache:incidents:", {"data": [2]})
        assert await kv_store.get("cache:incidents:") == {"data": [2]}

    @pytest.mark.asyncio
    async def test_missing_key(self, kv_store) -> None:
        assert await kv_store.get("nope") is None

    @pytest.mark.asyncio
    async def test_items_by_prefix_sorted(self, kv_store) -> None:
        await kv_store.set("cache:b", 2)
        await kv_store.set("cache:a", 1)
        await kv_store.set("snapshot:current", {"x": 1})

        assert await kv_store.items("cache:") == [("cache:a", 1), ("cache:b", 2)]
        assert len(await kv_store.items()) == 3

    @pytest.mark.asyncio
    async def test_prefix_wildcards_are_literal(self, kv_store) -> None:
        await kv_store.set("cache:user_tickets", 1)
        await kv_store.set("cache:userXtickets", 2)
        assert await kv_store.items("cache:user_") == [("cache:user_tickets", 1)]

    @pytest.mark.asyncio
    async def test_delete_counts_removed(self, kv_store) -> None:
        await kv_store.set("a", 1)
        await kv_store.set("b", 2)
        assert await kv_store.delete(["a", "b", "missing"]) == 2
        assert await kv_store.delete([]) == 0
        assert await kv_store.items() == []

    @pytest.mark.asyncio
    async def test_quota_is_enforced(self, kv_store) -> None:
        await kv_store.set("big", "x" * 1_500)
        with pytest.raises(StorageQuotaExceeded) as excinfo:
            await kv_store.set("bigger", "y" * 1_500)
        assert excinfo.value.quota_bytes == 2_000
        assert await kv_store.get("bigger") is None

    @pytest.mark.asyncio
    async def test_replacing_a_value_counts_only_the_new_size(self, kv_store) -> None:
        await kv_store.set("big", "x" * 1_500)
        await kv_store.set("big", "y" * 1_800)
        assert await kv_store.get("big") == "y" * 1_800

    @pytest.mark.asyncio
    async def test_unserializable_value(self) -> None:
        memory_store = InMemoryKeyValueStore(quota_bytes=2_000)
        with pytest.raises(RepositoryException):
            await memory_store.set("circular", _circular())


def _circular() -> dict:
    value: dict = {}
    value["self"] = value
    return value
