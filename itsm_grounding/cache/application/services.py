"""
Cache Application Services
===========================

The persistent response cache and the store abstraction it sits on.

The cache never lets a storage failure reach its caller: reads degrade to a
miss and writes are logged and dropped.
"""

import math
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from itsm_grounding.cache.domain import (
    CacheEntry,
    CacheKeyBuilder,
    CacheStats,
    DataSanitizer,
    TTLPolicy,
)
from itsm_grounding.config import settings
from itsm_grounding.core import StorageQuotaExceeded
from itsm_grounding.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "cache:"


# ========== Store Interfaces (Dependency Inversion) ==========

class IKeyValueStore(ABC):
    """Interface for the durable key/value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get the JSON value stored under key."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Store a JSON value under key.

        Raises:
            StorageQuotaExceeded: If the write would exceed the store quota
        """

    @abstractmethod
    async def delete(self, keys: Iterable[str]) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def items(self, prefix: str = "") -> List[Tuple[str, Any]]:
        """List (key, value) pairs whose key starts with prefix."""


class ITTLPolicyProvider(ABC):
    """Interface for per-type TTL configuration access."""

    @abstractmethod
    def get_policy(self) -> TTLPolicy:
        """Get current TTL policy."""


# ========== Application Services ==========

class PersistentCache:
    """
    Durable, TTL-bounded cache of remote responses.

    Entries are keyed by type and parameters, expire lazily on read and are
    evicted oldest-first when a type reaches capacity.
    """

    def __init__(
        self,
        store: IKeyValueStore,
        policy_provider: Optional[ITTLPolicyProvider] = None,
        max_entries_per_type: Optional[int] = None,
        eviction_fraction: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._policy_provider = policy_provider
        self._default_policy = TTLPolicy(
            default_ttl_seconds=settings.cache_default_ttl_seconds,
            max_ttl_seconds=settings.cache_max_ttl_seconds,
        )
        self._max_entries_per_type = max_entries_per_type or settings.cache_max_entries_per_type
        self._eviction_fraction = eviction_fraction or settings.cache_eviction_fraction
        self._clock = clock

    @property
    def store(self) -> IKeyValueStore:
        return self._store

    def _policy(self) -> TTLPolicy:
        if self._policy_provider is None:
            return self._default_policy
        return self._policy_provider.get_policy()

    @staticmethod
    def _storage_key(key: str) -> str:
        return f"{CACHE_KEY_PREFIX}{key}"

    @staticmethod
    def _type_prefix(cache_type: str) -> str:
        return PersistentCache._storage_key(CacheKeyBuilder.derive_key(cache_type, None))

    async def get(self, cache_type: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Any]:
        """
        Get cached data for a type and parameter set.

        Returns None on a miss, an expired or malformed entry, or any store
        failure. Expired and malformed entries are deleted.
        """
        try:
            storage_key = self._storage_key(CacheKeyBuilder.derive_key(cache_type, params))
        except ValueError as e:
            logger.warning("Rejected cache read", extra={"cache_type": cache_type, "error": str(e)})
            return None

        try:
            raw = await self._store.get(storage_key)
            if raw is None:
                return None

            entry = CacheEntry.from_stored(raw)
            if entry is None:
                logger.warning("Discarding malformed cache entry", extra={"key": storage_key})
                await self._store.delete([storage_key])
                return None

            if not entry.is_valid(self._clock()):
                await self._store.delete([storage_key])
                return None

            return DataSanitizer.sanitize(entry.data)
        except Exception as e:
            logger.error(
                "Cache read failed",
                extra={"cache_type": cache_type, "key": storage_key, "error": str(e)}
            )
            return None

    async def set(
        self,
        cache_type: str,
        params: Optional[Mapping[str, Any]],
        data: Any,
        ttl_override: Optional[float] = None,
    ) -> bool:
        """
        Cache data under a type and parameter set.

        Returns:
            True if the entry was written, False if it was skipped or dropped
        """
        if data is None:
            return False

        try:
            key = CacheKeyBuilder.derive_key(cache_type, params)
        except ValueError as e:
            logger.warning("Rejected cache write", extra={"cache_type": cache_type, "error": str(e)})
            return False

        storage_key = self._storage_key(key)

        try:
            entry = CacheEntry(
                data=DataSanitizer.sanitize(data),
                timestamp=self._clock(),
                ttl=self._policy().resolve(cache_type, ttl_override),
                key=key,
            )
            await self._enforce_capacity(cache_type, storage_key)
            return await self._write(storage_key, entry)
        except Exception as e:
            logger.error(
                "Cache write failed",
                extra={"cache_type": cache_type, "key": storage_key, "error": str(e)}
            )
            return False

    async def _write(self, storage_key: str, entry: CacheEntry) -> bool:
        try:
            await self._store.set(storage_key, entry.to_dict())
            return True
        except StorageQuotaExceeded:
            purged = await self.purge_expired()
            logger.warning(
                "Storage quota exceeded, retrying after purge",
                extra={"key": storage_key, "purged": purged}
            )

        try:
            await self._store.set(storage_key, entry.to_dict())
            return True
        except StorageQuotaExceeded as e:
            logger.error(
                "Storage quota still exceeded, dropping cache write",
                extra={"key": storage_key, **e.details}
            )
            return False

    async def _enforce_capacity(self, cache_type: str, storage_key: str) -> int:
        """Evict the oldest entries of a type once it reaches capacity."""
        entries = [
            (key, raw)
            for key, raw in await self._store.items(self._type_prefix(cache_type))
            if key != storage_key
        ]
        if len(entries) < self._max_entries_per_type:
            return 0

        def stored_at(item: Tuple[str, Any]) -> float:
            entry = CacheEntry.from_stored(item[1])
            return entry.timestamp if entry else 0.0

        entries.sort(key=stored_at)
        evict_count = max(1, math.floor(len(entries) * self._eviction_fraction))
        removed = await self._store.delete(key for key, _ in entries[:evict_count])

        logger.info(
            "Evicted oldest cache entries",
            extra={"cache_type": cache_type, "evicted": removed, "entries": len(entries)}
        )
        return removed

    async def invalidate(
        self,
        cache_type: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """
        Remove cache entries.

        With a type and params, removes that entry; with a type only, every
        entry of that type; with neither, every cache entry. Entries outside
        the cache (snapshot, sync marks) are never touched.
        """
        try:
            if cache_type is not None and params is not None:
                keys = [self._storage_key(CacheKeyBuilder.derive_key(cache_type, params))]
            else:
                prefix = self._type_prefix(cache_type) if cache_type is not None else CACHE_KEY_PREFIX
                keys = [key for key, _ in await self._store.items(prefix)]

            removed = await self._store.delete(keys)
        except Exception as e:
            logger.error("Cache invalidation failed", extra={"cache_type": cache_type, "error": str(e)})
            return 0

        logger.info("Cache invalidated", extra={"cache_type": cache_type or "all", "removed": removed})
        return removed

    async def clear_all(self) -> int:
        """Remove every cache entry, as done on logout and before a rebuild."""
        return await self.invalidate()

    async def purge_expired(self) -> int:
        """Remove every expired or malformed cache entry."""
        now = self._clock()
        stale = []
        for key, raw in await self._store.items(CACHE_KEY_PREFIX):
            entry = CacheEntry.from_stored(raw)
            if entry is None or not entry.is_valid(now):
                stale.append(key)

        if not stale:
            return 0
        return await self._store.delete(stale)

    async def stats(self) -> CacheStats:
        """Summarize stored entries per type with the oldest and newest write times."""
        stats = CacheStats()
        try:
            for key, raw in await self._store.items(CACHE_KEY_PREFIX):
                entry = CacheEntry.from_stored(raw)
                if entry is None:
                    continue
                stats.record(CacheKeyBuilder.type_of(key[len(CACHE_KEY_PREFIX):]), entry.timestamp)
        except Exception as e:
            logger.error("Cache stats failed", extra={"error": str(e)})
        return stats
