"""
Snapshot Infrastructure Repositories
=====================================

Snapshot and sync-mark persistence on top of the shared key/value store.

Persisted layout:
- ``snapshot``: the whole snapshot document
- ``last_sync:<resource>:<actor>``: epoch seconds of the last sync
"""

from typing import Optional

from itsm_grounding.cache.application import IKeyValueStore
from itsm_grounding.snapshot.application import ISnapshotRepository, ISyncTracker
from itsm_grounding.snapshot.domain import Snapshot

SNAPSHOT_KEY = "snapshot"
LAST_SYNC_PREFIX = "last_sync"


class KeyValueSnapshotRepository(ISnapshotRepository):
    """Stores the snapshot under a single key, replacing it wholesale."""

    def __init__(self, store: IKeyValueStore, key: str = SNAPSHOT_KEY):
        self._store = store
        self._key = key

    async def load_raw(self) -> Optional[dict]:
        raw = await self._store.get(self._key)
        return raw if isinstance(raw, dict) else None

    async def save(self, snapshot: Snapshot) -> None:
        # The old copy goes first so the quota only has to fit one snapshot
        await self._store.delete([self._key])
        await self._store.set(self._key, snapshot.to_stored())

    async def delete(self) -> None:
        await self._store.delete([self._key])


class KeyValueSyncTracker(ISyncTracker):
    """Keeps one last-sync timestamp per (resource, actor) pair."""

    def __init__(self, store: IKeyValueStore):
        self._store = store

    @staticmethod
    def key_for(actor_id: str, resource: str) -> str:
        return f"{LAST_SYNC_PREFIX}:{resource}:{actor_id}"

    async def get_last_sync(self, actor_id: str, resource: str) -> Optional[float]:
        value = await self._store.get(self.key_for(actor_id, resource))
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return None

    async def set_last_sync(self, actor_id: str, resource: str, synced_at: float) -> None:
        await self._store.set(self.key_for(actor_id, resource), synced_at)
