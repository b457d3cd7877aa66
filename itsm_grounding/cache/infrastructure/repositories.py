"""
Cache Infrastructure Repositories
==================================

Concrete implementations of the key/value store interface.

Both stores serialize values to JSON and enforce a byte quota, raising
StorageQuotaExceeded when a write would cross it.
"""

import json
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from itsm_grounding.cache.application import IKeyValueStore
from itsm_grounding.cache.infrastructure.models import KeyValueModel
from itsm_grounding.config import settings
from itsm_grounding.core import RepositoryException, StorageQuotaExceeded
from itsm_grounding.infrastructure.database import get_session_context


CORRUPT_VALUE = {"corrupt": True}


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        raise RepositoryException(f"Value for '{key}' is not JSON serializable", {"error": str(e)}) from e


def _decode(payload: str) -> Any:
    # Undecodable rows surface as a marker no reader accepts, so they get deleted
    try:
        return json.loads(payload)
    except ValueError:
        return CORRUPT_VALUE


class SQLAlchemyKeyValueStore(IKeyValueStore):
    """
    SQLAlchemy implementation of the key/value store.

    Each operation runs in its own short-lived session, so one store
    instance can serve the whole application.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session_context,
        quota_bytes: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._quota_bytes = quota_bytes or settings.store_quota_bytes

    async def get(self, key: str) -> Optional[Any]:
        async with self._session_factory() as session:
            model = await session.get(KeyValueModel, key)
            if model is None:
                return None
            return _decode(model.value)

    async def set(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        size = len(payload.encode("utf-8"))

        async with self._session_factory() as session:
            existing = await session.get(KeyValueModel, key)
            used = (
                await session.execute(select(func.coalesce(func.sum(KeyValueModel.size_bytes), 0)))
            ).scalar_one()
            projected = used - (existing.size_bytes if existing else 0) + size
            if projected > self._quota_bytes:
                raise StorageQuotaExceeded(key, projected, self._quota_bytes)

            if existing is None:
                session.add(KeyValueModel(key=key, value=payload, size_bytes=size))
            else:
                existing.value = payload
                existing.size_bytes = size
            await session.flush()

    async def delete(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(delete(KeyValueModel).where(KeyValueModel.key.in_(keys)))
            return result.rowcount or 0

    async def items(self, prefix: str = "") -> List[Tuple[str, Any]]:
        stmt = select(KeyValueModel.key, KeyValueModel.value)
        if prefix:
            stmt = stmt.where(KeyValueModel.key.startswith(prefix, autoescape=True))
        stmt = stmt.order_by(KeyValueModel.key)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [(key, _decode(value)) for key, value in rows]


class InMemoryKeyValueStore(IKeyValueStore):
    """
    Process-local key/value store with the same quota semantics.

    Values are held serialized, so callers never share mutable state with
    the store.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._quota_bytes = quota_bytes or settings.store_quota_bytes
        self._data: Dict[str, str] = {}

    @property
    def used_bytes(self) -> int:
        return sum(len(payload.encode("utf-8")) for payload in self._data.values())

    async def get(self, key: str) -> Optional[Any]:
        payload = self._data.get(key)
        return None if payload is None else json.loads(payload)

    async def set(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        current = self._data.get(key)
        projected = (
            self.used_bytes
            - (len(current.encode("utf-8")) if current is not None else 0)
            + len(payload.encode("utf-8"))
        )
        if projected > self._quota_bytes:
            raise StorageQuotaExceeded(key, projected, self._quota_bytes)
        self._data[key] = payload

    async def delete(self, keys: Iterable[str]) -> int:
        removed = 0
        for key in list(keys):
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    async def items(self, prefix: str = "") -> List[Tuple[str, Any]]:
        return [
            (key, json.loads(payload))
            for key, payload in sorted(self._data.items())
            if key.startswith(prefix)
        ]
