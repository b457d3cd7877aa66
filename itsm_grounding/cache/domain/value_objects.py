"""
Cache Value Objects
====================

Key derivation, payload sanitization and TTL policy for the response cache.

Value objects are defined by their attributes rather than an identity.
"""

import hashlib
import json
import re
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from itsm_grounding.config import CacheType


SAFE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
SCRIPT_BLOCK_PATTERN = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
UNSAFE_PARAM_CHARS = re.compile(r"[<>\"'&]")

MAX_KEY_LENGTH = 200
HASHED_KEY_LENGTH = 16
KEY_SEPARATOR = ":"


class DataSanitizer:
    """
    Pure functions that make payloads safe to persist and to return.

    Sanitizing is idempotent, so it runs both before writes and after reads.
    """

    @staticmethod
    def is_safe_name(name: Any) -> bool:
        return isinstance(name, str) and bool(SAFE_NAME_PATTERN.match(name))

    @staticmethod
    def sanitize(value: Any) -> Any:
        """
        Recursively strip script blocks from strings and drop mapping keys
        that are not plain identifiers.
        """
        if isinstance(value, str):
            return SCRIPT_BLOCK_PATTERN.sub("", value)
        if isinstance(value, Mapping):
            return {
                key: DataSanitizer.sanitize(item)
                for key, item in value.items()
                if DataSanitizer.is_safe_name(key)
            }
        if isinstance(value, (list, tuple)):
            return [DataSanitizer.sanitize(item) for item in value]
        return value


class CacheKeyBuilder:
    """
    Pure functions for deriving deterministic cache keys.

    A key is the type followed by the sorted, sanitized parameters, so
    parameter order never changes the key.
    """

    @staticmethod
    def validate_type(cache_type: str) -> str:
        if not DataSanitizer.is_safe_name(cache_type):
            raise ValueError(f"Invalid cache type: {cache_type!r}")
        return cache_type

    @staticmethod
    def render_params(params: Optional[Mapping[str, Any]]) -> str:
        parts = []
        for name in sorted((params or {}).keys()):
            if not DataSanitizer.is_safe_name(name):
                continue
            value = params[name]
            if isinstance(value, str):
                value = UNSAFE_PARAM_CHARS.sub("", value)
            parts.append(f"{name}={json.dumps(value, sort_keys=True, default=str)}")
        return "|".join(parts)

    @staticmethod
    def derive_key(cache_type: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """
        Derive the cache key for a type and parameter set.

        Raises:
            ValueError: If the type is not a plain identifier
        """
        CacheKeyBuilder.validate_type(cache_type)
        key = f"{cache_type}{KEY_SEPARATOR}{CacheKeyBuilder.render_params(params)}"
        if len(key) > MAX_KEY_LENGTH:
            digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:HASHED_KEY_LENGTH]
            key = f"{cache_type}{KEY_SEPARATOR}#{digest}"
        return key

    @staticmethod
    def type_of(key: str) -> str:
        """The cache type a derived key belongs to."""
        return key.split(KEY_SEPARATOR, 1)[0]


DEFAULT_TYPE_TTLS: Dict[str, float] = {
    CacheType.EMPLOYEES: 15 * 60,
    CacheType.INCIDENTS: 15 * 60,
    CacheType.CATEGORIES: 60 * 60,
    CacheType.USER_TICKETS: 10 * 60,
    CacheType.SEARCH_RESULTS: 5 * 60,
    CacheType.REQUEST_OFFERINGS: 4 * 60 * 60,
    CacheType.REQUEST_OFFERINGS_COMPLETE: 4 * 60 * 60,
    CacheType.FIELDSET: 4 * 60 * 60,
}


class TTLPolicy(BaseModel):
    """
    Per-type cache lifetimes, optionally loaded from YAML.

    Missing types fall back to the built-in lifetimes; unknown types use the
    default TTL. ``resolve`` replaces a missing, non-positive or above-maximum
    lifetime with the default TTL.
    """
    default_ttl_seconds: float = Field(default=300, gt=0)
    max_ttl_seconds: float = Field(default=24 * 60 * 60, gt=0)
    type_ttls: Dict[str, float] = Field(default_factory=dict, validate_default=True)

    @field_validator("type_ttls")
    @classmethod
    def fill_default_ttls(cls, v: Dict[str, float]) -> Dict[str, float]:
        for cache_type, ttl in DEFAULT_TYPE_TTLS.items():
            v.setdefault(cache_type, ttl)
        return v

    def resolve(self, cache_type: str, ttl_override: Optional[float] = None) -> float:
        """TTL to store for a write: override, else per-type, else default."""
        ttl = ttl_override if ttl_override is not None else self.type_ttls.get(cache_type)
        if ttl is None or ttl <= 0 or ttl > self.max_ttl_seconds:
            return self.default_ttl_seconds
        return float(ttl)
