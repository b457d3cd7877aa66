"""
Cache Domain Layer
==================

Contains:
- Entities: CacheEntry
- Value Objects & Services: CacheKeyBuilder, DataSanitizer, TTLPolicy

This layer has no dependencies on infrastructure - pure Python logic.
"""

from itsm_grounding.cache.domain.entities import CacheEntry, CacheStats
from itsm_grounding.cache.domain.value_objects import (
    CacheKeyBuilder,
    DataSanitizer,
    TTLPolicy,
    DEFAULT_TYPE_TTLS,
)

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheKeyBuilder",
    "DataSanitizer",
    "TTLPolicy",
    "DEFAULT_TYPE_TTLS",
]
