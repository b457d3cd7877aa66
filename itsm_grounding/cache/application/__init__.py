"""
Cache Application Layer
=======================

Contains:
- Services: PersistentCache
- Interfaces: IKeyValueStore, ITTLPolicyProvider
- DTOs: API response models
"""

from itsm_grounding.cache.application.dto import CacheStatsResponse, InvalidateResponse
from itsm_grounding.cache.application.services import (
    CACHE_KEY_PREFIX,
    IKeyValueStore,
    ITTLPolicyProvider,
    PersistentCache,
)

__all__ = [
    # DTOs
    "CacheStatsResponse",
    "InvalidateResponse",
    # Services
    "PersistentCache",
    "CACHE_KEY_PREFIX",
    # Interfaces
    "IKeyValueStore",
    "ITTLPolicyProvider",
]
