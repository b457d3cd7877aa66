"""
Cache Infrastructure Layer
==========================

Infrastructure implementations for the response cache:
- Models: SQLAlchemy key/value table
- Repositories: SQL and in-memory key/value stores
- External: YAML TTL policy loader
"""

from itsm_grounding.cache.infrastructure.models import KeyValueModel
from itsm_grounding.cache.infrastructure.repositories import (
    SQLAlchemyKeyValueStore,
    InMemoryKeyValueStore,
)
from itsm_grounding.cache.infrastructure.external import TTLPolicyManager

__all__ = [
    "KeyValueModel",
    "SQLAlchemyKeyValueStore",
    "InMemoryKeyValueStore",
    "TTLPolicyManager",
]
