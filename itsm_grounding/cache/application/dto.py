"""
Cache Application DTOs
=======================

Pydantic models for the cache API surface.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field

from itsm_grounding.cache.domain import CacheStats


def _to_datetime(timestamp: Optional[float]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class CacheStatsResponse(BaseModel):
    """Response model for cache statistics."""
    total_entries: int = Field(..., ge=0)
    entries_by_type: Dict[str, int] = Field(default_factory=dict)
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None

    @classmethod
    def from_stats(cls, stats: CacheStats) -> "CacheStatsResponse":
        return cls(
            total_entries=stats.total_entries,
            entries_by_type=stats.entries_by_type,
            oldest_entry=_to_datetime(stats.oldest_entry),
            newest_entry=_to_datetime(stats.newest_entry),
        )


class InvalidateResponse(BaseModel):
    """Response model for cache invalidation."""
    removed: int = Field(..., ge=0)
    cache_type: Optional[str] = None
