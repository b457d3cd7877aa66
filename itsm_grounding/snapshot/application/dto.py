"""
Snapshot Application DTOs
==========================

Pydantic models for the snapshot API surface.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from itsm_grounding.snapshot.domain import Snapshot


class SnapshotRefreshRequest(BaseModel):
    """Request model for a snapshot rebuild."""
    actor_id: Optional[str] = Field(None, description="RecId of the acting identity")
    force: bool = Field(default=True, description="Rebuild even if the stored snapshot is fresh")


class SnapshotStatusResponse(BaseModel):
    """Response model describing the stored snapshot."""
    available: bool
    schema_version: Optional[int] = None
    last_updated: Optional[datetime] = None
    age_seconds: Optional[int] = None
    counts: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot: Optional[Snapshot], now: float) -> "SnapshotStatusResponse":
        if snapshot is None:
            return cls(available=False)
        return cls(
            available=True,
            schema_version=snapshot.schema_version,
            last_updated=datetime.fromtimestamp(snapshot.last_updated, tz=timezone.utc),
            age_seconds=int(snapshot.age_seconds(now)),
            counts=snapshot.counts(),
        )


class SnapshotSearchResponse(BaseModel):
    """Response model for a snapshot search."""
    entity_type: str
    term: Optional[str] = None
    count: int = Field(..., ge=0)
    results: List[Dict[str, Any]] = Field(default_factory=list)
