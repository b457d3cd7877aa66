"""
Monitor Application DTOs
=========================

Pydantic models for the change monitor API surface.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from itsm_grounding.monitor.domain import MonitoringStatus, WatchedRecord


class WatchRecordRequest(BaseModel):
    """Request model for adding a record to the watch set."""
    rec_id: str = Field(..., min_length=1, description="RecId of the incident")
    incident_number: Optional[str] = Field(None, description="Human-facing incident number")
    last_modified: Optional[str] = Field(None, description="Last known LastModDateTime")

    def to_record(self) -> dict:
        return {
            "RecId": self.rec_id,
            "IncidentNumber": self.incident_number,
            "LastModDateTime": self.last_modified,
        }


class WatchedRecordResponse(BaseModel):
    record_id: str
    number: Optional[str] = None
    last_modified: Optional[str] = None
    last_checked_at: datetime

    @classmethod
    def from_record(cls, record: WatchedRecord) -> "WatchedRecordResponse":
        return cls(
            record_id=record.record_id,
            number=record.number,
            last_modified=record.last_modified,
            last_checked_at=datetime.fromtimestamp(record.last_checked_at, tz=timezone.utc),
        )


class MonitoringStatusResponse(BaseModel):
    """Response model for an actor's monitoring status."""
    actor_id: str
    active: bool
    watched_count: int = Field(..., ge=0)
    records: List[WatchedRecordResponse] = Field(default_factory=list)

    @classmethod
    def from_status(cls, status: MonitoringStatus) -> "MonitoringStatusResponse":
        return cls(
            actor_id=status.actor_id,
            active=status.active,
            watched_count=status.watched_count,
            records=[WatchedRecordResponse.from_record(record) for record in status.records],
        )
