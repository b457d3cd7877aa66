"""
Monitor Domain Entities
========================

Watched records and the change events derived from them.
"""

from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Optional

from itsm_grounding.config import ChangeType
from itsm_grounding.snapshot.domain import Incident

# Incident attributes compared to report which fields changed
TRACKED_FIELDS = ("status", "priority", "owner", "owner_team", "subject")


@dataclass(frozen=True)
class WatchedRecord:
    """
    Last observed state of one record under observation.

    Immutable: every check produces new instances and the owning map is
    replaced wholesale.
    """

    record_id: str
    number: Optional[str]
    last_modified: Optional[str]
    last_checked_at: float
    fields: Dict[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_incident(cls, incident: Incident, checked_at: float) -> "WatchedRecord":
        return cls(
            record_id=incident.rec_id,
            number=incident.number,
            last_modified=incident.modified_stamp,
            last_checked_at=checked_at,
            fields={name: getattr(incident, name) for name in TRACKED_FIELDS},
        )

    def has_changed(self, incident: Incident) -> bool:
        return incident.modified_stamp != self.last_modified

    def changed_fields(self, incident: Incident) -> List[str]:
        return [
            name for name in TRACKED_FIELDS
            if name in self.fields and self.fields[name] != getattr(incident, name)
        ]

    def touched(self, checked_at: float) -> "WatchedRecord":
        return replace(self, last_checked_at=checked_at)

    def is_stale(self, now: float, retention_seconds: float) -> bool:
        return now - self.last_checked_at > retention_seconds


@dataclass(frozen=True)
class ChangeEvent:
    """A created or updated record observed for an actor."""

    type: str
    id: str
    actor_id: str
    timestamp: float
    number: Optional[str] = None
    changed_fields: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.type not in (ChangeType.CREATED, ChangeType.UPDATED):
            raise ValueError(f"Unknown change type: {self.type}")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MonitoringStatus:
    """What is being watched for one actor."""

    actor_id: str
    active: bool
    watched_count: int
    records: List[WatchedRecord] = field(default_factory=list)
