"""
Monitor Domain Layer
====================

Contains:
- Entities: WatchedRecord, ChangeEvent, MonitoringStatus
"""

from itsm_grounding.monitor.domain.entities import (
    TRACKED_FIELDS,
    WatchedRecord,
    ChangeEvent,
    MonitoringStatus,
)

__all__ = [
    "TRACKED_FIELDS",
    "WatchedRecord",
    "ChangeEvent",
    "MonitoringStatus",
]
