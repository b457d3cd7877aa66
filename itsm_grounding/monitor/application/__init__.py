"""
Monitor Application Layer
=========================

Contains:
- Services: ChangeMonitor, WatchRegistry, ChangeBus, MonitorHandle
- Interfaces: ITicketFeed, IPollScheduler
- DTOs: API request and response models
"""

from itsm_grounding.monitor.application.dto import (
    WatchRecordRequest,
    WatchedRecordResponse,
    MonitoringStatusResponse,
)
from itsm_grounding.monitor.application.services import (
    ChangeListener,
    ITicketFeed,
    IPollScheduler,
    WatchRegistry,
    ChangeBus,
    MonitorHandle,
    ChangeMonitor,
)

__all__ = [
    # DTOs
    "WatchRecordRequest",
    "WatchedRecordResponse",
    "MonitoringStatusResponse",
    # Services
    "ChangeListener",
    "WatchRegistry",
    "ChangeBus",
    "MonitorHandle",
    "ChangeMonitor",
    # Interfaces
    "ITicketFeed",
    "IPollScheduler",
]
