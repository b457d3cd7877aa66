"""
Snapshot Infrastructure Layer
=============================

Infrastructure implementations for the snapshot:
- Repositories: key/value backed snapshot store and sync tracker
- External: OData adapter for the ITSM platform
"""

from itsm_grounding.snapshot.infrastructure.repositories import (
    SNAPSHOT_KEY,
    KeyValueSnapshotRepository,
    KeyValueSyncTracker,
)
from itsm_grounding.snapshot.infrastructure.external import ITSMRestSource, probe_filter

__all__ = [
    "SNAPSHOT_KEY",
    "KeyValueSnapshotRepository",
    "KeyValueSyncTracker",
    "ITSMRestSource",
    "probe_filter",
]
