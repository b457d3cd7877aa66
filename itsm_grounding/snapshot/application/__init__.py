"""
Snapshot Application Layer
==========================

Contains:
- Services: SnapshotBuilder, gather_in_batches
- Interfaces: IListingSource, ISnapshotRepository, ISyncTracker
- DTOs: API request and response models
"""

from itsm_grounding.snapshot.application.dto import (
    SnapshotRefreshRequest,
    SnapshotStatusResponse,
    SnapshotSearchResponse,
)
from itsm_grounding.snapshot.application.services import (
    GLOBAL_SYNC_SCOPE,
    ProgressCallback,
    IListingSource,
    ISnapshotRepository,
    ISyncTracker,
    SnapshotBuilder,
    gather_in_batches,
)

__all__ = [
    # DTOs
    "SnapshotRefreshRequest",
    "SnapshotStatusResponse",
    "SnapshotSearchResponse",
    # Services
    "SnapshotBuilder",
    "gather_in_batches",
    "GLOBAL_SYNC_SCOPE",
    "ProgressCallback",
    # Interfaces
    "IListingSource",
    "ISnapshotRepository",
    "ISyncTracker",
]
