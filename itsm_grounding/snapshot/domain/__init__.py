"""
Snapshot Domain Layer
=====================

Contains:
- Entities: schema-validated remote records and the Snapshot mirror
- Value Objects & Services: SectionPlan, DedupCollector, SnapshotSearch

This layer has no dependencies on infrastructure - pure Python logic.
"""

from itsm_grounding.snapshot.domain.entities import (
    CURRENT_SCHEMA_VERSION,
    RemoteRecord,
    Employee,
    TicketRecord,
    Incident,
    ServiceRequest,
    Category,
    Service,
    Team,
    Department,
    Role,
    RequestOffering,
    Snapshot,
)
from itsm_grounding.snapshot.domain.value_objects import (
    PROBE_ALPHABET,
    DEFAULT_SECTION_PLANS,
    SEARCHABLE_TYPES,
    SectionPlan,
    DedupCollector,
    SnapshotSearch,
)

__all__ = [
    # Entities
    "CURRENT_SCHEMA_VERSION",
    "RemoteRecord",
    "Employee",
    "TicketRecord",
    "Incident",
    "ServiceRequest",
    "Category",
    "Service",
    "Team",
    "Department",
    "Role",
    "RequestOffering",
    "Snapshot",
    # Value Objects & Services
    "PROBE_ALPHABET",
    "DEFAULT_SECTION_PLANS",
    "SEARCHABLE_TYPES",
    "SectionPlan",
    "DedupCollector",
    "SnapshotSearch",
]
