"""
Snapshot Value Objects
=======================

Fetch plans for each snapshot section and pure search over a snapshot.
"""

import string
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type

from itsm_grounding.config import EntityType, ProgressStage
from itsm_grounding.snapshot.domain.entities import (
    Category,
    Department,
    Employee,
    Incident,
    RemoteRecord,
    Role,
    Service,
    ServiceRequest,
    Snapshot,
    Team,
)

PROBE_ALPHABET = string.ascii_lowercase


@dataclass(frozen=True)
class SectionPlan:
    """
    How one snapshot section is fetched.

    Pagination stops at a short page, ``max_records``, ``max_pages`` or the
    first remote failure. When it yields fewer than ``probe_threshold``
    records, each probe letter is paged separately over ``probe_fields``.
    """
    entity_type: str
    stage: str
    record_model: Type[RemoteRecord]
    page_size: int = 100
    max_records: int = 1000
    max_pages: int = 10
    probe_threshold: Optional[int] = None
    probe_fields: Tuple[str, ...] = ()
    probe_page_size: int = 50
    probe_max_pages: int = 10

    @property
    def probes_enabled(self) -> bool:
        return self.probe_threshold is not None and bool(self.probe_fields)


DEFAULT_SECTION_PLANS: List[SectionPlan] = [
    SectionPlan(
        entity_type=EntityType.EMPLOYEES,
        stage=ProgressStage.EMPLOYEES,
        record_model=Employee,
        page_size=100,
        max_records=500,
        max_pages=10,
        probe_threshold=200,
        probe_fields=("DisplayName", "LoginID", "PrimaryEmail"),
        probe_page_size=50,
        probe_max_pages=10,
    ),
    SectionPlan(EntityType.INCIDENTS, ProgressStage.INCIDENTS, Incident, page_size=100, max_records=1000, max_pages=10),
    SectionPlan(EntityType.CATEGORIES, ProgressStage.CATEGORIES, Category, page_size=100, max_records=100, max_pages=1),
    SectionPlan(EntityType.SERVICES, ProgressStage.SERVICES, Service, page_size=50, max_records=50, max_pages=1),
    SectionPlan(EntityType.TEAMS, ProgressStage.TEAMS, Team, page_size=50, max_records=50, max_pages=1),
    SectionPlan(EntityType.DEPARTMENTS, ProgressStage.DEPARTMENTS, Department, page_size=50, max_records=50, max_pages=1),
    SectionPlan(
        EntityType.SERVICE_REQUESTS, ProgressStage.SERVICE_REQUESTS, ServiceRequest,
        page_size=100, max_records=100, max_pages=1,
    ),
    SectionPlan(EntityType.ROLES, ProgressStage.ROLES, Role, page_size=100, max_records=500, max_pages=5),
]


@dataclass
class DedupCollector:
    """Accumulates validated records of one section, keyed by RecId."""
    plan: SectionPlan
    records: List[RemoteRecord] = field(default_factory=list)
    seen_ids: set = field(default_factory=set)
    rejected: int = 0

    @property
    def full(self) -> bool:
        return len(self.records) >= self.plan.max_records

    def add_page(self, page: List[dict]) -> int:
        """Validate and merge a page, returning how many new records it added."""
        added = 0
        for raw in page:
            if self.full:
                break
            try:
                record = self.plan.record_model.model_validate(raw)
            except ValueError:
                self.rejected += 1
                continue
            if record.rec_id in self.seen_ids:
                continue
            self.seen_ids.add(record.rec_id)
            self.records.append(record)
            added += 1
        return added


class SnapshotSearch:
    """
    Pure functions for searching a snapshot.

    Matching is case-insensitive substring matching over the fields a person
    would name the record by.
    """

    @staticmethod
    def _contains(term: str, *values: Optional[str]) -> bool:
        return any(value and term in value.lower() for value in values)

    @staticmethod
    def employees(snapshot: Snapshot, term: Optional[str]) -> List[Employee]:
        """Employees whose name or email contains every word of the term."""
        if not term or not term.strip():
            return list(snapshot.employees)
        words = term.lower().split()
        return [
            employee for employee in snapshot.employees
            if all(
                SnapshotSearch._contains(word, employee.display_name, employee.primary_email, employee.login_id)
                for word in words
            )
        ]

    @staticmethod
    def incidents(snapshot: Snapshot, term: Optional[str]) -> List[Incident]:
        if not term:
            return list(snapshot.incidents)
        lowered = term.lower()
        return [
            incident for incident in snapshot.incidents
            if SnapshotSearch._contains(
                lowered, incident.subject, incident.incident_number, incident.profile_full_name
            )
        ]

    @staticmethod
    def named(records: List[RemoteRecord], term: Optional[str]) -> List[RemoteRecord]:
        """Records whose name or display name contains the term."""
        if not term:
            return list(records)
        lowered = term.lower()
        return [
            record for record in records
            if SnapshotSearch._contains(lowered, getattr(record, "display_name", None), getattr(record, "name", None))
        ]

    @staticmethod
    def search(snapshot: Snapshot, entity_type: str, term: Optional[str] = None) -> List[RemoteRecord]:
        """
        Search one entity type of the snapshot.

        Raises:
            ValueError: If the entity type is not searchable
        """
        if entity_type == EntityType.EMPLOYEES:
            return SnapshotSearch.employees(snapshot, term)
        if entity_type == EntityType.INCIDENTS:
            return SnapshotSearch.incidents(snapshot, term)
        if entity_type == EntityType.CATEGORIES:
            return list(snapshot.categories)
        named_sections: Dict[str, List[RemoteRecord]] = {
            EntityType.SERVICES: snapshot.services,
            EntityType.TEAMS: snapshot.teams,
            EntityType.DEPARTMENTS: snapshot.departments,
        }
        if entity_type not in named_sections:
            raise ValueError(f"Unsupported search type: {entity_type}")
        return SnapshotSearch.named(named_sections[entity_type], term)


SEARCHABLE_TYPES = [
    EntityType.EMPLOYEES, EntityType.INCIDENTS, EntityType.CATEGORIES,
    EntityType.SERVICES, EntityType.TEAMS, EntityType.DEPARTMENTS,
]
