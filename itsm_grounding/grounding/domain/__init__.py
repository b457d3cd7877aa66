"""
Grounding Domain Layer
======================

Contains:
- Entities: ActorContext, RoleCapabilities, GroundedFactSet, ValidationResult
- Value Objects: TemporalFilter, QueryTopics, FabricationPatterns

This layer has no dependencies on infrastructure - pure Python logic.
"""

from itsm_grounding.grounding.domain.entities import (
    CONFIRMATION_FACTS,
    ActorContext,
    RoleCapabilities,
    GroundedFactSet,
    Violation,
    ValidationResult,
    map_roles_to_capabilities,
)
from itsm_grounding.grounding.domain.value_objects import (
    MONTH_NAMES,
    FabricationPatterns,
    QueryTopics,
    TemporalFilter,
    estimate_tokens,
)

__all__ = [
    # Entities
    "CONFIRMATION_FACTS",
    "ActorContext",
    "RoleCapabilities",
    "GroundedFactSet",
    "Violation",
    "ValidationResult",
    "map_roles_to_capabilities",
    # Value Objects
    "MONTH_NAMES",
    "FabricationPatterns",
    "QueryTopics",
    "TemporalFilter",
    "estimate_tokens",
]
