"""
Grounding Application Layer
===========================

Contains:
- Services: ContextAssembler, GroundingValidator
- DTOs: API request and response models
"""

from itsm_grounding.grounding.application.dto import (
    ConversationTurn,
    ContextRequest,
    ContextResponse,
    FactSetPayload,
    ValidateRequest,
    ValidateResponse,
    ViolationResponse,
)
from itsm_grounding.grounding.application.services import (
    ContextAssembler,
    GroundingValidator,
    SectionCaps,
    bounded,
)

__all__ = [
    # DTOs
    "ConversationTurn",
    "ContextRequest",
    "ContextResponse",
    "FactSetPayload",
    "ValidateRequest",
    "ValidateResponse",
    "ViolationResponse",
    # Services
    "ContextAssembler",
    "GroundingValidator",
    "SectionCaps",
    "bounded",
]
