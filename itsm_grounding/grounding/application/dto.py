"""
Grounding Application DTOs
===========================

Pydantic models for the grounding API surface.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from itsm_grounding.config import VALID_VALIDATION_MODES
from itsm_grounding.grounding.domain import ActorContext, GroundedFactSet, ValidationResult


class ConversationTurn(BaseModel):
    role: str = "user"
    content: str = ""


class ContextRequest(BaseModel):
    """Request model for building a grounding digest."""
    query: str = Field(..., min_length=1, max_length=4000)
    actor: ActorContext
    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    refresh_if_stale: bool = Field(
        default=True,
        description="Rebuild the snapshot when none is stored or it has expired"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "query": "show me incidents created in march 2025",
                "actor": {
                    "rec_id": "6F1A0C2B9D8E4F7A8B3C2D1E0F9A8B7C",
                    "login_id": "jdoe",
                    "full_name": "Jane Doe",
                    "email": "jane.doe@example.com",
                    "roles": ["ServiceDeskAnalyst"]
                },
                "conversation_history": [
                    {"role": "user", "content": "I need help with tickets"}
                ]
            }
        }
    }

    def history_texts(self) -> List[str]:
        return [turn.content for turn in self.conversation_history]


class ContextResponse(BaseModel):
    digest: str
    estimated_tokens: int
    snapshot_available: bool


class FactSetPayload(BaseModel):
    facts: Dict[str, Any] = Field(default_factory=dict)
    missing_info: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    def to_fact_set(self) -> GroundedFactSet:
        return GroundedFactSet(facts=dict(self.facts), missing_info=list(self.missing_info), errors=list(self.errors))


class ValidateRequest(BaseModel):
    """
    Request model for validating generated text.

    Exactly one of ``facts`` or ``digest`` must be given.
    """
    text: str
    facts: Optional[FactSetPayload] = None
    digest: Optional[str] = None
    mode: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "text": "Your request SR 10452 has been submitted by jane.doe@example.com",
                "facts": {"facts": {"offering_name": "New Laptop", "email": "jane.doe@example.com"}},
                "mode": "corrective"
            }
        }
    }

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_VALIDATION_MODES:
            raise ValueError(f"mode must be one of {VALID_VALIDATION_MODES}")
        return v

    @model_validator(mode="after")
    def require_one_source(self) -> "ValidateRequest":
        if (self.facts is None) == (self.digest is None):
            raise ValueError("Provide exactly one of 'facts' or 'digest'")
        return self


class ViolationResponse(BaseModel):
    fabrication_class: str
    token: str
    message: str


class ValidateResponse(BaseModel):
    valid: bool
    mode: str
    violations: List[ViolationResponse] = Field(default_factory=list)
    corrected_text: Optional[str] = None
    text: str = Field(..., description="Text to show: original in advisory mode, corrected in corrective mode")

    @classmethod
    def from_result(cls, result: ValidationResult, mode: str, text: str) -> "ValidateResponse":
        return cls(
            valid=result.valid,
            mode=mode,
            violations=[
                ViolationResponse(
                    fabrication_class=violation.fabrication_class,
                    token=violation.token,
                    message=violation.message,
                )
                for violation in result.violations
            ],
            corrected_text=result.corrected_text,
            text=text,
        )
