"""
Grounding Controllers (API Routes)
===================================

FastAPI routes for building grounding digests and validating generated text.

Controllers are thin - they delegate to application services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from itsm_grounding.config import settings
from itsm_grounding.grounding.application import (
    ContextAssembler,
    ContextRequest,
    ContextResponse,
    GroundingValidator,
    ValidateRequest,
    ValidateResponse,
)
from itsm_grounding.grounding.domain import estimate_tokens
from itsm_grounding.shared.infrastructure.logging import get_logger, log_latency
from itsm_grounding.snapshot.application import SnapshotBuilder
from itsm_grounding.snapshot.domain import Snapshot

logger = get_logger(__name__)
router = APIRouter(prefix="/grounding", tags=["Grounding"])


# ========== Example payloads for Swagger ==========

VALIDATE_RESPONSE_EXAMPLE = {
    "valid": False,
    "mode": "corrective",
    "violations": [
        {
            "fabrication_class": "reference_number",
            "token": "10452",
            "message": "Unverified reference number: 10452"
        },
        {
            "fabrication_class": "write_claim",
            "token": "request SR [unverified reference] has been submitted",
            "message": "Unconfirmed write claim: request SR [unverified reference] has been submitted"
        }
    ],
    "corrected_text": "Your request is ready for your confirmation by jane.doe@example.com",
    "text": "Your request is ready for your confirmation by jane.doe@example.com"
}


# ========== Dependencies ==========

def get_assembler(request: Request) -> ContextAssembler:
    return request.app.state.context_assembler


def get_builder(request: Request) -> SnapshotBuilder:
    return request.app.state.snapshot_builder


# ========== Route Handlers ==========

@router.post(
    "/context",
    response_model=ContextResponse,
    summary="Build the grounding digest for a query",
    description="""
    Assemble the role-gated, size-bounded digest the language model may answer from.

    The actor's capability flags are derived from `roles` unless supplied.
    Without cross-visibility only the actor's own records are included.
    The digest always ends with the provenance instruction block.
    """
)
async def build_context(
    request: ContextRequest,
    assembler: ContextAssembler = Depends(get_assembler),
    builder: SnapshotBuilder = Depends(get_builder)
):
    snapshot: Optional[Snapshot]
    if request.refresh_if_stale:
        snapshot = await builder.get_or_build(request.actor.rec_id)
    else:
        snapshot = await builder.load()

    with log_latency(logger, "assemble_context", actor_id=request.actor.rec_id):
        digest = assembler.assemble(
            request.query,
            request.actor,
            snapshot,
            conversation_history=request.history_texts(),
        )

    return ContextResponse(
        digest=digest,
        estimated_tokens=estimate_tokens(digest),
        snapshot_available=snapshot is not None,
    )


@router.post(
    "/validate",
    response_model=ValidateResponse,
    summary="Check generated text against supplied facts",
    description="""
    Detect unverified identifiers, emails, ticket/request numbers and
    unconfirmed write claims.

    **Modes**: `advisory` returns the original text, `corrective` the corrected text.
    """,
    responses={200: {"content": {"application/json": {"example": VALIDATE_RESPONSE_EXAMPLE}}}}
)
async def validate_text(request: ValidateRequest):
    source = request.facts.to_fact_set() if request.facts is not None else request.digest
    mode = request.mode or settings.validation_mode
    result, text = GroundingValidator(source).review(request.text, mode)
    return ValidateResponse.from_result(result, mode, text)


grounding_router = router
