"""
Snapshot Controllers (API Routes)
==================================

FastAPI routes for building, inspecting and searching the snapshot.

Controllers are thin - they delegate to application services.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from itsm_grounding.core import ValidationException
from itsm_grounding.shared.infrastructure.logging import get_logger
from itsm_grounding.snapshot.application import (
    SnapshotBuilder,
    SnapshotRefreshRequest,
    SnapshotSearchResponse,
    SnapshotStatusResponse,
)
from itsm_grounding.snapshot.domain import SEARCHABLE_TYPES

logger = get_logger(__name__)
router = APIRouter(prefix="/snapshot", tags=["Snapshot"])


# ========== Example payloads for Swagger ==========

SNAPSHOT_STATUS_EXAMPLE = {
    "available": True,
    "schema_version": 4,
    "last_updated": "2025-03-01T09:00:00Z",
    "age_seconds": 312,
    "counts": {
        "employees": 480,
        "incidents": 1000,
        "service_requests": 100,
        "categories": 42,
        "services": 18,
        "teams": 12,
        "departments": 9,
        "roles": 37,
        "own_requester_tickets": 6
    }
}


# ========== Dependencies ==========

def get_builder(request: Request) -> SnapshotBuilder:
    return request.app.state.snapshot_builder


async def log_progress(stage: str, percent: int, message: str) -> None:
    logger.info("Snapshot build progress", extra={"stage": stage, "percent": percent, "progress_message": message})


# ========== Route Handlers ==========

@router.post(
    "/refresh",
    response_model=SnapshotStatusResponse,
    summary="Rebuild the snapshot",
    description="""
    Rebuild the local mirror of the ITSM platform.

    With `force` false the stored snapshot is reused when it has the current
    schema and is within the freshness window. A failing section yields an
    empty list; the build itself does not fail.
    """,
    responses={200: {"content": {"application/json": {"example": SNAPSHOT_STATUS_EXAMPLE}}}}
)
async def refresh_snapshot(
    request: SnapshotRefreshRequest,
    builder: SnapshotBuilder = Depends(get_builder)
):
    snapshot = await builder.get_or_build(request.actor_id, force=request.force, on_progress=log_progress)
    return SnapshotStatusResponse.from_snapshot(snapshot, time.time())


@router.get(
    "/status",
    response_model=SnapshotStatusResponse,
    summary="Describe the stored snapshot",
    responses={200: {"content": {"application/json": {"example": SNAPSHOT_STATUS_EXAMPLE}}}}
)
async def snapshot_status(builder: SnapshotBuilder = Depends(get_builder)):
    return SnapshotStatusResponse.from_snapshot(await builder.load(), time.time())


@router.get(
    "/search",
    response_model=SnapshotSearchResponse,
    summary="Search the stored snapshot",
)
async def search_snapshot(
    entity_type: str = Query(..., description=f"One of {SEARCHABLE_TYPES}"),
    term: Optional[str] = Query(None, max_length=200),
    builder: SnapshotBuilder = Depends(get_builder)
):
    if entity_type not in SEARCHABLE_TYPES:
        raise ValidationException(
            f"Unsupported search type: {entity_type}",
            details={"supported": SEARCHABLE_TYPES}
        )
    records = await builder.search(entity_type, term)
    return SnapshotSearchResponse(
        entity_type=entity_type,
        term=term,
        count=len(records),
        results=[record.to_stored() for record in records],
    )


@router.post(
    "/offerings/prefetch",
    summary="Prefetch request offering fieldsets",
    description="Fetch every request offering's fieldset in bounded batches and cache the result.",
)
async def prefetch_offerings(builder: SnapshotBuilder = Depends(get_builder)):
    offerings = await builder.prefetch_offering_fieldsets()
    return {
        "offerings": len(offerings),
        "with_fieldset": sum(1 for item in offerings if item.get("fieldset") is not None),
    }


snapshot_router = router
