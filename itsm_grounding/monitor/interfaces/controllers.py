"""
Monitor Controllers (API Routes)
=================================

FastAPI routes for starting, inspecting and stopping change monitoring.

Controllers are thin - they delegate to application services.
"""

from fastapi import APIRouter, Depends, Path, Request

from itsm_grounding.core import ResourceNotFoundException
from itsm_grounding.monitor.application import (
    ChangeMonitor,
    MonitoringStatusResponse,
    WatchRecordRequest,
    WatchedRecordResponse,
)
from itsm_grounding.shared.infrastructure.logging import get_logger
from itsm_grounding.snapshot.domain import Incident

logger = get_logger(__name__)
router = APIRouter(prefix="/monitor", tags=["Change Monitor"])

ACTOR_ID = Path(..., min_length=1, max_length=64, description="RecId of the monitored actor")


# ========== Example payloads for Swagger ==========

MONITOR_STATUS_EXAMPLE = {
    "actor_id": "6F1A0C2B9D8E4F7A8B3C2D1E0F9A8B7C",
    "active": True,
    "watched_count": 1,
    "records": [
        {
            "record_id": "0B6C2A9F4E1D4C7B9A8F7E6D5C4B3A21",
            "number": "10452",
            "last_modified": "2025-03-01T09:12:00Z",
            "last_checked_at": "2025-03-01T09:12:30Z"
        }
    ]
}


# ========== Dependencies ==========

def get_monitor(request: Request) -> ChangeMonitor:
    return request.app.state.change_monitor


# ========== Route Handlers ==========

@router.post(
    "/{actor_id}/start",
    response_model=MonitoringStatusResponse,
    summary="Start change monitoring for an actor",
    description="""
    Schedule the watched-record tier and the own-records tier for an actor.

    Starting an actor that is already monitored keeps the running session.
    """,
    responses={200: {"content": {"application/json": {"example": MONITOR_STATUS_EXAMPLE}}}}
)
async def start_monitoring(
    actor_id: str = ACTOR_ID,
    monitor: ChangeMonitor = Depends(get_monitor)
):
    monitor.start_monitoring(actor_id)
    return MonitoringStatusResponse.from_status(monitor.monitoring_status(actor_id))


@router.post(
    "/{actor_id}/watch",
    response_model=WatchedRecordResponse,
    summary="Watch an incident for changes",
)
async def watch_record(
    request: WatchRecordRequest,
    actor_id: str = ACTOR_ID,
    monitor: ChangeMonitor = Depends(get_monitor)
):
    record = monitor.watch_record(actor_id, Incident.model_validate(request.to_record()))
    logger.info("Record watched", extra={"actor_id": actor_id, "record_id": record.record_id})
    return WatchedRecordResponse.from_record(record)


@router.get(
    "/{actor_id}/status",
    response_model=MonitoringStatusResponse,
    summary="Get an actor's monitoring status",
    responses={200: {"content": {"application/json": {"example": MONITOR_STATUS_EXAMPLE}}}}
)
async def monitoring_status(
    actor_id: str = ACTOR_ID,
    monitor: ChangeMonitor = Depends(get_monitor)
):
    status = monitor.monitoring_status(actor_id)
    if not status.active and status.watched_count == 0:
        raise ResourceNotFoundException("Monitoring session", actor_id)
    return MonitoringStatusResponse.from_status(status)


@router.delete(
    "/{actor_id}",
    response_model=MonitoringStatusResponse,
    summary="Stop monitoring and discard the watch set",
)
async def stop_monitoring(
    actor_id: str = ACTOR_ID,
    monitor: ChangeMonitor = Depends(get_monitor)
):
    monitor.stop_monitoring(actor_id)
    return MonitoringStatusResponse.from_status(monitor.monitoring_status(actor_id))


monitor_router = router
