"""
Cache Controllers (API Routes)
===============================

FastAPI routes for inspecting and clearing the response cache.

Controllers are thin - they delegate to application services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from itsm_grounding.cache.application import CacheStatsResponse, InvalidateResponse, PersistentCache
from itsm_grounding.cache.domain import DataSanitizer
from itsm_grounding.cache.infrastructure import TTLPolicyManager
from itsm_grounding.core import ValidationException
from itsm_grounding.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/cache", tags=["Cache"])


# ========== Example payloads for Swagger ==========

CACHE_STATS_EXAMPLE = {
    "total_entries": 3,
    "entries_by_type": {"incidents": 2, "employees": 1},
    "oldest_entry": "2025-03-01T09:00:00Z",
    "newest_entry": "2025-03-01T09:12:00Z"
}


# ========== Dependencies ==========

def get_cache(request: Request) -> PersistentCache:
    return request.app.state.cache


def get_policy_manager(request: Request) -> TTLPolicyManager:
    return request.app.state.policy_manager


# ========== Route Handlers ==========

@router.get(
    "/stats",
    response_model=CacheStatsResponse,
    summary="Get cache statistics",
    responses={200: {"content": {"application/json": {"example": CACHE_STATS_EXAMPLE}}}}
)
async def get_cache_stats(cache: PersistentCache = Depends(get_cache)):
    return CacheStatsResponse.from_stats(await cache.stats())


@router.delete(
    "",
    response_model=InvalidateResponse,
    summary="Invalidate cache entries",
    description="""
    Remove every cache entry, or only the entries of one `cache_type`.

    The stored snapshot and sync marks are not affected.
    """
)
async def invalidate_cache(
    cache_type: Optional[str] = Query(None, description="Only remove entries of this type"),
    cache: PersistentCache = Depends(get_cache)
):
    if cache_type is not None and not DataSanitizer.is_safe_name(cache_type):
        raise ValidationException("Invalid cache type", details={"cache_type": cache_type})
    removed = await cache.invalidate(cache_type)
    return InvalidateResponse(removed=removed, cache_type=cache_type)


@router.post(
    "/policy/reload",
    summary="Reload the TTL policy file",
)
async def reload_policy(manager: TTLPolicyManager = Depends(get_policy_manager)):
    reloaded = manager.reload()
    policy = manager.get_policy()
    logger.info("TTL policy reload requested", extra={"reloaded": reloaded})
    return {
        "reloaded": reloaded,
        "default_ttl_seconds": policy.default_ttl_seconds,
        "type_ttls": policy.type_ttls,
    }


cache_router = router
