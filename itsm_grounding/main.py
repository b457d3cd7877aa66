"""
ITSM Grounding Service - Main Application
==========================================

Grounding layer between a conversational assistant and an ITSM platform.

Modules:
- Cache: persistent TTL response cache
- Snapshot: versioned local mirror of the platform's collections
- Grounding: role-gated digests and fabrication checks on generated text
- Monitor: tiered change polling with change events

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Key/value store, remote REST client, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from itsm_grounding.config import settings
from itsm_grounding.core import ApplicationException

# Infrastructure
from itsm_grounding.infrastructure.database import init_database, close_database, create_tables
from itsm_grounding.infrastructure.remote import RemoteClient

# Cache Module
from itsm_grounding.cache.application import IKeyValueStore, PersistentCache
from itsm_grounding.cache.infrastructure import (
    InMemoryKeyValueStore,
    SQLAlchemyKeyValueStore,
    TTLPolicyManager,
)

# Snapshot Module
from itsm_grounding.snapshot.application import SnapshotBuilder
from itsm_grounding.snapshot.infrastructure import (
    ITSMRestSource,
    KeyValueSnapshotRepository,
    KeyValueSyncTracker,
)

# Grounding Module
from itsm_grounding.grounding.application import ContextAssembler

# Monitor Module
from itsm_grounding.monitor.application import ChangeMonitor
from itsm_grounding.monitor.domain import ChangeEvent
from itsm_grounding.monitor.infrastructure import MonitorScheduler

# Module Routers
from itsm_grounding.cache.interfaces import cache_router
from itsm_grounding.snapshot.interfaces import snapshot_router
from itsm_grounding.grounding.interfaces import grounding_router
from itsm_grounding.monitor.interfaces import monitor_router

# Logging
from itsm_grounding.shared.infrastructure.logging import setup_logging, get_logger
from itsm_grounding.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)

logger = get_logger(__name__)


def log_change_events(events: List[ChangeEvent]) -> None:
    """Default change listener: one log line per event."""
    for event in events:
        logger.info(
            "Ticket change",
            extra={
                "event_type": event.type,
                "record_id": event.id,
                "actor_id": event.actor_id,
                "number": event.number,
                "changed_fields": event.changed_fields
            }
        )


async def create_store() -> IKeyValueStore:
    """Open the configured key/value store."""
    if settings.store_backend == "memory":
        logger.info("Using in-memory key/value store")
        return InMemoryKeyValueStore()

    logger.info("Initializing key/value database")
    init_database()
    await create_tables()
    return SQLAlchemyKeyValueStore()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Open the key/value store
    3. Load the TTL policy and build the cache
    4. Build the remote client, snapshot builder and context assembler
    5. Start the monitor scheduler

    SHUTDOWN:
    1. Stop every monitoring session and the scheduler
    2. Close the remote client
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting ITSM Grounding Service", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "store_backend": settings.store_backend
    })

    store = await create_store()

    logger.info("Loading TTL policy")
    policy_manager = TTLPolicyManager()
    policy_manager.load(settings.cache_policy_path)
    cache = PersistentCache(store, policy_manager)

    remote_client = RemoteClient()
    source = ITSMRestSource(remote_client)
    snapshot_builder = SnapshotBuilder(
        source,
        KeyValueSnapshotRepository(store),
        cache,
        sync_tracker=KeyValueSyncTracker(store),
    )

    scheduler = MonitorScheduler()
    await scheduler.start()
    change_monitor = ChangeMonitor(source, scheduler)
    change_monitor.on_change(log_change_events)

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.store = store
    app.state.policy_manager = policy_manager
    app.state.cache = cache
    app.state.remote_client = remote_client
    app.state.snapshot_builder = snapshot_builder
    app.state.context_assembler = ContextAssembler()
    app.state.scheduler = scheduler
    app.state.change_monitor = change_monitor

    logger.info("ITSM Grounding Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down ITSM Grounding Service")

    change_monitor.shutdown()
    await scheduler.stop()
    await remote_client.close()

    if settings.store_backend != "memory":
        await close_database()

    logger.info("ITSM Grounding Service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="ITSM Grounding API",
    description="""
    ## Grounding layer for an ITSM conversational assistant

    Mirrors the ITSM platform locally and hands the language model only
    facts it is allowed to see.

    ---

    ### Snapshot
    - `POST /snapshot/refresh` - Rebuild the local mirror
    - `GET /snapshot/status` - Age, schema version and counts
    - `GET /snapshot/search` - Search one entity type

    ### Grounding
    - `POST /grounding/context` - Role-gated digest for a query
    - `POST /grounding/validate` - Check generated text against supplied facts

    ### Cache
    - `GET /cache/stats` - Entries per type
    - `DELETE /cache` - Invalidate entries

    ### Change Monitor
    - `POST /monitor/{actor_id}/start` - Start tiered polling
    - `POST /monitor/{actor_id}/watch` - Watch an incident
    - `GET /monitor/{actor_id}/status` - Watch set and session state
    - `DELETE /monitor/{actor_id}` - Stop and discard the watch set
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(snapshot_router)
app.include_router(grounding_router)
app.include_router(cache_router)
app.include_router(monitor_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "store": "sql",
                        "snapshot": "available",
                        "monitor_scheduler": "running",
                        "remote": "configured"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - Store backend
    - Snapshot availability
    - Scheduler state
    - Remote platform configuration
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    builder = getattr(request.app.state, "snapshot_builder", None)
    snapshot = await builder.load() if builder else None

    checks = {
        "store": settings.store_backend,
        "snapshot": "available" if snapshot is not None else "missing_or_stale",
        "monitor_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "remote": "configured" if settings.remote_base_url else "not_configured",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "snapshot": {"prefix": "/snapshot"},
            "grounding": {"prefix": "/grounding"},
            "cache": {"prefix": "/cache"},
            "monitor": {"prefix": "/monitor"}
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "itsm_grounding.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
