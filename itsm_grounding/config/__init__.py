"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="itsm-grounding", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Key/Value Store ==========
    store_backend: str = Field(
        default="sql",
        description="Persistent store backend: 'sql' (SQLite via aiosqlite) or 'memory'"
    )
    store_url: str = Field(
        default="sqlite+aiosqlite:///./itsm_grounding.db",
        description="SQLAlchemy async URL for the key/value store"
    )
    store_quota_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum serialized size held by the store",
        ge=1024
    )

    # ========== Cache ==========
    cache_default_ttl_seconds: float = Field(
        default=300,
        description="TTL used when no per-type policy applies",
        gt=0
    )
    cache_max_ttl_seconds: float = Field(
        default=24 * 60 * 60,
        description="TTLs above this are replaced by the default",
        gt=0
    )
    cache_max_entries_per_type: int = Field(
        default=1000,
        description="Entry count per type that triggers eviction",
        ge=1
    )
    cache_eviction_fraction: float = Field(
        default=0.2,
        description="Fraction of the oldest entries evicted at capacity",
        gt=0,
        le=1
    )
    cache_policy_path: Path = Field(
        default=Path("cache_policy.yaml"),
        description="Path to per-type TTL policy YAML file"
    )

    # ========== Snapshot ==========
    snapshot_max_age_minutes: int = Field(
        default=30,
        description="Freshness window of the persisted snapshot",
        ge=1
    )
    snapshot_own_ticket_limit: int = Field(
        default=50,
        description="Requester tickets fetched for the acting identity",
        ge=1
    )
    prefetch_batch_size: int = Field(default=5, description="Concurrent prefetch requests", ge=1)
    prefetch_batch_delay_seconds: float = Field(
        default=0.2,
        description="Pause between prefetch batches",
        ge=0
    )

    # ========== Remote ITSM Platform ==========
    remote_base_url: str = Field(
        default="http://localhost:8080/HEAT/api/odata/businessobject",
        description="Base URL of the ITSM OData API"
    )
    remote_api_key: Optional[str] = Field(default=None, description="REST API key")
    remote_timeout_seconds: float = Field(
        default=8.0,
        description="Per-call timeout for remote requests",
        ge=0.1,
        le=60
    )
    remote_max_retries: int = Field(
        default=1,
        description="Retries for transient remote failures",
        ge=0,
        le=5
    )
    remote_backoff_base_seconds: float = Field(default=0.5, description="First retry delay", ge=0)
    remote_backoff_max_seconds: float = Field(default=4.0, description="Retry delay cap", ge=0)
    remote_endpoints: Dict[str, str] = Field(
        default={
            "employees": "employees",
            "incidents": "incidents",
            "service_requests": "servicereqs",
            "categories": "categorys",
            "services": "ci__services",
            "teams": "standarduserteams",
            "departments": "departments",
            "roles": "frs_def_roles",
            "request_offerings": "servicereqtemplates",
        },
        description="OData collection name per entity type"
    )
    remote_fieldset_path: str = Field(
        default="/HEAT/api/rest/Template/{offering_id}/_All_",
        description="Path template for request offering fieldsets"
    )

    # ========== Change Monitor ==========
    monitor_watched_interval_seconds: int = Field(default=30, description="Watched record poll", ge=1)
    monitor_own_interval_seconds: int = Field(default=60, description="Own records poll", ge=1)
    monitor_initial_delay_seconds: int = Field(default=5, description="Delay of first check", ge=0)
    monitor_retention_days: int = Field(default=7, description="Watch entry retention", ge=1)
    monitor_own_window: int = Field(default=20, description="Latest own records polled", ge=1)

    # ========== Grounding ==========
    digest_max_tokens: int = Field(
        default=6000,
        description="Token budget for the context digest",
        ge=200
    )
    validation_mode: str = Field(
        default="corrective",
        description="Default grounding validation mode: advisory or corrective"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        allowed = {"sql", "memory"}
        if v not in allowed:
            raise ValueError(f"store_backend must be one of {allowed}")
        return v

    @field_validator("validation_mode")
    @classmethod
    def validate_validation_mode(cls, v: str) -> str:
        if v not in VALID_VALIDATION_MODES:
            raise ValueError(f"validation_mode must be one of {VALID_VALIDATION_MODES}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class EntityType(str):
    """Remote entity types mirrored in the snapshot."""
    EMPLOYEES = "employees"
    INCIDENTS = "incidents"
    SERVICE_REQUESTS = "service_requests"
    CATEGORIES = "categories"
    SERVICES = "services"
    TEAMS = "teams"
    DEPARTMENTS = "departments"
    ROLES = "roles"
    REQUEST_OFFERINGS = "request_offerings"
    OWN_REQUESTER_TICKETS = "own_requester_tickets"


class CacheType(str):
    """Response cache types with their own TTL policy."""
    EMPLOYEES = "employees"
    INCIDENTS = "incidents"
    CATEGORIES = "categories"
    USER_TICKETS = "userTickets"
    SEARCH_RESULTS = "searchResults"
    REQUEST_OFFERINGS = "requestOfferings"
    REQUEST_OFFERINGS_COMPLETE = "requestOfferingsComplete"
    FIELDSET = "fieldset"


class ProgressStage(str):
    """Snapshot build progress stages."""
    STARTING = "starting"
    EMPLOYEES = "employees"
    INCIDENTS = "incidents"
    CATEGORIES = "categories"
    SERVICES = "services"
    TEAMS = "teams"
    DEPARTMENTS = "departments"
    SERVICE_REQUESTS = "service_requests"
    ROLES = "roles"
    USER_TICKETS = "user_tickets"
    SAVING = "saving"
    COMPLETE = "complete"


class ChangeType(str):
    """Change monitor event types."""
    CREATED = "created"
    UPDATED = "updated"


class FabricationClass(str):
    """Token classes checked by the grounding validator."""
    IDENTIFIER = "identifier"
    EMAIL = "email"
    REFERENCE_NUMBER = "reference_number"
    WRITE_CLAIM = "write_claim"


class ValidationMode(str):
    """Grounding validator modes."""
    ADVISORY = "advisory"
    CORRECTIVE = "corrective"


# ========== Lists for validation ==========

VALID_VALIDATION_MODES = [ValidationMode.ADVISORY, ValidationMode.CORRECTIVE]


# Global settings instance
settings = get_settings()
