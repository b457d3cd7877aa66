"""
Snapshot Domain Entities
=========================

Schema-validated remote records and the snapshot that mirrors them.

Remote payloads are validated here, at the fetch boundary. Fields keep the
platform's names as aliases so a stored snapshot round-trips unchanged.
"""

import time
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

CURRENT_SCHEMA_VERSION = 4


class RemoteRecord(BaseModel):
    """
    Base for every record mirrored from the ITSM platform.

    Only ``RecId`` is required. Numeric scalars arrive as numbers for some
    fields and strings for others, so they are coerced to strings.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rec_id: str = Field(alias="RecId", min_length=1)

    @model_validator(mode="before")
    @classmethod
    def coerce_numeric_scalars(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            key: str(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else value
            for key, value in data.items()
        }

    def to_stored(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Employee(RemoteRecord):
    login_id: Optional[str] = Field(default=None, alias="LoginID")
    display_name: Optional[str] = Field(default=None, alias="DisplayName")
    primary_email: Optional[str] = Field(default=None, alias="PrimaryEmail")
    team: Optional[str] = Field(default=None, alias="Team")
    department: Optional[str] = Field(default=None, alias="Department")
    status: Optional[str] = Field(default=None, alias="Status")
    title: Optional[str] = Field(default=None, alias="Title")


class TicketRecord(RemoteRecord):
    """Fields shared by incidents and service requests."""
    subject: Optional[str] = Field(default=None, alias="Subject")
    status: Optional[str] = Field(default=None, alias="Status")
    service: Optional[str] = Field(default=None, alias="Service")
    owner: Optional[str] = Field(default=None, alias="Owner")
    owner_team: Optional[str] = Field(default=None, alias="OwnerTeam")
    profile_full_name: Optional[str] = Field(default=None, alias="ProfileFullName")
    profile_link: Optional[str] = Field(default=None, alias="ProfileLink_RecID")
    created_date_time: Optional[str] = Field(default=None, alias="CreatedDateTime")
    last_mod_date_time: Optional[str] = Field(default=None, alias="LastModDateTime")

    @property
    def number(self) -> Optional[str]:
        return None

    @property
    def modified_stamp(self) -> Optional[str]:
        """Modification stamp used for change detection."""
        return self.last_mod_date_time or self.created_date_time

    def created_at(self) -> Optional[datetime]:
        if not self.created_date_time:
            return None
        try:
            return datetime.fromisoformat(self.created_date_time.replace("Z", "+00:00"))
        except ValueError:
            return None

    def requested_by(self, actor_rec_id: Optional[str]) -> bool:
        return bool(actor_rec_id) and self.profile_link == actor_rec_id


class Incident(TicketRecord):
    incident_number: Optional[str] = Field(default=None, alias="IncidentNumber")
    priority: Optional[str] = Field(default=None, alias="Priority")
    category: Optional[str] = Field(default=None, alias="Category")
    symptom: Optional[str] = Field(default=None, alias="Symptom")
    resolution: Optional[str] = Field(default=None, alias="Resolution")

    @property
    def number(self) -> Optional[str]:
        return self.incident_number


class ServiceRequest(TicketRecord):
    service_req_number: Optional[str] = Field(default=None, alias="ServiceReqNumber")
    urgency: Optional[str] = Field(default=None, alias="Urgency")

    @property
    def number(self) -> Optional[str]:
        return self.service_req_number


class Category(RemoteRecord):
    name: Optional[str] = Field(default=None, alias="Name")
    display_name: Optional[str] = Field(default=None, alias="DisplayName")
    service: Optional[str] = Field(default=None, alias="Service")


class Service(RemoteRecord):
    name: Optional[str] = Field(default=None, alias="Name")
    display_name: Optional[str] = Field(default=None, alias="DisplayName")
    description: Optional[str] = Field(default=None, alias="Description")
    service_owner: Optional[str] = Field(default=None, alias="ServiceOwner")
    service_owner_team: Optional[str] = Field(default=None, alias="ServiceOwnerTeam")
    is_active: Optional[bool] = Field(default=None, alias="IsActive")


class Team(RemoteRecord):
    name: Optional[str] = Field(default=None, alias="Name")
    display_name: Optional[str] = Field(default=None, alias="DisplayName")
    department: Optional[str] = Field(default=None, alias="Department")


class Department(RemoteRecord):
    name: Optional[str] = Field(default=None, alias="Name")
    display_name: Optional[str] = Field(default=None, alias="DisplayName")


class Role(RemoteRecord):
    name: Optional[str] = Field(default=None, alias="Name")
    display_name: Optional[str] = Field(default=None, alias="DisplayName")
    description: Optional[str] = Field(default=None, alias="Description")


class RequestOffering(RemoteRecord):
    name: Optional[str] = Field(default=None, alias="Name")
    description: Optional[str] = Field(default=None, alias="Description")
    category: Optional[str] = Field(default=None, alias="Category")


class Snapshot(BaseModel):
    """
    Read-through mirror of the remote platform.

    Replaced wholesale on rebuild, never patched.
    """
    model_config = ConfigDict(populate_by_name=True)

    employees: List[Employee] = Field(default_factory=list)
    incidents: List[Incident] = Field(default_factory=list)
    service_requests: List[ServiceRequest] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    services: List[Service] = Field(default_factory=list)
    teams: List[Team] = Field(default_factory=list)
    departments: List[Department] = Field(default_factory=list)
    roles: List[Role] = Field(default_factory=list)
    own_requester_tickets: List[Incident] = Field(default_factory=list)
    last_updated: float = Field(default_factory=time.time)
    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION)

    def age_seconds(self, now: Optional[float] = None) -> float:
        return max(0.0, (now if now is not None else time.time()) - self.last_updated)

    def is_fresh(self, max_age_seconds: float, now: Optional[float] = None) -> bool:
        return self.age_seconds(now) < max_age_seconds

    def counts(self) -> dict:
        return {
            "employees": len(self.employees),
            "incidents": len(self.incidents),
            "service_requests": len(self.service_requests),
            "categories": len(self.categories),
            "services": len(self.services),
            "teams": len(self.teams),
            "departments": len(self.departments),
            "roles": len(self.roles),
            "own_requester_tickets": len(self.own_requester_tickets),
        }

    def to_stored(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
