"""
Grounding Domain Entities
==========================

Actor identity, role capabilities, the grounded fact set handed to the
language model and the result of checking its reply against those facts.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from itsm_grounding.config import FabricationClass


class RoleCapabilities(BaseModel):
    """
    What an actor may see and do. Defaults describe a self-service user.
    """
    can_view_all_tickets: bool = False
    can_edit_all_tickets: bool = False
    can_delete_tickets: bool = False
    can_create_tickets: bool = True
    can_assign_tickets: bool = False
    can_close_tickets: bool = False
    can_view_all_users: bool = False
    can_edit_users: bool = False
    can_view_reports: bool = False
    can_manage_categories: bool = False
    can_manage_services: bool = False
    can_access_admin_panel: bool = False
    can_view_sensitive_data: bool = False
    can_export_data: bool = False


SYSTEM_ADMIN_ROLES = {"admin", "ivnt_securityadministrator", "configurationmanager"}
AGENT_ROLES = {
    "servicedeskanalyst", "servicedeskauspark", "calllogsupportdeskanalyst",
    "responsiveanalyst", "assetscanner", "mobileassetmanager",
}
AGENT_MARKERS = ("agent", "analyst", "technician", "support desk", "servicedesk")
MANAGER_ROLES = {
    "procurementmanager", "portfoliomanager", "financemanager", "projectmanager",
    "payrollmanager", "hrmanager", "hrrecruiter", "nrn_demandmanager",
    "facilitiesadministrator",
}
MANAGER_MARKERS = (" manager", "supervisor", "lead", "director")
READ_ONLY_MARKERS = ("read only", "readonly", "viewer", "observer")


def map_roles_to_capabilities(role_names: List[str]) -> RoleCapabilities:
    """
    Derive capability flags from platform role names.

    Only known administrator role ids grant full access; a business role that
    merely contains "administrator" does not. Deletion is never granted.
    """
    lowered = [name.lower() for name in role_names]
    compact = {name.replace(" ", "") for name in lowered}

    if compact & SYSTEM_ADMIN_ROLES:
        return RoleCapabilities(
            can_view_all_tickets=True,
            can_edit_all_tickets=True,
            can_assign_tickets=True,
            can_close_tickets=True,
            can_view_all_users=True,
            can_edit_users=True,
            can_view_reports=True,
            can_manage_categories=True,
            can_manage_services=True,
            can_access_admin_panel=True,
            can_view_sensitive_data=True,
            can_export_data=True,
        )

    flags: Dict[str, bool] = {}
    is_agent = bool(compact & AGENT_ROLES) or any(
        marker in name for name in lowered for marker in AGENT_MARKERS
    )
    is_manager = bool(compact & MANAGER_ROLES) or any(
        name.endswith("manager") or any(marker in name for marker in MANAGER_MARKERS)
        for name in lowered
    )
    if is_agent or is_manager:
        flags.update(
            can_view_all_tickets=True,
            can_edit_all_tickets=True,
            can_assign_tickets=True,
            can_close_tickets=True,
            can_view_all_users=True,
            can_view_reports=True,
            can_export_data=True,
        )
    if is_manager:
        flags["can_view_sensitive_data"] = True

    if any(marker in name for name in lowered for marker in READ_ONLY_MARKERS):
        flags.update(
            can_view_all_tickets=True,
            can_view_all_users=True,
            can_view_reports=True,
            can_edit_all_tickets=False,
            can_create_tickets=False,
            can_assign_tickets=False,
            can_close_tickets=False,
        )

    return RoleCapabilities(**flags)


class ActorContext(BaseModel):
    """
    The signed-in actor a digest is built for.

    Capabilities are derived from ``roles`` unless supplied explicitly.
    """
    rec_id: str = Field(..., min_length=1)
    login_id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    team: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    capabilities: Optional[RoleCapabilities] = None

    @model_validator(mode="after")
    def derive_capabilities(self) -> "ActorContext":
        if self.capabilities is None:
            self.capabilities = map_roles_to_capabilities(self.roles)
        return self

    @property
    def display(self) -> str:
        name = self.full_name or self.login_id or self.rec_id
        contact = self.email or self.login_id
        return f"{name} ({contact})" if contact and contact != name else name


CONFIRMATION_FACTS = ("draft_created", "request_created", "ticket_created")


@dataclass
class GroundedFactSet:
    """
    Facts supplied to the model for one turn.

    ``build_system_message`` renders them with the instruction block the
    model must follow; the validator checks replies against ``serialized``.
    """
    facts: Dict[str, Any] = field(default_factory=dict)
    missing_info: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def add_fact(self, key: str, value: Any) -> None:
        self.facts[key] = value

    def add_missing_info(self, info: str) -> None:
        self.missing_info.append(info)

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_missing_info(self) -> bool:
        return bool(self.missing_info)

    def has_confirmation(self) -> bool:
        return any(self.facts.get(key) for key in CONFIRMATION_FACTS)

    def serialized(self) -> str:
        return json.dumps(self.facts, default=str, ensure_ascii=False)

    def build_system_message(self) -> str:
        sections: List[str] = []

        if self.facts:
            sections.append("[GROUNDED FACTS - Use ONLY this information]")
            for key, value in self.facts.items():
                if isinstance(value, (dict, list)):
                    sections.append(f"{key}: {json.dumps(value, indent=2, default=str, ensure_ascii=False)}")
                else:
                    sections.append(f"{key}: {value}")

        if self.missing_info:
            sections.append("\n[MISSING INFORMATION]")
            sections.extend(f"- {info}" for info in self.missing_info)

        if self.errors:
            sections.append("\n[ERRORS ENCOUNTERED]")
            sections.extend(f"- {error}" for error in self.errors)

        sections.append("\n[CRITICAL INSTRUCTIONS]")
        sections.append("- NEVER invent or guess data not listed in GROUNDED FACTS above")
        sections.append("- NEVER mention identifiers, emails or ticket numbers that are not in the facts")
        sections.append("- If missing information exists, ask the user for it clearly and concisely")
        sections.append("- If errors exist, explain them in plain terms and suggest a next step")
        return "\n".join(sections)


@dataclass(frozen=True)
class Violation:
    """One unverified token (or write claim) found in generated text."""
    fabrication_class: str
    token: str

    @property
    def message(self) -> str:
        labels = {
            FabricationClass.IDENTIFIER: "Unverified identifier",
            FabricationClass.EMAIL: "Unverified email",
            FabricationClass.REFERENCE_NUMBER: "Unverified reference number",
            FabricationClass.WRITE_CLAIM: "Unconfirmed write claim",
        }
        return f"{labels.get(self.fabrication_class, 'Violation')}: {self.token}"

    def to_dict(self) -> dict:
        return {"class": self.fabrication_class, "token": self.token, "message": self.message}


@dataclass
class ValidationResult:
    valid: bool
    violations: List[Violation] = field(default_factory=list)
    corrected_text: Optional[str] = None

    @classmethod
    def clean(cls) -> "ValidationResult":
        return cls(valid=True)

    def classes(self) -> List[str]:
        return sorted({violation.fabrication_class for violation in self.violations})
