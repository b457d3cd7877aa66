"""
Grounding Application Services
===============================

ContextAssembler builds the per-turn digest from a snapshot.
GroundingValidator checks a generated reply against the facts supplied.
"""

import json
import re
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from itsm_grounding.config import FabricationClass, ValidationMode, settings
from itsm_grounding.grounding.domain import (
    CONFIRMATION_FACTS,
    ActorContext,
    FabricationPatterns,
    GroundedFactSet,
    QueryTopics,
    TemporalFilter,
    ValidationResult,
    Violation,
    estimate_tokens,
)
from itsm_grounding.shared.infrastructure.logging import get_logger
from itsm_grounding.snapshot.domain import (
    Employee,
    Incident,
    ServiceRequest,
    Snapshot,
    TicketRecord,
)

logger = get_logger(__name__)

NAME_QUERY_PATTERN = re.compile(
    r"(?:find|search|know|get|show|who is|about)\s+([a-zA-Z]+(?:\s+[a-zA-Z]+)?)", re.IGNORECASE
)


class SectionCaps:
    """Maximum items listed per digest section."""
    EMPLOYEES = 150
    ALL_TICKETS = 20
    INCIDENTS_ON_DATE = 25
    INCIDENTS_IN_MONTH = 50
    RECENT_INCIDENTS = 10
    OWN_TICKETS = 10
    SERVICE_REQUESTS = 20
    CATEGORIES = 25
    SERVICES = 25
    TEAMS = 25
    DEPARTMENTS = 25


def bounded(items: Sequence[Any], cap: int, render: Callable[[int, Any], str], noun: str) -> List[str]:
    """Render at most ``cap`` items and state how many were left out."""
    lines = [render(index, item) for index, item in enumerate(items[:cap], start=1)]
    if len(items) > cap:
        lines.append(f"... and {len(items) - cap} more {noun}.")
    return lines


def _newest_first(records: Sequence[TicketRecord]) -> List[TicketRecord]:
    floor = datetime.min.replace(tzinfo=timezone.utc)

    def created(record: TicketRecord) -> datetime:
        stamp = record.created_at()
        if stamp is None:
            return floor
        return stamp if stamp.tzinfo else stamp.replace(tzinfo=timezone.utc)

    return sorted(records, key=created, reverse=True)


def _render_incident(index: int, incident: Incident, with_reporter: bool = True) -> str:
    line = f'{index}. Incident #{incident.incident_number}: "{incident.subject}" - {incident.status} - Priority {incident.priority}'
    if with_reporter:
        line += f" - Reporter: {incident.profile_full_name or 'Unknown'}"
    return line + f" - Created: {incident.created_date_time or 'Unknown'}"


def _render_request(index: int, request: ServiceRequest) -> str:
    number = request.service_req_number or request.rec_id
    return (
        f'{index}. SR {number}: "{request.subject or "No subject"}" - {request.status or "Unknown status"}'
        f" - Service: {request.service or 'Unknown service'} - Created: {request.created_date_time or 'Unknown'}"
    )


def _render_ticket(index: int, ticket: TicketRecord) -> str:
    if isinstance(ticket, Incident):
        kind, priority = "Incident", ticket.priority
    else:
        kind, priority = "Service Request", getattr(ticket, "urgency", None)
    return (
        f'{index}. {kind} #{ticket.number}: "{ticket.subject}" - {ticket.status}'
        f" - Priority/Urgency: {priority or 'N/A'} - Reporter: {ticket.profile_full_name or 'Unknown'}"
        f" - Created: {ticket.created_date_time or 'Unknown'}"
    )


def _render_employee(index: int, employee: Employee) -> str:
    return (
        f"{index}. {employee.display_name} ({employee.primary_email or employee.login_id})"
        f" - {employee.team or 'No team'} - {employee.status}"
    )


class ContextAssembler:
    """
    Builds the grounding digest for one query.

    Ticket visibility is decided before any section is rendered: an actor
    without cross-visibility only ever has their own records to render.
    Every digest ends with the provenance block, including when the
    snapshot is missing or sections were dropped to fit the token budget.
    """

    def __init__(self, max_tokens: Optional[int] = None, clock: Callable[[], float] = time.time):
        self._max_tokens = max_tokens or settings.digest_max_tokens
        self._clock = clock

    def assemble(
        self,
        query: str,
        actor: ActorContext,
        snapshot: Optional[Snapshot],
        conversation_history: Optional[Sequence[str]] = None,
        today: Optional[date] = None,
    ) -> str:
        now = self._clock()
        header = self._header(actor, snapshot)
        if snapshot is None:
            header.append("\n[SNAPSHOT]: The ITSM data snapshot is unavailable. No records can be listed.")
            return "\n".join(header + self._provenance(actor, None, now))

        today = today or datetime.fromtimestamp(now, tz=timezone.utc).date()
        topics = QueryTopics.detect(query, conversation_history)
        temporal = TemporalFilter.parse(query, today)
        incidents, requests = self._visible_tickets(actor, snapshot)

        sections: List[List[str]] = []
        if topics.employees:
            sections.append(self._employees(query, actor, snapshot))
        if topics.all_tickets:
            sections.append(self._all_tickets(actor, incidents, requests))
        if topics.incidents:
            sections.append(self._incidents(actor, incidents, temporal))
            own = self._own_incidents(actor, snapshot)
            if actor.capabilities.can_view_all_tickets and own:
                sections.append(self._own_tickets(own))
        if topics.service_requests:
            sections.append(self._service_requests(actor, requests, temporal))
        if topics.categories:
            sections.append(self._categories(snapshot))
        if topics.services:
            sections.append(self._services(snapshot, topics.service_detail))
        if topics.teams:
            sections.append(self._teams(snapshot))
        if topics.departments:
            sections.append(self._departments(snapshot))

        footer = self._provenance(actor, snapshot, now)
        return "\n".join(self._fit(header, sections, footer))

    # ---------- Budget ----------

    def _fit(self, header: List[str], sections: List[List[str]], footer: List[str]) -> List[str]:
        """Keep sections in order while the digest fits the token budget."""
        lines = list(header)
        used = estimate_tokens("\n".join(header + footer))
        omitted: List[str] = []
        for section in sections:
            cost = estimate_tokens("\n".join(section)) + 1
            if used + cost > self._max_tokens:
                omitted.append(section[0].strip().split("]")[0].lstrip("["))
                continue
            lines.extend(section)
            used += cost
        if omitted:
            logger.info("Digest sections omitted", extra={"sections": omitted, "max_tokens": self._max_tokens})
            lines.append(
                f"\n[NOTE]: {len(omitted)} section(s) were omitted to fit the context budget: "
                + ", ".join(omitted) + ". Ask a narrower question to see them."
            )
        return lines + footer

    # ---------- Visibility ----------

    @staticmethod
    def _own_incidents(actor: ActorContext, snapshot: Snapshot) -> List[Incident]:
        # the snapshot may have been built for another actor, so match on the requester link
        own: Dict[str, Incident] = {}
        for incident in list(snapshot.own_requester_tickets) + list(snapshot.incidents):
            if incident.rec_id not in own and incident.requested_by(actor.rec_id):
                own[incident.rec_id] = incident
        return list(own.values())

    def _visible_tickets(self, actor: ActorContext, snapshot: Snapshot):
        if actor.capabilities.can_view_all_tickets:
            return list(snapshot.incidents), list(snapshot.service_requests)
        return (
            self._own_incidents(actor, snapshot),
            [request for request in snapshot.service_requests if request.requested_by(actor.rec_id)],
        )

    # ---------- Sections ----------

    @staticmethod
    def _header(actor: ActorContext, snapshot: Optional[Snapshot]) -> List[str]:
        lines = [f"[CURRENT USER]: {actor.display}"]
        if actor.team:
            lines.append(f"- Team: {actor.team}")
        if actor.roles:
            lines.append(f"- Roles: {', '.join(actor.roles)}")
        if snapshot is not None:
            lines.append("\n[SNAPSHOT SUMMARY]:")
            lines.extend(f"- {count} {name.replace('_', ' ')}" for name, count in snapshot.counts().items())
        return lines

    @staticmethod
    def _employees(query: str, actor: ActorContext, snapshot: Snapshot) -> List[str]:
        if not actor.capabilities.can_view_all_users:
            return ["\n[EMPLOYEES]: Access restricted. Only your own profile information is available."]

        lines = [f"\n[EMPLOYEES IN SYSTEM - {len(snapshot.employees)} total]:"]
        employees = list(snapshot.employees)
        match = NAME_QUERY_PATTERN.search(query)
        if match:
            term = match.group(1).lower().strip()
            matches = [
                employee for employee in employees
                if any(term in (value or "").lower()
                       for value in (employee.display_name, employee.login_id, employee.primary_email))
            ]
            if matches:
                lines.append(f'[FOUND {len(matches)} MATCHING EMPLOYEE(S) FOR "{term}"]:')
                employees = matches + [employee for employee in employees if employee not in matches]
        lines.extend(bounded(employees, SectionCaps.EMPLOYEES, _render_employee, "employees in the system"))
        return lines

    @staticmethod
    def _all_tickets(actor: ActorContext, incidents: List[Incident], requests: List[ServiceRequest]) -> List[str]:
        tickets = _newest_first(list(incidents) + list(requests))
        scope = "ALL TICKETS" if actor.capabilities.can_view_all_tickets else "YOUR TICKETS"
        lines = [
            f"\n[{scope} - {len(tickets)} total]:",
            "Tickets include both Incidents and Service Requests.",
            f"- {len(incidents)} Incidents",
            f"- {len(requests)} Service Requests",
        ]
        if not tickets:
            lines.append("No tickets were found.")
            return lines
        lines.extend(bounded(tickets, SectionCaps.ALL_TICKETS, _render_ticket, "tickets"))
        return lines

    @staticmethod
    def _incidents(actor: ActorContext, incidents: List[Incident], temporal: TemporalFilter) -> List[str]:
        scope = "INCIDENTS" if actor.capabilities.can_view_all_tickets else "YOUR INCIDENTS"
        with_reporter = actor.capabilities.can_view_all_tickets

        def render(index: int, incident: Incident) -> str:
            return _render_incident(index, incident, with_reporter)

        if temporal.kind == TemporalFilter.RECENT:
            ordered = _newest_first(incidents)
            lines = [f"\n[RECENT {scope} - {len(ordered)} total]:"]
            if not ordered:
                lines.append("No incidents were found.")
            lines.extend(bounded(ordered, SectionCaps.RECENT_INCIDENTS, render, "incidents"))
            return lines

        selected = [incident for incident in incidents if temporal.matches(incident)]
        cap = SectionCaps.INCIDENTS_ON_DATE if temporal.kind == TemporalFilter.DATE else SectionCaps.INCIDENTS_IN_MONTH
        lines = [f"\n[{scope} CREATED {temporal.label.upper()} - {len(selected)} incident(s)]:"]
        if not selected:
            lines.append(f"No incidents were found with a creation date {temporal.label}.")
        lines.extend(bounded(selected, cap, render, f"incidents {temporal.label}"))
        return lines

    @staticmethod
    def _own_tickets(own: List[Incident]) -> List[str]:
        lines = [f"\n[YOUR TICKETS - {len(own)} total]:"]
        lines.extend(bounded(
            _newest_first(own), SectionCaps.OWN_TICKETS,
            lambda index, incident: _render_incident(index, incident, with_reporter=False),
            "of your tickets",
        ))
        return lines

    @staticmethod
    def _service_requests(actor: ActorContext, requests: List[ServiceRequest], temporal: TemporalFilter) -> List[str]:
        scope = "SERVICE REQUESTS" if actor.capabilities.can_view_all_tickets else "YOUR SERVICE REQUESTS"
        selected = [request for request in requests if temporal.matches(request)]
        lines = [f"\n[{scope} - {len(requests)} total]:"]
        if temporal.kind != TemporalFilter.RECENT:
            lines.append(f"[FILTERED BY CREATION DATE {temporal.label}] ({len(selected)} found)")
        else:
            selected = _newest_first(selected)
        if not selected:
            lines.append("No service requests were found.")
        lines.extend(bounded(selected, SectionCaps.SERVICE_REQUESTS, _render_request, "service requests"))
        return lines

    @staticmethod
    def _categories(snapshot: Snapshot) -> List[str]:
        lines = [f"\n[AVAILABLE CATEGORIES - {len(snapshot.categories)} total]:"]
        lines.extend(bounded(
            snapshot.categories, SectionCaps.CATEGORIES,
            lambda index, category: f"{index}. {category.display_name or category.name}"
            + (f" ({category.service})" if category.service else ""),
            "categories",
        ))
        return lines

    @staticmethod
    def _services(snapshot: Snapshot, detail: bool) -> List[str]:
        lines = [f"\n[AVAILABLE SERVICES - {len(snapshot.services)} total]:"]

        def render(index: int, service) -> str:
            parts = [f"{index}. {service.display_name or service.name}"]
            if detail:
                if service.description:
                    parts.append(f"   Description: {service.description}")
                if service.service_owner:
                    parts.append(f"   Owner: {service.service_owner}")
                if service.service_owner_team:
                    parts.append(f"   Owner Team: {service.service_owner_team}")
                if service.is_active is not None:
                    parts.append(f"   Status: {'Active' if service.is_active else 'Inactive'}")
            return "\n".join(parts)

        lines.extend(bounded(snapshot.services, SectionCaps.SERVICES, render, "services"))
        return lines

    @staticmethod
    def _teams(snapshot: Snapshot) -> List[str]:
        lines = [f"\n[AVAILABLE TEAMS - {len(snapshot.teams)} total]:"]
        lines.extend(bounded(
            snapshot.teams, SectionCaps.TEAMS,
            lambda index, team: f"{index}. {team.display_name or team.name}"
            + (f" ({team.department})" if team.department else ""),
            "teams",
        ))
        return lines

    @staticmethod
    def _departments(snapshot: Snapshot) -> List[str]:
        lines = [f"\n[AVAILABLE DEPARTMENTS - {len(snapshot.departments)} total]:"]
        lines.extend(bounded(
            snapshot.departments, SectionCaps.DEPARTMENTS,
            lambda index, department: f"{index}. {department.display_name or department.name}",
            "departments",
        ))
        return lines

    # ---------- Provenance ----------

    @staticmethod
    def _provenance(actor: ActorContext, snapshot: Optional[Snapshot], now: float) -> List[str]:
        caps = actor.capabilities
        lines = []
        if snapshot is not None:
            lines.append(f"\n[SNAPSHOT INFO]: This data was last updated {round(snapshot.age_seconds(now))} seconds ago.")

        lines.append("\n[SECURITY RESTRICTIONS - STRICTLY ENFORCE]:")
        if not caps.can_view_all_users:
            lines.append("- User CANNOT search for or view other employees. Only show their own profile if asked.")
        if not caps.can_view_all_tickets:
            lines.append("- User CANNOT view all tickets. Only show their own tickets listed above.")
        if not caps.can_edit_all_tickets and not caps.can_close_tickets:
            lines.append("- User CANNOT edit, update, assign or close tickets.")
        if caps.can_create_tickets:
            lines.append("- User CAN create new tickets.")
        else:
            lines.append("- User CANNOT create tickets.")

        lines.append(
            "\n[CRITICAL INSTRUCTION]: Use ONLY the facts listed in this context. "
            "Do NOT invent identifiers, email addresses, ticket numbers, names or dates that are not listed above. "
            "If a section lists no records, or the data needed is not listed, say plainly that no data was found."
        )
        return lines


FactSource = Union[GroundedFactSet, Mapping[str, Any], str]


class GroundingValidator:
    """
    Checks generated text against the facts supplied for the same turn.

    Facts may be a GroundedFactSet, a plain mapping or a rendered digest.
    Validation never raises: on an internal failure it logs and reports a
    clean result.
    """

    CONFIRMATION_PATTERN = re.compile(
        r"\b(?:" + "|".join(CONFIRMATION_FACTS) + r")\"?\s*:\s*(?:true|True|1|\"yes\")"
    )

    def __init__(self, facts: FactSource):
        if isinstance(facts, GroundedFactSet):
            self._serialized = facts.serialized()
            self._confirmed = facts.has_confirmation()
        elif isinstance(facts, str):
            self._serialized = facts
            self._confirmed = bool(self.CONFIRMATION_PATTERN.search(facts))
        else:
            self._serialized = json.dumps(dict(facts), default=str, ensure_ascii=False)
            self._confirmed = any(facts.get(key) for key in CONFIRMATION_FACTS)
        self._folded = self._serialized.lower()

    def _known(self, token: str, case_sensitive: bool = False) -> bool:
        if case_sensitive:
            return token in self._serialized
        return token.lower() in self._folded

    def _unverified(self, pattern: re.Pattern, text: str) -> List[str]:
        found: List[str] = []
        seen: Set[str] = set()
        for match in pattern.finditer(text):
            folded = match.group(0).lower()
            if folded in seen:
                continue
            seen.add(folded)
            if not self._known(match.group(0)):
                found.append(match.group(0))
        return found

    def _check(self, text: str) -> ValidationResult:
        violations: List[Violation] = []
        corrected = text

        identifiers = self._unverified(FabricationPatterns.IDENTIFIER, text)
        if identifiers:
            folded = {token.lower() for token in identifiers}
            violations.extend(Violation(FabricationClass.IDENTIFIER, token) for token in identifiers)
            corrected = FabricationPatterns.IDENTIFIER.sub(
                lambda m: FabricationPatterns.IDENTIFIER_PLACEHOLDER if m.group(0).lower() in folded else m.group(0),
                corrected,
            )

        emails = self._unverified(FabricationPatterns.EMAIL, text)
        if emails:
            folded = {token.lower() for token in emails}
            violations.extend(Violation(FabricationClass.EMAIL, token) for token in emails)
            corrected = FabricationPatterns.EMAIL.sub(
                lambda m: FabricationPatterns.EMAIL_PLACEHOLDER if m.group(0).lower() in folded else m.group(0),
                corrected,
            )

        numbers: List[str] = []
        for match in FabricationPatterns.REFERENCE.finditer(text):
            number = match.group(2)
            if number not in numbers and not self._known(number, case_sensitive=True):
                numbers.append(number)
        if numbers:
            violations.extend(Violation(FabricationClass.REFERENCE_NUMBER, number) for number in numbers)
            corrected = FabricationPatterns.REFERENCE.sub(
                lambda m: f"{m.group(1)} {FabricationPatterns.REFERENCE_PLACEHOLDER}"
                if m.group(2) in numbers else m.group(0),
                corrected,
            )

        if not self._confirmed:
            for pattern, replacement in FabricationPatterns.WRITE_CLAIMS:
                match = pattern.search(corrected)
                if match:
                    violations.append(Violation(FabricationClass.WRITE_CLAIM, match.group(0)))
                    corrected = pattern.sub(replacement, corrected)

        if not violations:
            return ValidationResult.clean()
        return ValidationResult(valid=False, violations=violations, corrected_text=corrected)

    def validate(self, text: str) -> ValidationResult:
        try:
            return self._check(text or "")
        except Exception as e:
            logger.error("Grounding validation failed", extra={"error": str(e)}, exc_info=True)
            return ValidationResult.clean()

    def review(self, text: str, mode: Optional[str] = None) -> Tuple[ValidationResult, str]:
        """
        Validate and pick the text to show.

        ``advisory`` logs violations and keeps the original text;
        ``corrective`` uses the corrected text.
        """
        mode = mode or settings.validation_mode
        result = self.validate(text)
        if result.valid:
            return result, text
        logger.warning(
            "Grounding violations detected",
            extra={
                "mode": mode,
                "violation_count": len(result.violations),
                "classes": result.classes(),
            }
        )
        if mode == ValidationMode.CORRECTIVE:
            return result, result.corrected_text
        return result, text

    def apply(self, text: str, mode: Optional[str] = None) -> str:
        return self.review(text, mode)[1]
