"""In-memory stand-ins for the remote ITSM platform."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Sequence

from itsm_grounding.core import RemoteServiceException
from itsm_grounding.monitor.application import ITicketFeed
from itsm_grounding.snapshot.application import IListingSource


class FakeListingSource(IListingSource):
    """
    Serves records per entity type with offset paging and letter probes.

    ``page_limit`` caps every response, the way the platform silently caps
    large listings. ``pages`` scripts exact pages for an entity type.
    """

    def __init__(
        self,
        records: Optional[dict[str, list[dict]]] = None,
        pages: Optional[dict[str, list[list[dict]]]] = None,
        requester_tickets: Optional[dict[str, list[dict]]] = None,
        fieldsets: Optional[dict[str, dict]] = None,
        failing: Sequence[str] = (),
        page_limit: Optional[int] = None,
    ) -> None:
        self.records = {name: list(items) for name, items in (records or {}).items()}
        self.pages = pages or {}
        self.requester_tickets = requester_tickets or {}
        self.fieldsets = fieldsets or {}
        self.failing = set(failing)
        self.page_limit = page_limit
        self.calls: list[tuple[str, int, int, Optional[str]]] = []
        self.fieldset_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_records(
        self,
        entity_type: str,
        *,
        top: int,
        skip: int = 0,
        probe: Optional[str] = None,
        probe_fields: Sequence[str] = (),
    ) -> list[dict]:
        self.calls.append((entity_type, top, skip, probe))
        if entity_type in self.failing:
            raise RemoteServiceException(f"{entity_type} unavailable", status_code=500)

        if entity_type in self.pages:
            scripted = self.pages[entity_type]
            index = skip // top
            return [dict(item) for item in scripted[index]] if index < len(scripted) else []

        items = self.records.get(entity_type, [])
        if probe:
            items = [
                item for item in items
                if any(probe in str(item.get(name, "")).lower() for name in probe_fields)
            ]
        page = items[skip:skip + top]
        if self.page_limit is not None:
            page = page[:self.page_limit]
        return [dict(item) for item in page]

    async def list_requester_tickets(self, requester_id: str, *, top: int) -> list[dict]:
        if "own" in self.failing:
            raise RemoteServiceException("requester tickets unavailable", status_code=503, transient=True)
        return [dict(item) for item in self.requester_tickets.get(requester_id, [])[:top]]

    async def fetch_offering_fieldset(self, offering_id: str) -> dict:
        self.fieldset_calls.append(offering_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if offering_id in self.failing:
                raise RemoteServiceException(f"fieldset {offering_id} unavailable", status_code=404)
            return self.fieldsets.get(offering_id, {"offering_id": offering_id, "fields": []})
        finally:
            self.in_flight -= 1


class FakeTicketFeed(ITicketFeed):
    """
    Current ticket state keyed by RecId.

    ``on_get`` runs inside every lookup, letting a test act while a check is
    in flight. ``get_delay`` and ``list_delay`` hold a call open so two
    polls can overlap.
    """

    def __init__(self) -> None:
        self.tickets: dict[str, dict] = {}
        self.requester_tickets: dict[str, list[dict]] = {}
        self.fail_requester = False
        self.on_get: Optional[Callable[[str], Any]] = None
        self.get_delay = 0.0
        self.list_delay = 0.0

    async def get_ticket(self, record_id: str) -> Optional[dict]:
        if self.on_get is not None:
            self.on_get(record_id)
        if self.get_delay:
            await asyncio.sleep(self.get_delay)
        ticket = self.tickets.get(record_id)
        return dict(ticket) if ticket is not None else None

    async def list_requester_tickets(self, requester_id: str, *, top: int) -> list[dict]:
        if self.fail_requester:
            raise RemoteServiceException("HTTP 503", status_code=503, transient=True)
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        return [dict(item) for item in self.requester_tickets.get(requester_id, [])[:top]]
