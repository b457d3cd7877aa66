"""
Snapshot External Service Integrations
=======================================

OData adapter for the ITSM platform REST API.

Serves both the snapshot builder (paged listings, fieldsets) and the change
monitor (single-ticket lookups, requester tickets). Collections answer with
``{"value": [...]}``; anything else counts as a malformed response.
"""

from typing import Any, Dict, List, Optional, Sequence

from itsm_grounding.config import EntityType, settings
from itsm_grounding.core import RemoteServiceException
from itsm_grounding.infrastructure.remote import RemoteClient
from itsm_grounding.monitor.application import ITicketFeed
from itsm_grounding.shared.infrastructure.logging import get_logger
from itsm_grounding.snapshot.application import IListingSource

logger = get_logger(__name__)


def odata_literal(value: str) -> str:
    """Quote a string for an OData filter expression."""
    return "'" + value.replace("'", "''") + "'"


def probe_filter(probe: str, fields: Sequence[str]) -> str:
    """Case-insensitive substring match of probe over any of the fields."""
    literal = odata_literal(probe.lower())
    return " or ".join(f"contains(tolower({name}),{literal})" for name in fields)


class ITSMRestSource(IListingSource, ITicketFeed):
    """
    Listing source and ticket feed over the platform's OData collections.

    Entity types map to collection names through settings.remote_endpoints.
    """

    def __init__(self, client: RemoteClient, endpoints: Optional[Dict[str, str]] = None):
        self._client = client
        self._endpoints = endpoints or settings.remote_endpoints

    def _collection(self, entity_type: str) -> str:
        try:
            return self._endpoints[entity_type]
        except KeyError as e:
            raise RemoteServiceException(f"No endpoint configured for {entity_type}") from e

    @staticmethod
    def _values(payload: Any, path: str) -> List[dict]:
        if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
            raise RemoteServiceException("Unexpected response shape", details={"path": path})
        return [item for item in payload["value"] if isinstance(item, dict)]

    async def _query(self, entity_type: str, params: Dict[str, Any]) -> List[dict]:
        path = f"/{self._collection(entity_type)}"
        payload = await self._client.get_json(path, params=params)
        return self._values(payload, path)

    async def list_records(
        self,
        entity_type: str,
        *,
        top: int,
        skip: int = 0,
        probe: Optional[str] = None,
        probe_fields: Sequence[str] = (),
    ) -> List[dict]:
        params: Dict[str, Any] = {"$top": top, "$skip": skip}
        if probe and probe_fields:
            params["$filter"] = probe_filter(probe, probe_fields)
        return await self._query(entity_type, params)

    async def list_requester_tickets(self, requester_id: str, *, top: int) -> List[dict]:
        return await self._query(
            EntityType.INCIDENTS,
            {
                "$filter": f"ProfileLink_RecID eq {odata_literal(requester_id)}",
                "$orderby": "CreatedDateTime desc",
                "$top": top,
            },
        )

    async def get_ticket(self, record_id: str) -> Optional[dict]:
        records = await self._query(
            EntityType.INCIDENTS,
            {"$filter": f"RecId eq {odata_literal(record_id)}", "$top": 1},
        )
        return records[0] if records else None

    async def fetch_offering_fieldset(self, offering_id: str) -> dict:
        path = settings.remote_fieldset_path.format(offering_id=offering_id)
        payload = await self._client.get_json(self._client.origin_url(path))
        if not isinstance(payload, dict):
            raise RemoteServiceException("Unexpected fieldset shape", details={"path": path})
        return payload
