"""Shared fixtures for itsm-grounding tests."""

from __future__ import annotations

import pytest

from itsm_grounding.cache.application import PersistentCache
from itsm_grounding.cache.infrastructure import InMemoryKeyValueStore
from itsm_grounding.grounding.domain import ActorContext
from itsm_grounding.snapshot.domain import Snapshot
from tests.fakes.fake_clock import FakeClock
from tests.fakes.records import AGENT_ID, OTHER_ID, REQUESTER_ID, employee, incident


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(quota_bytes=1_000_000)


@pytest.fixture
def cache(store: InMemoryKeyValueStore, clock: FakeClock) -> PersistentCache:
    return PersistentCache(store, clock=clock)


@pytest.fixture
def agent() -> ActorContext:
    return ActorContext(
        rec_id=AGENT_ID,
        login_id="aagent",
        full_name="Avery Agent",
        email="avery.agent@example.com",
        team="Service Desk",
        roles=["ServiceDeskAnalyst"],
    )


@pytest.fixture
def requester() -> ActorContext:
    return ActorContext(
        rec_id=REQUESTER_ID,
        login_id="rrequester",
        full_name="Riley Requester",
        email="riley.requester@example.com",
        roles=["SelfService"],
    )


@pytest.fixture
def snapshot(clock: FakeClock) -> Snapshot:
    """Small mixed snapshot: two requester incidents, one foreign incident, one foreign request."""
    return Snapshot.model_validate({
        "employees": [
            employee(REQUESTER_ID, "Riley Requester"),
            employee(OTHER_ID, "Casey Other"),
        ],
        "incidents": [
            incident(10451, REQUESTER_ID, "2025-03-01T09:00:00Z"),
            incident(10452, REQUESTER_ID, "2025-03-14T10:30:00Z"),
            incident(20999, OTHER_ID, "2025-03-01T11:00:00Z", Subject="Payroll export broken"),
        ],
        "service_requests": [
            {
                "RecId": "D0000000000000000000000000000004",
                "ServiceReqNumber": 5521,
                "Subject": "New laptop",
                "Status": "Submitted",
                "Service": "Hardware",
                "ProfileLink_RecID": OTHER_ID,
                "CreatedDateTime": "2025-03-02T08:00:00Z",
            },
        ],
        "categories": [{"RecId": "cat-1", "Name": "Network", "Service": "Connectivity"}],
        "services": [{"RecId": "svc-1", "Name": "Email", "Description": "Corporate mail", "IsActive": True}],
        "teams": [{"RecId": "team-1", "Name": "Service Desk", "Department": "IT"}],
        "departments": [{"RecId": "dep-1", "Name": "IT"}],
        "last_updated": clock() - 120,
    })
