"""Tests for tiered change polling and event delivery."""

from __future__ import annotations

import asyncio

import pytest

from itsm_grounding.config import ChangeType
from itsm_grounding.monitor.application import ChangeBus, ChangeMonitor, MonitorHandle
from itsm_grounding.monitor.domain import ChangeEvent, WatchedRecord
from itsm_grounding.monitor.infrastructure import MonitorScheduler
from itsm_grounding.snapshot.domain import Incident
from tests.fakes.fake_clock import FakeClock
from tests.fakes.fake_remote import FakeTicketFeed
from tests.fakes.fake_scheduler import FakePollScheduler
from tests.fakes.records import REQUESTER_ID, incident

ACTOR = REQUESTER_ID


def event(record_id: str = "R1") -> ChangeEvent:
    return ChangeEvent(type=ChangeType.UPDATED, id=record_id, actor_id=ACTOR, timestamp=1.0)


@pytest.fixture
def feed() -> FakeTicketFeed:
    return FakeTicketFeed()


@pytest.fixture
def scheduler() -> FakePollScheduler:
    return FakePollScheduler()


@pytest.fixture
def monitor(feed: FakeTicketFeed, scheduler: FakePollScheduler, clock: FakeClock) -> ChangeMonitor:
    return ChangeMonitor(
        feed,
        scheduler,
        watched_interval_seconds=30,
        own_interval_seconds=60,
        initial_delay_seconds=5,
        retention_days=7,
        own_window=20,
        clock=clock,
    )


@pytest.fixture
def received(monitor: ChangeMonitor) -> list[list[ChangeEvent]]:
    batches: list[list[ChangeEvent]] = []
    monitor.on_change(batches.append)
    return batches


class TestChangeBus:
    @pytest.mark.asyncio
    async def test_batch_reaches_every_listener(self) -> None:
        bus = ChangeBus()
        first, second = [], []
        bus.subscribe(first.append)

        async def async_listener(events):
            second.append(events)

        bus.subscribe(async_listener)
        await bus.publish([event("R1"), event("R2")])

        assert [len(batch) for batch in first] == [2]
        assert [len(batch) for batch in second] == [2]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self) -> None:
        bus = ChangeBus()
        delivered = []

        def broken(events):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(delivered.append)
        await bus.publish([event()])

        assert len(delivered) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = ChangeBus()
        delivered = []
        unsubscribe = bus.subscribe(delivered.append)
        unsubscribe()
        unsubscribe()

        await bus.publish([event()])

        assert delivered == []
        assert bus.listener_count == 0

    @pytest.mark.asyncio
    async def test_empty_batch_is_not_published(self) -> None:
        bus = ChangeBus()
        delivered = []
        bus.subscribe(delivered.append)
        await bus.publish([])
        assert delivered == []


class TestLifecycle:
    def test_start_schedules_both_tiers(self, monitor: ChangeMonitor, scheduler: FakePollScheduler) -> None:
        handle = monitor.start_monitoring(ACTOR)

        assert scheduler.jobs[f"monitor:{ACTOR}:watched"]["seconds"] == 30
        assert scheduler.jobs[f"monitor:{ACTOR}:own"]["seconds"] == 60
        assert all(job["first_run_in"] == 5 for job in scheduler.jobs.values())
        assert handle.active

    def test_start_twice_reuses_session(self, monitor: ChangeMonitor, scheduler: FakePollScheduler) -> None:
        first = monitor.start_monitoring(ACTOR)
        second = monitor.start_monitoring(ACTOR)
        assert first is second
        assert len(scheduler.jobs) == 2

    def test_stop_cancels_jobs_and_discards_watch_set(
        self, monitor: ChangeMonitor, scheduler: FakePollScheduler, clock: FakeClock
    ) -> None:
        handle = monitor.start_monitoring(ACTOR)
        monitor.watch_record(ACTOR, Incident.model_validate(incident(10452, ACTOR, "2025-03-01T09:00:00Z")))

        monitor.stop_monitoring(ACTOR)

        assert scheduler.jobs == {}
        assert not handle.active
        status = monitor.monitoring_status(ACTOR)
        assert (status.active, status.watched_count) == (False, 0)

    def test_handle_stop_is_idempotent(self, scheduler: FakePollScheduler) -> None:
        handle = MonitorHandle(ACTOR, scheduler, ["a", "b"])
        handle.stop()
        handle.stop()
        assert scheduler.removed == ["a", "b"]

    def test_shutdown_stops_everyone(self, monitor: ChangeMonitor, scheduler: FakePollScheduler) -> None:
        monitor.start_monitoring("actor-1")
        monitor.start_monitoring("actor-2")
        monitor.shutdown()
        assert scheduler.jobs == {}


class TestWatchedTier:
    @pytest.mark.asyncio
    async def test_modified_record_emits_update(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, received, clock: FakeClock
    ) -> None:
        original = incident(10452, ACTOR, "2025-03-01T09:00:00Z")
        monitor.watch_record(ACTOR, Incident.model_validate(original))
        feed.tickets[original["RecId"]] = {
            **original, "Status": "Resolved", "LastModDateTime": "2025-03-02T10:00:00Z"
        }

        events = await monitor.poll_watched(ACTOR)

        assert len(events) == 1
        assert events[0].type == ChangeType.UPDATED
        assert events[0].number == "10452"
        assert events[0].changed_fields == ["status"]
        assert received == [events]

        assert await monitor.poll_watched(ACTOR) == []
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unchanged_record_is_touched(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, received, clock: FakeClock
    ) -> None:
        original = incident(10452, ACTOR, "2025-03-01T09:00:00Z")
        monitor.watch_record(ACTOR, Incident.model_validate(original))
        feed.tickets[original["RecId"]] = original
        clock.advance(30)

        assert await monitor.poll_watched(ACTOR) == []
        assert monitor.registry.get(ACTOR)[original["RecId"]].last_checked_at == clock()
        assert received == []

    @pytest.mark.asyncio
    async def test_records_past_retention_are_pruned(
        self, monitor: ChangeMonitor, clock: FakeClock
    ) -> None:
        monitor.watch_record(ACTOR, Incident.model_validate(incident(10452, ACTOR, "2025-03-01T09:00:00Z")))
        clock.advance(8 * 24 * 60 * 60)

        await monitor.poll_watched(ACTOR)

        assert monitor.registry.get(ACTOR) == {}

    @pytest.mark.asyncio
    async def test_stop_during_check_keeps_slot_discarded(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, received
    ) -> None:
        original = incident(10452, ACTOR, "2025-03-01T09:00:00Z")
        monitor.start_monitoring(ACTOR)
        monitor.watch_record(ACTOR, Incident.model_validate(original))
        feed.tickets[original["RecId"]] = {**original, "LastModDateTime": "2025-03-05T00:00:00Z"}
        feed.on_get = lambda record_id: monitor.stop_monitoring(ACTOR)

        assert await monitor.poll_watched(ACTOR) == []
        assert not monitor.registry.has(ACTOR)
        assert received == []

    @pytest.mark.asyncio
    async def test_record_watched_during_check_is_kept(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, clock: FakeClock
    ) -> None:
        first = incident(10452, ACTOR, "2025-03-01T09:00:00Z")
        late = Incident.model_validate(incident(10453, ACTOR, "2025-03-01T09:00:00Z"))
        monitor.watch_record(ACTOR, Incident.model_validate(first))
        feed.tickets[first["RecId"]] = first
        feed.on_get = lambda record_id: monitor.watch_record(ACTOR, late)

        await monitor.poll_watched(ACTOR)

        assert set(monitor.registry.get(ACTOR)) == {first["RecId"], late.rec_id}


class TestOwnTier:
    @pytest.mark.asyncio
    async def test_first_poll_seeds_silently(self, monitor: ChangeMonitor, feed: FakeTicketFeed, received) -> None:
        monitor.start_monitoring(ACTOR)
        feed.requester_tickets[ACTOR] = [
            incident(10451, ACTOR, "2025-03-01T09:00:00Z"),
            incident(10452, ACTOR, "2025-03-02T09:00:00Z"),
        ]

        assert await monitor.poll_own(ACTOR) == []
        assert received == []
        assert len(monitor.registry.get(ACTOR)) == 2

    @pytest.mark.asyncio
    async def test_new_and_modified_records_are_one_batch(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, received
    ) -> None:
        monitor.start_monitoring(ACTOR)
        feed.requester_tickets[ACTOR] = [incident(10451, ACTOR, "2025-03-01T09:00:00Z")]
        await monitor.poll_own(ACTOR)

        feed.requester_tickets[ACTOR] = [
            incident(10453, ACTOR, "2025-03-03T09:00:00Z"),
            incident(10451, ACTOR, "2025-03-01T09:00:00Z", Priority=1, LastModDateTime="2025-03-03T10:00:00Z"),
        ]
        events = await monitor.poll_own(ACTOR)

        assert [(e.type, e.number) for e in events] == [
            (ChangeType.CREATED, "10453"),
            (ChangeType.UPDATED, "10451"),
        ]
        assert events[1].changed_fields == ["priority"]
        assert received == [events]

    @pytest.mark.asyncio
    async def test_remote_failure_is_swallowed_into_empty_result(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, received
    ) -> None:
        feed.fail_requester = True
        assert await monitor.poll_own(ACTOR) == []
        assert received == []

    @pytest.mark.asyncio
    async def test_restart_seeds_again(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, scheduler: FakePollScheduler, received
    ) -> None:
        monitor.start_monitoring(ACTOR)
        feed.requester_tickets[ACTOR] = [incident(10451, ACTOR, "2025-03-01T09:00:00Z")]
        await scheduler.run(f"monitor:{ACTOR}:own")

        monitor.stop_monitoring(ACTOR)
        monitor.start_monitoring(ACTOR)
        feed.requester_tickets[ACTOR].append(incident(10452, ACTOR, "2025-03-02T09:00:00Z"))
        await scheduler.run(f"monitor:{ACTOR}:own")

        assert received == []

    @pytest.mark.asyncio
    async def test_scheduled_watched_job_polls(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, scheduler: FakePollScheduler, received
    ) -> None:
        original = incident(10452, ACTOR, "2025-03-01T09:00:00Z")
        monitor.start_monitoring(ACTOR)
        monitor.watch_record(ACTOR, Incident.model_validate(original))
        feed.tickets[original["RecId"]] = {**original, "LastModDateTime": "2025-03-09T09:00:00Z"}

        await scheduler.run(f"monitor:{ACTOR}:watched")

        assert len(received) == 1


class TestOverlappingTiers:
    CHANGED_STAMP = "2025-03-02T10:00:00Z"

    @staticmethod
    async def track_in_both_tiers(monitor: ChangeMonitor, feed: FakeTicketFeed) -> dict:
        original = incident(10452, ACTOR, "2025-03-01T09:00:00Z")
        monitor.start_monitoring(ACTOR)
        feed.requester_tickets[ACTOR] = [original]
        await monitor.poll_own(ACTOR)
        monitor.watch_record(ACTOR, Incident.model_validate(original))
        return original

    @pytest.mark.asyncio
    @pytest.mark.parametrize("slow_call", ["get_delay", "list_delay"])
    async def test_change_seen_by_both_tiers_is_reported_once(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, received, slow_call: str
    ) -> None:
        original = await self.track_in_both_tiers(monitor, feed)
        changed = {**original, "Status": "Resolved", "LastModDateTime": self.CHANGED_STAMP}
        feed.tickets[original["RecId"]] = changed
        feed.requester_tickets[ACTOR] = [changed]
        setattr(feed, slow_call, 0.01)

        await asyncio.gather(monitor.poll_watched(ACTOR), monitor.poll_own(ACTOR))

        assert sum(len(batch) for batch in received) == 1
        assert received[0][0].changed_fields == ["status"]
        assert monitor.registry.get(ACTOR)[original["RecId"]].last_modified == self.CHANGED_STAMP

    @pytest.mark.asyncio
    async def test_stale_check_does_not_roll_back_newer_stamp(
        self, monitor: ChangeMonitor, feed: FakeTicketFeed, received
    ) -> None:
        original = await self.track_in_both_tiers(monitor, feed)
        feed.tickets[original["RecId"]] = original
        feed.requester_tickets[ACTOR] = [{**original, "LastModDateTime": self.CHANGED_STAMP}]
        feed.get_delay = 0.01

        await asyncio.gather(monitor.poll_watched(ACTOR), monitor.poll_own(ACTOR))
        assert monitor.registry.get(ACTOR)[original["RecId"]].last_modified == self.CHANGED_STAMP

        feed.tickets[original["RecId"]] = {**original, "LastModDateTime": self.CHANGED_STAMP}
        feed.get_delay = 0.0
        assert await monitor.poll_watched(ACTOR) == []
        assert sum(len(batch) for batch in received) == 1


class TestWatchedRecord:
    def test_changed_fields(self) -> None:
        before = Incident.model_validate(incident(1, ACTOR, "2025-03-01T09:00:00Z"))
        after = Incident.model_validate(incident(1, ACTOR, "2025-03-01T09:00:00Z", Owner="Sam", Status="Waiting"))
        record = WatchedRecord.from_incident(before, 10.0)
        assert record.changed_fields(after) == ["status", "owner"]

    def test_unknown_event_type(self) -> None:
        with pytest.raises(ValueError):
            ChangeEvent(type="deleted", id="R1", actor_id=ACTOR, timestamp=1.0)


class TestMonitorScheduler:
    @pytest.mark.asyncio
    async def test_jobs_are_added_and_removed(self) -> None:
        scheduler = MonitorScheduler()
        await scheduler.start()

        async def tick() -> None:
            return None

        scheduler.add_interval_job("monitor:x:own", tick, seconds=60, first_run_in=5)
        assert scheduler.job_ids() == ["monitor:x:own"]
        assert scheduler.remove_job("monitor:x:own") is True
        assert scheduler.remove_job("monitor:x:own") is False

        await scheduler.stop()
        assert not scheduler.is_running

    def test_add_before_start(self) -> None:
        async def tick() -> None:
            return None

        with pytest.raises(RuntimeError):
            MonitorScheduler().add_interval_job("job", tick, seconds=1, first_run_in=0)
