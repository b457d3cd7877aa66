"""
Monitor Application Services
=============================

Tiered change polling with publish/subscribe delivery.

State lives in explicit objects passed to the monitor (WatchRegistry,
ChangeBus) and every scheduled job belongs to a MonitorHandle that can
cancel it.
"""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from itsm_grounding.config import ChangeType, settings
from itsm_grounding.core import RemoteServiceException
from itsm_grounding.monitor.domain import ChangeEvent, MonitoringStatus, WatchedRecord
from itsm_grounding.shared.infrastructure.logging import get_logger
from itsm_grounding.snapshot.domain import Incident

logger = get_logger(__name__)

ChangeListener = Callable[[List[ChangeEvent]], Any]


# ========== Collaborator Interfaces (Dependency Inversion) ==========

class ITicketFeed(ABC):
    """Interface for reading current ticket state from the remote platform."""

    @abstractmethod
    async def get_ticket(self, record_id: str) -> Optional[dict]:
        """Get one incident by RecId, or None if it does not exist."""

    @abstractmethod
    async def list_requester_tickets(self, requester_id: str, *, top: int) -> List[dict]:
        """List the newest incidents raised by a requester."""


class IPollScheduler(ABC):
    """Interface for the background job scheduler driving the polls."""

    @abstractmethod
    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[Any]],
        seconds: int,
        first_run_in: float,
    ) -> None:
        """Run func every ``seconds``, first after ``first_run_in`` seconds."""

    @abstractmethod
    def remove_job(self, job_id: str) -> bool:
        """Remove a job, returning False if it did not exist."""


# ========== State Holders ==========

class WatchRegistry:
    """
    Per-actor maps of watched records.

    Slots are replaced wholesale, never mutated in place.
    """

    def __init__(self):
        self._slots: Dict[str, Dict[str, WatchedRecord]] = {}

    def get(self, actor_id: str) -> Dict[str, WatchedRecord]:
        return dict(self._slots.get(actor_id, {}))

    def has(self, actor_id: str) -> bool:
        return actor_id in self._slots

    def replace(self, actor_id: str, records: Dict[str, WatchedRecord]) -> None:
        self._slots[actor_id] = dict(records)

    def add(self, actor_id: str, record: WatchedRecord) -> None:
        slot = self.get(actor_id)
        slot[record.record_id] = record
        self.replace(actor_id, slot)

    def discard(self, actor_id: str) -> None:
        self._slots.pop(actor_id, None)


class ChangeBus:
    """Publish/subscribe fan-out of change events."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, events: List[ChangeEvent]) -> None:
        """Deliver a batch to every listener; one failing listener never affects the others."""
        if not events:
            return
        for listener in list(self._listeners):
            try:
                result = listener(list(events))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Change listener failed",
                    extra={"event_count": len(events), "actor_id": events[0].actor_id, "error": str(e)}
                )


class MonitorHandle:
    """Owns the scheduled jobs of one actor's monitoring session."""

    def __init__(self, actor_id: str, scheduler: IPollScheduler, job_ids: List[str]):
        self.actor_id = actor_id
        self.job_ids = list(job_ids)
        self._scheduler = scheduler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def stop(self) -> None:
        """Cancel every job this handle owns. Safe to call twice."""
        if not self._active:
            return
        for job_id in self.job_ids:
            self._scheduler.remove_job(job_id)
        self._active = False
        logger.info("Monitoring stopped", extra={"actor_id": self.actor_id, "jobs": self.job_ids})


# ========== Application Services ==========

class ChangeMonitor:
    """
    Detects created and updated records for each monitored actor.

    Two tiers run per actor: explicitly watched records on a fast interval,
    the actor's own latest records on a slower one. The first own-records
    poll of a session seeds the watch map without emitting events.
    """

    def __init__(
        self,
        feed: ITicketFeed,
        scheduler: IPollScheduler,
        registry: Optional[WatchRegistry] = None,
        bus: Optional[ChangeBus] = None,
        watched_interval_seconds: Optional[int] = None,
        own_interval_seconds: Optional[int] = None,
        initial_delay_seconds: Optional[float] = None,
        retention_days: Optional[int] = None,
        own_window: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._feed = feed
        self._scheduler = scheduler
        self._registry = registry or WatchRegistry()
        self._bus = bus or ChangeBus()
        self._watched_interval = watched_interval_seconds or settings.monitor_watched_interval_seconds
        self._own_interval = own_interval_seconds or settings.monitor_own_interval_seconds
        self._initial_delay = (
            settings.monitor_initial_delay_seconds
            if initial_delay_seconds is None else initial_delay_seconds
        )
        self._retention_seconds = (retention_days or settings.monitor_retention_days) * 24 * 60 * 60
        self._own_window = own_window or settings.monitor_own_window
        self._clock = clock
        self._handles: Dict[str, MonitorHandle] = {}
        self._seeded: set = set()

    @property
    def registry(self) -> WatchRegistry:
        return self._registry

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to change events; returns an unsubscribe callable."""
        return self._bus.subscribe(listener)

    # ---------- Lifecycle ----------

    def start_monitoring(self, actor_id: str) -> MonitorHandle:
        """Schedule both polling tiers for an actor, reusing a live session."""
        existing = self._handles.get(actor_id)
        if existing is not None and existing.active:
            return existing

        if not self._registry.has(actor_id):
            self._registry.replace(actor_id, {})
        self._seeded.discard(actor_id)

        watched_job = f"monitor:{actor_id}:watched"
        own_job = f"monitor:{actor_id}:own"

        async def watched_tick() -> None:
            await self.poll_watched(actor_id)

        async def own_tick() -> None:
            await self.poll_own(actor_id)

        self._scheduler.add_interval_job(watched_job, watched_tick, self._watched_interval, self._initial_delay)
        self._scheduler.add_interval_job(own_job, own_tick, self._own_interval, self._initial_delay)

        handle = MonitorHandle(actor_id, self._scheduler, [watched_job, own_job])
        self._handles[actor_id] = handle
        logger.info(
            "Monitoring started",
            extra={
                "actor_id": actor_id,
                "watched_interval_seconds": self._watched_interval,
                "own_interval_seconds": self._own_interval
            }
        )
        return handle

    def stop_monitoring(self, actor_id: str) -> None:
        """Cancel an actor's jobs and discard its whole watch set."""
        handle = self._handles.pop(actor_id, None)
        if handle is not None:
            handle.stop()
        self._registry.discard(actor_id)
        self._seeded.discard(actor_id)

    def shutdown(self) -> None:
        for actor_id in list(self._handles):
            self.stop_monitoring(actor_id)

    def watch_record(self, actor_id: str, record: Incident) -> WatchedRecord:
        """Add a record to the actor's fast-tier watch set."""
        watched = WatchedRecord.from_incident(record, self._clock())
        self._registry.add(actor_id, watched)
        return watched

    def monitoring_status(self, actor_id: str) -> MonitoringStatus:
        handle = self._handles.get(actor_id)
        records = list(self._registry.get(actor_id).values())
        return MonitoringStatus(
            actor_id=actor_id,
            active=bool(handle and handle.active),
            watched_count=len(records),
            records=records,
        )

    # ---------- Polling ----------

    @staticmethod
    def _validate(raw: Optional[dict]) -> Optional[Incident]:
        if raw is None:
            return None
        try:
            return Incident.model_validate(raw)
        except ValueError:
            logger.warning("Ignoring invalid ticket payload")
            return None

    def _commit(
        self,
        actor_id: str,
        polled: Dict[str, WatchedRecord],
        updated: Dict[str, WatchedRecord],
        events: List[ChangeEvent],
    ) -> Optional[List[ChangeEvent]]:
        """
        Replace the actor's slot with the result of a check and return the
        events still to publish, or None if the slot was discarded.

        Records watched while the check was in flight are carried over, and
        a newer stamp committed meanwhile by the other tier is kept. An event
        is dropped when the slot already holds the stamp it reports.
        """
        if not self._registry.has(actor_id):
            return None
        now = self._clock()
        latest = self._registry.get(actor_id)

        pending = []
        for event in events:
            current = latest.get(event.id)
            if current is not None and current.last_modified == updated[event.id].last_modified:
                logger.debug("Change already reported", extra={"actor_id": actor_id, "record_id": event.id})
                continue
            pending.append(event)

        for record_id, current in latest.items():
            before = polled.get(record_id)
            if record_id not in updated:
                updated[record_id] = current
            elif (
                before is not None
                and current.last_modified != before.last_modified
                and updated[record_id].last_modified == before.last_modified
            ):
                updated[record_id] = current

        self._registry.replace(
            actor_id,
            {
                record_id: record for record_id, record in updated.items()
                if not record.is_stale(now, self._retention_seconds)
            },
        )
        return pending

    async def _emit(self, events: List[ChangeEvent]) -> None:
        if events:
            logger.info("Changes detected", extra={"count": len(events), "actor_id": events[0].actor_id})
            await self._bus.publish(events)

    async def poll_watched(self, actor_id: str) -> List[ChangeEvent]:
        """Refetch every watched record and emit updates for changed ones."""
        polled = self._registry.get(actor_id)
        if not polled:
            return []

        async def refetch(record: WatchedRecord) -> Optional[Incident]:
            try:
                return self._validate(await self._feed.get_ticket(record.record_id))
            except RemoteServiceException as e:
                logger.warning(
                    "Watched record refetch failed",
                    extra={"actor_id": actor_id, "record_id": record.record_id, "error": e.message}
                )
                return None

        records = list(polled.values())
        current = await asyncio.gather(*(refetch(record) for record in records))

        now = self._clock()
        events: List[ChangeEvent] = []
        updated: Dict[str, WatchedRecord] = {}
        for record, incident in zip(records, current):
            if incident is None:
                updated[record.record_id] = record
            elif record.has_changed(incident):
                events.append(ChangeEvent(
                    type=ChangeType.UPDATED,
                    id=record.record_id,
                    actor_id=actor_id,
                    timestamp=now,
                    number=incident.number or record.number,
                    changed_fields=record.changed_fields(incident),
                ))
                updated[record.record_id] = WatchedRecord.from_incident(incident, now)
            else:
                updated[record.record_id] = record.touched(now)

        pending = self._commit(actor_id, polled, updated, events)
        if pending is None:
            return []
        await self._emit(pending)
        return pending

    async def poll_own(self, actor_id: str) -> List[ChangeEvent]:
        """List the actor's latest records, emitting created and updated events."""
        try:
            raws = await self._feed.list_requester_tickets(actor_id, top=self._own_window)
        except RemoteServiceException as e:
            logger.warning("Own records poll failed", extra={"actor_id": actor_id, "error": e.message})
            return []

        polled = self._registry.get(actor_id)
        seeding = actor_id not in self._seeded
        now = self._clock()
        events: List[ChangeEvent] = []
        updated: Dict[str, WatchedRecord] = dict(polled)

        for raw in raws:
            incident = self._validate(raw)
            if incident is None or not incident.modified_stamp:
                continue
            existing = polled.get(incident.rec_id)
            if existing is None:
                if not seeding:
                    events.append(ChangeEvent(
                        type=ChangeType.CREATED,
                        id=incident.rec_id,
                        actor_id=actor_id,
                        timestamp=now,
                        number=incident.number,
                    ))
                updated[incident.rec_id] = WatchedRecord.from_incident(incident, now)
            elif existing.has_changed(incident):
                events.append(ChangeEvent(
                    type=ChangeType.UPDATED,
                    id=incident.rec_id,
                    actor_id=actor_id,
                    timestamp=now,
                    number=incident.number,
                    changed_fields=existing.changed_fields(incident),
                ))
                updated[incident.rec_id] = WatchedRecord.from_incident(incident, now)
            else:
                updated[incident.rec_id] = existing.touched(now)

        pending = self._commit(actor_id, polled, updated, events)
        if pending is None:
            return []
        self._seeded.add(actor_id)
        await self._emit(pending)
        return pending
