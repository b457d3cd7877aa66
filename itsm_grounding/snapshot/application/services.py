"""
Snapshot Application Services
==============================

Builds, persists and serves the local mirror of the ITSM platform.

Following SOLID principles:
- Dependency Inversion: the builder depends on listing, repository and
  sync-tracker abstractions, never on HTTP or SQL directly
- Single Responsibility: fetching strategy lives in SectionPlan, record
  validation in the domain models
"""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from itsm_grounding.cache.application import PersistentCache
from itsm_grounding.config import CacheType, EntityType, ProgressStage, settings
from itsm_grounding.core import RemoteServiceException, StorageQuotaExceeded
from itsm_grounding.shared.infrastructure.logging import get_logger, log_latency
from itsm_grounding.snapshot.domain import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_SECTION_PLANS,
    PROBE_ALPHABET,
    DedupCollector,
    Incident,
    RemoteRecord,
    RequestOffering,
    SectionPlan,
    Snapshot,
    SnapshotSearch,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int, str], Any]
T = TypeVar("T")
R = TypeVar("R")

GLOBAL_SYNC_SCOPE = "global"


# ========== Collaborator Interfaces (Dependency Inversion) ==========

class IListingSource(ABC):
    """Interface for paged listings from the remote platform."""

    @abstractmethod
    async def list_records(
        self,
        entity_type: str,
        *,
        top: int,
        skip: int = 0,
        probe: Optional[str] = None,
        probe_fields: Sequence[str] = (),
    ) -> List[dict]:
        """
        List one page of raw records.

        Raises:
            RemoteServiceException: If the page could not be fetched
        """

    @abstractmethod
    async def list_requester_tickets(self, requester_id: str, *, top: int) -> List[dict]:
        """List the newest incidents raised by a requester."""

    @abstractmethod
    async def fetch_offering_fieldset(self, offering_id: str) -> dict:
        """Fetch the form fieldset of a request offering."""


class ISnapshotRepository(ABC):
    """Interface for snapshot persistence."""

    @abstractmethod
    async def load_raw(self) -> Optional[dict]:
        """Get the stored snapshot document, unvalidated."""

    @abstractmethod
    async def save(self, snapshot: Snapshot) -> None:
        """Replace the stored snapshot."""

    @abstractmethod
    async def delete(self) -> None:
        """Remove the stored snapshot."""


class ISyncTracker(ABC):
    """Interface for per-actor, per-resource last-sync marks."""

    @abstractmethod
    async def get_last_sync(self, actor_id: str, resource: str) -> Optional[float]:
        """Get when a resource was last synced for an actor."""

    @abstractmethod
    async def set_last_sync(self, actor_id: str, resource: str, synced_at: float) -> None:
        """Record when a resource was synced for an actor."""


# ========== Helpers ==========

async def gather_in_batches(
    items: Sequence[T],
    fetch: Callable[[T], Awaitable[R]],
    batch_size: int,
    delay_seconds: float,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> List[Optional[R]]:
    """
    Run ``fetch`` over items with at most ``batch_size`` calls in flight.

    A failed call yields None in its slot. Batches are separated by
    ``delay_seconds``.
    """
    results: List[Optional[R]] = []
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        outcomes = await asyncio.gather(*(fetch(item) for item in batch), return_exceptions=True)
        for item, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Batched fetch failed", extra={"item": str(item), "error": str(outcome)})
                results.append(None)
            else:
                results.append(outcome)
        if start + batch_size < len(items) and delay_seconds > 0:
            await sleep(delay_seconds)
    return results


class _ProgressReporter:
    """Forwards progress to an optional callback with non-decreasing percentages."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self._last_percent = 0

    async def report(self, stage: str, percent: int, message: str) -> None:
        percent = max(self._last_percent, min(100, percent))
        self._last_percent = percent
        if self._callback is None:
            return
        try:
            result = self._callback(stage, percent, message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Progress callback failed", extra={"stage": stage, "error": str(e)})


# ========== Application Services ==========

class SnapshotBuilder:
    """
    Builds the snapshot section by section and serves the stored copy.

    A section that fails yields an empty list; the build always completes.
    """

    def __init__(
        self,
        source: IListingSource,
        repository: ISnapshotRepository,
        cache: PersistentCache,
        sync_tracker: Optional[ISyncTracker] = None,
        plans: Optional[List[SectionPlan]] = None,
        max_age_minutes: Optional[int] = None,
        own_ticket_limit: Optional[int] = None,
        prefetch_batch_size: Optional[int] = None,
        prefetch_batch_delay_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._source = source
        self._repository = repository
        self._cache = cache
        self._sync_tracker = sync_tracker
        self._plans = plans if plans is not None else list(DEFAULT_SECTION_PLANS)
        self._max_age_seconds = (max_age_minutes or settings.snapshot_max_age_minutes) * 60
        self._own_ticket_limit = own_ticket_limit or settings.snapshot_own_ticket_limit
        self._prefetch_batch_size = prefetch_batch_size or settings.prefetch_batch_size
        self._prefetch_batch_delay = (
            settings.prefetch_batch_delay_seconds
            if prefetch_batch_delay_seconds is None else prefetch_batch_delay_seconds
        )
        self._clock = clock
        self._sleep = sleep
        self._build_lock = asyncio.Lock()

    # ---------- Fetching ----------

    async def _paginate(
        self,
        plan: SectionPlan,
        collector: DedupCollector,
        page_size: int,
        max_pages: int,
        probe: Optional[str] = None,
    ) -> None:
        for page_index in range(max_pages):
            if collector.full:
                return
            try:
                page = await self._source.list_records(
                    plan.entity_type,
                    top=page_size,
                    skip=page_index * page_size,
                    probe=probe,
                    probe_fields=plan.probe_fields if probe else (),
                )
            except RemoteServiceException as e:
                logger.warning(
                    "Pagination stopped by remote failure",
                    extra={"section": plan.entity_type, "probe": probe, "page": page_index, "error": e.message}
                )
                return

            collector.add_page(page)
            if len(page) < page_size:
                return

    async def fetch_section(self, plan: SectionPlan) -> List[RemoteRecord]:
        """
        Fetch one section with offset pagination, then keyspace probing
        when pagination came back short.
        """
        collector = DedupCollector(plan)
        await self._paginate(plan, collector, plan.page_size, plan.max_pages)

        if plan.probes_enabled and len(collector.records) < plan.probe_threshold:
            logger.info(
                "Pagination returned too few records, probing keyspace",
                extra={"section": plan.entity_type, "count": len(collector.records)}
            )
            for letter in PROBE_ALPHABET:
                if collector.full:
                    break
                await self._paginate(plan, collector, plan.probe_page_size, plan.probe_max_pages, probe=letter)

        if collector.rejected:
            logger.warning(
                "Dropped records that failed validation",
                extra={"section": plan.entity_type, "rejected": collector.rejected}
            )
        return collector.records

    async def fetch_own_tickets(self, actor_id: str) -> List[Incident]:
        """Fetch the acting identity's own requester tickets."""
        page = await self._source.list_requester_tickets(actor_id, top=self._own_ticket_limit)
        collector = DedupCollector(
            SectionPlan(EntityType.OWN_REQUESTER_TICKETS, ProgressStage.USER_TICKETS, Incident,
                        page_size=self._own_ticket_limit, max_records=self._own_ticket_limit)
        )
        collector.add_page(page)
        return collector.records

    async def _mark_synced(self, actor_id: Optional[str], resource: str) -> None:
        if self._sync_tracker is None:
            return
        try:
            await self._sync_tracker.set_last_sync(actor_id or GLOBAL_SYNC_SCOPE, resource, self._clock())
        except Exception as e:
            logger.warning("Failed to record sync mark", extra={"resource": resource, "error": str(e)})

    # ---------- Building ----------

    async def build(
        self,
        actor_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Snapshot:
        """
        Build a fresh snapshot and persist it.

        Progress is reported per stage with a non-decreasing percentage and
        always ends with ("complete", 100, ...).
        """
        progress = _ProgressReporter(on_progress)
        total_steps = len(self._plans) + 3

        await progress.report(ProgressStage.STARTING, 0, "Clearing cached responses")
        await self._cache.clear_all()

        sections: Dict[str, List[RemoteRecord]] = {}
        for step, plan in enumerate(self._plans, start=1):
            await progress.report(plan.stage, step * 100 // total_steps, f"Loading {plan.entity_type}")
            try:
                with log_latency(logger, "snapshot_section", section=plan.entity_type):
                    sections[plan.entity_type] = await self.fetch_section(plan)
            except Exception as e:
                logger.error("Snapshot section failed", extra={"section": plan.entity_type, "error": str(e)})
                sections[plan.entity_type] = []
                continue
            await self._mark_synced(actor_id, plan.entity_type)

        own_tickets: List[Incident] = []
        if actor_id:
            await progress.report(
                ProgressStage.USER_TICKETS, (len(self._plans) + 1) * 100 // total_steps, "Loading your tickets"
            )
            try:
                own_tickets = await self.fetch_own_tickets(actor_id)
                await self._mark_synced(actor_id, EntityType.OWN_REQUESTER_TICKETS)
            except Exception as e:
                logger.error("Own ticket section failed", extra={"actor_id": actor_id, "error": str(e)})

        snapshot = Snapshot(
            **{entity_type: records for entity_type, records in sections.items() if entity_type in Snapshot.model_fields},
            own_requester_tickets=own_tickets,
            last_updated=self._clock(),
            schema_version=CURRENT_SCHEMA_VERSION,
        )

        await progress.report(
            ProgressStage.SAVING, (len(self._plans) + 2) * 100 // total_steps, "Saving snapshot"
        )
        await self._persist(snapshot)

        logger.info("Snapshot built", extra={"actor_id": actor_id, **snapshot.counts()})
        await progress.report(ProgressStage.COMPLETE, 100, "Snapshot ready")
        return snapshot

    async def _persist(self, snapshot: Snapshot) -> bool:
        try:
            await self._repository.save(snapshot)
            return True
        except StorageQuotaExceeded:
            logger.warning("Snapshot exceeds storage quota, clearing cache and retrying")
        except Exception as e:
            logger.error("Failed to persist snapshot", extra={"error": str(e)})
            return False

        await self._cache.clear_all()
        try:
            await self._repository.save(snapshot)
            return True
        except Exception as e:
            logger.error("Snapshot kept in memory only, persisting failed twice", extra={"error": str(e)})
            return False

    # ---------- Serving ----------

    async def load(self) -> Optional[Snapshot]:
        """
        Get the stored snapshot if it has the current schema and is fresh.

        A snapshot with another schema version, or one that no longer
        validates, is deleted.
        """
        try:
            raw = await self._repository.load_raw()
        except Exception as e:
            logger.error("Failed to read stored snapshot", extra={"error": str(e)})
            return None
        if raw is None:
            return None

        version = raw.get("schema_version") if isinstance(raw, dict) else None
        if version != CURRENT_SCHEMA_VERSION:
            logger.info(
                "Discarding snapshot with outdated schema",
                extra={"stored_version": version, "current_version": CURRENT_SCHEMA_VERSION}
            )
            await self._repository.delete()
            return None

        try:
            snapshot = Snapshot.model_validate(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable snapshot", extra={"error": str(e)})
            await self._repository.delete()
            return None

        if not snapshot.is_fresh(self._max_age_seconds, now=self._clock()):
            logger.info("Stored snapshot expired", extra={"age_seconds": round(snapshot.age_seconds(self._clock()))})
            return None
        return snapshot

    async def get_or_build(
        self,
        actor_id: Optional[str] = None,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Snapshot:
        """Serve the stored snapshot, rebuilding when forced, missing, outdated or expired."""
        async with self._build_lock:
            if not force:
                snapshot = await self.load()
                if snapshot is not None:
                    return snapshot
            return await self.build(actor_id, on_progress)

    async def search(self, entity_type: str, term: Optional[str] = None) -> List[RemoteRecord]:
        """Search the stored snapshot; no snapshot means no results."""
        snapshot = await self.load()
        if snapshot is None:
            return []
        return SnapshotSearch.search(snapshot, entity_type, term)

    async def last_sync(self, actor_id: Optional[str], resource: str) -> Optional[float]:
        if self._sync_tracker is None:
            return None
        return await self._sync_tracker.get_last_sync(actor_id or GLOBAL_SYNC_SCOPE, resource)

    # ---------- Prefetch ----------

    async def _fetch_fieldset(self, offering: RequestOffering) -> Optional[dict]:
        params = {"offering_id": offering.rec_id}
        cached = await self._cache.get(CacheType.FIELDSET, params)
        if cached is not None:
            return cached
        try:
            fieldset = await self._source.fetch_offering_fieldset(offering.rec_id)
        except RemoteServiceException as e:
            logger.warning("Fieldset fetch failed", extra={"offering_id": offering.rec_id, "error": e.message})
            return None
        await self._cache.set(CacheType.FIELDSET, params, fieldset)
        return fieldset

    async def prefetch_offering_fieldsets(self) -> List[dict]:
        """
        List request offerings and fetch their fieldsets in bounded batches.

        The combined result is cached under ``requestOfferingsComplete``.
        """
        cached = await self._cache.get(CacheType.REQUEST_OFFERINGS_COMPLETE, {})
        if cached is not None:
            return cached

        try:
            page = await self._source.list_records(EntityType.REQUEST_OFFERINGS, top=100)
        except RemoteServiceException as e:
            logger.warning("Request offering listing failed", extra={"error": e.message})
            return []

        collector = DedupCollector(
            SectionPlan(EntityType.REQUEST_OFFERINGS, ProgressStage.SERVICE_REQUESTS, RequestOffering)
        )
        collector.add_page(page)
        offerings = collector.records

        fieldsets = await gather_in_batches(
            offerings,
            self._fetch_fieldset,
            self._prefetch_batch_size,
            self._prefetch_batch_delay,
            sleep=self._sleep,
        )
        combined = [
            {"offering": offering.to_stored(), "fieldset": fieldset}
            for offering, fieldset in zip(offerings, fieldsets)
        ]

        await self._cache.set(CacheType.REQUEST_OFFERINGS, {}, [offering.to_stored() for offering in offerings])
        await self._cache.set(CacheType.REQUEST_OFFERINGS_COMPLETE, {}, combined)
        logger.info(
            "Prefetched request offering fieldsets",
            extra={"offerings": len(offerings), "fieldsets": sum(1 for f in fieldsets if f is not None)}
        )
        return combined
