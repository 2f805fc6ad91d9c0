"""Monitor cycle runner.

Collectors are registered into named groups (``checks``, ``cloud``,
``catalog``). A cycle for one group fans out one task per collector under an
``asyncio.TaskGroup``; every task owns its failure handling so one slow or
broken upstream never cancels its siblings.

Snapshot routing:
    scalar    -> EventEmitter.observe
    incidents -> IncidentDiffer.diff
    attacks   -> AttackSpikeDetector.evaluate
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Set

from pydantic import BaseModel, ValidationError

from constants import (
    SOURCE_DOMAINS,
    STATUS_OUTAGE,
    STATUS_UNKNOWN,
)
from core.cache import CacheService
from core.config import Settings
from core.errors import CollectorTimeoutError, SnapshotError
from core.logging import get_logger, log_execution_time
from models.database import Event
from models.snapshots import AttackSnapshot, IncidentSnapshot, ScalarSnapshot, Snapshot, parse_snapshot
from services.attack_spikes import AttackSpikeDetector
from services.cache_tiers import collector_tier, fetch_with_cache, invalidate_api_cache, response_tier
from services.collectors.base import Collector
from services.event_emitter import EventEmitter
from services.incident_differ import IncidentDiffer

logger = get_logger(__name__)

TIMEOUT_MESSAGE = "Collector timed out"


@dataclass
class CycleReport:
    """Outcome of one group cycle."""
    group: str
    succeeded: int = 0
    failed: int = 0
    events_emitted: int = 0
    domains: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group": self.group,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "events_emitted": self.events_emitted,
            "domains": sorted(self.domains),
        }


class MonitorService:
    """Runs registered collectors and feeds their snapshots to the detectors."""

    def __init__(self, settings: Settings, cache: CacheService, emitter: EventEmitter,
                 differ: IncidentDiffer, spikes: AttackSpikeDetector):
        self.settings = settings
        self.cache = cache
        self.emitter = emitter
        self.differ = differ
        self.spikes = spikes
        self.collector_tier = collector_tier(settings)
        self.response_tier = response_tier(settings)
        self._groups: Dict[str, List[Collector]] = defaultdict(list)

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, group: str, collector: Collector) -> None:
        """Add a collector to a group, replacing one with the same name."""
        collectors = [c for c in self._groups[group] if c.name != collector.name]
        collectors.append(collector)
        self._groups[group] = collectors
        logger.debug("Collector registered", group=group, collector=collector.name)

    def replace_group(self, group: str, collectors: Iterable[Collector]) -> None:
        """Swap a group's collectors, e.g. after the service catalog changed."""
        self._groups[group] = list(collectors)
        logger.info("Collector group replaced", group=group, count=len(self._groups[group]))

    def collectors(self, group: str) -> List[Collector]:
        return list(self._groups.get(group, []))

    @property
    def groups(self) -> List[str]:
        return sorted(self._groups)

    # =========================================================================
    # Cycle
    # =========================================================================

    async def run_cycle(self, group: str) -> CycleReport:
        """Run every collector in ``group`` concurrently.

        Returns:
            CycleReport with per-collector success/failure counts and the
            number of events written.
        """
        report = CycleReport(group=group)
        collectors = self.collectors(group)
        if not collectors:
            logger.debug("No collectors registered", group=group)
            return report

        start = time.time()
        async with asyncio.TaskGroup() as tg:
            for collector in collectors:
                tg.create_task(self._run_collector(collector, report))

        await self._invalidate(report)
        log_execution_time(logger, f"cycle:{group}", start, time.time(),
                           succeeded=report.succeeded, failed=report.failed,
                           events_emitted=report.events_emitted)
        return report

    async def _run_collector(self, collector: Collector, report: CycleReport) -> None:
        """Fetch and dispatch one collector. Never raises."""
        try:
            try:
                snapshot = await self._fetch(collector)
            except (ValidationError, SnapshotError) as e:
                logger.warning("Malformed snapshot skipped", collector=collector.name, error=str(e))
                report.failed += 1
                return
            except CollectorTimeoutError as e:
                logger.warning("Collector timed out", collector=collector.name, timeout=e.timeout)
                events = await self._record_failure(collector, timed_out=True, message=TIMEOUT_MESSAGE)
                self._account(report, collector, events)
                report.failed += 1
                return
            except Exception as e:
                logger.warning("Collector failed", collector=collector.name, error=str(e))
                events = await self._record_failure(collector, timed_out=False, message=str(e))
                self._account(report, collector, events)
                report.failed += 1
                return

            events = await self._dispatch(collector, snapshot)
            self._account(report, collector, events)
            report.succeeded += 1
        except Exception as e:
            # Store failure while recording; the entity is retried next cycle
            logger.error("Collector processing failed", collector=collector.name,
                         error=str(e), exc_info=True)
            report.failed += 1

    @staticmethod
    def _account(report: CycleReport, collector: Collector, events: List[Event]) -> None:
        report.events_emitted += len(events)
        domain = SOURCE_DOMAINS.get(collector.source)
        if domain:
            report.domains.add(domain)

    async def _fetch(self, collector: Collector) -> Snapshot:
        """Call the collector through the collector cache tier, bounded by the timeout."""
        async def fetch_raw() -> Dict[str, Any]:
            result = await collector.fetch()
            if isinstance(result, BaseModel):
                return result.model_dump(mode="json")
            return result

        timeout = self.settings.collector_timeout
        try:
            async with asyncio.timeout(timeout):
                if collector.cache_ttl == 0:
                    data = await fetch_raw()
                else:
                    data = await fetch_with_cache(self.cache, self.collector_tier, collector.name,
                                                  fetch_raw, ttl=collector.cache_ttl)
        except TimeoutError as e:
            raise CollectorTimeoutError(collector.name, timeout) from e

        if not isinstance(data, dict):
            raise SnapshotError(collector.name, f"expected an object, got {type(data).__name__}")
        if data.get("kind") != collector.kind:
            raise SnapshotError(collector.name, f"expected {collector.kind}, got {data.get('kind')!r}")
        return parse_snapshot(data)

    async def _dispatch(self, collector: Collector, snapshot: Snapshot) -> List[Event]:
        source = collector.source
        if isinstance(snapshot, ScalarSnapshot):
            event = await self.emitter.observe(source, snapshot)
            return [event] if event else []
        if isinstance(snapshot, IncidentSnapshot):
            result = await self.differ.diff(source, snapshot)
            return result.events
        if isinstance(snapshot, AttackSnapshot):
            return await self.spikes.evaluate(source, snapshot)
        raise SnapshotError(collector.name, f"unsupported snapshot {type(snapshot).__name__}")

    async def _record_failure(self, collector: Collector, timed_out: bool, message: str) -> List[Event]:
        """Record a failed fetch.

        A timed-out scalar check is an outage. Every other failure is
        ``unknown``, and an incident scope is never diffed on failure.
        """
        if collector.kind == "incidents":
            await self.differ.record_unavailable(collector.source, collector.entity_id,
                                                 collector.entity_name, message)
            return []

        status = STATUS_OUTAGE if timed_out and collector.kind == "scalar" else STATUS_UNKNOWN
        snapshot = ScalarSnapshot(
            entity_id=collector.entity_id,
            entity_name=collector.entity_name,
            status=status,
            message=message,
        )
        event = await self.emitter.observe(collector.source, snapshot)
        return [event] if event else []

    async def _invalidate(self, report: CycleReport) -> None:
        for domain in sorted(report.domains):
            await invalidate_api_cache(self.cache, self.response_tier, domain)
        if report.events_emitted:
            await invalidate_api_cache(self.cache, self.response_tier, "events")
