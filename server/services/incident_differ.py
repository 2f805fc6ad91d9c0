"""Incident differ for set-valued sources.

Cloud providers and productivity suites expose a list of concurrently open
incidents rather than one status. Each cycle the current list is compared
with the tracked set for the same scope:

    new  = current - previous  -> one "started" event + tracking row each
    gone = previous - current  -> one "resolved" event, tracking row deleted
    both                       -> untouched, no row rewrite

Tracking rows live in ``alert_state`` under a per-source entity type with
``entity_id = "{scope}:{identity}"``. Only a successfully fetched snapshot
may be diffed; a failed fetch says nothing about which incidents ended.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from constants import (
    CRITICAL_MEMBER_SEVERITIES,
    INCIDENT_SOURCES,
    SEVERITY_CRITICAL,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    STATUS_UNKNOWN,
    TRACKING_OPEN,
)
from core.database import Database, WriteBatch
from core.errors import SnapshotError
from core.logging import get_logger
from models.database import CurrentStatus, Event, StatusObservation, utc_now
from models.snapshots import IncidentMember, IncidentSnapshot
from services.event_emitter import generate_event_title
from services.locks import KeyedLocks

logger = get_logger(__name__)


@dataclass
class DiffResult:
    """Outcome of one scope's diff."""
    source: str
    scope: str
    started: List[Event] = field(default_factory=list)
    resolved: List[Event] = field(default_factory=list)
    unchanged: int = 0

    @property
    def events(self) -> List[Event]:
        return self.started + self.resolved


def member_severity(member: IncidentMember) -> str:
    """Event severity for a newly started member."""
    if (member.severity or "").lower() in CRITICAL_MEMBER_SEVERITIES:
        return SEVERITY_CRITICAL
    return SEVERITY_WARNING


class IncidentDiffer:
    """Set-difference event detector."""

    def __init__(self, database: Database, locks: Optional[KeyedLocks] = None):
        self.database = database
        self.locks = locks or KeyedLocks()

    def _config(self, source: str) -> Dict[str, str]:
        config = INCIDENT_SOURCES.get(source)
        if config is None:
            raise SnapshotError(source, "source does not track incident sets")
        return config

    async def diff(self, source: str, snapshot: IncidentSnapshot,
                   now: Optional[datetime] = None) -> DiffResult:
        """Diff one scope's current members against its tracking rows."""
        config = self._config(source)
        now = now or utc_now()
        async with self.locks.hold(f"{config['entity_type']}:{snapshot.scope}"):
            return await self._diff(source, config, snapshot, now)

    async def _diff(self, source: str, config: Dict[str, str],
                    snapshot: IncidentSnapshot, now: datetime) -> DiffResult:
        entity_type = config["entity_type"]
        scope = snapshot.scope

        current: Dict[str, IncidentMember] = {}
        for member in snapshot.members:
            current.setdefault(member.identity, member)

        previous = await self.database.get_tracked_ids(entity_type, scope)
        new_ids = current.keys() - previous
        gone_ids = previous - current.keys()

        result = DiffResult(source=source, scope=scope,
                            unchanged=len(current.keys() & previous))
        batch = self._read_model_batch(source, snapshot, current, now)

        for identity in sorted(new_ids):
            member = current[identity]
            tracking_id = f"{scope}:{identity}"
            event = Event(
                source=source,
                event_type=config["started"],
                severity=member_severity(member),
                title=generate_event_title(source, config["started"], snapshot.entity_name,
                                           {"title": member.title}),
                description=member.description,
                entity_id=tracking_id,
                entity_name=snapshot.entity_name,
                occurred_at=now,
                created_at=now,
            )
            batch.events.append(event)
            batch.alert_upserts.append((entity_type, tracking_id, TRACKING_OPEN, now))
            result.started.append(event)

        for identity in sorted(gone_ids):
            tracking_id = f"{scope}:{identity}"
            event = Event(
                source=source,
                event_type=config["resolved"],
                severity=SEVERITY_INFO,
                title=generate_event_title(source, config["resolved"], snapshot.entity_name),
                entity_id=tracking_id,
                entity_name=snapshot.entity_name,
                occurred_at=now,
                resolved_at=now,
                created_at=now,
            )
            batch.resolve.append((source, tracking_id, now))
            batch.events.append(event)
            batch.alert_deletes.append((entity_type, tracking_id))
            result.resolved.append(event)

        await self.database.apply(batch)

        if result.started or result.resolved:
            logger.info("Incident set changed", source=source, scope=scope,
                        started=len(result.started), resolved=len(result.resolved),
                        unchanged=result.unchanged)
        return result

    async def record_unavailable(self, source: str, scope: str, entity_name: str,
                                 message: str, now: Optional[datetime] = None) -> None:
        """Record that a scope could not be fetched, leaving tracking rows alone."""
        self._config(source)
        now = now or utc_now()
        await self.database.apply(WriteBatch(
            observation=StatusObservation(entity_type=source, entity_id=scope,
                                          status=STATUS_UNKNOWN, message=message, checked_at=now),
            current=CurrentStatus(entity_type=source, entity_id=scope, entity_name=entity_name,
                                  status=STATUS_UNKNOWN, message=message,
                                  observed_at=now, changed_at=now),
        ))

    def _read_model_batch(self, source: str, snapshot: IncidentSnapshot,
                          current: Dict[str, IncidentMember], now: datetime) -> WriteBatch:
        status = snapshot.overall_status
        count = len(current)
        message = f"{count} active incident{'s' if count != 1 else ''}" if count else None
        details = [
            {"identity": identity, **member.model_dump()}
            for identity, member in current.items()
        ]
        return WriteBatch(
            observation=StatusObservation(entity_type=source, entity_id=snapshot.scope,
                                          status=status, message=message, checked_at=now),
            current=CurrentStatus(entity_type=source, entity_id=snapshot.scope,
                                  entity_name=snapshot.entity_name, status=status,
                                  message=message, details=details,
                                  observed_at=now, changed_at=now),
        )
