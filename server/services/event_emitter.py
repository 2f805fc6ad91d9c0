"""Alert-state event emitter for scalar entities.

Turns periodic ``(entity_id, status)`` observations into the minimal set of
events that represent genuine transitions:

- entering ``degraded`` only starts a hysteresis timer; a warning is
  emitted once the entity has stayed degraded for the configured threshold
- a first-ever operational observation is never itself an event
- ``operational`` is a resolution only after a reported bad state
- a condition already open in the event log is never reported twice
- ``unknown`` is recorded in the read model but never acted on

The event, the alert-state update and the read-model row commit in one
transaction, so a crash between them cannot produce a duplicate event.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from constants import (
    BAD_STATUSES,
    CRITICAL_EVENT_TYPES,
    RESOLUTION_EVENT_TYPES,
    SCALAR_EVENT_TYPES,
    SEVERITY_CRITICAL,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    SOURCE_CLOUD,
    SOURCE_GWORKSPACE,
    SOURCE_ISP,
    SOURCE_M365,
    SOURCE_RADAR,
    SOURCE_SERVICE,
    STATUS_DEGRADED,
    STATUS_OPERATIONAL,
    STATUS_OUTAGE,
    STATUS_UNKNOWN,
)
from core.config import Settings
from core.database import Database, WriteBatch
from core.logging import get_logger, log_transition
from models.database import CurrentStatus, Event, StatusObservation, utc_now
from models.snapshots import ScalarSnapshot
from services.locks import KeyedLocks

logger = get_logger(__name__)


def map_severity(status: str, event_type: Optional[str] = None) -> str:
    """Map a status / event type pair to an event severity."""
    if event_type in RESOLUTION_EVENT_TYPES:
        return SEVERITY_INFO
    if status in (STATUS_OUTAGE, "critical") or event_type in CRITICAL_EVENT_TYPES:
        return SEVERITY_CRITICAL
    if status in (STATUS_DEGRADED, "warning") or event_type == "connectivity_degraded":
        return SEVERITY_WARNING
    return SEVERITY_INFO


def generate_event_title(source: str, event_type: str, entity_name: str,
                         metadata: Optional[Dict[str, Any]] = None) -> str:
    """Human-readable title for an event."""
    metadata = metadata or {}

    if source == SOURCE_SERVICE:
        titles = {
            "outage": f"{entity_name} is experiencing an outage",
            "degraded": f"{entity_name} is experiencing degraded performance",
            "resolved": f"{entity_name} has been restored",
        }
        if event_type in titles:
            return titles[event_type]

    elif source == SOURCE_CLOUD:
        if event_type == "incident_started" and metadata.get("title"):
            return f"{entity_name}: {metadata['title']}"
        if event_type == "incident_resolved":
            return f"{entity_name} incident resolved"

    elif source in (SOURCE_M365, SOURCE_GWORKSPACE):
        label = "M365" if source == SOURCE_M365 else "Workspace"
        if event_type == "service_issue" and metadata.get("title"):
            return f"{label} {entity_name}: {metadata['title']}"
        if event_type == "issue_resolved":
            return f"{label} {entity_name} issue resolved"

    elif source == SOURCE_ISP:
        titles = {
            "connectivity_degraded": f"{entity_name}: Connectivity degraded",
            "connectivity_outage": f"{entity_name}: Connectivity outage",
            "bgp_incident": f"{entity_name}: BGP {metadata.get('incident_type') or 'incident'} detected",
            "resolved": f"{entity_name}: Connectivity restored",
        }
        if event_type in titles:
            return titles[event_type]

    elif source == SOURCE_RADAR:
        layer = {"ddos_spike_layer3": "Layer 3", "ddos_spike_layer7": "Layer 7"}.get(event_type)
        if layer and metadata.get("count") is not None:
            return f"DDoS Spike Detected: {metadata['count']} {layer} attacks"

    return f"{entity_name}: {event_type}"


class EventEmitter:
    """Hysteresis-aware status transition detector for scalar entities."""

    def __init__(self, database: Database, settings: Settings,
                 locks: Optional[KeyedLocks] = None):
        self.database = database
        self.settings = settings
        self.locks = locks or KeyedLocks()

    @property
    def degraded_threshold_minutes(self) -> float:
        return self.settings.degraded_threshold_minutes

    async def observe(self, source: str, snapshot: ScalarSnapshot,
                      now: Optional[datetime] = None) -> Optional[Event]:
        """Process one observation. Returns the emitted event, if any."""
        now = now or utc_now()
        async with self.locks.hold(f"{source}:{snapshot.entity_id}"):
            return await self._observe(source, snapshot, now)

    async def _observe(self, source: str, snapshot: ScalarSnapshot,
                       now: datetime) -> Optional[Event]:
        entity_id = snapshot.entity_id
        status = snapshot.status
        batch = self._read_model_batch(source, snapshot, now)

        if status == STATUS_UNKNOWN:
            await self.database.apply(batch)
            return None

        prev = await self.database.get_alert_state(source, entity_id)
        prev_status = prev.last_status if prev else None

        if status == STATUS_DEGRADED:
            if prev is None or prev_status != STATUS_DEGRADED:
                # Entering degraded starts the hysteresis timer
                batch.alert_upserts.append((source, entity_id, STATUS_DEGRADED, now))
                await self.database.apply(batch)
                log_transition(logger, source, entity_id, prev_status, status, emitted=False,
                               reason="hysteresis_started")
                return None

            minutes_degraded = (now - prev.last_checked).total_seconds() / 60
            if minutes_degraded < self.degraded_threshold_minutes:
                await self.database.apply(batch)
                return None

        elif prev is not None and prev_status == status:
            await self.database.apply(batch)
            return None

        # A degraded spell that never crossed the threshold left nothing to resolve
        is_resolution = (
            status == STATUS_OPERATIONAL
            and prev_status in BAD_STATUSES
            and await self.database.has_open_event(source, entity_id)
        )
        if status == STATUS_OPERATIONAL and not is_resolution:
            batch.alert_upserts.append((source, entity_id, STATUS_OPERATIONAL, now))
            await self.database.apply(batch)
            return None

        event_type = snapshot.event_type or SCALAR_EVENT_TYPES.get(source, {}).get(status, status)

        if not is_resolution and await self.database.has_open_event(source, entity_id, event_type):
            # Condition already reported and still open
            batch.alert_upserts.append((source, entity_id, status, now))
            await self.database.apply(batch)
            return None

        event = Event(
            source=source,
            event_type=event_type,
            severity=map_severity(status, event_type),
            title=generate_event_title(source, event_type, snapshot.entity_name,
                                       {"incident_type": snapshot.message}),
            description=snapshot.description or snapshot.message,
            entity_id=entity_id,
            entity_name=snapshot.entity_name,
            occurred_at=now,
            resolved_at=now if is_resolution else None,
            created_at=now,
        )
        batch.events.append(event)
        batch.alert_upserts.append((source, entity_id, status, now))
        if is_resolution:
            batch.resolve.append((source, entity_id, now))

        await self.database.apply(batch)
        log_transition(logger, source, entity_id, prev_status, status, emitted=True,
                       event_type=event_type, severity=event.severity)
        return event

    def _read_model_batch(self, source: str, snapshot: ScalarSnapshot, now: datetime) -> WriteBatch:
        return WriteBatch(
            observation=StatusObservation(
                entity_type=source,
                entity_id=snapshot.entity_id,
                status=snapshot.status,
                message=snapshot.message,
                response_time_ms=snapshot.response_time_ms,
                checked_at=now,
            ),
            current=CurrentStatus(
                entity_type=source,
                entity_id=snapshot.entity_id,
                entity_name=snapshot.entity_name,
                status=snapshot.status,
                message=snapshot.message,
                observed_at=now,
                changed_at=now,
            ),
        )
