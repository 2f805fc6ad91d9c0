"""Threshold events for attack volumes.

A layer whose count exceeds the configured threshold yields one critical
event, at most once per entity and layer per clock hour.
"""

from datetime import datetime
from typing import List, Optional

from constants import ATTACK_SPIKE_EVENT_TYPES, SEVERITY_CRITICAL, STATUS_DEGRADED, STATUS_OPERATIONAL
from core.config import Settings
from core.database import Database, WriteBatch
from core.logging import get_logger
from models.database import CurrentStatus, Event, StatusObservation, utc_now
from models.snapshots import AttackSnapshot
from services.event_emitter import generate_event_title

logger = get_logger(__name__)


class AttackSpikeDetector:
    """Emits DDoS spike events for attack snapshots."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    async def evaluate(self, source: str, snapshot: AttackSnapshot,
                       now: Optional[datetime] = None) -> List[Event]:
        now = now or utc_now()
        threshold = self.settings.radar_attack_threshold
        hour_start = now.replace(minute=0, second=0, microsecond=0)

        spikes = {
            layer: count for layer, count in snapshot.counts.items()
            if layer in ATTACK_SPIKE_EVENT_TYPES and count > threshold
        }
        status = STATUS_DEGRADED if spikes else STATUS_OPERATIONAL
        summary = ", ".join(f"{layer}={count}" for layer, count in sorted(snapshot.counts.items()))

        batch = WriteBatch(
            observation=StatusObservation(entity_type=source, entity_id=snapshot.entity_id,
                                          status=status, message=summary, checked_at=now),
            current=CurrentStatus(entity_type=source, entity_id=snapshot.entity_id,
                                  entity_name=snapshot.entity_name, status=status,
                                  message=summary, observed_at=now, changed_at=now),
        )

        for layer, count in sorted(spikes.items()):
            event_type = ATTACK_SPIKE_EVENT_TYPES[layer]
            if await self.database.has_event_since(source, snapshot.entity_id, hour_start,
                                                   event_type=event_type):
                continue
            batch.events.append(Event(
                source=source,
                event_type=event_type,
                severity=SEVERITY_CRITICAL,
                title=generate_event_title(source, event_type, snapshot.entity_name, {"count": count}),
                description=f"{count} attacks exceeded the threshold of {threshold}",
                entity_id=snapshot.entity_id,
                entity_name=snapshot.entity_name,
                occurred_at=now,
                resolved_at=now,
                created_at=now,
            ))

        await self.database.apply(batch)
        if batch.events:
            logger.info("Attack spike detected", entity_id=snapshot.entity_id,
                        layers=[e.event_type for e in batch.events])
        return batch.events
