"""Normalized collector snapshots.

A snapshot is one collector's view of its source for a single cycle. It is
never persisted as such; it is cached on the collector tier as JSON and then
fed to the emitter, differ or spike detector.
"""

import hashlib
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from constants import (
    CRITICAL_MEMBER_SEVERITIES,
    SERVICE_STATUSES,
    STATUS_DEGRADED,
    STATUS_OPERATIONAL,
    STATUS_OUTAGE,
    STATUS_PRIORITY,
    STATUS_UNKNOWN,
)


class ScalarSnapshot(BaseModel):
    """Single status for one entity (service, ISP)."""

    kind: Literal["scalar"] = "scalar"
    entity_id: str = Field(min_length=1)
    entity_name: str
    status: str
    message: Optional[str] = None
    response_time_ms: Optional[int] = None
    event_type: Optional[str] = None  # overrides the status-derived type (e.g. bgp_incident)
    description: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in SERVICE_STATUSES:
            raise ValueError(f"status must be one of {sorted(SERVICE_STATUSES)}")
        return v


class IncidentMember(BaseModel):
    """One concurrently open incident or issue."""

    id: Optional[str] = None
    title: str = Field(min_length=1)
    severity: str = "warning"
    start_time: str
    description: Optional[str] = None

    @property
    def identity(self) -> str:
        """Native ID when the source has one, otherwise a content hash."""
        if self.id:
            return self.id
        return hash_incident(self.title, self.start_time)


class IncidentSnapshot(BaseModel):
    """Open incidents for one scope (a cloud provider, an M365 service)."""

    kind: Literal["incidents"] = "incidents"
    scope: str = Field(min_length=1)
    entity_name: str
    members: List[IncidentMember] = Field(default_factory=list)

    @field_validator("scope")
    @classmethod
    def validate_scope(cls, v: str) -> str:
        # Tracking rows are keyed "scope:identity"
        if ":" in v:
            raise ValueError("scope must not contain ':'")
        return v

    @property
    def overall_status(self) -> str:
        """Most severe status implied by the open members."""
        if not self.members:
            return STATUS_OPERATIONAL
        statuses = [
            STATUS_OUTAGE if m.severity.lower() in CRITICAL_MEMBER_SEVERITIES else STATUS_DEGRADED
            for m in self.members
        ]
        return most_severe_status(statuses)


class AttackSnapshot(BaseModel):
    """Attack volumes per layer for one entity."""

    kind: Literal["attacks"] = "attacks"
    entity_id: str = Field(min_length=1)
    entity_name: str
    counts: Dict[str, int] = Field(default_factory=dict)


Snapshot = Union[ScalarSnapshot, IncidentSnapshot, AttackSnapshot]

SNAPSHOT_TYPES = {
    "scalar": ScalarSnapshot,
    "incidents": IncidentSnapshot,
    "attacks": AttackSnapshot,
}


def parse_snapshot(data: dict) -> Snapshot:
    """Rebuild a snapshot from its cached JSON form."""
    model = SNAPSHOT_TYPES.get(data.get("kind", ""))
    if model is None:
        raise ValueError(f"unknown snapshot kind: {data.get('kind')!r}")
    return model.model_validate(data)


def hash_incident(title: str, start_time: str) -> str:
    """Deterministic identity for incidents without a native ID.

    Two incidents with the same title and start time collapse to one
    identity, and an edited title yields a new one.
    """
    canonical = f"{title}-{start_time}"
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


def most_severe_status(statuses: List[str]) -> str:
    """Get the most severe status from a list of statuses."""
    if not statuses:
        return STATUS_UNKNOWN
    return max(statuses, key=lambda s: STATUS_PRIORITY.get(s, 0))


def calculate_uptime(statuses: List[str]) -> float:
    """Percentage of observations that were operational; 100 when there are none."""
    if not statuses:
        return 100.0
    operational = sum(1 for s in statuses if s == STATUS_OPERATIONAL)
    return operational / len(statuses) * 100
