"""SQLModel database models and tables.

All timestamps are naive UTC datetimes so SQLite and PostgreSQL compare
them the same way.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field, Column, JSON

from constants import SOURCE_LABELS


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Service(SQLModel, table=True):
    """Monitored service catalog."""

    __tablename__ = "services"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    category: str = Field(default="msp_tool", max_length=50)
    check_type: str = Field(default="http", max_length=20)  # http | statuspage
    check_url: Optional[str] = Field(default=None, max_length=1000)
    statuspage_id: Optional[str] = Field(default=None, max_length=255)
    display_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class AlertState(SQLModel, table=True):
    """Last status the engine acted on, per entity.

    For set-valued sources each row tracks one open incident and
    ``last_status`` is a liveness marker.
    """

    __tablename__ = "alert_state"

    entity_type: str = Field(primary_key=True, max_length=100)
    entity_id: str = Field(primary_key=True, max_length=512)
    last_status: str = Field(max_length=50)
    last_checked: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)


class Event(SQLModel, table=True):
    """Append-only event log entry."""

    __tablename__ = "events"

    id: Optional[int] = Field(default=None, primary_key=True)
    source: str = Field(index=True, max_length=50)
    event_type: str = Field(max_length=50)
    severity: str = Field(index=True, max_length=20)
    title: str = Field(max_length=500)
    description: Optional[str] = Field(default=None, max_length=4000)
    entity_id: Optional[str] = Field(default=None, index=True, max_length=512)
    entity_name: Optional[str] = Field(default=None, max_length=255)
    occurred_at: datetime = Field(index=True, sa_type=DateTime)
    resolved_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "source": self.source,
            "source_label": SOURCE_LABELS.get(self.source, self.source),
            "event_type": self.event_type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "occurred_at": _iso(self.occurred_at),
            "resolved_at": _iso(self.resolved_at),
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
        }


class CurrentStatus(SQLModel, table=True):
    """Read model: latest observed state per entity or incident scope."""

    __tablename__ = "current_status"

    entity_type: str = Field(primary_key=True, max_length=100)
    entity_id: str = Field(primary_key=True, max_length=512)
    entity_name: str = Field(max_length=255)
    status: str = Field(max_length=50)
    message: Optional[str] = Field(default=None, max_length=2000)
    details: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON))
    observed_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)
    changed_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "status": self.status,
            "message": self.message,
            "details": self.details or [],
            "observed_at": _iso(self.observed_at),
            "changed_at": _iso(self.changed_at),
        }


class StatusObservation(SQLModel, table=True):
    """Every observation, kept for history and change notification."""

    __tablename__ = "status_observations"

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str = Field(index=True, max_length=100)
    entity_id: str = Field(index=True, max_length=512)
    status: str = Field(max_length=50)
    message: Optional[str] = Field(default=None, max_length=2000)
    response_time_ms: Optional[int] = Field(default=None)
    checked_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "response_time_ms": self.response_time_ms,
            "checked_at": _iso(self.checked_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
