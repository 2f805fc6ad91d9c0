"""Read-only query surface over the event log."""

from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

from constants import VALID_EVENT_SOURCES, VALID_SEVERITIES
from core.config import Settings
from core.database import Database
from core.errors import InvalidFilterError
from models.database import utc_now


@dataclass(frozen=True)
class EventFilter:
    """Normalized event list filter."""
    source: Optional[str] = None
    severity: Optional[str] = None
    entity_name: Optional[str] = None
    resolved: Optional[bool] = None
    limit: int = 100
    offset: int = 0

    def cache_key(self) -> str:
        """Stable key suffix for the response cache."""
        parts = [f"{k}={v}" for k, v in asdict(self).items() if v is not None]
        return "&".join(parts)

    def where(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "severity": self.severity,
            "entity_name": self.entity_name,
            "resolved": self.resolved,
        }


def parse_resolved(value: Optional[str]) -> Optional[bool]:
    """'true' / 'false' select resolved / unresolved; anything else means both."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


class EventLog:
    """Filtering, counting and summary over the immutable event table."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    def build_filter(self, source: Optional[str] = None, severity: Optional[str] = None,
                     entity_name: Optional[str] = None, resolved: Optional[str] = None,
                     limit: Optional[int] = None, offset: Optional[int] = None) -> EventFilter:
        """Validate and clamp raw query parameters.

        Raises:
            InvalidFilterError: unknown severity or source
        """
        if severity and severity not in VALID_SEVERITIES:
            raise InvalidFilterError("severity", VALID_SEVERITIES)
        if source and source not in VALID_EVENT_SOURCES:
            raise InvalidFilterError("source", VALID_EVENT_SOURCES)

        limit = self.settings.default_events_limit if limit is None else limit
        limit = min(max(1, limit), self.settings.max_events_limit)
        offset = max(0, offset or 0)

        return EventFilter(
            source=source or None,
            severity=severity or None,
            entity_name=entity_name or None,
            resolved=parse_resolved(resolved),
            limit=limit,
            offset=offset,
        )

    async def list_events(self, event_filter: EventFilter) -> List[Dict[str, Any]]:
        events = await self.database.list_events(
            limit=event_filter.limit, offset=event_filter.offset, **event_filter.where()
        )
        return [event.to_dict() for event in events]

    async def count_events(self, event_filter: EventFilter) -> int:
        return await self.database.count_events(**event_filter.where())

    async def summary(self, window_days: Optional[int] = None) -> Dict[str, Any]:
        """Severity and source breakdown over a trailing window, plus active count."""
        days = window_days or self.settings.summary_window_days
        since = utc_now() - timedelta(days=days)
        summary = await self.database.event_summary(since)
        summary["window_days"] = days
        return summary

    async def query(self, event_filter: EventFilter) -> Dict[str, Any]:
        """Full list-endpoint payload."""
        return {
            "events": await self.list_events(event_filter),
            "total": await self.count_events(event_filter),
            "limit": event_filter.limit,
            "offset": event_filter.offset,
            "summary": await self.summary(),
            "last_updated": utc_now().isoformat(),
        }
