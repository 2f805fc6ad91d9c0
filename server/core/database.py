"""Async database service with SQLModel and SQLAlchemy 2.0."""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

from core.config import Settings
from core.logging import get_logger
from models.cache import CacheEntry
from models.database import (
    AlertState,
    CurrentStatus,
    Event,
    Service,
    StatusObservation,
    utc_now,
)

logger = get_logger(__name__)


@dataclass
class WriteBatch:
    """Writes that must land together for one entity transition.

    The observation, the read-model row, alert-state changes and any new
    events commit in a single transaction.
    """
    observation: Optional[StatusObservation] = None
    current: Optional[CurrentStatus] = None
    alert_upserts: List[Tuple[str, str, str, datetime]] = field(default_factory=list)
    alert_deletes: List[Tuple[str, str]] = field(default_factory=list)
    resolve: List[Tuple[str, str, datetime]] = field(default_factory=list)  # (source, entity_id, at)
    events: List[Event] = field(default_factory=list)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

            engine_kwargs: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.is_sqlite:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Service Catalog
    # ============================================================================

    async def save_service(self, name: str, check_type: str = "http",
                           check_url: Optional[str] = None,
                           statuspage_id: Optional[str] = None,
                           category: str = "msp_tool",
                           display_order: int = 0,
                           service_id: Optional[int] = None) -> Service:
        """Create or update a monitored service."""
        async with self.get_session() as session:
            service = await session.get(Service, service_id) if service_id is not None else None
            if service is None:
                service = Service(id=service_id, name=name)
                session.add(service)
            service.name = name
            service.check_type = check_type
            service.check_url = check_url
            service.statuspage_id = statuspage_id
            service.category = category
            service.display_order = display_order
            await session.commit()
            return service

    async def get_all_services(self) -> List[Service]:
        """Get all services ordered for display."""
        async with self.get_session() as session:
            stmt = select(Service).order_by(Service.display_order, Service.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ============================================================================
    # Cache Entries
    # ============================================================================

    async def get_cache_entry(self, key: str, now: Optional[float] = None) -> Optional[str]:
        """Get cache value by key. Returns None if expired or not found.

        Expired rows are deleted on encounter.
        """
        now = time.time() if now is None else now
        async with self.get_session() as session:
            entry = await session.get(CacheEntry, key)

            if not entry:
                return None

            if entry.expires_at <= now:
                await session.delete(entry)
                await session.commit()
                return None

            return entry.value

    async def set_cache_entry(self, key: str, value: str, ttl: int,
                              source: str = "", now: Optional[float] = None) -> None:
        """Upsert a cache row expiring ``ttl`` seconds from now."""
        fetched_at = time.time() if now is None else now
        expires_at = fetched_at + max(ttl, 0)

        for attempt in range(2):
            try:
                async with self.get_session() as session:
                    existing = await session.get(CacheEntry, key)
                    if existing:
                        existing.value = value
                        existing.source = source
                        existing.fetched_at = fetched_at
                        existing.expires_at = expires_at
                    else:
                        session.add(CacheEntry(
                            key=key,
                            source=source,
                            value=value,
                            fetched_at=fetched_at,
                            expires_at=expires_at,
                        ))
                    await session.commit()
                    return
            except IntegrityError:
                # Concurrent insert of the same key; retry as an update
                if attempt:
                    raise

    async def delete_cache_entry(self, key: str) -> bool:
        """Delete cache entry by key."""
        async with self.get_session() as session:
            result = await session.execute(delete(CacheEntry).where(CacheEntry.key == key))
            await session.commit()
            return bool(result.rowcount)

    async def delete_cache_pattern(self, pattern: str, source: Optional[str] = None) -> int:
        """Delete cache entries matching a glob pattern (uses SQL LIKE)."""
        sql_pattern = pattern.replace("*", "%")

        async with self.get_session() as session:
            stmt = delete(CacheEntry).where(CacheEntry.key.like(sql_pattern))
            if source is not None:
                stmt = stmt.where(CacheEntry.source == source)
            result = await session.execute(stmt)
            await session.commit()
            count = result.rowcount or 0
            logger.debug("Deleted cache entries", pattern=pattern, count=count)
            return count

    async def cleanup_expired_cache(self, now: Optional[float] = None) -> int:
        """Remove all expired cache entries. Returns count deleted."""
        now = time.time() if now is None else now
        async with self.get_session() as session:
            result = await session.execute(delete(CacheEntry).where(CacheEntry.expires_at <= now))
            await session.commit()
            return result.rowcount or 0

    # ============================================================================
    # Alert State
    # ============================================================================

    async def get_alert_state(self, entity_type: str, entity_id: str) -> Optional[AlertState]:
        """Get the last acted-on state for an entity."""
        async with self.get_session() as session:
            return await session.get(AlertState, (entity_type, entity_id))

    async def get_tracked_ids(self, entity_type: str, scope: str) -> Set[str]:
        """Identities of tracking rows under ``scope`` (entity_id = "scope:identity")."""
        prefix = f"{scope}:"
        async with self.get_session() as session:
            stmt = select(AlertState.entity_id).where(
                AlertState.entity_type == entity_type,
                AlertState.entity_id.startswith(prefix, autoescape=True),
            )
            result = await session.execute(stmt)
            return {row[len(prefix):] for row in result.scalars().all()}

    async def delete_alert_states_older_than(self, cutoff: datetime,
                                             exclude_types: Iterable[str] = ()) -> int:
        """Retention sweep for alert-state rows not touched since ``cutoff``.

        Rows whose entity type is in ``exclude_types`` are kept regardless of age.
        """
        stmt = delete(AlertState).where(AlertState.last_checked < cutoff)
        exclude_types = list(exclude_types)
        if exclude_types:
            stmt = stmt.where(AlertState.entity_type.not_in(exclude_types))
        async with self.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    # ============================================================================
    # Transition Writes
    # ============================================================================

    async def apply(self, batch: WriteBatch) -> List[Event]:
        """Commit every write in ``batch`` in one transaction.

        Returns the inserted events with their ids populated.
        """
        async with self.get_session() as session:
            if batch.observation is not None:
                session.add(batch.observation)

            if batch.current is not None:
                await self._merge_current_status(session, batch.current)

            for entity_type, entity_id, status, checked_at in batch.alert_upserts:
                state = await session.get(AlertState, (entity_type, entity_id))
                if state:
                    state.last_status = status
                    state.last_checked = checked_at
                else:
                    session.add(AlertState(
                        entity_type=entity_type,
                        entity_id=entity_id,
                        last_status=status,
                        last_checked=checked_at,
                    ))

            for entity_type, entity_id in batch.alert_deletes:
                await session.execute(delete(AlertState).where(
                    AlertState.entity_type == entity_type,
                    AlertState.entity_id == entity_id,
                ))

            for source, entity_id, resolved_at in batch.resolve:
                await session.execute(
                    update(Event)
                    .where(
                        Event.source == source,
                        Event.entity_id == entity_id,
                        Event.resolved_at.is_(None),
                    )
                    .values(resolved_at=resolved_at)
                )

            for event in batch.events:
                session.add(event)

            await session.commit()
            return list(batch.events)

    async def _merge_current_status(self, session: AsyncSession, row: CurrentStatus) -> None:
        existing = await session.get(CurrentStatus, (row.entity_type, row.entity_id))
        if existing is None:
            row.changed_at = row.observed_at
            session.add(row)
            return

        if existing.status != row.status:
            existing.changed_at = row.observed_at
        existing.entity_name = row.entity_name
        existing.status = row.status
        existing.message = row.message
        existing.details = row.details
        existing.observed_at = row.observed_at

    # ============================================================================
    # Events
    # ============================================================================

    def _filter_events(self, stmt, source: Optional[str] = None, severity: Optional[str] = None,
                       entity_name: Optional[str] = None, resolved: Optional[bool] = None):
        if source:
            stmt = stmt.where(Event.source == source)
        if severity:
            stmt = stmt.where(Event.severity == severity)
        if entity_name:
            stmt = stmt.where(Event.entity_name == entity_name)
        if resolved is True:
            stmt = stmt.where(Event.resolved_at.is_not(None))
        elif resolved is False:
            stmt = stmt.where(Event.resolved_at.is_(None))
        return stmt

    async def list_events(self, limit: int, offset: int = 0, **filters) -> List[Event]:
        """Filtered events, newest first."""
        async with self.get_session() as session:
            stmt = self._filter_events(select(Event), **filters)
            stmt = stmt.order_by(Event.occurred_at.desc(), Event.id.desc()).limit(limit).offset(offset)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_events(self, **filters) -> int:
        """Total events matching the filters."""
        async with self.get_session() as session:
            stmt = self._filter_events(select(func.count()).select_from(Event), **filters)
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def event_summary(self, since: datetime) -> Dict[str, Any]:
        """Counts by severity and source since ``since`` plus the unresolved count."""
        async with self.get_session() as session:
            by_severity = await session.execute(
                select(Event.severity, func.count())
                .where(Event.occurred_at > since)
                .group_by(Event.severity)
            )
            by_source = await session.execute(
                select(Event.source, func.count())
                .where(Event.occurred_at > since)
                .group_by(Event.source)
            )
            active = await session.execute(
                select(func.count()).select_from(Event).where(Event.resolved_at.is_(None))
            )
            return {
                "by_severity": [{"severity": s, "count": c} for s, c in by_severity.all()],
                "by_source": [{"source": s, "count": c} for s, c in by_source.all()],
                "active_count": int(active.scalar_one()),
            }

    async def has_event_since(self, source: str, entity_id: str, since: datetime,
                              event_type: Optional[str] = None) -> bool:
        """Whether an event for (source, entity_id) was recorded at or after ``since``."""
        async with self.get_session() as session:
            stmt = select(Event.id).where(
                Event.source == source,
                Event.entity_id == entity_id,
                Event.occurred_at >= since,
            )
            if event_type:
                stmt = stmt.where(Event.event_type == event_type)
            result = await session.execute(stmt.limit(1))
            return result.first() is not None

    async def has_open_event(self, source: str, entity_id: str,
                             event_type: Optional[str] = None) -> bool:
        """Whether an unresolved event with this natural key exists."""
        async with self.get_session() as session:
            stmt = select(Event.id).where(
                Event.source == source,
                Event.entity_id == entity_id,
                Event.resolved_at.is_(None),
            )
            if event_type:
                stmt = stmt.where(Event.event_type == event_type)
            result = await session.execute(stmt.limit(1))
            return result.first() is not None

    async def delete_events_older_than(self, cutoff: datetime, now: Optional[datetime] = None) -> int:
        """Delete events created before ``cutoff`` or past their own expiry."""
        now = now or utc_now()
        async with self.get_session() as session:
            result = await session.execute(delete(Event).where(or_(
                Event.created_at < cutoff,
                Event.expires_at < now,
            )))
            await session.commit()
            return result.rowcount or 0

    # ============================================================================
    # Current Status / Observations
    # ============================================================================

    async def get_current_statuses(self, entity_types: Iterable[str]) -> List[CurrentStatus]:
        """Read-model rows for the given entity types."""
        async with self.get_session() as session:
            stmt = (
                select(CurrentStatus)
                .where(CurrentStatus.entity_type.in_(list(entity_types)))
                .order_by(CurrentStatus.entity_type, CurrentStatus.entity_name)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_observation_history(self, entity_type: str, entity_id: str,
                                      since: datetime) -> List[StatusObservation]:
        """Observations for one entity since ``since``, oldest first."""
        async with self.get_session() as session:
            stmt = (
                select(StatusObservation)
                .where(
                    StatusObservation.entity_type == entity_type,
                    StatusObservation.entity_id == entity_id,
                    StatusObservation.checked_at > since,
                )
                .order_by(StatusObservation.checked_at.asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def latest_observation_time(self, entity_types: Iterable[str],
                                      since: datetime) -> Optional[datetime]:
        """Newest observation time later than ``since`` for the entity types."""
        async with self.get_session() as session:
            stmt = select(func.max(StatusObservation.checked_at)).where(
                StatusObservation.entity_type.in_(list(entity_types)),
                StatusObservation.checked_at > since,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def delete_observations_older_than(self, cutoff: datetime) -> int:
        """Retention sweep for observation history."""
        async with self.get_session() as session:
            result = await session.execute(
                delete(StatusObservation).where(StatusObservation.checked_at < cutoff)
            )
            await session.commit()
            return result.rowcount or 0
