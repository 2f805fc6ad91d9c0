"""Dependency injection container for the application."""

import httpx
from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import CacheService
from core.cleanup import CleanupService
from services.attack_spikes import AttackSpikeDetector
from services.change_notifier import ChangeNotifier
from services.event_emitter import EventEmitter
from services.event_log import EventLog
from services.incident_differ import IncidentDiffer
from services.monitor import MonitorService


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared outbound client for collectors."""
    return httpx.AsyncClient(
        headers={"User-Agent": settings.http_user_agent},
        timeout=settings.collector_timeout,
        follow_redirects=True,
    )


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (needed by CacheService for SQLite fallback)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Cache service (uses Redis when available, SQLite otherwise)
    cache = providers.Singleton(
        CacheService,
        settings=settings,
        database=database
    )

    http_client = providers.Singleton(
        create_http_client,
        settings=settings
    )

    # Detection engine
    event_emitter = providers.Singleton(
        EventEmitter,
        database=database,
        settings=settings
    )

    incident_differ = providers.Singleton(
        IncidentDiffer,
        database=database
    )

    attack_spikes = providers.Singleton(
        AttackSpikeDetector,
        database=database,
        settings=settings
    )

    monitor = providers.Singleton(
        MonitorService,
        settings=settings,
        cache=cache,
        emitter=event_emitter,
        differ=incident_differ,
        spikes=attack_spikes
    )

    # Read side
    event_log = providers.Factory(
        EventLog,
        database=database,
        settings=settings
    )

    change_notifier = providers.Factory(
        ChangeNotifier,
        database=database
    )

    cleanup = providers.Singleton(
        CleanupService,
        database=database,
        cache=cache,
        settings=settings
    )


# Global container instance
container = Container()
