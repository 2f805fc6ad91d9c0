"""Collector contract.

A collector turns one upstream source into a normalized snapshot. From the
engine's point of view it is a pure ``() -> Snapshot`` function that is
safe to call repeatedly; the monitor routes calls through the collector
cache tier and bounds them with a timeout.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from models.snapshots import Snapshot


class Collector(ABC):
    """Base class for all collectors.

    Attributes:
        name: Unique name, used as the collector cache key.
        source: Event source the snapshot feeds (service, cloud, m365, ...).
        kind: Snapshot shape, one of ``scalar``, ``incidents``, ``attacks``.
        entity_id: Entity (or incident scope) the snapshot describes. Used
            to record a failed fetch when no snapshot exists.
        entity_name: Display name for the same.
        cache_ttl: Collector-tier TTL override; 0 disables caching,
            None uses the configured default.
    """

    kind: str = "scalar"

    def __init__(self, name: str, source: str, entity_id: str, entity_name: str,
                 cache_ttl: Optional[int] = None):
        self.name = name
        self.source = source
        self.entity_id = entity_id
        self.entity_name = entity_name
        self.cache_ttl = cache_ttl

    @abstractmethod
    async def fetch(self) -> Snapshot:
        """Fetch the current snapshot from upstream."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, source={self.source!r})"


class FunctionCollector(Collector):
    """Adapter for an async callable, used to plug in source-specific fetchers."""

    def __init__(self, name: str, source: str, kind: str, entity_id: str, entity_name: str,
                 fetcher: Callable[[], Awaitable[Snapshot]],
                 cache_ttl: Optional[int] = None):
        super().__init__(name, source, entity_id, entity_name, cache_ttl)
        self.kind = kind
        self._fetcher = fetcher

    async def fetch(self) -> Snapshot:
        return await self._fetcher()
