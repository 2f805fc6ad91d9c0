"""Two TTL tiers layered on the same cache store.

- Collector tier (long, minutes): bounds how often upstream APIs are called.
- Response tier (short, 30-120s): bounds recomputation of API aggregates,
  even while the collector tier is still fresh.

Both use CacheService; only the key prefix, TTL and source label differ.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from constants import CACHE_SOURCE_API_RESPONSE
from core.cache import CacheService
from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheTier:
    """Key namespace plus default TTL for one class of caller."""
    name: str
    prefix: str
    ttl_seconds: int
    source: str

    def key(self, suffix: str) -> str:
        return f"{self.prefix}{suffix}"

    def pattern(self, suffix: str = "") -> str:
        return f"{self.prefix}{suffix}*"


def collector_tier(settings: Settings) -> CacheTier:
    return CacheTier("collector", "collector:", settings.collector_cache_ttl, "collector")


def response_tier(settings: Settings) -> CacheTier:
    return CacheTier("response", "api:", settings.api_cache_ttl, CACHE_SOURCE_API_RESPONSE)


async def fetch_with_cache(
    cache: CacheService,
    tier: CacheTier,
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    ttl: Optional[int] = None,
    source: Optional[str] = None,
) -> T:
    """Return the cached value or compute, store (awaited) and return it.

    Used by collectors: the next scheduler cycle depends on the write.
    """
    full_key = tier.key(key)
    cached = await cache.get(full_key)
    if cached is not None:
        return cached

    data = await fetcher()
    await cache.set(full_key, data, ttl if ttl is not None else tier.ttl_seconds,
                    source=source or tier.source)
    return data


async def with_api_cache(
    cache: CacheService,
    tier: CacheTier,
    key: str,
    fetcher: Callable[[], Awaitable[Any]],
) -> Any:
    """Response-tier wrapper for API handlers.

    A burst of identical polls within one window collapses to one
    computation. The write is detached so the response is not held up, and
    is dropped if an invalidation ran while the payload was being built.
    """
    full_key = tier.key(key)
    cached = await cache.get(full_key)
    if cached is not None:
        return cached

    generation = cache.generation
    data = await fetcher()
    cache.set_detached(full_key, data, tier.ttl_seconds, source=tier.source,
                       generation=generation)
    return data


async def invalidate_api_cache(cache: CacheService, tier: CacheTier, suffix: str = "") -> int:
    """Evict response-tier keys ahead of their TTL."""
    deleted = await cache.invalidate(tier.pattern(suffix), source=tier.source)
    if deleted:
        logger.debug("Response cache invalidated", pattern=tier.pattern(suffix), deleted=deleted)
    return deleted
