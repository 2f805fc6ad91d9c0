"""Cache service with SQLite (default) or Redis backend.

The SQLite backend keeps cache rows in the ``api_cache`` table next to the
durable tables, so a single-process deployment needs nothing else. Redis
is used when REDIS_ENABLED=true and reachable.

Reads fail open: any error, expired row or undecodable payload is a miss.
Writes never raise to the caller.
"""

import asyncio
import json
import time
from typing import Any, Callable, Optional, Set, TYPE_CHECKING

import redis.asyncio as redis

from core.config import Settings
from core.logging import get_logger, log_cache_operation

if TYPE_CHECKING:
    from core.database import Database

logger = get_logger(__name__)


class CacheService:
    """Async TTL cache over Redis or the SQLite ``api_cache`` table."""

    def __init__(self, settings: Settings, database: Optional["Database"] = None,
                 clock: Callable[[], float] = time.time):
        self.settings = settings
        self.database = database
        self.redis: Optional[redis.Redis] = None
        self.use_redis = settings.redis_enabled and bool(settings.redis_url)
        self.clock = clock
        self._pending: Set[asyncio.Task] = set()
        # Bumped by every invalidate; detached writes computed before one are dropped
        self.generation = 0

    async def startup(self):
        """Initialize cache connection."""
        if self.use_redis:
            try:
                self.redis = redis.from_url(
                    self.settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5,
                    retry_on_timeout=True
                )
                await self.redis.ping()
                logger.info("Redis cache initialized", url=self.settings.redis_url)
                return
            except Exception as e:
                logger.warning("Redis connection failed, falling back to SQLite", error=str(e))
                self.use_redis = False
                self.redis = None

        if self.database is None:
            raise RuntimeError("Cache requires a database when Redis is unavailable")
        logger.info("Using SQLite cache")

    async def shutdown(self):
        """Drain detached writes and close connections."""
        await self.drain()
        if self.redis:
            await self.redis.aclose()
            logger.info("Redis cache connections closed")

    def is_redis_available(self) -> bool:
        """Check if Redis is available and connected."""
        return self.use_redis and self.redis is not None

    # ============================================================================
    # Primitives
    # ============================================================================

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache. Returns None on miss, expiry or any error."""
        try:
            if self.is_redis_available():
                raw = await self.redis.get(key)
                payload = json.loads(raw)["value"] if raw else None
            else:
                raw = await self.database.get_cache_entry(key, now=self.clock())
                payload = json.loads(raw) if raw else None
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Corrupt cache entry dropped", key=key, error=str(e))
            await self._discard(key)
            return None
        except Exception as e:
            logger.error("Cache get failed", key=key, error=str(e))
            return None

        log_cache_operation(logger, "get", key, hit=payload is not None)
        return payload

    async def set(self, key: str, value: Any, ttl: Optional[int] = None,
                  source: str = "") -> bool:
        """Set value with a TTL in seconds. Failures are logged, not raised."""
        ttl = self.settings.collector_cache_ttl if ttl is None else max(int(ttl), 0)
        try:
            await self._write(key, value, ttl, source)
            log_cache_operation(logger, "set", key, ttl=ttl, source=source)
            return True
        except Exception as e:
            logger.error("Cache set failed", key=key, error=str(e))
            return False

    def set_detached(self, key: str, value: Any, ttl: Optional[int] = None,
                     source: str = "", generation: Optional[int] = None) -> asyncio.Task:
        """Schedule a write without waiting for it.

        The task is tracked until it finishes so failures are logged and
        ``drain()`` can wait for outstanding writes. When ``generation`` is
        given and an invalidation has happened since, the write is skipped.
        """
        ttl = self.settings.collector_cache_ttl if ttl is None else max(int(ttl), 0)
        task = asyncio.create_task(self._write_if_current(key, value, ttl, source, generation))
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_detached_done(key, t))
        return task

    def _on_detached_done(self, key: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Detached cache write cancelled", key=key)
            return
        error = task.exception()
        if error is not None:
            logger.error("Detached cache write failed", key=key, error=str(error))
        else:
            log_cache_operation(logger, "set_detached", key)

    async def drain(self) -> None:
        """Wait for all detached writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _write_if_current(self, key: str, value: Any, ttl: int, source: str,
                                generation: Optional[int]) -> None:
        if generation is not None and generation != self.generation:
            log_cache_operation(logger, "set_detached", key, skipped="stale")
            return
        await self._write(key, value, ttl, source)

    async def _write(self, key: str, value: Any, ttl: int, source: str) -> None:
        if self.is_redis_available():
            envelope = json.dumps(
                {"value": value, "source": source, "fetched_at": self.clock()},
                default=str,
            )
            # Redis rejects a zero TTL; an immediately-expired entry is just a delete
            if ttl <= 0:
                await self.redis.delete(key)
            else:
                await self.redis.setex(key, ttl, envelope)
        else:
            serialized = json.dumps(value, default=str)
            await self.database.set_cache_entry(key, serialized, ttl, source=source, now=self.clock())

    async def delete(self, key: str) -> bool:
        """Delete value from cache."""
        try:
            if self.is_redis_available():
                deleted = bool(await self.redis.delete(key))
            else:
                deleted = await self.database.delete_cache_entry(key)
            log_cache_operation(logger, "delete", key, deleted=deleted)
            return deleted
        except Exception as e:
            logger.error("Cache delete failed", key=key, error=str(e))
            return False

    async def _discard(self, key: str) -> None:
        try:
            await self.delete(key)
        except Exception as e:
            logger.warning("Failed to discard cache entry", key=key, error=str(e))

    async def invalidate(self, key_or_pattern: str, source: Optional[str] = None) -> int:
        """Evict an exact key or every key matching a ``prefix*`` glob."""
        self.generation += 1
        try:
            if "*" not in key_or_pattern:
                return int(await self.delete(key_or_pattern))

            if self.is_redis_available():
                keys = [k async for k in self.redis.scan_iter(match=key_or_pattern)]
                deleted = await self.redis.delete(*keys) if keys else 0
            else:
                deleted = await self.database.delete_cache_pattern(key_or_pattern, source=source)
            log_cache_operation(logger, "invalidate", key_or_pattern, deleted=deleted)
            return deleted

        except Exception as e:
            logger.error("Cache invalidate failed", pattern=key_or_pattern, error=str(e))
            return 0

    async def cleanup_expired(self) -> int:
        """Remove expired rows. Redis expires keys on its own."""
        if self.is_redis_available():
            return 0
        return await self.database.cleanup_expired_cache(now=self.clock())
