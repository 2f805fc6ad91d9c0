"""
Unit tests for the TTL cache store (SQLite backend)
"""
import asyncio

from sqlmodel import select

from models.cache import CacheEntry


async def _row_count(database, key):
    async with database.get_session() as session:
        result = await session.execute(select(CacheEntry).where(CacheEntry.key == key))
        return len(result.scalars().all())


class TestCacheTTL:
    """Values are readable until their TTL passes, then gone"""

    async def test_value_readable_before_ttl(self, cache, clock):
        await cache.set("collector:aws", {"status": "operational"}, ttl=60)
        clock.advance(59)
        assert await cache.get("collector:aws") == {"status": "operational"}

    async def test_value_absent_and_row_removed_after_ttl(self, cache, database, clock):
        await cache.set("collector:aws", {"status": "operational"}, ttl=60)
        clock.advance(61)

        assert await cache.get("collector:aws") is None
        assert await _row_count(database, "collector:aws") == 0

    async def test_zero_ttl_is_immediately_expired(self, cache):
        await cache.set("k", "v", ttl=0)
        assert await cache.get("k") is None

    async def test_overwrite_replaces_value_and_ttl(self, cache, clock):
        await cache.set("k", "first", ttl=10)
        await cache.set("k", "second", ttl=100)
        clock.advance(50)
        assert await cache.get("k") == "second"

    async def test_default_ttl_comes_from_settings(self, cache, clock, settings):
        await cache.set("k", 1)
        clock.advance(settings.collector_cache_ttl - 1)
        assert await cache.get("k") == 1
        clock.advance(2)
        assert await cache.get("k") is None


class TestCacheFailOpen:
    """Corrupt entries and backend failures read as a miss"""

    async def test_corrupt_entry_is_miss_and_dropped(self, cache, database, clock):
        await database.set_cache_entry("broken", "{not json", 60, source="test", now=clock())

        assert await cache.get("broken") is None
        assert await _row_count(database, "broken") == 0

    async def test_backend_error_is_miss(self, settings, clock):
        from core.cache import CacheService
        from core.database import Database

        # Never started: every query raises
        service = CacheService(settings, database=Database(settings), clock=clock)
        assert await service.get("anything") is None
        assert await service.set("anything", 1, ttl=10) is False
        assert await service.delete("anything") is False


class TestCacheInvalidation:
    """Exact and prefix eviction"""

    async def test_invalidate_exact_key(self, cache):
        await cache.set("api:services", [1], ttl=60)
        assert await cache.invalidate("api:services") == 1
        assert await cache.get("api:services") is None

    async def test_invalidate_prefix_pattern(self, cache):
        await cache.set("api:events:limit=10", [1], ttl=60, source="api-response")
        await cache.set("api:events:limit=20", [2], ttl=60, source="api-response")
        await cache.set("api:services", [3], ttl=60, source="api-response")

        deleted = await cache.invalidate("api:events*", source="api-response")

        assert deleted == 2
        assert await cache.get("api:services") == [3]

    async def test_cleanup_expired_removes_only_expired(self, cache, clock):
        await cache.set("short", 1, ttl=10)
        await cache.set("long", 2, ttl=1000)
        clock.advance(20)

        assert await cache.cleanup_expired() == 1
        assert await cache.get("long") == 2


class TestDetachedWrites:
    """Fire-and-forget writes are tracked and drained"""

    async def test_detached_write_lands_after_drain(self, cache):
        task = cache.set_detached("api:cloud", {"ok": True}, ttl=60)
        await cache.drain()

        assert task.done()
        assert await cache.get("api:cloud") == {"ok": True}

    async def test_failed_detached_write_is_logged_not_raised(self, cache, monkeypatch):
        async def boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(cache.database, "set_cache_entry", boom)
        task = cache.set_detached("api:cloud", {"ok": True}, ttl=60)
        await cache.drain()
        await asyncio.sleep(0)

        assert task.done()
        assert isinstance(task.exception(), RuntimeError)
        assert not cache._pending

    async def test_detached_write_skipped_after_invalidation(self, cache):
        generation = cache.generation
        await cache.invalidate("api:*")
        cache.set_detached("api:cloud", {"ok": True}, ttl=60, generation=generation)
        await cache.drain()

        assert await cache.get("api:cloud") is None
