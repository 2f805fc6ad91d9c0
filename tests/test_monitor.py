"""
Unit tests for the monitor cycle runner
"""
import asyncio

import pytest

from models.snapshots import AttackSnapshot, IncidentMember, IncidentSnapshot, ScalarSnapshot
from services.collectors import FunctionCollector
from services.monitor import MonitorService


@pytest.fixture
def monitor(settings, cache, emitter, differ, spikes):
    return MonitorService(settings, cache, emitter, differ, spikes)


def scalar_collector(entity_id, fetcher, cache_ttl=0, source="service"):
    return FunctionCollector(f"test:{entity_id}", source, "scalar", entity_id,
                             f"Service {entity_id}", fetcher, cache_ttl=cache_ttl)


def returns(status, entity_id):
    async def fetch():
        return ScalarSnapshot(entity_id=entity_id, entity_name=f"Service {entity_id}", status=status)
    return fetch


def raises(error):
    async def fetch():
        raise error
    return fetch


class TestRegistration:
    """Collector groups"""

    def test_register_replaces_same_name(self, monitor):
        monitor.register("checks", scalar_collector("1", returns("operational", "1")))
        monitor.register("checks", scalar_collector("1", returns("outage", "1")))
        assert len(monitor.collectors("checks")) == 1

    def test_replace_group(self, monitor):
        monitor.register("checks", scalar_collector("1", returns("operational", "1")))
        monitor.replace_group("checks", [scalar_collector("2", returns("operational", "2"))])
        assert [c.entity_id for c in monitor.collectors("checks")] == ["2"]

    async def test_empty_group(self, monitor):
        report = await monitor.run_cycle("catalog")
        assert (report.succeeded, report.failed, report.events_emitted) == (0, 0, 0)


class TestIsolation:
    """One failing entity never aborts the cycle"""

    async def test_sibling_failure_does_not_abort(self, monitor, database):
        monitor.register("checks", scalar_collector("1", returns("outage", "1")))
        monitor.register("checks", scalar_collector("2", raises(RuntimeError("boom"))))
        monitor.register("checks", scalar_collector("3", returns("operational", "3")))

        report = await monitor.run_cycle("checks")

        assert report.succeeded == 2
        assert report.failed == 1
        assert report.events_emitted == 1
        statuses = {r.entity_id: r.status for r in await database.get_current_statuses(["service"])}
        assert statuses == {"1": "outage", "2": "unknown", "3": "operational"}

    async def test_timeout_becomes_outage_event(self, monitor, database):
        async def hang():
            await asyncio.sleep(10)

        monitor.register("checks", scalar_collector("slow", hang))
        report = await monitor.run_cycle("checks")

        assert report.failed == 1
        assert report.events_emitted == 1
        events = await database.list_events(limit=10)
        assert events[0].event_type == "outage"
        assert events[0].description == "Collector timed out"

    async def test_store_failure_is_counted(self, monitor, emitter, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(emitter, "observe", broken)
        monitor.register("checks", scalar_collector("1", returns("outage", "1")))

        report = await monitor.run_cycle("checks")
        assert report.failed == 1

    async def test_malformed_snapshot_skipped(self, monitor, database):
        monitor.register("cloud", FunctionCollector("bad", "cloud", "incidents", "azure", "Azure",
                                                    returns("outage", "azure"), cache_ttl=0))
        report = await monitor.run_cycle("cloud")

        assert report.failed == 1
        assert await database.get_current_statuses(["cloud"]) == []


class TestIncidentCollectors:
    """Failed incident fetches are recorded as unknown and never diffed"""

    async def test_failure_does_not_resolve(self, monitor, database):
        state = {"fail": False}

        async def fetch():
            if state["fail"]:
                raise RuntimeError("RSS feed unavailable")
            return IncidentSnapshot(scope="azure", entity_name="Azure", members=[
                IncidentMember(id="A", title="Storage latency", start_time="2026-03-02T09:00:00Z"),
            ])

        monitor.register("cloud", FunctionCollector("cloud:azure", "cloud", "incidents", "azure",
                                                    "Azure", fetch, cache_ttl=0))
        first = await monitor.run_cycle("cloud")
        state["fail"] = True
        second = await monitor.run_cycle("cloud")

        assert first.events_emitted == 1
        assert second.events_emitted == 0
        assert await database.get_tracked_ids("cloud-incident", "azure") == {"A"}
        assert (await database.get_current_statuses(["cloud"]))[0].status == "unknown"

    async def test_attack_collector_routed(self, monitor):
        async def fetch():
            return AttackSnapshot(entity_id="global", entity_name="Global", counts={"layer3": 5000})

        monitor.register("cloud", FunctionCollector("radar", "radar", "attacks", "global", "Global",
                                                    fetch, cache_ttl=0))
        report = await monitor.run_cycle("cloud")
        assert report.events_emitted == 1
        assert report.domains == {"radar"}


class TestCaching:
    """Collector tier and response-tier invalidation"""

    async def test_collector_tier_serves_repeat_cycles(self, monitor):
        calls = []

        async def fetch():
            calls.append(1)
            return ScalarSnapshot(entity_id="1", entity_name="Halo", status="operational")

        monitor.register("checks", scalar_collector("1", fetch, cache_ttl=None))
        await monitor.run_cycle("checks")
        await monitor.run_cycle("checks")

        assert len(calls) == 1

    async def test_zero_ttl_bypasses_cache(self, monitor):
        calls = []

        async def fetch():
            calls.append(1)
            return ScalarSnapshot(entity_id="1", entity_name="Halo", status="operational")

        monitor.register("checks", scalar_collector("1", fetch, cache_ttl=0))
        await monitor.run_cycle("checks")
        await monitor.run_cycle("checks")

        assert len(calls) == 2

    async def test_cycle_invalidates_response_tier(self, monitor, cache):
        await cache.set("api:services", {"stale": True}, ttl=60, source="api-response")
        await cache.set("api:events:limit=100", {"stale": True}, ttl=60, source="api-response")
        await cache.set("api:cloud", {"untouched": True}, ttl=60, source="api-response")

        monitor.register("checks", scalar_collector("1", returns("outage", "1")))
        await monitor.run_cycle("checks")

        assert await cache.get("api:services") is None
        assert await cache.get("api:events:limit=100") is None
        assert await cache.get("api:cloud") == {"untouched": True}
