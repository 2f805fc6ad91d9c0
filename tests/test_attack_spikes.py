"""
Unit tests for the attack spike detector
"""
from datetime import timedelta

from models.snapshots import AttackSnapshot
from conftest import T0


def attacks(layer3=0, layer7=0):
    return AttackSnapshot(entity_id="global", entity_name="Global",
                          counts={"layer3": layer3, "layer7": layer7})


class TestAttackSpikes:
    """Threshold crossing, at most once per layer per hour"""

    async def test_below_threshold_is_quiet(self, spikes, database):
        assert await spikes.evaluate("radar", attacks(layer3=999, layer7=1000), now=T0) == []
        row = (await database.get_current_statuses(["radar"]))[0]
        assert row.status == "operational"

    async def test_spike_emits_critical_event(self, spikes, database):
        events = await spikes.evaluate("radar", attacks(layer7=4200), now=T0)

        assert len(events) == 1
        assert events[0].event_type == "ddos_spike_layer7"
        assert events[0].severity == "critical"
        assert events[0].title == "DDoS Spike Detected: 4200 Layer 7 attacks"
        assert (await database.get_current_statuses(["radar"]))[0].status == "degraded"

    async def test_fires_once_per_hour(self, spikes, database):
        hour = T0.replace(minute=5)
        first = await spikes.evaluate("radar", attacks(layer3=2000), now=hour)
        second = await spikes.evaluate("radar", attacks(layer3=3000), now=hour + timedelta(minutes=15))
        next_hour = await spikes.evaluate("radar", attacks(layer3=2500), now=hour + timedelta(hours=1))

        assert len(first) == 1
        assert second == []
        assert len(next_hour) == 1

    async def test_layers_are_independent(self, spikes):
        await spikes.evaluate("radar", attacks(layer3=2000), now=T0)
        events = await spikes.evaluate("radar", attacks(layer3=2000, layer7=2000),
                                       now=T0 + timedelta(minutes=15))

        assert [e.event_type for e in events] == ["ddos_spike_layer7"]

    async def test_spikes_do_not_count_as_active(self, spikes, database):
        await spikes.evaluate("radar", attacks(layer3=2000), now=T0)
        summary = await database.event_summary(T0 - timedelta(days=1))
        assert summary["active_count"] == 0
