"""
Unit tests for per-domain change polling
"""
from datetime import timedelta

from models.snapshots import IncidentSnapshot, ScalarSnapshot
from services.change_notifier import ChangeNotifier
from conftest import T0


class TestChangeNotifier:
    """Only domains written after the checkpoint are reported"""

    async def test_reports_written_domains(self, database, emitter, differ):
        await emitter.observe("service", ScalarSnapshot(entity_id="1", entity_name="Halo",
                                                        status="operational"), now=T0)
        await differ.diff("m365", IncidentSnapshot(scope="teams", entity_name="Teams"),
                          now=T0 + timedelta(minutes=1))

        changes = await ChangeNotifier(database).poll(T0 - timedelta(minutes=1))

        assert {c["domain"] for c in changes} == {"services", "cloud", "m365", "internet", "radar"}
        assert {c["domain"] for c in changes if c["updated"]} == {"services", "m365"}
        unchanged = next(c for c in changes if c["domain"] == "cloud")
        assert unchanged == {"domain": "cloud", "updated": False, "timestamp": None}

    async def test_checkpoint_excludes_older_writes(self, database, emitter):
        notifier = ChangeNotifier(database)
        await emitter.observe("service", ScalarSnapshot(entity_id="1", entity_name="Halo",
                                                        status="operational"), now=T0)
        first = await notifier.poll_with_checkpoint(T0 - timedelta(minutes=1))

        await emitter.observe("isp", ScalarSnapshot(entity_id="comcast", entity_name="Comcast",
                                                    status="operational"), now=T0 + timedelta(minutes=5))
        second = await notifier.poll_with_checkpoint(T0)

        assert first["checkpoint"] == T0.isoformat()
        assert [c["domain"] for c in second["changes"] if c["updated"]] == ["internet"]
        assert second["checkpoint"] == (T0 + timedelta(minutes=5)).isoformat()

    async def test_nothing_new(self, database):
        result = await ChangeNotifier(database).poll_with_checkpoint(T0)
        assert not any(c["updated"] for c in result["changes"])
        assert result["checkpoint"] == T0.isoformat()
