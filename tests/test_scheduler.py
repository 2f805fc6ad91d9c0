"""
Unit tests for cron registration
"""
import pytest

from services import scheduler as scheduler_module
from services.scheduler import get_all_jobs, parse_cron, register_monitor_jobs, remove_cron_job


@pytest.fixture(autouse=True)
def fresh_scheduler(monkeypatch):
    monkeypatch.setattr(scheduler_module, "_scheduler", None)
    yield


class FakeMonitor:
    async def run_cycle(self, group):
        return group


class FakeCleanup:
    async def run_once(self):
        return {}


class TestParseCron:
    """5- and 6-field expressions"""

    def test_five_field(self):
        trigger = parse_cron("*/10 * * * *")
        fields = {f.name: str(f) for f in trigger.fields}
        assert fields["minute"] == "*/10"
        assert fields["second"] == "0"

    def test_six_field(self):
        trigger = parse_cron("30 0 3 * * *")
        fields = {f.name: str(f) for f in trigger.fields}
        assert fields["second"] == "30"
        assert fields["hour"] == "3"


class TestRegisterMonitorJobs:
    """One job per group plus retention"""

    def test_jobs_registered(self, settings):
        job_ids = register_monitor_jobs(settings, FakeMonitor(), FakeCleanup())

        assert job_ids == ["monitor:checks", "monitor:cloud", "monitor:catalog", "retention"]
        assert {job["id"] for job in get_all_jobs()} == set(job_ids)

    def test_jobs_never_overlap(self, settings):
        register_monitor_jobs(settings, FakeMonitor())
        job = scheduler_module.get_scheduler().get_job("monitor:checks")

        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.kwargs == {"group": "checks"}

    def test_remove(self, settings):
        register_monitor_jobs(settings, FakeMonitor())
        assert remove_cron_job("monitor:cloud") is True
        assert remove_cron_job("monitor:cloud") is False
