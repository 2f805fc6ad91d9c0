"""
Unit tests for event log filtering, paging and summary
"""
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import DateTime

from core.database import WriteBatch
from core.errors import InvalidFilterError
from models.database import AlertState, Event, StatusObservation, utc_now
from services.event_log import EventLog, parse_resolved


def make_event(source="service", severity="critical", entity="Halo", hours_ago=1, resolved=False,
               event_type="outage"):
    at = utc_now() - timedelta(hours=hours_ago)
    return Event(source=source, event_type=event_type, severity=severity,
                 title=f"{entity} {event_type}", entity_id=entity.lower(), entity_name=entity,
                 occurred_at=at, created_at=at, resolved_at=at if resolved else None)


@pytest.fixture
def event_log(database, settings):
    return EventLog(database, settings)


@pytest_asyncio.fixture
async def seeded(database):
    await database.apply(WriteBatch(events=[
        make_event(hours_ago=1),
        make_event(severity="warning", entity="Kaseya", hours_ago=2, event_type="degraded"),
        make_event(severity="info", hours_ago=3, resolved=True, event_type="resolved"),
        make_event(source="cloud", entity="AWS", hours_ago=4, event_type="incident_started"),
        make_event(source="m365", severity="warning", entity="Teams", hours_ago=24 * 10,
                   event_type="service_issue"),
    ]))


class TestBuildFilter:
    """Validation and clamping of raw parameters"""

    def test_invalid_severity(self, event_log):
        with pytest.raises(InvalidFilterError) as exc:
            event_log.build_filter(severity="fatal")
        assert exc.value.field == "severity"
        assert "critical" in str(exc.value)

    def test_invalid_source(self, event_log):
        with pytest.raises(InvalidFilterError):
            event_log.build_filter(source="twitter")

    def test_limit_and_offset_clamped(self, event_log, settings):
        assert event_log.build_filter(limit=10_000).limit == settings.max_events_limit
        assert event_log.build_filter(limit=0).limit == 1
        assert event_log.build_filter(offset=-5).offset == 0
        assert event_log.build_filter().limit == settings.default_events_limit

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("FALSE", False), ("maybe", None), (None, None),
    ])
    def test_parse_resolved(self, raw, expected):
        assert parse_resolved(raw) is expected

    def test_cache_key_is_stable(self, event_log):
        a = event_log.build_filter(source="cloud", limit=20)
        b = event_log.build_filter(limit=20, source="cloud")
        assert a.cache_key() == b.cache_key()
        assert a.cache_key() != event_log.build_filter(source="m365", limit=20).cache_key()


class TestQuery:
    """Filtering, ordering and paging"""

    async def test_newest_first(self, event_log, seeded):
        events = await event_log.list_events(event_log.build_filter())
        assert [e["entity_name"] for e in events] == ["Halo", "Kaseya", "Halo", "AWS", "Teams"]

    async def test_filters_combine(self, event_log, seeded):
        event_filter = event_log.build_filter(source="service", resolved="false")
        events = await event_log.list_events(event_filter)

        assert {e["severity"] for e in events} == {"critical", "warning"}
        assert await event_log.count_events(event_filter) == 2

    async def test_entity_name_filter(self, event_log, seeded):
        events = await event_log.list_events(event_log.build_filter(entity_name="AWS"))
        assert len(events) == 1
        assert events[0]["source"] == "cloud"
        assert events[0]["source_label"] == "Cloud"

    async def test_total_is_before_paging(self, event_log, seeded):
        payload = await event_log.query(event_log.build_filter(limit=2, offset=1))

        assert len(payload["events"]) == 2
        assert payload["total"] == 5
        assert payload["events"][0]["entity_name"] == "Kaseya"

    async def test_summary_window(self, event_log, seeded):
        summary = await event_log.summary(7)
        by_source = {row["source"]: row["count"] for row in summary["by_source"]}

        assert by_source == {"service": 3, "cloud": 1}
        assert summary["active_count"] == 4
        assert summary["window_days"] == 7

    async def test_has_event_since(self, database, seeded):
        assert await database.has_event_since("service", "halo", utc_now() - timedelta(hours=2))
        assert not await database.has_event_since("service", "kaseya", utc_now() - timedelta(hours=1))


class TestTimestampColumns:
    """Timestamps are stored as naive UTC"""

    def test_datetime_columns_are_naive(self):
        for table in (Event.__table__, AlertState.__table__, StatusObservation.__table__):
            for column in table.columns:
                if isinstance(column.type, DateTime):
                    assert column.type.timezone is False

    async def test_naive_timestamp_round_trip(self, database):
        at = utc_now().replace(microsecond=0)
        await database.apply(WriteBatch(
            events=[Event(source="service", event_type="outage", severity="critical", title="t",
                          entity_id="1", entity_name="Halo", occurred_at=at, created_at=at)],
            alert_upserts=[("service", "1", "outage", at)],
        ))

        state = await database.get_alert_state("service", "1")
        assert state.last_checked == at
        assert state.last_checked.tzinfo is None
