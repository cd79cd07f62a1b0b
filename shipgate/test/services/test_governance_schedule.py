from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from shipgate.services.governance.schedule import FreezePeriod, ReleaseCalendar

UTC_CALENDAR = ReleaseCalendar(timezone=UTC)

MONDAY = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)
SUNDAY = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)

YEAR_END = FreezePeriod(
    name="year-end",
    start=datetime(2026, 12, 20, tzinfo=UTC),
    end=datetime(2027, 1, 3, tzinfo=UTC),
    reason="holidays",
)


class TestBusinessHours:
    @pytest.mark.parametrize(
        ("hour", "minute", "expected"),
        [(8, 59, False), (9, 0, True), (16, 59, True), (17, 0, False)],
    )
    def test_window_is_start_inclusive_end_exclusive(self, hour: int, minute: int, expected: bool) -> None:
        at = MONDAY.replace(hour=hour, minute=minute)
        assert UTC_CALENDAR.is_business_hours(at) is expected

    def test_weekend_is_closed_unless_allowed(self) -> None:
        assert UTC_CALENDAR.is_weekend(SUNDAY)
        assert not UTC_CALENDAR.is_business_hours(SUNDAY)
        assert ReleaseCalendar(timezone=UTC, allow_weekends=True).is_business_hours(SUNDAY)
        assert not UTC_CALENDAR.is_weekend(MONDAY)

    def test_hours_are_read_in_the_calendar_timezone(self) -> None:
        paris = ReleaseCalendar(timezone=ZoneInfo("Europe/Paris"))
        # UTC+1 in early March.
        assert not paris.is_business_hours(datetime(2026, 3, 2, 7, 30, tzinfo=UTC))
        assert paris.is_business_hours(datetime(2026, 3, 2, 8, 30, tzinfo=UTC))

    def test_naive_time_is_utc(self) -> None:
        assert UTC_CALENDAR.is_business_hours(datetime(2026, 3, 2, 10, 0))


class TestFreeze:
    def test_bounds(self) -> None:
        calendar = ReleaseCalendar(timezone=UTC, freezes=(YEAR_END,))
        assert calendar.active_freeze(YEAR_END.start) == YEAR_END
        assert calendar.active_freeze(datetime(2027, 1, 2, 23, 59, tzinfo=UTC)) == YEAR_END
        assert calendar.active_freeze(YEAR_END.end) is None
        assert calendar.active_freeze(MONDAY) is None

    def test_first_matching_freeze_wins(self) -> None:
        soft = FreezePeriod(
            name="december",
            start=datetime(2026, 12, 1, tzinfo=UTC),
            end=datetime(2027, 1, 1, tzinfo=UTC),
            severity="soft",
        )
        calendar = ReleaseCalendar(timezone=UTC, freezes=(soft, YEAR_END))
        active = calendar.active_freeze(datetime(2026, 12, 24, tzinfo=UTC))
        assert active is not None
        assert active.name == "december"


def test_context_fields() -> None:
    calendar = ReleaseCalendar(timezone=UTC, freezes=(YEAR_END,))

    assert calendar.context(MONDAY) == {
        "is_business_hours": True,
        "is_weekend": False,
        "in_freeze_period": False,
        "freeze_severity": "",
        "hour": 10,
        "weekday": "monday",
    }

    frozen = calendar.context(datetime(2026, 12, 24, 11, 0, tzinfo=UTC))
    assert frozen["in_freeze_period"] is True
    assert frozen["freeze_severity"] == "hard"
    assert frozen["weekday"] == "thursday"
