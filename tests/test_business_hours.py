"""Tests for the business-hours gate."""

from __future__ import annotations

from datetime import UTC, datetime

from receptionist.core.business_hours import is_within_business_hours
from receptionist.models import BusinessHours, DayHours

WEEKDAYS_9_TO_18 = [DayHours(day=d, start="9:00", end="18:00") for d in range(5)]


def _policy(**overrides) -> BusinessHours:
    data = {"enabled": True, "hours": WEEKDAYS_9_TO_18}
    data.update(overrides)
    return BusinessHours(**data)


class TestBusinessHours:
    def test_disabled_policy_is_always_open(self):
        sunday_night = datetime(2026, 3, 8, 23, 0, tzinfo=UTC)
        assert is_within_business_hours(BusinessHours(enabled=False), sunday_night) is True

    def test_inside_hours(self):
        monday = datetime(2026, 3, 2, 10, 30, tzinfo=UTC)
        assert is_within_business_hours(_policy(), monday) is True

    def test_bounds_are_inclusive(self):
        assert is_within_business_hours(_policy(), datetime(2026, 3, 2, 9, 0, tzinfo=UTC))
        assert is_within_business_hours(_policy(), datetime(2026, 3, 2, 18, 0, tzinfo=UTC))
        assert not is_within_business_hours(_policy(), datetime(2026, 3, 2, 18, 1, tzinfo=UTC))

    def test_day_without_entry_is_closed(self):
        saturday = datetime(2026, 3, 7, 12, 0, tzinfo=UTC)
        assert is_within_business_hours(_policy(), saturday) is False

    def test_first_entry_for_the_day_wins(self):
        policy = _policy(hours=[
            DayHours(day=0, start="9:00", end="12:00"),
            DayHours(day=0, start="15:00", end="20:00"),
        ])
        afternoon = datetime(2026, 3, 2, 16, 0, tzinfo=UTC)
        assert is_within_business_hours(policy, afternoon) is False

    def test_converts_to_business_timezone(self):
        # 15:30 UTC is 09:30 in Mexico City (UTC-6)
        policy = _policy(timezone="America/Mexico_City")
        assert is_within_business_hours(policy, datetime(2026, 3, 2, 15, 30, tzinfo=UTC)) is True
        assert is_within_business_hours(policy, datetime(2026, 3, 2, 10, 30, tzinfo=UTC)) is False

    def test_naive_time_is_read_in_business_timezone(self):
        policy = _policy(timezone="America/Mexico_City")
        assert is_within_business_hours(policy, datetime(2026, 3, 2, 10, 30)) is True
