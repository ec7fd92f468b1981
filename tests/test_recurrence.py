"""Tests for recurrence expansion."""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from clinic_scheduler.scheduling.recurrence import expand_recurrence
from clinic_scheduler.schemas.appointments import RecurrenceRule, RecurrenceType
from tests.memory_store import MONDAY, at

UTC_ZONE = ZoneInfo("UTC")


def expand(anchor, **rule):
    return expand_recurrence(anchor, RecurrenceRule(**rule), UTC_ZONE)


def test_max_occurrences_counts_bookings_after_anchor():
    """Test four weekly occurrences mean four bookings after the anchor."""
    anchor = at(MONDAY, 10)

    result = expand(anchor, type=RecurrenceType.WEEKLY, max_occurrences=4)

    assert result == [anchor + timedelta(weeks=n) for n in (1, 2, 3, 4)]


def test_daily_with_interval():
    anchor = at(MONDAY, 10)

    result = expand(anchor, type=RecurrenceType.DAILY, interval=2, max_occurrences=3)

    assert result == [at(date(2030, 1, day), 10) for day in (9, 11, 13)]


def test_biweekly_and_quarterly_cadence():
    """Test fixed cadences ignore the interval field."""
    anchor = at(MONDAY, 10)

    biweekly = expand(anchor, type=RecurrenceType.BIWEEKLY, interval=5, max_occurrences=1)
    quarterly = expand(anchor, type=RecurrenceType.QUARTERLY, max_occurrences=1)

    assert biweekly == [anchor + timedelta(weeks=2)]
    assert quarterly == [at(date(2030, 4, 7), 10)]


def test_monthly_from_month_end_does_not_drift():
    """Test a series anchored on the 31st clamps to month end and recovers."""
    anchor = datetime(2030, 1, 31, 10, tzinfo=UTC)

    result = expand(anchor, type=RecurrenceType.MONTHLY, max_occurrences=3)

    assert [occurrence.date() for occurrence in result] == [
        date(2030, 2, 28),
        date(2030, 3, 31),
        date(2030, 4, 30),
    ]


def test_end_date_is_inclusive():
    """Test the series stops after the end date but keeps an occurrence on it."""
    anchor = at(MONDAY, 10)

    result = expand(
        anchor, type=RecurrenceType.WEEKLY, end_date=date(2030, 1, 21), max_occurrences=10
    )

    assert [occurrence.date() for occurrence in result] == [date(2030, 1, 14), date(2030, 1, 21)]


def test_weekday_filter_skips_other_days():
    """Test daily cadence limited to Monday (1) and Wednesday (3)."""
    anchor = at(MONDAY, 10)

    result = expand(anchor, type=RecurrenceType.DAILY, days_of_week=[1, 3], max_occurrences=3)

    assert [occurrence.date() for occurrence in result] == [
        date(2030, 1, 9),
        date(2030, 1, 14),
        date(2030, 1, 16),
    ]


def test_weekday_filter_numbers_sunday_as_zero():
    anchor = at(MONDAY, 10)

    result = expand(anchor, type=RecurrenceType.DAILY, days_of_week=[0], max_occurrences=2)

    assert [occurrence.date() for occurrence in result] == [date(2030, 1, 13), date(2030, 1, 20)]


def test_filter_that_never_matches_terminates():
    """Test a weekly rule filtered to another weekday ends on the iteration guard."""
    anchor = at(MONDAY, 10)
    rule = RecurrenceRule(type=RecurrenceType.WEEKLY, days_of_week=[4], max_occurrences=5)

    result = expand_recurrence(
        anchor, rule, UTC_ZONE, default_horizon_days=100_000, max_iterations=50
    )

    assert result == []


def test_defaults_apply_without_limits():
    """Test the default occurrence cap applies when the rule has none."""
    anchor = at(MONDAY, 10)
    rule = RecurrenceRule(type=RecurrenceType.WEEKLY)

    assert len(expand_recurrence(anchor, rule, UTC_ZONE, default_max_occurrences=6)) == 6


def test_wall_clock_time_kept_across_dst():
    """Test weekly occurrences keep 09:00 local time when the offset changes."""
    tz = ZoneInfo("Europe/Lisbon")
    anchor = datetime(2030, 3, 25, 9, tzinfo=tz)
    rule = RecurrenceRule(type=RecurrenceType.WEEKLY, max_occurrences=1)

    (occurrence,) = expand_recurrence(anchor, rule, tz)

    assert occurrence.astimezone(tz).hour == 9
    assert occurrence.utcoffset() == timedelta(hours=1)


def test_rule_rejects_invalid_weekday():
    with pytest.raises(ValidationError):
        RecurrenceRule(type=RecurrenceType.DAILY, days_of_week=[7])
