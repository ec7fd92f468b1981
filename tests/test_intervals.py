"""Tests for half-open interval helpers."""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from clinic_scheduler.scheduling.intervals import (
    TimeInterval,
    at_wall_clock,
    day_of_week,
    minutes_between,
    overlaps,
)


def t(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 1, 7, hour, minute, tzinfo=UTC)


def test_back_to_back_intervals_do_not_overlap():
    """Test that an interval ending at another's start does not overlap it."""
    assert not overlaps(t(9), t(10), t(10), t(11))
    assert not overlaps(t(10), t(11), t(9), t(10))


def test_overlap_by_one_minute():
    """Test that a shared minute counts as an overlap."""
    assert overlaps(t(9), t(10, 1), t(10), t(11))


def test_containment_overlaps():
    """Test that nested intervals overlap in both directions."""
    assert overlaps(t(9), t(12), t(10), t(11))
    assert overlaps(t(10), t(11), t(9), t(12))


def test_identical_intervals_overlap():
    assert overlaps(t(9), t(10), t(9), t(10))


def test_interval_rejects_reversed_bounds():
    """Test that the end may not precede the start."""
    with pytest.raises(ValueError):
        TimeInterval(t(10), t(9))


def test_subtract_hole_in_the_middle():
    """Test subtracting a lunch break splits the interval in two."""
    day = TimeInterval(t(9), t(17))

    pieces = day.subtract(TimeInterval(t(12), t(13)))

    assert pieces == [TimeInterval(t(9), t(12)), TimeInterval(t(13), t(17))]


def test_subtract_hole_covering_edge():
    """Test subtracting a hole at the edge leaves one piece."""
    day = TimeInterval(t(9), t(17))

    assert day.subtract(TimeInterval(t(8), t(10))) == [TimeInterval(t(10), t(17))]
    assert day.subtract(TimeInterval(t(8), t(18))) == []


def test_subtract_disjoint_hole_is_noop():
    day = TimeInterval(t(9), t(17))

    assert day.subtract(TimeInterval(t(17), t(18))) == [day]


def test_clip_and_contains():
    """Test clipping narrows bounds and may produce an empty interval."""
    day = TimeInterval(t(9), t(17))

    assert day.clip(t(10), t(12)) == TimeInterval(t(10), t(12))
    assert day.clip(t(18), None).is_empty
    assert day.contains(t(9), t(17))
    assert not day.contains(t(16, 30), t(17, 30))


def test_at_wall_clock_keeps_local_time_across_dst():
    """Test that wall-clock anchoring keeps the local hour across a DST switch."""
    tz = ZoneInfo("Europe/Lisbon")

    winter = at_wall_clock(date(2030, 3, 30), time(9), tz)
    summer = at_wall_clock(date(2030, 3, 31), time(9), tz)

    assert winter.hour == summer.hour == 9
    assert summer.astimezone(UTC) - winter.astimezone(UTC) == timedelta(hours=23)


def test_minutes_between_rounds():
    assert minutes_between(t(9), t(9, 45)) == 45
    assert minutes_between(t(9), t(9) + timedelta(seconds=89)) == 1


@pytest.mark.parametrize(
    ("day", "expected"),
    [(date(2030, 1, 6), 0), (date(2030, 1, 7), 1), (date(2030, 1, 12), 6)],
)
def test_day_of_week_starts_on_sunday(day, expected):
    assert day_of_week(day) == expected
