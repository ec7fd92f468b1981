"""Half-open time interval helpers.

All instants are timezone-aware datetimes. An interval ``[start, end)``
contains its start and excludes its end, so back-to-back bookings never
overlap.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Return True if ``[a_start, a_end)`` and ``[b_start, b_end)`` intersect."""
    return a_start < b_end and a_end > b_start


def at_wall_clock(day: date, clock: time, tz: tzinfo) -> datetime:
    """Anchor a wall-clock time to a calendar day in the given zone."""
    return datetime.combine(day, clock.replace(tzinfo=None), tzinfo=tz)


def day_of_week(day: date) -> int:
    """Weekday number of ``day``, 0 = Sunday through 6 = Saturday."""
    return (day.weekday() + 1) % 7


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, rounded to the nearest minute."""
    return round((end - start) / timedelta(minutes=1))


@dataclass(frozen=True, order=True)
class TimeInterval:
    """A half-open ``[start, end)`` interval."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("Interval end must not precede its start")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def contains(self, start: datetime, end: datetime) -> bool:
        """Whether ``[start, end)`` lies entirely inside this interval."""
        return self.start <= start and end <= self.end

    def clip(self, lower: datetime | None = None, upper: datetime | None = None) -> "TimeInterval":
        """Narrow the interval to the given bounds; may return an empty interval."""
        start = max(self.start, lower) if lower is not None else self.start
        end = min(self.end, upper) if upper is not None else self.end
        if end < start:
            end = start
        return TimeInterval(start, end)

    def subtract(self, hole: "TimeInterval") -> list["TimeInterval"]:
        """Remove ``hole`` from this interval, dropping empty remainders."""
        if not self.overlaps(hole):
            return [self]

        pieces = [
            TimeInterval(self.start, max(self.start, hole.start)),
            TimeInterval(min(self.end, hole.end), self.end),
        ]
        return [piece for piece in pieces if not piece.is_empty]
