"""Time-window model.

Pure functions that turn weekly opening hours and date exceptions into
absolute intervals and bookable slot starts. Nothing here touches the
database or the clock.

Two kinds of windows are used:

* ``TimeWindow``: a wall-clock ``[start, end)`` pair inside one day, as typed
  by an administrator ("09:00" to "14:00").
* ``Interval``: an absolute ``[start, end)`` pair of aware datetimes.

Wall-clock windows are localized into absolute intervals once, in the
target's timezone; all further arithmetic (intersection, slot stepping,
overlap checks) happens on absolute instants so DST transitions only matter
at the edges.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo

WEEKDAY_KEYS = ("1", "2", "3", "4", "5", "6", "7")

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True, order=True)
class TimeWindow:
    """Wall-clock window within a single day, half-open."""

    start: time
    end: time

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}


@dataclass(frozen=True, order=True)
class Interval:
    """Absolute time interval, half-open."""

    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "Interval") -> bool:
        """Half-open overlap: touching intervals do not overlap."""
        return self.start < other.end and other.start < self.end

    def expand(self, before_minutes: int = 0, after_minutes: int = 0) -> "Interval":
        """Widen the interval by buffers on each side."""
        return Interval(
            self.start - timedelta(minutes=before_minutes),
            self.end + timedelta(minutes=after_minutes),
        )


@dataclass(frozen=True)
class WeeklySchedule:
    """Recurring opening hours keyed by ISO weekday (Monday = 1)."""

    timezone: str
    weekly_hours: Mapping[int, Sequence[TimeWindow]] = field(default_factory=dict)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class DateException:
    """Override for one calendar date."""

    exception_date: date
    is_closed: bool
    custom_hours: Optional[Sequence[TimeWindow]] = None

    @property
    def overrides(self) -> bool:
        """Whether the exception replaces the weekly pattern on its date."""
        return self.is_closed or self.custom_hours is not None


W = TypeVar("W", TimeWindow, Interval)


def parse_time_of_day(value: str) -> time:
    """Parse a strict ``HH:MM`` string between 00:00 and 23:59.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if not isinstance(value, str):
        raise ValueError(f"Time must be a HH:MM string, got {value!r}")
    match = _TIME_OF_DAY.match(value)
    if not match:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM, 00:00-23:59)")
    return time(int(match.group(1)), int(match.group(2)))


def parse_windows(raw: Iterable[Mapping[str, Any]]) -> List[TimeWindow]:
    """Parse and validate a day's list of ``{"start", "end"}`` pairs.

    Windows must satisfy ``start < end`` and must not overlap each other.
    The result is sorted by start time.

    Raises:
        ValueError: On malformed times, inverted windows or overlaps
    """
    windows = []
    for item in raw:
        if not isinstance(item, Mapping) or "start" not in item or "end" not in item:
            raise ValueError("Each window needs 'start' and 'end'")
        window = TimeWindow(parse_time_of_day(item["start"]), parse_time_of_day(item["end"]))
        if window.start >= window.end:
            raise ValueError(
                f"Window start must be before end: {item['start']}-{item['end']}"
            )
        windows.append(window)

    windows.sort()
    for previous, current in zip(windows, windows[1:]):
        if current.start < previous.end:
            raise ValueError(
                f"Overlapping windows: {previous.to_dict()} and {current.to_dict()}"
            )
    return windows


def parse_weekly_hours(raw: Mapping[str, Any]) -> Dict[int, List[TimeWindow]]:
    """Parse a weekly-hours map keyed by ``"1"``..``"7"``.

    Omitted weekdays are closed. The map itself may not be empty.

    Raises:
        ValueError: On unknown keys, an empty map or invalid windows
    """
    if not isinstance(raw, Mapping) or not raw:
        raise ValueError("Weekly hours must define at least one weekday")
    parsed: Dict[int, List[TimeWindow]] = {}
    for key, windows in raw.items():
        if str(key) not in WEEKDAY_KEYS:
            raise ValueError(f"Invalid weekday key: {key!r} (expected 1-7, Monday = 1)")
        if not isinstance(windows, list):
            raise ValueError(f"Weekday {key} must map to a list of windows")
        try:
            parsed[int(key)] = parse_windows(windows)
        except ValueError as e:
            raise ValueError(f"Weekday {key}: {e}") from e
    return parsed


def serialize_weekly_hours(weekly_hours: Mapping[int, Sequence[TimeWindow]]) -> Dict[str, List[Dict[str, str]]]:
    """Inverse of :func:`parse_weekly_hours`, for storage."""
    return {
        str(day): [window.to_dict() for window in windows]
        for day, windows in sorted(weekly_hours.items())
    }


def resolve_day_intervals(
    schedule: Optional[WeeklySchedule],
    exceptions: Mapping[date, DateException],
    day: date,
) -> List[TimeWindow]:
    """Wall-clock opening windows of a target on one date.

    An exception for the date wins over the weekly pattern: a closed
    exception yields nothing, custom hours replace the weekly entry (an empty
    list closes the date). An open exception without custom hours overrides
    nothing. Otherwise the weekly entry for the ISO weekday applies. No
    schedule means closed.
    """
    exception = exceptions.get(day)
    if exception is not None and exception.overrides:
        if exception.is_closed:
            return []
        return sorted(exception.custom_hours or [])
    if schedule is None:
        return []
    return sorted(schedule.weekly_hours.get(day.isoweekday(), []))


def has_calendar_for(
    schedule: Optional[WeeklySchedule],
    exceptions: Mapping[date, DateException],
    day: date,
) -> bool:
    """Whether a target defines any hours for the date (weekly or override)."""
    if schedule is not None:
        return True
    exception = exceptions.get(day)
    return exception is not None and exception.overrides


def localize_windows(windows: Iterable[TimeWindow], day: date, tz: ZoneInfo) -> List[Interval]:
    """Anchor wall-clock windows on a date in a timezone, as UTC intervals."""
    intervals = []
    for window in windows:
        start = datetime.combine(day, window.start, tzinfo=tz).astimezone(timezone.utc)
        end = datetime.combine(day, window.end, tzinfo=tz).astimezone(timezone.utc)
        interval = Interval(start, end)
        if not interval.is_empty:
            intervals.append(interval)
    return intervals


def whole_day(day: date, tz: ZoneInfo) -> Interval:
    """The absolute span of a local calendar date."""
    start = datetime.combine(day, time(0, 0), tzinfo=tz).astimezone(timezone.utc)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz).astimezone(timezone.utc)
    return Interval(start, end)


def intersect_windows(first: Sequence[W], second: Sequence[W]) -> List[W]:
    """Intersection of two lists of windows.

    Works for wall-clock windows and absolute intervals alike. Each list is
    assumed to hold non-overlapping items; the result is sorted and holds no
    empty pieces.
    """
    a = sorted(first)
    b = sorted(second)
    result: List[W] = []
    i = j = 0
    while i < len(a) and j < len(b):
        start = max(a[i].start, b[j].start)
        end = min(a[i].end, b[j].end)
        if start < end:
            result.append(type(a[i])(start, end))
        if a[i].end <= b[j].end:
            i += 1
        else:
            j += 1
    return result


def generate_slots(
    intervals: Iterable[Interval],
    slot_duration_minutes: int,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> List[datetime]:
    """Bookable slot starts inside absolute intervals.

    Steps by the slot duration from each interval's start. A slot is emitted
    only while ``start + duration + buffer_after <= interval.end``, so a slot
    and its trailing buffer never leave the interval. Adjacent slots are not
    separated by buffers; once one is booked, its buffers remove neighbours
    through the overlap check.

    ``buffer_before_minutes`` does not move the first slot: a slot may start
    right at the opening time even though its leading buffer reaches before
    it. The leading buffer only matters against other reservations, through
    :func:`blocked_interval`.
    """
    if slot_duration_minutes <= 0:
        return []
    duration = timedelta(minutes=slot_duration_minutes)
    after = timedelta(minutes=max(buffer_after_minutes, 0))

    slots = set()
    for interval in intervals:
        if interval.is_empty:
            continue
        cursor = interval.start
        while cursor + duration + after <= interval.end:
            slots.add(cursor)
            cursor += duration
    return sorted(slots)


def blocked_interval(
    start_at: datetime,
    slot_duration_minutes: int,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> Interval:
    """Buffer-expanded reservation for a slot starting at ``start_at``."""
    booked = Interval(start_at, start_at + timedelta(minutes=slot_duration_minutes))
    return booked.expand(buffer_before_minutes, buffer_after_minutes)


def date_range(start: date, end: date) -> List[date]:
    """Every date from ``start`` to ``end`` inclusive."""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]
