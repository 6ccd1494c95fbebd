"""Tests for the time-window model."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from scheduling_core.scheduling.time_windows import (
    DateException,
    Interval,
    TimeWindow,
    WeeklySchedule,
    blocked_interval,
    date_range,
    generate_slots,
    has_calendar_for,
    intersect_windows,
    localize_windows,
    parse_time_of_day,
    parse_weekly_hours,
    parse_windows,
    resolve_day_intervals,
    serialize_weekly_hours,
    whole_day,
)

MADRID = ZoneInfo("Europe/Madrid")
MONDAY = date(2030, 1, 7)


def utc(hour, minute=0, day=7, month=1):
    return datetime(2030, month, day, hour, minute, tzinfo=timezone.utc)


def tw(start, end):
    return TimeWindow(parse_time_of_day(start), parse_time_of_day(end))


class TestParsing:
    """Parsing and validation of wall-clock hours."""

    @pytest.mark.parametrize("value,expected", [("00:00", time(0, 0)), ("09:30", time(9, 30)), ("23:59", time(23, 59))])
    def test_valid_time_of_day(self, value, expected):
        assert parse_time_of_day(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "9:00", "09:60", "0900", "", "ab:cd", None])
    def test_invalid_time_of_day(self, value):
        with pytest.raises(ValueError):
            parse_time_of_day(value)

    def test_windows_are_sorted(self):
        windows = parse_windows([{"start": "16:00", "end": "18:00"}, {"start": "09:00", "end": "14:00"}])
        assert windows == [tw("09:00", "14:00"), tw("16:00", "18:00")]

    def test_touching_windows_are_allowed(self):
        windows = parse_windows([{"start": "09:00", "end": "12:00"}, {"start": "12:00", "end": "14:00"}])
        assert len(windows) == 2

    def test_inverted_window_rejected(self):
        with pytest.raises(ValueError, match="before end"):
            parse_windows([{"start": "14:00", "end": "09:00"}])

    def test_empty_window_rejected(self):
        with pytest.raises(ValueError):
            parse_windows([{"start": "09:00", "end": "09:00"}])

    def test_overlapping_windows_rejected(self):
        with pytest.raises(ValueError, match="Overlapping"):
            parse_windows([{"start": "09:00", "end": "12:00"}, {"start": "11:00", "end": "14:00"}])

    def test_missing_keys_rejected(self):
        with pytest.raises(ValueError):
            parse_windows([{"start": "09:00"}])

    def test_weekly_hours_keys(self):
        parsed = parse_weekly_hours({"1": [{"start": "09:00", "end": "14:00"}], "7": []})
        assert parsed == {1: [tw("09:00", "14:00")], 7: []}

    @pytest.mark.parametrize("raw", [{}, {"0": []}, {"8": []}, {"mon": []}, {"1": "09:00-14:00"}])
    def test_weekly_hours_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_weekly_hours(raw)

    def test_weekly_hours_error_names_weekday(self):
        with pytest.raises(ValueError, match="Weekday 3"):
            parse_weekly_hours({"3": [{"start": "10:00", "end": "09:00"}]})

    def test_serialize_normalizes_order(self):
        parsed = parse_weekly_hours(
            {"2": [{"start": "16:00", "end": "18:00"}, {"start": "09:00", "end": "14:00"}], "1": []}
        )
        assert serialize_weekly_hours(parsed) == {
            "1": [],
            "2": [{"start": "09:00", "end": "14:00"}, {"start": "16:00", "end": "18:00"}],
        }


class TestResolveDay:
    """Exception precedence over weekly hours."""

    schedule = WeeklySchedule(
        timezone="Europe/Madrid",
        weekly_hours={1: [tw("09:00", "14:00"), tw("16:00", "19:00")]},
    )

    def test_weekly_pattern(self):
        assert resolve_day_intervals(self.schedule, {}, MONDAY) == [tw("09:00", "14:00"), tw("16:00", "19:00")]

    def test_weekday_not_listed_is_closed(self):
        assert resolve_day_intervals(self.schedule, {}, MONDAY + timedelta(days=1)) == []

    def test_closed_exception_wins(self):
        exceptions = {MONDAY: DateException(MONDAY, is_closed=True)}
        assert resolve_day_intervals(self.schedule, exceptions, MONDAY) == []

    def test_custom_hours_replace_weekly(self):
        exceptions = {MONDAY: DateException(MONDAY, is_closed=False, custom_hours=[tw("10:00", "12:00")])}
        assert resolve_day_intervals(self.schedule, exceptions, MONDAY) == [tw("10:00", "12:00")]

    def test_empty_custom_hours_close_the_day(self):
        exceptions = {MONDAY: DateException(MONDAY, is_closed=False, custom_hours=[])}
        assert resolve_day_intervals(self.schedule, exceptions, MONDAY) == []

    def test_open_exception_without_hours_keeps_weekly(self):
        exceptions = {MONDAY: DateException(MONDAY, is_closed=False)}
        assert resolve_day_intervals(self.schedule, exceptions, MONDAY) == [tw("09:00", "14:00"), tw("16:00", "19:00")]

    def test_no_schedule_is_closed(self):
        assert resolve_day_intervals(None, {}, MONDAY) == []

    def test_custom_hours_without_schedule(self):
        exceptions = {MONDAY: DateException(MONDAY, is_closed=False, custom_hours=[tw("10:00", "11:00")])}
        assert resolve_day_intervals(None, exceptions, MONDAY) == [tw("10:00", "11:00")]

    def test_has_calendar_for(self):
        assert has_calendar_for(self.schedule, {}, MONDAY)
        assert not has_calendar_for(None, {}, MONDAY)
        assert has_calendar_for(None, {MONDAY: DateException(MONDAY, is_closed=True)}, MONDAY)
        assert not has_calendar_for(None, {MONDAY: DateException(MONDAY, is_closed=False)}, MONDAY)


class TestIntervals:
    """Localization and interval arithmetic."""

    def test_localize_uses_target_timezone(self):
        intervals = localize_windows([tw("09:00", "14:00")], MONDAY, MADRID)
        assert intervals == [Interval(utc(8), utc(13))]
        assert intervals[0].start.tzinfo == timezone.utc

    def test_localize_across_dst_change(self):
        # Spain moves to UTC+2 on 2030-03-31
        intervals = localize_windows([tw("09:00", "10:00")], date(2030, 4, 1), MADRID)
        assert intervals == [Interval(utc(7, day=1, month=4), utc(8, day=1, month=4))]

    def test_whole_day(self):
        span = whole_day(MONDAY, MADRID)
        assert span == Interval(utc(23, day=6), utc(23, day=7))

    def test_overlap_is_half_open(self):
        a = Interval(utc(9), utc(10))
        assert a.overlaps(Interval(utc(9, 30), utc(11)))
        assert not a.overlaps(Interval(utc(10), utc(11)))
        assert not a.overlaps(Interval(utc(8), utc(9)))

    def test_expand(self):
        assert Interval(utc(9), utc(10)).expand(15, 30) == Interval(utc(8, 45), utc(10, 30))

    def test_intersect_absolute(self):
        result = intersect_windows(
            [Interval(utc(8), utc(13)), Interval(utc(15), utc(18))],
            [Interval(utc(10), utc(16))],
        )
        assert result == [Interval(utc(10), utc(13)), Interval(utc(15), utc(16))]

    def test_intersect_wall_clock(self):
        result = intersect_windows([tw("09:00", "14:00")], [tw("11:00", "18:00")])
        assert result == [tw("11:00", "14:00")]

    def test_intersect_drops_touching_pieces(self):
        assert intersect_windows([tw("09:00", "12:00")], [tw("12:00", "14:00")]) == []

    def test_intersect_with_empty(self):
        assert intersect_windows([tw("09:00", "12:00")], []) == []


class TestSlots:
    """Slot generation."""

    def test_steps_by_duration(self):
        slots = generate_slots([Interval(utc(8), utc(13))], 60)
        assert slots == [utc(8), utc(9), utc(10), utc(11), utc(12)]

    def test_last_slot_must_fit(self):
        slots = generate_slots([Interval(utc(8), utc(10, 30))], 60)
        assert slots == [utc(8), utc(9)]

    def test_buffer_after_must_fit(self):
        slots = generate_slots([Interval(utc(8), utc(13))], 60, buffer_after_minutes=30)
        assert slots == [utc(8), utc(9), utc(10), utc(11)]

    def test_buffer_before_does_not_move_the_first_slot(self):
        slots = generate_slots([Interval(utc(8), utc(11))], 60, buffer_before_minutes=30)
        assert slots == [utc(8), utc(9), utc(10)]

    def test_both_buffers(self):
        slots = generate_slots(
            [Interval(utc(8), utc(11))], 60, buffer_before_minutes=30, buffer_after_minutes=30
        )
        assert slots == [utc(8), utc(9)]

    def test_several_intervals_sorted(self):
        slots = generate_slots([Interval(utc(15), utc(16)), Interval(utc(8), utc(9))], 30)
        assert slots == [utc(8), utc(8, 30), utc(15), utc(15, 30)]

    def test_non_positive_duration(self):
        assert generate_slots([Interval(utc(8), utc(13))], 0) == []

    def test_blocked_interval(self):
        blocked = blocked_interval(utc(9), 60, 10, 20)
        assert blocked == Interval(utc(8, 50), utc(10, 20))

    def test_date_range_inclusive(self):
        assert date_range(MONDAY, MONDAY + timedelta(days=2)) == [
            MONDAY,
            MONDAY + timedelta(days=1),
            MONDAY + timedelta(days=2),
        ]
        assert date_range(MONDAY, MONDAY - timedelta(days=1)) == []
