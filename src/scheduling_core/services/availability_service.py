"""Availability calculator.

Turns the calendars of a department (optionally narrowed to one operator and
to the organization's own hours) into bookable slot starts, then removes the
ones that collide with live reservations.

Calendars are layered by intersection on absolute instants:

* the department's calendar (required, no schedule means no slots);
* the operator's calendar when ``user_id`` is given (required too);
* the organization's calendar, only on dates where it defines hours.

Slots are generated in the department's timezone and reported in the
caller's timezone, keyed by the caller-local date.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.config import SchedulingSettings, get_settings
from scheduling_core.database.models import Department
from scheduling_core.database.session import begin_read_only
from scheduling_core.database.types import utcnow
from scheduling_core.exceptions import ValidationError
from scheduling_core.models.availability import AvailabilityRequest, AvailabilityResponse
from scheduling_core.repositories import (
    AppointmentsRepository,
    DepartmentsRepository,
    ExceptionsRepository,
    SchedulesRepository,
)
from scheduling_core.scheduling.booking_guard import scope_key_for
from scheduling_core.scheduling.time_windows import (
    DateException,
    Interval,
    WeeklySchedule,
    blocked_interval,
    date_range,
    generate_slots,
    has_calendar_for,
    intersect_windows,
    localize_windows,
    parse_weekly_hours,
    parse_windows,
    resolve_day_intervals,
    whole_day,
)

logger = logging.getLogger(__name__)

Calendar = Tuple[Optional[WeeklySchedule], Dict[date, DateException]]


def resolve_timezone(name: str, field: str = "client_timezone") -> ZoneInfo:
    """Resolve an IANA timezone name or raise INVALID_TIMEZONE."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(
            f"Unknown timezone: {name}",
            errors={field: "Use an IANA name such as Europe/Madrid"},
            reason="INVALID_TIMEZONE",
        ) from e


async def load_calendar(
    session: AsyncSession,
    target_type: str,
    target_id: str,
    first_day: date,
    last_day: date,
) -> Calendar:
    """Load a target's weekly schedule and its exceptions between two dates."""
    schedule_row = await SchedulesRepository(session).get_for_target(target_type, target_id)
    schedule = None
    if schedule_row is not None:
        schedule = WeeklySchedule(
            timezone=schedule_row.timezone,
            weekly_hours=parse_weekly_hours(schedule_row.weekly_hours),
        )

    exception_rows = await ExceptionsRepository(session).list_for_target(
        target_type, target_id, first_day, last_day
    )
    exceptions = {
        row.exception_date: DateException(
            exception_date=row.exception_date,
            is_closed=row.is_closed,
            custom_hours=parse_windows(row.custom_hours) if row.custom_hours is not None else None,
        )
        for row in exception_rows
    }
    return schedule, exceptions


def calendar_intervals(calendar: Calendar, days: List[date], tz: ZoneInfo) -> List[Interval]:
    """Absolute opening intervals of a calendar over local dates."""
    schedule, exceptions = calendar
    intervals: List[Interval] = []
    for day in days:
        intervals.extend(localize_windows(resolve_day_intervals(schedule, exceptions, day), day, tz))
    return intervals


def organization_intervals(calendar: Calendar, days: List[date], tz: ZoneInfo) -> List[Interval]:
    """Like :func:`calendar_intervals`, but dates without hours are left open."""
    schedule, exceptions = calendar
    intervals: List[Interval] = []
    for day in days:
        if has_calendar_for(schedule, exceptions, day):
            intervals.extend(
                localize_windows(resolve_day_intervals(schedule, exceptions, day), day, tz)
            )
            continue
        span = whole_day(day, tz)
        if intervals and intervals[-1].end == span.start:
            intervals[-1] = Interval(intervals[-1].start, span.end)
        else:
            intervals.append(span)
    return intervals


async def offered_slots(
    session: AsyncSession,
    department: Department,
    user_id: Optional[str],
    first_day: date,
    last_day: date,
    default_timezone: str,
) -> List[datetime]:
    """
    Slot starts the calendars offer, before removing booked ones.

    Args:
        session: Open session
        department: Department being booked
        user_id: Optional operator narrowing the calendars
        first_day: First department-local date
        last_day: Last department-local date (inclusive)
        default_timezone: Zone for calendars that do not name one

    Returns:
        Sorted UTC slot starts
    """
    days = date_range(first_day, last_day)

    department_calendar = await load_calendar(session, "DEPARTMENT", department.id, first_day, last_day)
    if department_calendar[0] is None and not department_calendar[1]:
        return []
    department_tz = ZoneInfo(
        department_calendar[0].timezone if department_calendar[0] else default_timezone
    )
    intervals = calendar_intervals(department_calendar, days, department_tz)

    if user_id:
        user_calendar = await load_calendar(session, "USER", user_id, first_day, last_day)
        user_tz = ZoneInfo(user_calendar[0].timezone if user_calendar[0] else default_timezone)
        intervals = intersect_windows(intervals, calendar_intervals(user_calendar, days, user_tz))

    org_calendar = await load_calendar(
        session, "ORGANIZATION", department.organization_id, first_day, last_day
    )
    if org_calendar[0] is not None or org_calendar[1]:
        org_tz = ZoneInfo(org_calendar[0].timezone if org_calendar[0] else default_timezone)
        intervals = intersect_windows(intervals, organization_intervals(org_calendar, days, org_tz))

    return generate_slots(
        intervals,
        department.slot_duration_minutes,
        department.buffer_before_minutes,
        department.buffer_after_minutes,
    )


class AvailabilityService:
    """Read-only calculator of bookable slots."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[SchedulingSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings().scheduling
        self._clock = clock

    def _validate(self, organization_id: str, request: AvailabilityRequest) -> ZoneInfo:
        if not (organization_id or "").strip():
            raise ValidationError(
                "organization_id is required",
                errors={"organization_id": "required"},
                reason="MISSING_FIELD",
            )
        if not (request.department_id or "").strip():
            raise ValidationError(
                "department_id is required",
                errors={"department_id": "required"},
                reason="MISSING_FIELD",
            )
        span = (request.end_date - request.start_date).days
        if span < 0:
            raise ValidationError(
                "start_date must not be after end_date",
                errors={"end_date": "before start_date"},
                reason="INVALID_RANGE",
            )
        if span > self._settings.max_range_days:
            raise ValidationError(
                f"Date range may span at most {self._settings.max_range_days} days",
                errors={"end_date": f"range of {span} days"},
                reason="INVALID_RANGE",
            )
        return resolve_timezone(request.client_timezone)

    def _empty(self, request: AvailabilityRequest, duration: int) -> AvailabilityResponse:
        return AvailabilityResponse(
            department_id=request.department_id,
            user_id=request.user_id,
            client_timezone=request.client_timezone,
            slot_duration_minutes=duration,
            slots={day.isoformat(): [] for day in date_range(request.start_date, request.end_date)},
        )

    async def get_availability(
        self, organization_id: str, request: AvailabilityRequest
    ) -> AvailabilityResponse:
        """
        Compute bookable slots for a date range.

        Args:
            organization_id: Caller's organization
            request: Department, optional operator, dates and client timezone

        Returns:
            Slot starts keyed by client-local date; every requested date is
            present. Unknown, foreign or inactive departments yield no slots.

        Raises:
            ValidationError: MISSING_FIELD, INVALID_RANGE or INVALID_TIMEZONE
        """
        client_tz = self._validate(organization_id, request)

        async with self._session_factory() as session:
            async with session.begin():
                await begin_read_only(session)
                department = await DepartmentsRepository(session).get_for_organization(
                    request.department_id, organization_id
                )
                if department is None or not department.is_active:
                    logger.debug(
                        f"No availability: department {request.department_id} missing or inactive"
                    )
                    return self._empty(request, self._settings.default_slot_duration_minutes)

                # One day of padding each side covers any client/target offset
                first_day = request.start_date - timedelta(days=1)
                last_day = request.end_date + timedelta(days=1)
                candidates = await offered_slots(
                    session,
                    department,
                    request.user_id,
                    first_day,
                    last_day,
                    self._settings.default_timezone,
                )

                reservations = []
                if candidates:
                    reservations = await AppointmentsRepository(session).list_blocking(
                        [scope_key_for(department.id, request.user_id)],
                        candidates[0] - timedelta(minutes=department.buffer_before_minutes),
                        candidates[-1]
                        + timedelta(
                            minutes=department.slot_duration_minutes
                            + department.buffer_after_minutes
                        ),
                    )

        taken = [Interval(r.blocked_start_at, r.blocked_end_at) for r in reservations]
        earliest = self._clock().astimezone(timezone.utc) + timedelta(
            minutes=self._settings.min_notice_minutes
        )

        response = self._empty(request, department.slot_duration_minutes)
        for start in candidates:
            if start < earliest:
                continue
            wanted = blocked_interval(
                start,
                department.slot_duration_minutes,
                department.buffer_before_minutes,
                department.buffer_after_minutes,
            )
            if any(wanted.overlaps(existing) for existing in taken):
                continue
            local = start.astimezone(client_tz)
            key = local.date().isoformat()
            if key in response.slots:
                response.slots[key].append(local.strftime("%H:%M"))

        logger.debug(
            f"Availability for department {department.id}: "
            f"{sum(len(v) for v in response.slots.values())} slots"
        )
        return response


def get_availability_service(
    session_factory: async_sessionmaker[AsyncSession],
) -> AvailabilityService:
    """Factory for AvailabilityService."""
    return AvailabilityService(session_factory=session_factory)
