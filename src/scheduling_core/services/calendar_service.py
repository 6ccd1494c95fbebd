"""Weekly schedules and date exceptions of schedulable targets.

A target is ``(target_type, target_id)``: the organization itself, one of its
departments, or an operator who is a member of one of its departments.
Writes are upserts on the natural key, so repeating a call leaves the same
single row behind.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.config import SchedulingSettings, get_settings
from scheduling_core.database.session import begin_read_only
from scheduling_core.database.types import utcnow
from scheduling_core.exceptions import NotFoundError, ValidationError
from scheduling_core.models.calendar import (
    TARGET_TYPES,
    ExceptionResponse,
    ExceptionUpsertRequest,
    ScheduleResponse,
    ScheduleUpsertRequest,
)
from scheduling_core.repositories import (
    DepartmentsRepository,
    ExceptionsRepository,
    MembershipsRepository,
    SchedulesRepository,
)
from scheduling_core.scheduling.time_windows import (
    parse_weekly_hours,
    parse_windows,
    serialize_weekly_hours,
)
from scheduling_core.services.availability_service import resolve_timezone

logger = logging.getLogger(__name__)


class CalendarService:
    """Service for schedule and exception management."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[SchedulingSettings] = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings().scheduling

    async def _ensure_target(
        self, session: AsyncSession, organization_id: str, target_type: str, target_id: str
    ) -> None:
        """Raise unless the target belongs to the organization."""
        if target_type not in TARGET_TYPES:
            raise ValidationError(
                f"Invalid target type: {target_type}",
                errors={"target_type": f"one of {', '.join(TARGET_TYPES)}"},
                reason="INVALID_TARGET_TYPE",
            )
        if target_type == "ORGANIZATION":
            owned = target_id == organization_id
        elif target_type == "DEPARTMENT":
            owned = (
                await DepartmentsRepository(session).get_for_organization(target_id, organization_id)
                is not None
            )
        else:
            owned = await MembershipsRepository(session).user_in_organization(target_id, organization_id)
        if not owned:
            raise NotFoundError(target_type.capitalize(), target_id)

    # ------------------------------------------------------------------
    # Weekly schedules
    # ------------------------------------------------------------------

    async def upsert_schedule(
        self,
        organization_id: str,
        target_type: str,
        target_id: str,
        request: ScheduleUpsertRequest,
    ) -> ScheduleResponse:
        """
        Replace a target's weekly hours.

        Args:
            organization_id: Caller's organization
            target_type: ORGANIZATION, DEPARTMENT or USER
            target_id: Target ID
            request: Timezone and weekly hours

        Returns:
            The stored schedule

        Raises:
            ValidationError: Bad target type, timezone or hours
            NotFoundError: Target not in the organization
        """
        tz_name = request.timezone or self._settings.default_timezone
        resolve_timezone(tz_name, field="timezone")
        try:
            weekly_hours = serialize_weekly_hours(
                parse_weekly_hours(
                    {key: [p.model_dump() for p in periods] for key, periods in request.weekly_hours.items()}
                )
            )
        except ValueError as e:
            raise ValidationError(str(e), errors={"weekly_hours": str(e)}, reason="INVALID_HOURS") from e

        async with self._session_factory() as session:
            async with session.begin():
                await self._ensure_target(session, organization_id, target_type, target_id)
                schedules = SchedulesRepository(session)
                await schedules.upsert(
                    ("target_type", "target_id"),
                    dict(
                        organization_id=organization_id,
                        target_type=target_type,
                        target_id=target_id,
                        timezone=tz_name,
                        weekly_hours=weekly_hours,
                        updated_at=utcnow(),
                    ),
                    ("timezone", "weekly_hours", "updated_at"),
                )
                schedule = await schedules.get_for_target(target_type, target_id)

        logger.info(f"Schedule for {target_type}:{target_id} saved ({tz_name})")
        return ScheduleResponse.model_validate(schedule)

    async def get_schedule(
        self, organization_id: str, target_type: str, target_id: str
    ) -> ScheduleResponse:
        """Get a target's weekly schedule."""
        async with self._session_factory() as session:
            await begin_read_only(session)
            await self._ensure_target(session, organization_id, target_type, target_id)
            schedule = await SchedulesRepository(session).get_for_target(target_type, target_id)
        if schedule is None:
            raise NotFoundError("Schedule", f"{target_type}:{target_id}")
        return ScheduleResponse.model_validate(schedule)

    # ------------------------------------------------------------------
    # Date exceptions
    # ------------------------------------------------------------------

    async def upsert_exception(
        self,
        organization_id: str,
        target_type: str,
        target_id: str,
        request: ExceptionUpsertRequest,
    ) -> ExceptionResponse:
        """Create or replace the exception of a target on one date."""
        custom_hours = None
        if not request.is_closed and request.custom_hours is not None:
            try:
                windows = parse_windows([p.model_dump() for p in request.custom_hours])
            except ValueError as e:
                raise ValidationError(str(e), errors={"custom_hours": str(e)}, reason="INVALID_HOURS") from e
            custom_hours = [w.to_dict() for w in windows]
        elif request.is_closed and request.custom_hours:
            raise ValidationError(
                "custom_hours must be empty when is_closed is true",
                errors={"custom_hours": "not allowed on a closed date"},
                reason="INVALID_HOURS",
            )

        async with self._session_factory() as session:
            async with session.begin():
                await self._ensure_target(session, organization_id, target_type, target_id)
                exceptions = ExceptionsRepository(session)
                await exceptions.upsert(
                    ("target_type", "target_id", "exception_date"),
                    dict(
                        organization_id=organization_id,
                        target_type=target_type,
                        target_id=target_id,
                        exception_date=request.exception_date,
                        is_closed=request.is_closed,
                        custom_hours=custom_hours,
                        description=request.description,
                        updated_at=utcnow(),
                    ),
                    ("is_closed", "custom_hours", "description", "updated_at"),
                )
                exception = await exceptions.get_for_date(
                    target_type, target_id, request.exception_date
                )

        logger.info(
            f"Exception for {target_type}:{target_id} on {request.exception_date} saved "
            f"({'closed' if request.is_closed else 'custom hours'})"
        )
        return ExceptionResponse.model_validate(exception)

    async def list_exceptions(
        self, organization_id: str, target_type: str, target_id: str
    ) -> List[ExceptionResponse]:
        """List a target's exceptions by date."""
        async with self._session_factory() as session:
            await begin_read_only(session)
            await self._ensure_target(session, organization_id, target_type, target_id)
            rows = await ExceptionsRepository(session).list_for_target(target_type, target_id)
        return [ExceptionResponse.model_validate(row) for row in rows]

    async def delete_exception(
        self, organization_id: str, target_type: str, target_id: str, exception_id: str
    ) -> None:
        """Delete an exception of the given target."""
        async with self._session_factory() as session:
            async with session.begin():
                await self._ensure_target(session, organization_id, target_type, target_id)
                exceptions = ExceptionsRepository(session)
                exception = await exceptions.get_by_id(exception_id)
                if (
                    exception is None
                    or exception.organization_id != organization_id
                    or exception.target_type != target_type
                    or exception.target_id != target_id
                ):
                    raise NotFoundError("Calendar exception", exception_id)
                await exceptions.remove(exception)

        logger.info(f"Exception {exception_id} of {target_type}:{target_id} deleted")


def get_calendar_service(session_factory: async_sessionmaker[AsyncSession]) -> CalendarService:
    """Factory for CalendarService."""
    return CalendarService(session_factory=session_factory)
