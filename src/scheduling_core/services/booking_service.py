"""Booking transaction.

Reserves one slot atomically. The reservation is the appointment row itself:
its ``scope_key`` names the owner of the agenda (the chosen operator, or the
department when nobody is chosen yet) and ``blocked_start_at`` /
``blocked_end_at`` hold the buffer-expanded interval. Within one transaction
the service re-validates the department, the operator and the slot, checks
for overlapping live reservations, and inserts. See
:mod:`scheduling_core.scheduling.booking_guard` for how concurrent inserts
are kept apart on each store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.config import SchedulingSettings, get_settings
from scheduling_core.database.types import utcnow
from scheduling_core.exceptions import DatabaseError, DomainError, NotFoundError, ValidationError
from scheduling_core.models.appointments import (
    AppointmentResponse,
    BookAppointmentRequest,
    BookingConflict,
    BookingInvalidTarget,
    BookingOutcome,
    BookingSuccess,
    CallbackCreateRequest,
)
from scheduling_core.repositories import (
    AppointmentsRepository,
    DepartmentsRepository,
    MembershipsRepository,
)
from scheduling_core.scheduling.booking_guard import (
    is_exclusion_violation,
    run_with_retries,
    scope_key_for,
)
from scheduling_core.scheduling.time_windows import blocked_interval
from scheduling_core.services.availability_service import offered_slots
from scheduling_core.services.notifications_service import (
    APPOINTMENT_BOOKED,
    CALLBACK_REQUESTED,
    AppointmentEvent,
    NotificationDispatcher,
    get_notification_dispatcher,
)

logger = logging.getLogger(__name__)


class BookingService:
    """Service that books slots and records call-back requests."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[SchedulingSettings] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings().scheduling
        self._dispatcher = dispatcher or get_notification_dispatcher()
        self._clock = clock

    def _validate_start(self, start_at: datetime) -> datetime:
        if start_at.tzinfo is None or start_at.utcoffset() is None:
            raise ValidationError(
                "start_at must include a UTC offset",
                errors={"start_at": "missing timezone offset"},
                reason="INVALID_START",
            )
        start_at = start_at.astimezone(timezone.utc)
        earliest = self._clock().astimezone(timezone.utc) + timedelta(
            minutes=self._settings.min_notice_minutes
        )
        if start_at < earliest:
            raise ValidationError(
                "start_at is in the past",
                errors={"start_at": "must be in the future"},
                reason="INVALID_START",
            )
        return start_at

    async def book_appointment(
        self, organization_id: str, request: BookAppointmentRequest
    ) -> BookingOutcome:
        """
        Reserve a slot for a client.

        Args:
            organization_id: Caller's organization
            request: Booking details

        Returns:
            ``BookingSuccess``, ``BookingConflict`` or ``BookingInvalidTarget``

        Raises:
            ValidationError: Missing fields, bad ``start_at`` or a time the
                calendars do not offer
            DatabaseError: The store stayed busy for every retry
        """
        if not (organization_id or "").strip() or not (request.department_id or "").strip():
            raise ValidationError(
                "organization_id and department_id are required",
                errors={"department_id": "required"},
                reason="MISSING_FIELD",
            )
        start_at = self._validate_start(request.start_at)

        try:
            outcome = await run_with_retries(
                lambda: self._book_once(organization_id, request, start_at),
                max_attempts=self._settings.booking_max_retries,
                backoff_ms=self._settings.booking_retry_backoff_ms,
                description="booking",
            )
        except IntegrityError as e:
            if not is_exclusion_violation(e):
                logger.error(f"Booking insert failed: {e}")
                raise DatabaseError("Failed to create appointment") from e
            outcome = BookingConflict()

        if isinstance(outcome, BookingSuccess):
            logger.info(
                f"Booked appointment {outcome.appointment_id} for department "
                f"{request.department_id} at {outcome.start_at.isoformat()} ({outcome.status})"
            )
        elif isinstance(outcome, BookingConflict):
            logger.info(
                f"Booking conflict for department {request.department_id} "
                f"at {start_at.isoformat()} (user {request.user_id or '-'})"
            )
        else:
            logger.info(
                f"Booking rejected for department {request.department_id}: {outcome.reason}"
            )
        return outcome

    async def _book_once(
        self, organization_id: str, request: BookAppointmentRequest, start_at: datetime
    ) -> BookingOutcome:
        async with self._session_factory() as session:
            async with session.begin():
                # Takes the write lock on SQLite before anything is read
                await session.connection()

                department = await DepartmentsRepository(session).get_for_organization(
                    request.department_id, organization_id
                )
                if department is None:
                    return BookingInvalidTarget(
                        reason="DEPARTMENT_NOT_FOUND", message="Department not found"
                    )
                if not department.is_active:
                    return BookingInvalidTarget(
                        reason="DEPARTMENT_INACTIVE", message="Department is not taking bookings"
                    )
                if request.user_id and not await MembershipsRepository(session).is_active_member(
                    department.id, request.user_id, lock=True
                ):
                    return BookingInvalidTarget(
                        reason="OPERATOR_NOT_MEMBER",
                        message="Operator is not an active member of the department",
                    )

                offered = await offered_slots(
                    session,
                    department,
                    request.user_id,
                    start_at.date() - timedelta(days=1),
                    start_at.date() + timedelta(days=1),
                    self._settings.default_timezone,
                )
                if start_at not in offered:
                    raise ValidationError(
                        "start_at is not an available slot",
                        errors={"start_at": "outside availability"},
                        reason="OUTSIDE_AVAILABILITY",
                    )

                blocked = blocked_interval(
                    start_at,
                    department.slot_duration_minutes,
                    department.buffer_before_minutes,
                    department.buffer_after_minutes,
                )
                scope_key = scope_key_for(department.id, request.user_id)
                appointments = AppointmentsRepository(session)
                if await appointments.list_blocking([scope_key], blocked.start, blocked.end):
                    return BookingConflict()

                appointment = await appointments.insert_reservation(
                    organization_id=organization_id,
                    department_id=department.id,
                    user_id=request.user_id,
                    contact_id=request.contact_id,
                    client_name=request.client_name,
                    client_phone=request.client_phone,
                    notes=request.notes,
                    type=request.type,
                    start_at=start_at,
                    end_at=start_at + timedelta(minutes=department.slot_duration_minutes),
                    status="CONFIRMED" if request.user_id else "PENDING",
                    assignment_mode=request.assignment_mode or "manual",
                    scope_key=scope_key,
                    blocked_start_at=blocked.start,
                    blocked_end_at=blocked.end,
                )

        self._dispatcher.dispatch(AppointmentEvent.from_model(APPOINTMENT_BOOKED, appointment))
        return BookingSuccess(
            appointment_id=appointment.id,
            start_at=appointment.start_at,
            end_at=appointment.end_at,
            status=appointment.status,
            user_id=appointment.user_id,
            assignment_mode=appointment.assignment_mode,
        )

    async def request_callback(
        self, organization_id: str, request: CallbackCreateRequest
    ) -> AppointmentResponse:
        """
        Record a call-back request. It reserves no agenda time.

        Args:
            organization_id: Caller's organization
            request: Client and preferred time

        Returns:
            The created ``callback`` appointment, status PENDING

        Raises:
            NotFoundError: Department missing or owned by another organization
            DomainError: DEPARTMENT_INACTIVE
        """
        if not (organization_id or "").strip() or not (request.department_id or "").strip():
            raise ValidationError(
                "organization_id and department_id are required",
                errors={"department_id": "required"},
                reason="MISSING_FIELD",
            )
        preferred_at = request.preferred_at
        if preferred_at is not None and preferred_at.tzinfo is None:
            raise ValidationError(
                "preferred_at must include a UTC offset",
                errors={"preferred_at": "missing timezone offset"},
                reason="INVALID_START",
            )

        async with self._session_factory() as session:
            async with session.begin():
                department = await DepartmentsRepository(session).get_for_organization(
                    request.department_id, organization_id
                )
                if department is None:
                    raise NotFoundError("Department", request.department_id)
                if not department.is_active:
                    raise DomainError("DEPARTMENT_INACTIVE", "Department is not taking requests")

                appointment = await AppointmentsRepository(session).create(
                    organization_id=organization_id,
                    department_id=department.id,
                    contact_id=request.contact_id,
                    client_name=request.client_name,
                    client_phone=request.client_phone,
                    notes=request.notes,
                    type="callback",
                    callback_preferred_at=preferred_at,
                    status="PENDING",
                    assignment_mode="manual",
                )

        logger.info(f"Callback {appointment.id} requested for department {department.id}")
        self._dispatcher.dispatch(AppointmentEvent.from_model(CALLBACK_REQUESTED, appointment))
        return AppointmentResponse.from_model(appointment)


def get_booking_service(session_factory: async_sessionmaker[AsyncSession]) -> BookingService:
    """Factory for BookingService."""
    return BookingService(session_factory=session_factory)
