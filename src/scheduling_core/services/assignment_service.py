"""Assignment manager: the appointment state machine.

    PENDING   --assign--> CONFIRMED
    CONFIRMED --assign--> CONFIRMED   (re-assignment)
    PENDING   --cancel--> CANCELLED
    CONFIRMED --cancel--> CANCELLED

CANCELLED is terminal and nothing returns to PENDING. Assigning an operator
moves the reservation to that operator's agenda (``scope_key`` becomes
``user:<id>``), so an operator never holds two overlapping live appointments.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.database.types import utcnow
from scheduling_core.exceptions import DatabaseError, DomainError, NotFoundError
from scheduling_core.models.appointments import (
    AppointmentResponse,
    AssignOperatorRequest,
    CancelAppointmentRequest,
)
from scheduling_core.repositories import AppointmentsRepository, MembershipsRepository
from scheduling_core.scheduling.booking_guard import is_exclusion_violation, scope_key_for
from scheduling_core.services.notifications_service import (
    APPOINTMENT_CANCELLED,
    AppointmentEvent,
    NotificationDispatcher,
    get_notification_dispatcher,
)

logger = logging.getLogger(__name__)


def _operator_busy(user_id: str, clashing_id: Optional[str] = None) -> DomainError:
    details = {"user_id": user_id}
    if clashing_id:
        details["appointment_id"] = clashing_id
    return DomainError(
        "OPERATOR_BUSY", "Operator already has an appointment at that time", details=details
    )


class AssignmentService:
    """Service for operator assignment and cancellation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher or get_notification_dispatcher()

    async def assign_operator(
        self,
        organization_id: str,
        appointment_id: str,
        request: AssignOperatorRequest,
        assigned_by_user_id: Optional[str] = None,
    ) -> AppointmentResponse:
        """
        Attach an operator to an appointment and confirm it.

        Args:
            organization_id: Caller's organization
            appointment_id: Appointment to assign
            request: Operator and assignment mode
            assigned_by_user_id: Who made the assignment

        Returns:
            The confirmed appointment

        Raises:
            NotFoundError: Appointment missing or owned by another organization
            DomainError: APPOINTMENT_CANCELLED, OPERATOR_NOT_MEMBER or OPERATOR_BUSY
        """
        async with self._session_factory() as session:
            async with session.begin():
                appointments = AppointmentsRepository(session)
                appointment = await appointments.get_for_organization(
                    appointment_id, organization_id, lock=True
                )
                if appointment is None:
                    raise NotFoundError("Appointment", appointment_id)
                if appointment.status == "CANCELLED":
                    raise DomainError(
                        "APPOINTMENT_CANCELLED", "Cancelled appointments cannot be assigned"
                    )
                if not await MembershipsRepository(session).is_active_member(
                    appointment.department_id, request.user_id, lock=True
                ):
                    raise DomainError(
                        "OPERATOR_NOT_MEMBER",
                        "Operator is not an active member of the appointment's department",
                        details={"user_id": request.user_id},
                    )

                changes = dict(
                    user_id=request.user_id,
                    assigned_by_user_id=assigned_by_user_id,
                    assignment_mode=request.assignment_mode,
                    status="CONFIRMED",
                )
                if appointment.blocked_start_at is not None:
                    # The reservation moves to the operator's agenda
                    scope_key = scope_key_for(appointment.department_id, request.user_id)
                    clashes = [
                        other
                        for other in await appointments.list_blocking(
                            [scope_key], appointment.blocked_start_at, appointment.blocked_end_at
                        )
                        if other.id != appointment.id
                    ]
                    if clashes:
                        raise _operator_busy(request.user_id, clashes[0].id)
                    changes["scope_key"] = scope_key

                try:
                    appointment = await appointments.apply_reservation(appointment, **changes)
                except IntegrityError as e:
                    if not is_exclusion_violation(e):
                        logger.error(f"Assignment of {appointment_id} failed: {e}")
                        raise DatabaseError("Failed to assign operator") from e
                    raise _operator_busy(request.user_id) from e

        logger.info(
            f"Appointment {appointment_id} assigned to {request.user_id} "
            f"({request.assignment_mode}) by {assigned_by_user_id or '-'}"
        )
        return AppointmentResponse.from_model(appointment)

    async def cancel_appointment(
        self,
        organization_id: str,
        appointment_id: str,
        request: Optional[CancelAppointmentRequest] = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment and free its interval.

        Raises:
            NotFoundError: Appointment missing or owned by another organization
            DomainError: APPOINTMENT_CANCELLED if it already is
        """
        reason = request.reason if request else None
        async with self._session_factory() as session:
            async with session.begin():
                appointments = AppointmentsRepository(session)
                appointment = await appointments.get_for_organization(
                    appointment_id, organization_id, lock=True
                )
                if appointment is None:
                    raise NotFoundError("Appointment", appointment_id)
                if appointment.status == "CANCELLED":
                    raise DomainError("APPOINTMENT_CANCELLED", "Appointment is already cancelled")

                appointment = await appointments.apply(
                    appointment,
                    status="CANCELLED",
                    cancelled_at=utcnow(),
                    cancellation_reason=reason,
                )

        logger.info(f"Appointment {appointment_id} cancelled")
        self._dispatcher.dispatch(
            AppointmentEvent.from_model(APPOINTMENT_CANCELLED, appointment, reason=reason)
        )
        return AppointmentResponse.from_model(appointment)


def get_assignment_service(
    session_factory: async_sessionmaker[AsyncSession],
) -> AssignmentService:
    """Factory for AssignmentService."""
    return AssignmentService(session_factory=session_factory)
