"""Tests for operator assignment and cancellation."""

import pytest
from sqlalchemy import select

from conftest import ORG_ID, OTHER_ORG_ID, WEEKDAYS_9_TO_14, fixed_clock, utc
from scheduling_core.database.models import Appointment
from scheduling_core.exceptions import DomainError, NotFoundError
from scheduling_core.models.appointments import (
    AssignOperatorRequest,
    BookAppointmentRequest,
    BookingConflict,
    BookingSuccess,
    CancelAppointmentRequest,
)
from scheduling_core.services.assignment_service import AssignmentService
from scheduling_core.services.booking_service import BookingService
from scheduling_core.services.notifications_service import APPOINTMENT_CANCELLED


@pytest.fixture
def service(session_factory, dispatcher):
    return AssignmentService(session_factory, dispatcher)


@pytest.fixture
def booking(session_factory, scheduling_settings, dispatcher):
    return BookingService(session_factory, scheduling_settings, dispatcher, clock=fixed_clock(utc(2030, 1, 1)))


@pytest.fixture
async def department(seed):
    department = await seed.department(weekly_hours=WEEKDAYS_9_TO_14)
    await seed.member(department.id, "user-1")
    await seed.member(department.id, "user-2")
    return department


async def book(booking, department, hour=8):
    outcome = await booking.book_appointment(
        ORG_ID,
        BookAppointmentRequest(
            department_id=department.id,
            client_name="Ana García",
            client_phone="+34 600 000 000",
            start_at=utc(2030, 1, 7, hour),
        ),
    )
    assert isinstance(outcome, BookingSuccess)
    return outcome.appointment_id


async def load(session_factory, appointment_id):
    async with session_factory() as session:
        result = await session.execute(select(Appointment).where(Appointment.id == appointment_id))
        return result.scalar_one()


class TestAssignOperator:
    """PENDING/CONFIRMED -> CONFIRMED."""

    async def test_assign_pending(self, service, booking, department, session_factory):
        appointment_id = await book(booking, department)

        response = await service.assign_operator(
            ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"), assigned_by_user_id="admin-1"
        )

        assert response.status == "CONFIRMED"
        assert response.user_id == "user-1"
        assert response.assigned_by_user_id == "admin-1"
        assert response.assignment_mode == "manual"

    async def test_assignment_moves_the_reservation_to_the_operator(
        self, service, booking, department, session_factory
    ):
        appointment_id = await book(booking, department)

        await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"))

        row = await load(session_factory, appointment_id)
        assert row.scope_key == "user:user-1"
        assert row.blocked_start_at == utc(2030, 1, 7, 8)

    async def test_reassignment_moves_the_reservation_again(
        self, service, booking, department, session_factory
    ):
        appointment_id = await book(booking, department)
        await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"))

        await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"))
        await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-2"))

        row = await load(session_factory, appointment_id)
        assert row.scope_key == "user:user-2"

    async def test_assigned_operator_cannot_be_booked_twice(
        self, service, booking, department, session_factory, seed
    ):
        await seed.member(department.id, "user-3", weekly_hours=WEEKDAYS_9_TO_14)
        appointment_id = await book(booking, department)
        await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-3"))

        outcome = await booking.book_appointment(
            ORG_ID,
            BookAppointmentRequest(
                department_id=department.id,
                client_name="Luis Pérez",
                client_phone="+34 611 111 111",
                start_at=utc(2030, 1, 7, 8),
                user_id="user-3",
            ),
        )

        assert isinstance(outcome, BookingConflict)
        async with session_factory() as session:
            result = await session.execute(
                select(Appointment).where(
                    Appointment.user_id == "user-3",
                    Appointment.status.in_(["PENDING", "CONFIRMED"]),
                )
            )
            assert len(result.scalars().all()) == 1

    async def test_assign_busy_operator(self, service, booking, department, session_factory, seed):
        await seed.member(department.id, "user-3", weekly_hours=WEEKDAYS_9_TO_14)
        own = await booking.book_appointment(
            ORG_ID,
            BookAppointmentRequest(
                department_id=department.id,
                client_name="Luis Pérez",
                client_phone="+34 611 111 111",
                start_at=utc(2030, 1, 7, 8),
                user_id="user-3",
            ),
        )
        assert isinstance(own, BookingSuccess)
        appointment_id = await book(booking, department)

        with pytest.raises(DomainError) as exc_info:
            await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-3"))

        assert exc_info.value.code == "OPERATOR_BUSY"
        assert exc_info.value.status_code == 409
        assert exc_info.value.details["appointment_id"] == own.appointment_id
        row = await load(session_factory, appointment_id)
        assert row.status == "PENDING"
        assert row.user_id is None
        assert row.scope_key == f"department:{department.id}"

    async def test_assign_operator_free_at_another_time(self, service, booking, department, seed):
        await seed.member(department.id, "user-3", weekly_hours=WEEKDAYS_9_TO_14)
        await booking.book_appointment(
            ORG_ID,
            BookAppointmentRequest(
                department_id=department.id,
                client_name="Luis Pérez",
                client_phone="+34 611 111 111",
                start_at=utc(2030, 1, 7, 9),
                user_id="user-3",
            ),
        )
        appointment_id = await book(booking, department, hour=8)

        response = await service.assign_operator(
            ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-3")
        )

        assert response.status == "CONFIRMED"

    async def test_reassign_confirmed(self, service, booking, department):
        appointment_id = await book(booking, department)
        await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"))

        response = await service.assign_operator(
            ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-2", assignment_mode="AI")
        )

        assert response.status == "CONFIRMED"
        assert response.user_id == "user-2"
        assert response.assignment_mode == "ai"

    async def test_assign_non_member(self, service, booking, department):
        appointment_id = await book(booking, department)

        with pytest.raises(DomainError) as exc_info:
            await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="stranger"))

        assert exc_info.value.code == "OPERATOR_NOT_MEMBER"
        assert exc_info.value.status_code == 409

    async def test_assign_inactive_member(self, service, booking, department, seed):
        await seed.member(department.id, "user-3", is_active=False)
        appointment_id = await book(booking, department)

        with pytest.raises(DomainError) as exc_info:
            await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-3"))

        assert exc_info.value.code == "OPERATOR_NOT_MEMBER"

    async def test_assign_cancelled(self, service, booking, department):
        appointment_id = await book(booking, department)
        await service.cancel_appointment(ORG_ID, appointment_id)

        with pytest.raises(DomainError) as exc_info:
            await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"))

        assert exc_info.value.code == "APPOINTMENT_CANCELLED"

    async def test_assign_other_organization(self, service, booking, department):
        appointment_id = await book(booking, department)

        with pytest.raises(NotFoundError):
            await service.assign_operator(OTHER_ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"))

    async def test_assign_unknown(self, service):
        with pytest.raises(NotFoundError):
            await service.assign_operator(ORG_ID, "missing", AssignOperatorRequest(user_id="user-1"))


class TestCancelAppointment:
    """PENDING/CONFIRMED -> CANCELLED, which is terminal."""

    async def test_cancel(self, service, booking, department, dispatcher, notifier):
        appointment_id = await book(booking, department)

        response = await service.cancel_appointment(
            ORG_ID, appointment_id, CancelAppointmentRequest(reason="Client called")
        )
        await dispatcher.drain()

        assert response.status == "CANCELLED"
        assert response.cancellation_reason == "Client called"
        assert response.cancelled_at is not None
        assert notifier.events[-1].event == APPOINTMENT_CANCELLED
        assert notifier.events[-1].reason == "Client called"

    async def test_cancel_twice(self, service, booking, department):
        appointment_id = await book(booking, department)
        await service.cancel_appointment(ORG_ID, appointment_id)

        with pytest.raises(DomainError) as exc_info:
            await service.cancel_appointment(ORG_ID, appointment_id)

        assert exc_info.value.code == "APPOINTMENT_CANCELLED"

    async def test_cancel_frees_the_slot(self, service, booking, department):
        appointment_id = await book(booking, department)
        await service.cancel_appointment(ORG_ID, appointment_id)

        rebooked = await book(booking, department)

        assert rebooked != appointment_id

    async def test_cancel_confirmed(self, service, booking, department):
        appointment_id = await book(booking, department)
        await service.assign_operator(ORG_ID, appointment_id, AssignOperatorRequest(user_id="user-1"))

        response = await service.cancel_appointment(ORG_ID, appointment_id)

        assert response.status == "CANCELLED"
        assert response.user_id == "user-1"

    async def test_cancel_other_organization(self, service, booking, department):
        appointment_id = await book(booking, department)

        with pytest.raises(NotFoundError):
            await service.cancel_appointment(OTHER_ORG_ID, appointment_id)
