"""Appointments endpoints: booking, call-backs, assignment, cancellation and reads."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.auth import Caller, CallerDep, InternalAuthDep
from scheduling_core.database.session import get_session_factory
from scheduling_core.models.appointments import (
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentType,
    AssignOperatorRequest,
    BookAppointmentRequest,
    BookingConflict,
    BookingInvalidTarget,
    BookingOutcome,
    BookingSuccess,
    CallbackCreateRequest,
    CancelAppointmentRequest,
)
from scheduling_core.services.admin_service import get_admin_service
from scheduling_core.services.assignment_service import get_assignment_service
from scheduling_core.services.booking_service import get_booking_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["appointments"])

SessionFactoryDep = Depends(get_session_factory)

_OUTCOME_STATUS = {
    "success": status.HTTP_201_CREATED,
    "conflict": status.HTTP_409_CONFLICT,
    "invalid_target": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@router.post(
    "",
    response_model=BookingSuccess,
    status_code=status.HTTP_201_CREATED,
    summary="Book a slot",
    description=(
        "Atomically reserve a slot. Returns 201 with the booking, 409 when the time overlaps "
        "a live booking of the same operator or department, and 422 when the department or "
        "operator cannot take bookings."
    ),
    responses={
        409: {"model": BookingConflict, "description": "Slot already taken"},
        422: {"model": BookingInvalidTarget, "description": "Invalid department or operator"},
    },
    dependencies=[InternalAuthDep],
)
async def book_appointment(
    request: BookAppointmentRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
):
    """Book an appointment and map the outcome to a status code."""
    outcome: BookingOutcome = await get_booking_service(session_factory).book_appointment(
        caller.organization_id, request
    )
    return JSONResponse(
        status_code=_OUTCOME_STATUS[outcome.outcome],
        content=outcome.model_dump(mode="json"),
    )


@router.post(
    "/callbacks",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a call-back",
    description="Record a call-back request. It reserves no agenda time.",
    dependencies=[InternalAuthDep],
)
async def request_callback(
    request: CallbackCreateRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> AppointmentResponse:
    """Create a PENDING callback appointment."""
    return await get_booking_service(session_factory).request_callback(caller.organization_id, request)


@router.get(
    "",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments",
    description="List the organization's appointments, newest first.",
    dependencies=[InternalAuthDep],
)
async def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    department_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    appointment_type: Optional[AppointmentType] = Query(None, alias="type"),
    start_from: Optional[datetime] = Query(None, alias="from"),
    start_to: Optional[datetime] = Query(None, alias="to"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> AppointmentListResponse:
    """List appointments with optional filters."""
    return await get_admin_service(session_factory).list_appointments(
        caller.organization_id,
        status=status_filter,
        department_id=department_id,
        user_id=user_id,
        appointment_type=appointment_type,
        start_from=start_from,
        start_to=start_to,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get an appointment",
    dependencies=[InternalAuthDep],
)
async def get_appointment(
    appointment_id: str,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> AppointmentResponse:
    """Get one appointment of the caller's organization."""
    return await get_admin_service(session_factory).get_appointment(
        caller.organization_id, appointment_id
    )


@router.post(
    "/{appointment_id}/assign",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Assign an operator",
    description="Attach an active department member to the appointment and confirm it.",
    dependencies=[InternalAuthDep],
)
async def assign_operator(
    appointment_id: str,
    request: AssignOperatorRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> AppointmentResponse:
    """Assign an operator on behalf of the calling user."""
    return await get_assignment_service(session_factory).assign_operator(
        caller.organization_id,
        appointment_id,
        request,
        assigned_by_user_id=caller.user_id,
    )


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel an appointment",
    description="Cancel the appointment and free its time. Cancelled appointments stay cancelled.",
    dependencies=[InternalAuthDep],
)
async def cancel_appointment(
    appointment_id: str,
    request: Optional[CancelAppointmentRequest] = None,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> AppointmentResponse:
    """Cancel an appointment."""
    return await get_assignment_service(session_factory).cancel_appointment(
        caller.organization_id, appointment_id, request
    )
