"""Weekly schedule and date exception endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.auth import Caller, CallerDep, InternalAuthDep
from scheduling_core.database.session import get_session_factory
from scheduling_core.models.calendar import (
    ExceptionResponse,
    ExceptionUpsertRequest,
    ScheduleResponse,
    ScheduleUpsertRequest,
)
from scheduling_core.services.calendar_service import get_calendar_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["schedules"])

SessionFactoryDep = Depends(get_session_factory)


@router.put(
    "/{target_type}/{target_id}",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace weekly hours",
    description="Create or fully replace the weekly hours of an organization, department or user.",
    dependencies=[InternalAuthDep],
)
async def upsert_schedule(
    target_type: str,
    target_id: str,
    request: ScheduleUpsertRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> ScheduleResponse:
    """Upsert a weekly schedule."""
    return await get_calendar_service(session_factory).upsert_schedule(
        caller.organization_id, target_type.upper(), target_id, request
    )


@router.get(
    "/{target_type}/{target_id}",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Get weekly hours",
    dependencies=[InternalAuthDep],
)
async def get_schedule(
    target_type: str,
    target_id: str,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> ScheduleResponse:
    """Get a weekly schedule."""
    return await get_calendar_service(session_factory).get_schedule(
        caller.organization_id, target_type.upper(), target_id
    )


@router.put(
    "/{target_type}/{target_id}/exceptions",
    response_model=ExceptionResponse,
    status_code=status.HTTP_200_OK,
    summary="Set a date exception",
    description="Close a date or replace its hours. One exception per target and date.",
    dependencies=[InternalAuthDep],
)
async def upsert_exception(
    target_type: str,
    target_id: str,
    request: ExceptionUpsertRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> ExceptionResponse:
    """Upsert a date exception."""
    return await get_calendar_service(session_factory).upsert_exception(
        caller.organization_id, target_type.upper(), target_id, request
    )


@router.get(
    "/{target_type}/{target_id}/exceptions",
    response_model=List[ExceptionResponse],
    status_code=status.HTTP_200_OK,
    summary="List date exceptions",
    dependencies=[InternalAuthDep],
)
async def list_exceptions(
    target_type: str,
    target_id: str,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> List[ExceptionResponse]:
    """List a target's exceptions by date."""
    return await get_calendar_service(session_factory).list_exceptions(
        caller.organization_id, target_type.upper(), target_id
    )


@router.delete(
    "/{target_type}/{target_id}/exceptions/{exception_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a date exception",
    dependencies=[InternalAuthDep],
)
async def delete_exception(
    target_type: str,
    target_id: str,
    exception_id: str,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> Response:
    """Delete a date exception."""
    await get_calendar_service(session_factory).delete_exception(
        caller.organization_id, target_type.upper(), target_id, exception_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
