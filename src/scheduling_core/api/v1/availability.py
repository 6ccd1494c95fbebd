"""Availability endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.auth import Caller, CallerDep, InternalAuthDep
from scheduling_core.database.session import get_session_factory
from scheduling_core.models.availability import AvailabilityRequest, AvailabilityResponse
from scheduling_core.services.availability_service import get_availability_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["availability"])


@router.post(
    "",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get bookable slots",
    description=(
        "Return bookable slot starts for a department (optionally one operator) over a date "
        "range, keyed by date and expressed in the client's timezone."
    ),
    dependencies=[InternalAuthDep],
)
async def get_availability(
    request: AvailabilityRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AvailabilityResponse:
    """Compute availability for the caller's organization."""
    service = get_availability_service(session_factory)
    return await service.get_availability(caller.organization_id, request)
