"""Department and membership management endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.auth import Caller, CallerDep, InternalAuthDep
from scheduling_core.database.session import get_session_factory
from scheduling_core.models.departments import (
    DepartmentCreateRequest,
    DepartmentListResponse,
    DepartmentResponse,
    DepartmentUpdateRequest,
    MembershipResponse,
    MembershipUpsertRequest,
    OperatorListResponse,
)
from scheduling_core.services.admin_service import get_admin_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/departments", tags=["departments"])

SessionFactoryDep = Depends(get_session_factory)


@router.post(
    "",
    response_model=DepartmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a department",
    dependencies=[InternalAuthDep],
)
async def create_department(
    request: DepartmentCreateRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> DepartmentResponse:
    """Create a department in the caller's organization."""
    return await get_admin_service(session_factory).create_department(caller.organization_id, request)


@router.get(
    "",
    response_model=DepartmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List departments",
    dependencies=[InternalAuthDep],
)
async def list_departments(
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> DepartmentListResponse:
    """List departments by sort order, then name."""
    departments = await get_admin_service(session_factory).list_departments(caller.organization_id)
    return DepartmentListResponse(departments=departments)


@router.get(
    "/{department_id}",
    response_model=DepartmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a department",
    dependencies=[InternalAuthDep],
)
async def get_department(
    department_id: str,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> DepartmentResponse:
    """Get one department."""
    return await get_admin_service(session_factory).get_department(caller.organization_id, department_id)


@router.patch(
    "/{department_id}",
    response_model=DepartmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update a department",
    dependencies=[InternalAuthDep],
)
async def update_department(
    department_id: str,
    request: DepartmentUpdateRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> DepartmentResponse:
    """Partially update a department."""
    return await get_admin_service(session_factory).update_department(
        caller.organization_id, department_id, request
    )


@router.put(
    "/{department_id}/members/{user_id}",
    response_model=MembershipResponse,
    status_code=status.HTTP_200_OK,
    summary="Add or update a member",
    dependencies=[InternalAuthDep],
)
async def upsert_membership(
    department_id: str,
    user_id: str,
    request: MembershipUpsertRequest,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> MembershipResponse:
    """Create or update an operator's membership."""
    return await get_admin_service(session_factory).upsert_membership(
        caller.organization_id, department_id, user_id, request
    )


@router.get(
    "/{department_id}/operators",
    response_model=OperatorListResponse,
    status_code=status.HTTP_200_OK,
    summary="List assignable operators",
    description="Active members of the department, leads first.",
    dependencies=[InternalAuthDep],
)
async def list_assignable_operators(
    department_id: str,
    caller: Caller = CallerDep,
    session_factory: async_sessionmaker[AsyncSession] = SessionFactoryDep,
) -> OperatorListResponse:
    """List operators that can be assigned."""
    return await get_admin_service(session_factory).list_assignable_operators(
        caller.organization_id, department_id
    )
