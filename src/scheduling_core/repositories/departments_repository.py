"""Departments and memberships repositories."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_core.database.models import Department, DepartmentMember
from scheduling_core.exceptions import DatabaseError
from scheduling_core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class DepartmentsRepository(BaseRepository[Department]):
    """Repository for department data access operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Department, session)

    async def get_for_organization(
        self, department_id: str, organization_id: str
    ) -> Optional[Department]:
        """Return a department only if it belongs to the organization."""
        try:
            result = await self.session.execute(
                select(Department).where(
                    Department.id == department_id,
                    Department.organization_id == organization_id,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting department {department_id}: {e}")
            raise DatabaseError("Failed to retrieve department") from e

    async def list_for_organization(
        self, organization_id: str, include_inactive: bool = True
    ) -> List[Department]:
        """List an organization's departments by sort order, then name."""
        try:
            query = select(Department).where(Department.organization_id == organization_id)
            if not include_inactive:
                query = query.where(Department.is_active.is_(True))
            query = query.order_by(Department.sort_order.asc(), Department.name.asc())
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing departments for organization {organization_id}: {e}")
            raise DatabaseError("Failed to list departments") from e

    async def list_slugs(self, organization_id: str, base_slug: str) -> List[str]:
        """Slugs in the organization equal to or derived from ``base_slug``."""
        try:
            result = await self.session.execute(
                select(Department.slug).where(
                    Department.organization_id == organization_id,
                    Department.slug.like(f"{base_slug}%"),
                )
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing slugs for organization {organization_id}: {e}")
            raise DatabaseError("Failed to check department slug") from e


class MembershipsRepository(BaseRepository[DepartmentMember]):
    """Repository for department membership data access operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(DepartmentMember, session)

    async def get(
        self, department_id: str, user_id: str, lock: bool = False
    ) -> Optional[DepartmentMember]:
        """
        Get a membership by its natural key.

        Args:
            department_id: Department ID
            user_id: Operator ID
            lock: Take a shared row lock for the rest of the transaction

        Returns:
            Membership or None
        """
        try:
            query = select(DepartmentMember).where(
                DepartmentMember.department_id == department_id,
                DepartmentMember.user_id == user_id,
            )
            if lock:
                query = query.with_for_update(read=True)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting membership {department_id}/{user_id}: {e}")
            raise DatabaseError("Failed to retrieve department membership") from e

    async def is_active_member(self, department_id: str, user_id: str, lock: bool = False) -> bool:
        """Whether the user is an active member of the department."""
        membership = await self.get(department_id, user_id, lock=lock)
        return membership is not None and membership.is_active

    async def list_active(self, department_id: str) -> List[DepartmentMember]:
        """Active members of a department, leads first."""
        try:
            result = await self.session.execute(
                select(DepartmentMember)
                .where(
                    DepartmentMember.department_id == department_id,
                    DepartmentMember.is_active.is_(True),
                )
                .order_by(
                    DepartmentMember.is_lead.desc(),
                    DepartmentMember.created_at.asc(),
                    DepartmentMember.user_id.asc(),
                )
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing members of department {department_id}: {e}")
            raise DatabaseError("Failed to list department members") from e

    async def user_in_organization(self, user_id: str, organization_id: str) -> bool:
        """Whether the user holds a membership in any of the organization's departments."""
        try:
            result = await self.session.execute(
                select(DepartmentMember.id)
                .join(Department, Department.id == DepartmentMember.department_id)
                .where(
                    DepartmentMember.user_id == user_id,
                    Department.organization_id == organization_id,
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            logger.error(f"Error checking organization of user {user_id}: {e}")
            raise DatabaseError("Failed to check user membership") from e
