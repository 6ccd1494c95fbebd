"""Calendar (weekly schedules and date exceptions) repositories."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_core.database.models import CalendarException, CalendarSchedule
from scheduling_core.exceptions import DatabaseError
from scheduling_core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class SchedulesRepository(BaseRepository[CalendarSchedule]):
    """Repository for weekly schedules."""

    def __init__(self, session: AsyncSession):
        super().__init__(CalendarSchedule, session)

    async def get_for_target(self, target_type: str, target_id: str) -> Optional[CalendarSchedule]:
        """Return the weekly schedule of a target, if any."""
        try:
            result = await self.session.execute(
                select(CalendarSchedule).where(
                    CalendarSchedule.target_type == target_type,
                    CalendarSchedule.target_id == target_id,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting schedule for {target_type}:{target_id}: {e}")
            raise DatabaseError("Failed to retrieve schedule") from e


class ExceptionsRepository(BaseRepository[CalendarException]):
    """Repository for date exceptions."""

    def __init__(self, session: AsyncSession):
        super().__init__(CalendarException, session)

    async def list_for_target(
        self,
        target_type: str,
        target_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[CalendarException]:
        """
        List exceptions of a target ordered by date.

        Args:
            target_type: ORGANIZATION, DEPARTMENT or USER
            target_id: Target ID
            start_date: Optional first date (inclusive)
            end_date: Optional last date (inclusive)

        Returns:
            Exceptions ordered by date
        """
        try:
            query = select(CalendarException).where(
                CalendarException.target_type == target_type,
                CalendarException.target_id == target_id,
            )
            if start_date is not None:
                query = query.where(CalendarException.exception_date >= start_date)
            if end_date is not None:
                query = query.where(CalendarException.exception_date <= end_date)
            result = await self.session.execute(query.order_by(CalendarException.exception_date.asc()))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing exceptions for {target_type}:{target_id}: {e}")
            raise DatabaseError("Failed to list calendar exceptions") from e

    async def get_for_date(
        self, target_type: str, target_id: str, exception_date: date
    ) -> Optional[CalendarException]:
        """Return the exception of a target on a date, if any."""
        try:
            result = await self.session.execute(
                select(CalendarException).where(
                    CalendarException.target_type == target_type,
                    CalendarException.target_id == target_id,
                    CalendarException.exception_date == exception_date,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting exception for {target_type}:{target_id} on {exception_date}: {e}")
            raise DatabaseError("Failed to retrieve calendar exception") from e
