"""Appointments repository for data access operations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_core.database.models import Appointment
from scheduling_core.exceptions import DatabaseError
from scheduling_core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

LIVE_STATUSES = ("PENDING", "CONFIRMED")


class AppointmentsRepository(BaseRepository[Appointment]):
    """Repository for appointment data access operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Appointment, session)

    async def get_for_organization(
        self, appointment_id: str, organization_id: str, lock: bool = False
    ) -> Optional[Appointment]:
        """
        Get an appointment scoped to its organization.

        Args:
            appointment_id: Appointment ID
            organization_id: Owning organization
            lock: Lock the row for update until the transaction ends

        Returns:
            Appointment or None if missing or owned by another organization
        """
        try:
            query = select(Appointment).where(
                Appointment.id == appointment_id,
                Appointment.organization_id == organization_id,
            )
            if lock:
                query = query.with_for_update()
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting appointment {appointment_id}: {e}")
            raise DatabaseError("Failed to retrieve appointment") from e

    async def list_blocking(
        self, scope_keys: Iterable[str], window_start: datetime, window_end: datetime
    ) -> List[Appointment]:
        """
        Live reservations of the given scopes whose blocked range overlaps a window.

        Args:
            scope_keys: Reservation owners to check
            window_start: Window start (inclusive)
            window_end: Window end (exclusive)

        Returns:
            Appointments ordered by blocked start
        """
        keys = list(scope_keys)
        if not keys:
            return []
        try:
            result = await self.session.execute(
                select(Appointment)
                .where(
                    Appointment.scope_key.in_(keys),
                    Appointment.status.in_(LIVE_STATUSES),
                    Appointment.blocked_start_at.is_not(None),
                    Appointment.blocked_start_at < window_end,
                    Appointment.blocked_end_at > window_start,
                )
                .order_by(Appointment.blocked_start_at.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing reservations for {keys}: {e}")
            raise DatabaseError("Failed to load existing appointments") from e

    async def insert_reservation(self, **kwargs) -> Appointment:
        """
        Insert an appointment that holds a reservation.

        Integrity errors propagate unchanged so the booking guard can tell an
        overlap rejected by the store from any other failure.

        Args:
            **kwargs: Appointment field values

        Returns:
            The inserted appointment
        """
        instance = Appointment(**kwargs)
        try:
            self.session.add(instance)
            await self.session.flush()
            await self.session.refresh(instance)
            return instance
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error inserting appointment: {e}")
            raise DatabaseError("Failed to create appointment") from e

    async def apply_reservation(self, instance: Appointment, **kwargs) -> Appointment:
        """
        Update an appointment that may hold a reservation.

        Like :meth:`insert_reservation`, integrity errors propagate unchanged.

        Args:
            instance: Appointment attached to this session
            **kwargs: Fields to update

        Returns:
            The refreshed appointment
        """
        try:
            for field, value in kwargs.items():
                setattr(instance, field, value)
            await self.session.flush()
            await self.session.refresh(instance)
            return instance
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating appointment {instance.id}: {e}")
            raise DatabaseError("Failed to update appointment") from e

    async def list_for_organization(
        self,
        organization_id: str,
        status: Optional[str] = None,
        department_id: Optional[str] = None,
        user_id: Optional[str] = None,
        appointment_type: Optional[str] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Appointment]:
        """
        List an organization's appointments, newest first.

        Scheduled appointments sort by start time; callbacks, which have none,
        sort by creation time.

        Args:
            organization_id: Owning organization
            status: Optional status filter
            department_id: Optional department filter
            user_id: Optional assigned operator filter
            appointment_type: Optional type filter
            start_from: Only appointments starting at or after this instant
            start_to: Only appointments starting before this instant
            limit: Maximum number of rows
            offset: Rows to skip

        Returns:
            List of appointments
        """
        try:
            query = select(Appointment).where(Appointment.organization_id == organization_id)
            if status:
                query = query.where(Appointment.status == status)
            if department_id:
                query = query.where(Appointment.department_id == department_id)
            if user_id:
                query = query.where(Appointment.user_id == user_id)
            if appointment_type:
                query = query.where(Appointment.type == appointment_type)
            if start_from is not None:
                query = query.where(Appointment.start_at >= start_from)
            if start_to is not None:
                query = query.where(Appointment.start_at < start_to)

            query = (
                query.order_by(
                    func.coalesce(Appointment.start_at, Appointment.created_at).desc(),
                    Appointment.id.asc(),
                )
                .offset(offset)
                .limit(limit)
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing appointments for organization {organization_id}: {e}")
            raise DatabaseError("Failed to list appointments") from e
