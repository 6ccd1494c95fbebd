"""Pytest configuration and fixtures."""

from datetime import date, datetime, timezone
from typing import Dict, List, Optional

import pytest

from scheduling_core.config import SchedulingSettings
from scheduling_core.database.connection import create_engine
from scheduling_core.database.models import (
    Base,
    CalendarException,
    CalendarSchedule,
    Department,
    DepartmentMember,
)
from scheduling_core.database.session import build_session_factory
from scheduling_core.services.notifications_service import AppointmentEvent, NotificationDispatcher

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"

# 2030-01-07 is a Monday; Madrid is UTC+1 in January
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SUNDAY = date(2030, 1, 6)

WEEKDAYS_9_TO_14 = {str(day): [{"start": "09:00", "end": "14:00"}] for day in range(1, 6)}


def utc(year, month, day, hour=0, minute=0) -> datetime:
    """Aware UTC datetime."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def fixed_clock(instant: datetime):
    """Clock callable frozen at ``instant``."""
    return lambda: instant


class RecordingNotifier:
    """Notifier that keeps every event it receives."""

    def __init__(self):
        self.events: List[AppointmentEvent] = []

    async def send(self, event: AppointmentEvent) -> None:
        self.events.append(event)


class Seeder:
    """Inserts fixture rows directly, bypassing the services."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def _add(self, instance):
        async with self._session_factory() as session:
            async with session.begin():
                session.add(instance)
        return instance

    async def department(
        self,
        organization_id: str = ORG_ID,
        name: str = "Sales",
        slug: Optional[str] = None,
        is_active: bool = True,
        sort_order: int = 0,
        slot_duration_minutes: int = 60,
        buffer_before_minutes: int = 0,
        buffer_after_minutes: int = 0,
        weekly_hours: Optional[Dict] = None,
        timezone_name: str = "Europe/Madrid",
    ) -> Department:
        department = await self._add(
            Department(
                organization_id=organization_id,
                name=name,
                slug=slug or name.lower().replace(" ", "-"),
                is_active=is_active,
                sort_order=sort_order,
                slot_duration_minutes=slot_duration_minutes,
                buffer_before_minutes=buffer_before_minutes,
                buffer_after_minutes=buffer_after_minutes,
            )
        )
        if weekly_hours is not None:
            await self.schedule("DEPARTMENT", department.id, weekly_hours, organization_id, timezone_name)
        return department

    async def member(
        self,
        department_id: str,
        user_id: str,
        is_active: bool = True,
        is_lead: bool = False,
        weekly_hours: Optional[Dict] = None,
        organization_id: str = ORG_ID,
    ) -> DepartmentMember:
        membership = await self._add(
            DepartmentMember(
                department_id=department_id, user_id=user_id, is_active=is_active, is_lead=is_lead
            )
        )
        if weekly_hours is not None:
            await self.schedule("USER", user_id, weekly_hours, organization_id)
        return membership

    async def schedule(
        self,
        target_type: str,
        target_id: str,
        weekly_hours: Dict,
        organization_id: str = ORG_ID,
        timezone_name: str = "Europe/Madrid",
    ) -> CalendarSchedule:
        return await self._add(
            CalendarSchedule(
                organization_id=organization_id,
                target_type=target_type,
                target_id=target_id,
                timezone=timezone_name,
                weekly_hours=weekly_hours,
            )
        )

    async def exception(
        self,
        target_type: str,
        target_id: str,
        exception_date: date,
        is_closed: bool = True,
        custom_hours: Optional[List[Dict]] = None,
        organization_id: str = ORG_ID,
    ) -> CalendarException:
        return await self._add(
            CalendarException(
                organization_id=organization_id,
                target_type=target_type,
                target_id=target_id,
                exception_date=exception_date,
                is_closed=is_closed,
                custom_hours=custom_hours,
            )
        )


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine so concurrent sessions use separate connections."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return build_session_factory(engine)


@pytest.fixture
def seed(session_factory):
    """Row seeder for the test database."""
    return Seeder(session_factory)


@pytest.fixture
def scheduling_settings():
    """Engine settings with fast retries."""
    return SchedulingSettings(
        max_range_days=90,
        default_timezone="Europe/Madrid",
        min_notice_minutes=0,
        booking_max_retries=5,
        booking_retry_backoff_ms=5,
    )


@pytest.fixture
def notifier():
    """Notifier that records events."""
    return RecordingNotifier()


@pytest.fixture
async def dispatcher(notifier):
    """Dispatcher delivering to the recording notifier."""
    dispatcher = NotificationDispatcher(notifier)
    yield dispatcher
    await dispatcher.drain()
