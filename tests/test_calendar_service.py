"""Tests for schedule and exception management."""

import asyncio

import pytest
from sqlalchemy import func, select

from conftest import MONDAY, ORG_ID, OTHER_ORG_ID, TUESDAY
from scheduling_core.database.models import CalendarException, CalendarSchedule
from scheduling_core.exceptions import NotFoundError, ValidationError
from scheduling_core.models.calendar import ExceptionUpsertRequest, ScheduleUpsertRequest
from scheduling_core.services.calendar_service import CalendarService


@pytest.fixture
def service(session_factory, scheduling_settings):
    return CalendarService(session_factory, scheduling_settings)


async def count(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar()


def weekly(**days):
    return ScheduleUpsertRequest(weekly_hours=days)


class TestSchedules:
    """Weekly hours upserts."""

    async def test_create_department_schedule(self, service, seed):
        department = await seed.department()

        response = await service.upsert_schedule(
            ORG_ID, "DEPARTMENT", department.id,
            ScheduleUpsertRequest(
                timezone="Atlantic/Canary",
                weekly_hours={"2": [{"start": "16:00", "end": "18:00"}, {"start": "09:00", "end": "14:00"}]},
            ),
        )

        assert response.timezone == "Atlantic/Canary"
        assert [p.start for p in response.weekly_hours["2"]] == ["09:00", "16:00"]

    async def test_default_timezone(self, service, seed):
        department = await seed.department()

        response = await service.upsert_schedule(
            ORG_ID, "DEPARTMENT", department.id, ScheduleUpsertRequest(weekly_hours={"1": []})
        )

        assert response.timezone == "Europe/Madrid"

    async def test_upsert_is_idempotent(self, service, seed, session_factory):
        department = await seed.department()
        request = ScheduleUpsertRequest(weekly_hours={"1": [{"start": "09:00", "end": "14:00"}]})

        first = await service.upsert_schedule(ORG_ID, "DEPARTMENT", department.id, request)
        second = await service.upsert_schedule(ORG_ID, "DEPARTMENT", department.id, request)

        assert first.id == second.id
        assert await count(session_factory, CalendarSchedule) == 1

    async def test_concurrent_first_upserts(self, service, seed, session_factory):
        department = await seed.department()
        requests = [
            ScheduleUpsertRequest(weekly_hours={"1": [{"start": f"{hour:02d}:00", "end": "18:00"}]})
            for hour in range(8, 14)
        ]

        responses = await asyncio.gather(
            *[service.upsert_schedule(ORG_ID, "DEPARTMENT", department.id, r) for r in requests]
        )

        assert len({r.id for r in responses}) == 1
        assert await count(session_factory, CalendarSchedule) == 1

    async def test_upsert_replaces_hours(self, service, seed):
        department = await seed.department()
        await service.upsert_schedule(
            ORG_ID, "DEPARTMENT", department.id,
            ScheduleUpsertRequest(weekly_hours={"1": [{"start": "09:00", "end": "14:00"}]}),
        )

        await service.upsert_schedule(
            ORG_ID, "DEPARTMENT", department.id,
            ScheduleUpsertRequest(weekly_hours={"3": [{"start": "10:00", "end": "12:00"}]}),
        )

        stored = await service.get_schedule(ORG_ID, "DEPARTMENT", department.id)
        assert list(stored.weekly_hours) == ["3"]

    async def test_organization_schedule(self, service):
        response = await service.upsert_schedule(
            ORG_ID, "ORGANIZATION", ORG_ID,
            ScheduleUpsertRequest(weekly_hours={"1": [{"start": "08:00", "end": "20:00"}]}),
        )

        assert response.target_type == "ORGANIZATION"

    async def test_other_organization_target(self, service):
        with pytest.raises(NotFoundError):
            await service.upsert_schedule(
                ORG_ID, "ORGANIZATION", OTHER_ORG_ID, ScheduleUpsertRequest(weekly_hours={"1": []})
            )

    async def test_department_of_other_organization(self, service, seed):
        department = await seed.department(organization_id=OTHER_ORG_ID)

        with pytest.raises(NotFoundError):
            await service.upsert_schedule(
                ORG_ID, "DEPARTMENT", department.id, ScheduleUpsertRequest(weekly_hours={"1": []})
            )

    async def test_user_target_requires_membership(self, service, seed):
        department = await seed.department()
        await seed.member(department.id, "user-1")

        response = await service.upsert_schedule(
            ORG_ID, "USER", "user-1", ScheduleUpsertRequest(weekly_hours={"1": []})
        )
        assert response.target_id == "user-1"

        with pytest.raises(NotFoundError):
            await service.upsert_schedule(
                ORG_ID, "USER", "stranger", ScheduleUpsertRequest(weekly_hours={"1": []})
            )

    async def test_invalid_target_type(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.upsert_schedule(ORG_ID, "TEAM", "x", ScheduleUpsertRequest(weekly_hours={"1": []}))

        assert exc_info.value.reason == "INVALID_TARGET_TYPE"

    async def test_invalid_timezone(self, service, seed):
        department = await seed.department()

        with pytest.raises(ValidationError) as exc_info:
            await service.upsert_schedule(
                ORG_ID, "DEPARTMENT", department.id,
                ScheduleUpsertRequest(timezone="Europe/Atlantis", weekly_hours={"1": []}),
            )

        assert exc_info.value.reason == "INVALID_TIMEZONE"

    def test_invalid_hours_rejected_by_request_model(self):
        with pytest.raises(ValueError):
            ScheduleUpsertRequest(weekly_hours={"1": [{"start": "14:00", "end": "09:00"}]})

    async def test_missing_schedule(self, service, seed):
        department = await seed.department()

        with pytest.raises(NotFoundError):
            await service.get_schedule(ORG_ID, "DEPARTMENT", department.id)


class TestExceptions:
    """Date exception upserts, listing and deletion."""

    async def test_closed_date(self, service, seed):
        department = await seed.department()

        response = await service.upsert_exception(
            ORG_ID, "DEPARTMENT", department.id,
            ExceptionUpsertRequest(exception_date=MONDAY, description="Holiday"),
        )

        assert response.is_closed is True
        assert response.custom_hours is None
        assert response.description == "Holiday"

    async def test_custom_hours(self, service, seed):
        department = await seed.department()

        response = await service.upsert_exception(
            ORG_ID, "DEPARTMENT", department.id,
            ExceptionUpsertRequest(
                exception_date=MONDAY, is_closed=False, custom_hours=[{"start": "10:00", "end": "12:00"}]
            ),
        )

        assert response.is_closed is False
        assert response.custom_hours[0].start == "10:00"

    async def test_one_exception_per_date(self, service, seed, session_factory):
        department = await seed.department()
        await service.upsert_exception(
            ORG_ID, "DEPARTMENT", department.id, ExceptionUpsertRequest(exception_date=MONDAY)
        )

        response = await service.upsert_exception(
            ORG_ID, "DEPARTMENT", department.id,
            ExceptionUpsertRequest(
                exception_date=MONDAY, is_closed=False, custom_hours=[{"start": "10:00", "end": "12:00"}]
            ),
        )

        assert response.is_closed is False
        assert await count(session_factory, CalendarException) == 1

    async def test_concurrent_first_upserts(self, service, seed, session_factory):
        department = await seed.department()

        responses = await asyncio.gather(
            *[
                service.upsert_exception(
                    ORG_ID, "DEPARTMENT", department.id,
                    ExceptionUpsertRequest(exception_date=MONDAY, description=f"Closure {n}"),
                )
                for n in range(6)
            ]
        )

        assert len({r.id for r in responses}) == 1
        assert await count(session_factory, CalendarException) == 1

    def test_closed_with_hours_rejected_by_request_model(self):
        with pytest.raises(ValueError):
            ExceptionUpsertRequest(
                exception_date=MONDAY, is_closed=True, custom_hours=[{"start": "10:00", "end": "12:00"}]
            )

    async def test_list_and_delete(self, service, seed):
        department = await seed.department()
        await service.upsert_exception(
            ORG_ID, "DEPARTMENT", department.id, ExceptionUpsertRequest(exception_date=TUESDAY)
        )
        monday = await service.upsert_exception(
            ORG_ID, "DEPARTMENT", department.id, ExceptionUpsertRequest(exception_date=MONDAY)
        )

        listed = await service.list_exceptions(ORG_ID, "DEPARTMENT", department.id)
        assert [e.exception_date for e in listed] == [MONDAY, TUESDAY]

        await service.delete_exception(ORG_ID, "DEPARTMENT", department.id, monday.id)

        listed = await service.list_exceptions(ORG_ID, "DEPARTMENT", department.id)
        assert [e.exception_date for e in listed] == [TUESDAY]

    async def test_delete_is_scoped_to_target(self, service, seed):
        sales = await seed.department(name="Sales")
        support = await seed.department(name="Support")
        exception = await service.upsert_exception(
            ORG_ID, "DEPARTMENT", sales.id, ExceptionUpsertRequest(exception_date=MONDAY)
        )

        with pytest.raises(NotFoundError):
            await service.delete_exception(ORG_ID, "DEPARTMENT", support.id, exception.id)

    async def test_delete_unknown(self, service, seed):
        department = await seed.department()

        with pytest.raises(NotFoundError):
            await service.delete_exception(ORG_ID, "DEPARTMENT", department.id, "missing")
