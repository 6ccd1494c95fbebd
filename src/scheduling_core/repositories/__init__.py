"""Repositories package."""

from scheduling_core.repositories.appointments_repository import (
    LIVE_STATUSES,
    AppointmentsRepository,
)
from scheduling_core.repositories.base import BaseRepository
from scheduling_core.repositories.calendar_repository import (
    ExceptionsRepository,
    SchedulesRepository,
)
from scheduling_core.repositories.departments_repository import (
    DepartmentsRepository,
    MembershipsRepository,
)

__all__ = [
    "BaseRepository",
    "DepartmentsRepository",
    "MembershipsRepository",
    "SchedulesRepository",
    "ExceptionsRepository",
    "AppointmentsRepository",
    "LIVE_STATUSES",
]
