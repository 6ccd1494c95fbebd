"""Database connection and session management."""

from scheduling_core.database.connection import (
    check_connection,
    close_engine,
    create_engine,
    get_engine,
    is_sqlite_engine,
)
from scheduling_core.database.models import (
    Appointment,
    Base,
    CalendarException,
    CalendarSchedule,
    Department,
    DepartmentMember,
)
from scheduling_core.database.session import (
    begin_read_only,
    build_session_factory,
    close_db,
    get_session_factory,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "Department",
    "DepartmentMember",
    "CalendarSchedule",
    "CalendarException",
    "Appointment",
    # Connection
    "get_engine",
    "create_engine",
    "close_engine",
    "check_connection",
    "is_sqlite_engine",
    # Session
    "begin_read_only",
    "build_session_factory",
    "get_session_factory",
    "init_db",
    "close_db",
]
