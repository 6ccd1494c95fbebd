"""SQLAlchemy database models.

Organizations and users live in the identity provider; their ids are stored
here as plain strings without foreign keys.
"""

import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DDL,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from scheduling_core.database.types import UTCDateTime, utcnow


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def _uuid() -> str:
    return str(uuid.uuid4())


class Department(Base):
    """Department database model."""

    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_departments_organization_slug"),
    )

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, index=True)

    # Tenant
    organization_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)

    # Profile
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Booking rules
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    buffer_before_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    buffer_after_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    members: Mapped[list["DepartmentMember"]] = relationship(
        "DepartmentMember", back_populates="department", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        """String representation of Department."""
        return f"<Department(id={self.id}, slug={self.slug}, organization_id={self.organization_id})>"


class DepartmentMember(Base):
    """Operator membership in a department."""

    __tablename__ = "department_members"
    __table_args__ = (
        UniqueConstraint("department_id", "user_id", name="uq_department_members_department_user"),
    )

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, index=True)

    # Foreign keys
    department_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("departments.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_lead: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    department: Mapped["Department"] = relationship("Department", back_populates="members")

    def __repr__(self) -> str:
        """String representation of DepartmentMember."""
        return f"<DepartmentMember(department_id={self.department_id}, user_id={self.user_id})>"


class CalendarSchedule(Base):
    """Weekly opening hours of a schedulable target."""

    __tablename__ = "calendar_schedules"
    __table_args__ = (
        UniqueConstraint("target_type", "target_id", name="uq_calendar_schedules_target"),
    )

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, index=True)

    # Tenant and target
    organization_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False)

    timezone: Mapped[str] = mapped_column(String(64), default="Europe/Madrid", nullable=False)
    # {"1": [{"start": "09:00", "end": "14:00"}], ...}, ISO weekday keys
    weekly_hours: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        """String representation of CalendarSchedule."""
        return f"<CalendarSchedule(target={self.target_type}:{self.target_id}, timezone={self.timezone})>"


class CalendarException(Base):
    """Date-level override of a target's weekly hours."""

    __tablename__ = "calendar_exceptions"
    __table_args__ = (
        UniqueConstraint(
            "target_type", "target_id", "exception_date", name="uq_calendar_exceptions_target_date"
        ),
    )

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, index=True)

    # Tenant and target
    organization_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False)

    exception_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    custom_hours: Mapped[Optional[list[dict[str, str]]]] = mapped_column(JSON, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        """String representation of CalendarException."""
        return (
            f"<CalendarException(target={self.target_type}:{self.target_id}, "
            f"date={self.exception_date}, closed={self.is_closed})>"
        )


class Appointment(Base):
    """Appointment, visit or callback request."""

    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_scope_blocked", "scope_key", "blocked_start_at", "blocked_end_at"),
        Index("ix_appointments_organization_start", "organization_id", "start_at"),
    )

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid, index=True)

    # Tenant and ownership
    organization_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    department_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("departments.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)
    assigned_by_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    contact_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Client
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # appointment | callback | visit
    type: Mapped[str] = mapped_column(String(20), default="appointment", nullable=False)

    # Time
    start_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    end_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    callback_preferred_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # PENDING | CONFIRMED | CANCELLED
    status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True, nullable=False)
    # manual | ai
    assignment_mode: Mapped[str] = mapped_column(String(10), default="manual", nullable=False)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Reservation: buffer-expanded interval, exclusive per scope_key while live
    scope_key: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    blocked_start_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    blocked_end_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        """String representation of Appointment."""
        return f"<Appointment(id={self.id}, type={self.type}, status={self.status}, start_at={self.start_at})>"


APPOINTMENTS_NO_OVERLAP_CONSTRAINT = "appointments_scope_no_overlap"

# Live reservations of one scope never overlap. PostgreSQL only; other stores
# rely on serialized writers.
event.listen(
    Appointment.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE appointments ADD CONSTRAINT {APPOINTMENTS_NO_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist ("
        "scope_key WITH =, "
        "tstzrange(blocked_start_at, blocked_end_at, '[)') WITH &&"
        ") WHERE (status IN ('PENDING', 'CONFIRMED') AND blocked_start_at IS NOT NULL)"
    ).execute_if(dialect="postgresql"),
)
