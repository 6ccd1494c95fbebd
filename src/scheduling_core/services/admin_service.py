"""Administrative operations: departments, memberships and appointment reads.

Every call is scoped to the caller's organization; rows of other
organizations behave as if they did not exist.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_core.config import SchedulingSettings, get_settings
from scheduling_core.database.session import begin_read_only
from scheduling_core.exceptions import NotFoundError, ValidationError
from scheduling_core.models.appointments import AppointmentListResponse, AppointmentResponse
from scheduling_core.models.departments import (
    DepartmentCreateRequest,
    DepartmentResponse,
    DepartmentUpdateRequest,
    MembershipResponse,
    MembershipUpsertRequest,
    OperatorListResponse,
)
from scheduling_core.repositories import (
    AppointmentsRepository,
    DepartmentsRepository,
    MembershipsRepository,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


def generate_slug(name: str) -> str:
    """URL-safe slug with accents folded ("Atención" -> "atencion")."""
    folded = unicodedata.normalize("NFD", name)
    folded = "".join(ch for ch in folded if unicodedata.category(ch) != "Mn")
    slug = folded.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:100] or "department"


def unique_slug(base: str, taken: List[str]) -> str:
    """First of ``base``, ``base-2``, ``base-3``... not in ``taken``."""
    existing = set(taken)
    if base not in existing:
        return base
    suffix = 2
    while f"{base}-{suffix}" in existing:
        suffix += 1
    return f"{base}-{suffix}"


class AdminService:
    """Service for dashboard management and reads."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[SchedulingSettings] = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings().scheduling

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    async def create_department(
        self, organization_id: str, request: DepartmentCreateRequest
    ) -> DepartmentResponse:
        """Create a department with a slug unique within the organization."""
        if not request.name.strip():
            raise ValidationError("name is required", errors={"name": "required"}, reason="MISSING_FIELD")

        async with self._session_factory() as session:
            async with session.begin():
                departments = DepartmentsRepository(session)
                base = generate_slug(request.name)
                slug = unique_slug(base, await departments.list_slugs(organization_id, base))
                department = await departments.create(
                    organization_id=organization_id,
                    name=request.name.strip(),
                    slug=slug,
                    description=request.description,
                    color=request.color,
                    is_active=request.is_active,
                    sort_order=request.sort_order,
                    slot_duration_minutes=(
                        request.slot_duration_minutes
                        or self._settings.default_slot_duration_minutes
                    ),
                    buffer_before_minutes=request.buffer_before_minutes,
                    buffer_after_minutes=request.buffer_after_minutes,
                )

        logger.info(f"Department {department.id} ({department.slug}) created in {organization_id}")
        return DepartmentResponse.model_validate(department)

    async def update_department(
        self, organization_id: str, department_id: str, request: DepartmentUpdateRequest
    ) -> DepartmentResponse:
        """Apply a partial update. Fields left out are unchanged."""
        changes = request.model_dump(exclude_unset=True)
        if "name" in changes:
            if changes["name"] is None or not changes["name"].strip():
                raise ValidationError(
                    "name cannot be empty", errors={"name": "required"}, reason="MISSING_FIELD"
                )
            changes["name"] = changes["name"].strip()
        for field in ("is_active", "sort_order", "slot_duration_minutes",
                      "buffer_before_minutes", "buffer_after_minutes"):
            if field in changes and changes[field] is None:
                changes.pop(field)

        async with self._session_factory() as session:
            async with session.begin():
                departments = DepartmentsRepository(session)
                department = await departments.get_for_organization(department_id, organization_id)
                if department is None:
                    raise NotFoundError("Department", department_id)
                department = await departments.apply(department, **changes)

        return DepartmentResponse.model_validate(department)

    async def list_departments(self, organization_id: str) -> List[DepartmentResponse]:
        """Departments by sort order, then name."""
        async with self._session_factory() as session:
            await begin_read_only(session)
            rows = await DepartmentsRepository(session).list_for_organization(organization_id)
        return [DepartmentResponse.model_validate(row) for row in rows]

    async def get_department(self, organization_id: str, department_id: str) -> DepartmentResponse:
        """Get one department of the organization."""
        async with self._session_factory() as session:
            await begin_read_only(session)
            department = await DepartmentsRepository(session).get_for_organization(
                department_id, organization_id
            )
        if department is None:
            raise NotFoundError("Department", department_id)
        return DepartmentResponse.model_validate(department)

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    async def upsert_membership(
        self,
        organization_id: str,
        department_id: str,
        user_id: str,
        request: MembershipUpsertRequest,
    ) -> MembershipResponse:
        """Create or update a membership; repeating the call changes nothing."""
        if not (user_id or "").strip():
            raise ValidationError("user_id is required", errors={"user_id": "required"}, reason="MISSING_FIELD")

        async with self._session_factory() as session:
            async with session.begin():
                department = await DepartmentsRepository(session).get_for_organization(
                    department_id, organization_id
                )
                if department is None:
                    raise NotFoundError("Department", department_id)

                memberships = MembershipsRepository(session)
                membership = await memberships.get(department_id, user_id)
                if membership is None:
                    membership = await memberships.create(
                        department_id=department_id,
                        user_id=user_id,
                        is_active=request.is_active,
                        is_lead=request.is_lead,
                    )
                else:
                    membership = await memberships.apply(
                        membership, is_active=request.is_active, is_lead=request.is_lead
                    )

        return MembershipResponse.model_validate(membership)

    async def list_assignable_operators(
        self, organization_id: str, department_id: str
    ) -> OperatorListResponse:
        """Active members of a department, leads first."""
        async with self._session_factory() as session:
            await begin_read_only(session)
            department = await DepartmentsRepository(session).get_for_organization(
                department_id, organization_id
            )
            if department is None:
                raise NotFoundError("Department", department_id)
            members = await MembershipsRepository(session).list_active(department_id)

        return OperatorListResponse(
            department_id=department_id,
            operators=[MembershipResponse.model_validate(m) for m in members],
        )

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def list_appointments(
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
    ) -> AppointmentListResponse:
        """
        List appointments of the organization, newest first.

        Raises:
            ValidationError: If paging values are out of range
        """
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}",
                errors={"limit": limit},
                reason="INVALID_RANGE",
            )
        if offset < 0:
            raise ValidationError("offset must be positive", errors={"offset": offset}, reason="INVALID_RANGE")
        for name, value in (("from", start_from), ("to", start_to)):
            if value is not None and value.tzinfo is None:
                raise ValidationError(
                    f"{name} must include a UTC offset",
                    errors={name: "missing timezone offset"},
                    reason="INVALID_RANGE",
                )

        async with self._session_factory() as session:
            await begin_read_only(session)
            rows = await AppointmentsRepository(session).list_for_organization(
                organization_id,
                status=status,
                department_id=department_id,
                user_id=user_id,
                appointment_type=appointment_type,
                start_from=start_from,
                start_to=start_to,
                limit=limit,
                offset=offset,
            )
        return AppointmentListResponse(
            appointments=[AppointmentResponse.from_model(row) for row in rows],
            limit=limit,
            offset=offset,
        )

    async def get_appointment(self, organization_id: str, appointment_id: str) -> AppointmentResponse:
        """Get one appointment of the organization."""
        async with self._session_factory() as session:
            await begin_read_only(session)
            appointment = await AppointmentsRepository(session).get_for_organization(
                appointment_id, organization_id
            )
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return AppointmentResponse.from_model(appointment)


def get_admin_service(session_factory: async_sessionmaker[AsyncSession]) -> AdminService:
    """Factory for AdminService."""
    return AdminService(session_factory=session_factory)
