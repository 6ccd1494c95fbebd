"""Pydantic models for departments and memberships."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class DepartmentCreateRequest(BaseModel):
    """Request model for creating a department."""

    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    description: Optional[str] = Field(None, max_length=500, description="Description")
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN, description="Hex color, e.g. #1F6FEB")
    is_active: bool = Field(True, description="Whether the department takes bookings")
    sort_order: int = Field(0, ge=0, description="Position in listings")
    slot_duration_minutes: Optional[int] = Field(
        None, ge=5, le=480, description="Slot length (defaults to the engine setting)"
    )
    buffer_before_minutes: int = Field(0, ge=0, le=240, description="Dead time before a booking")
    buffer_after_minutes: int = Field(0, ge=0, le=240, description="Dead time after a booking")


class DepartmentUpdateRequest(BaseModel):
    """Partial update of a department. The slug never changes."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = Field(None, ge=0)
    slot_duration_minutes: Optional[int] = Field(None, ge=5, le=480)
    buffer_before_minutes: Optional[int] = Field(None, ge=0, le=240)
    buffer_after_minutes: Optional[int] = Field(None, ge=0, le=240)


class DepartmentResponse(BaseModel):
    """Response model for a department."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    name: str
    slug: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: bool
    sort_order: int
    slot_duration_minutes: int
    buffer_before_minutes: int
    buffer_after_minutes: int
    created_at: datetime
    updated_at: datetime


class DepartmentListResponse(BaseModel):
    """List of departments."""

    departments: List[DepartmentResponse] = Field(default_factory=list)


class MembershipUpsertRequest(BaseModel):
    """Create or update an operator's membership in a department."""

    is_active: bool = Field(True, description="Inactive members cannot be assigned")
    is_lead: bool = Field(False, description="Department lead")


class MembershipResponse(BaseModel):
    """Response model for a membership."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    department_id: str
    user_id: str
    is_active: bool
    is_lead: bool
    created_at: datetime
    updated_at: datetime


class OperatorListResponse(BaseModel):
    """Operators that can be assigned to a department's appointments."""

    department_id: str
    operators: List[MembershipResponse] = Field(default_factory=list)
