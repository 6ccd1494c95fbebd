"""Pydantic models for booking, assignment and appointment reads."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

AppointmentType = Literal["appointment", "callback", "visit"]
AppointmentStatus = Literal["PENDING", "CONFIRMED", "CANCELLED"]
AssignmentMode = Literal["manual", "ai"]
InvalidTargetReason = Literal["DEPARTMENT_NOT_FOUND", "DEPARTMENT_INACTIVE", "OPERATOR_NOT_MEMBER"]

PHONE_PATTERN = r"^[+\d\s\-().]+$"


def _lower_mode(value):
    if isinstance(value, str):
        return value.lower()
    return value


# ---------------------------------------------------------------------------
# Appointment time: scheduled range or soft callback time
# ---------------------------------------------------------------------------


class ScheduledWindow(BaseModel):
    """Reserved agenda time of an appointment or visit."""

    kind: Literal["scheduled"] = "scheduled"
    start_at: datetime = Field(..., description="Start (inclusive)")
    end_at: datetime = Field(..., description="End (exclusive)")


class CallbackWindow(BaseModel):
    """Preferred call-back time; reserves nothing."""

    kind: Literal["callback"] = "callback"
    preferred_at: Optional[datetime] = Field(None, description="When the client prefers a call")


AppointmentWindow = Annotated[Union[ScheduledWindow, CallbackWindow], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


class BookAppointmentRequest(BaseModel):
    """Request model for booking a slot."""

    department_id: str = Field(..., max_length=36, description="Department that owns the agenda")
    client_name: str = Field(..., min_length=2, max_length=200, description="Client full name")
    client_phone: str = Field(
        ..., min_length=6, max_length=30, pattern=PHONE_PATTERN, description="Client phone"
    )
    start_at: datetime = Field(..., description="Slot start, ISO 8601 with offset")
    user_id: Optional[str] = Field(None, max_length=36, description="Operator chosen up front")
    assignment_mode: Optional[AssignmentMode] = Field(
        None, description="How the operator was chosen (defaults to manual)"
    )
    type: Literal["appointment", "visit"] = Field("appointment", description="Appointment type")
    notes: Optional[str] = Field(None, max_length=2000, description="Free-form notes")
    contact_id: Optional[str] = Field(None, max_length=36, description="CRM contact ID")

    @field_validator("assignment_mode", mode="before")
    @classmethod
    def normalize_assignment_mode(cls, v):
        """Accept MANUAL/AI as well as manual/ai."""
        return _lower_mode(v)

    @field_validator("client_name")
    @classmethod
    def strip_client_name(cls, v: str) -> str:
        """Reject names that are only whitespace."""
        stripped = v.strip()
        if len(stripped) < 2:
            raise ValueError("Client name is too short")
        return stripped


class BookingSuccess(BaseModel):
    """The slot was reserved."""

    outcome: Literal["success"] = "success"
    appointment_id: str
    start_at: datetime
    end_at: datetime
    status: Literal["PENDING", "CONFIRMED"]
    user_id: Optional[str] = None
    assignment_mode: Optional[AssignmentMode] = None


class BookingConflict(BaseModel):
    """The interval overlaps a live reservation of the same scope."""

    outcome: Literal["conflict"] = "conflict"
    message: str = "The requested time is no longer available"


class BookingInvalidTarget(BaseModel):
    """The department or operator cannot take bookings."""

    outcome: Literal["invalid_target"] = "invalid_target"
    reason: InvalidTargetReason
    message: Optional[str] = None


BookingOutcome = Annotated[
    Union[BookingSuccess, BookingConflict, BookingInvalidTarget],
    Field(discriminator="outcome"),
]


class CallbackCreateRequest(BaseModel):
    """Request model for a call-back request."""

    department_id: str = Field(..., max_length=36, description="Department to call back from")
    client_name: str = Field(..., min_length=2, max_length=200, description="Client full name")
    client_phone: str = Field(
        ..., min_length=6, max_length=30, pattern=PHONE_PATTERN, description="Client phone"
    )
    preferred_at: Optional[datetime] = Field(None, description="Preferred call-back time")
    notes: Optional[str] = Field(None, max_length=2000, description="Free-form notes")
    contact_id: Optional[str] = Field(None, max_length=36, description="CRM contact ID")


# ---------------------------------------------------------------------------
# Assignment and cancellation
# ---------------------------------------------------------------------------


class AssignOperatorRequest(BaseModel):
    """Request model for attaching an operator to an appointment."""

    user_id: str = Field(..., min_length=1, max_length=36, description="Operator to assign")
    assignment_mode: AssignmentMode = Field("manual", description="manual or ai")

    @field_validator("assignment_mode", mode="before")
    @classmethod
    def normalize_assignment_mode(cls, v):
        """Accept MANUAL/AI as well as manual/ai."""
        return _lower_mode(v)


class CancelAppointmentRequest(BaseModel):
    """Request model for cancelling an appointment."""

    reason: Optional[str] = Field(None, max_length=500, description="Cancellation reason")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class AppointmentResponse(BaseModel):
    """Response model for an appointment."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    department_id: str
    user_id: Optional[str] = None
    assigned_by_user_id: Optional[str] = None
    contact_id: Optional[str] = None
    client_name: str
    client_phone: str
    notes: Optional[str] = None
    type: AppointmentType
    window: AppointmentWindow
    status: AppointmentStatus
    assignment_mode: AssignmentMode
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, appointment) -> "AppointmentResponse":
        """Build the response from an ``Appointment`` row."""
        if appointment.type == "callback" or appointment.start_at is None:
            window = CallbackWindow(preferred_at=appointment.callback_preferred_at)
        else:
            window = ScheduledWindow(start_at=appointment.start_at, end_at=appointment.end_at)
        return cls(
            id=appointment.id,
            organization_id=appointment.organization_id,
            department_id=appointment.department_id,
            user_id=appointment.user_id,
            assigned_by_user_id=appointment.assigned_by_user_id,
            contact_id=appointment.contact_id,
            client_name=appointment.client_name,
            client_phone=appointment.client_phone,
            notes=appointment.notes,
            type=appointment.type,
            window=window,
            status=appointment.status,
            assignment_mode=appointment.assignment_mode,
            cancellation_reason=appointment.cancellation_reason,
            cancelled_at=appointment.cancelled_at,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class AppointmentListResponse(BaseModel):
    """Paged list of appointments."""

    appointments: List[AppointmentResponse] = Field(default_factory=list)
    limit: int
    offset: int
