"""Pydantic models for weekly schedules and date exceptions."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from scheduling_core.scheduling.time_windows import parse_weekly_hours, parse_windows

TargetType = Literal["ORGANIZATION", "DEPARTMENT", "USER"]
TARGET_TYPES = ("ORGANIZATION", "DEPARTMENT", "USER")


class TimePeriod(BaseModel):
    """One opening window, ``HH:MM`` wall-clock times."""

    start: str = Field(..., description="Opening time, HH:MM")
    end: str = Field(..., description="Closing time, HH:MM (exclusive)")


class ScheduleUpsertRequest(BaseModel):
    """Full replacement of a target's weekly hours."""

    timezone: Optional[str] = Field(None, description="IANA timezone (defaults to the engine's)")
    weekly_hours: Dict[str, List[TimePeriod]] = Field(
        ..., description='ISO weekday ("1" = Monday) to opening windows; omitted days are closed'
    )

    @field_validator("weekly_hours")
    @classmethod
    def validate_weekly_hours(cls, v: Dict[str, List[TimePeriod]]) -> Dict[str, List[TimePeriod]]:
        """Check weekday keys, HH:MM times, start < end and no overlaps."""
        parse_weekly_hours({key: [p.model_dump() for p in periods] for key, periods in v.items()})
        return v


class ScheduleResponse(BaseModel):
    """Response model for a weekly schedule."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    target_type: TargetType
    target_id: str
    timezone: str
    weekly_hours: Dict[str, List[TimePeriod]]
    created_at: datetime
    updated_at: datetime


class ExceptionUpsertRequest(BaseModel):
    """Create or replace the exception of a target on one date."""

    exception_date: date = Field(..., description="Date the exception applies to (YYYY-MM-DD)")
    is_closed: bool = Field(True, description="Close the whole date")
    custom_hours: Optional[List[TimePeriod]] = Field(
        None, description="Opening windows replacing the weekly pattern that date"
    )
    description: Optional[str] = Field(None, max_length=500, description="Why (holiday, event...)")

    @field_validator("custom_hours")
    @classmethod
    def validate_custom_hours(cls, v: Optional[List[TimePeriod]]) -> Optional[List[TimePeriod]]:
        """Check HH:MM times, start < end and no overlaps."""
        if v is not None:
            parse_windows([p.model_dump() for p in v])
        return v

    @model_validator(mode="after")
    def check_closed_has_no_hours(self) -> "ExceptionUpsertRequest":
        """A closed date cannot also carry opening hours."""
        if self.is_closed and self.custom_hours:
            raise ValueError("custom_hours must be empty when is_closed is true")
        return self


class ExceptionResponse(BaseModel):
    """Response model for a date exception."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    organization_id: str
    target_type: TargetType
    target_id: str
    exception_date: date
    is_closed: bool
    custom_hours: Optional[List[TimePeriod]] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime
