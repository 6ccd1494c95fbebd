"""Pydantic models for the availability endpoint."""

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AvailabilityRequest(BaseModel):
    """Request model for bookable slots over a date range."""

    department_id: str = Field(..., max_length=36, description="Department to book with")
    user_id: Optional[str] = Field(None, max_length=36, description="Restrict to one operator")
    start_date: date = Field(..., description="First date, in the client's timezone")
    end_date: date = Field(..., description="Last date (inclusive), in the client's timezone")
    client_timezone: str = Field("Europe/Madrid", description="IANA timezone of the caller")


class AvailabilityResponse(BaseModel):
    """Bookable slot starts keyed by client-local date."""

    department_id: str = Field(..., description="Department ID")
    user_id: Optional[str] = Field(None, description="Operator the slots were computed for")
    client_timezone: str = Field(..., description="Timezone of dates and times")
    slot_duration_minutes: int = Field(..., description="Length of each slot")
    slots: Dict[str, List[str]] = Field(
        default_factory=dict, description='{"YYYY-MM-DD": ["HH:MM", ...]}, every requested date present'
    )
