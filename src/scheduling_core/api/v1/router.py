"""API v1 router aggregation.

All v1 endpoints are prefixed with `/api/v1`.

Routers included:
- Availability (`/api/v1/availability`)
- Appointments (`/api/v1/appointments/*`): booking, call-backs, assignment, reads
- Departments (`/api/v1/departments/*`): departments and memberships
- Schedules (`/api/v1/schedules/*`): weekly hours and date exceptions

Every endpoint requires the `X-Organization-Id` header set by the gateway and,
when enabled, the `X-Internal-API-Key` header.
"""

from fastapi import APIRouter

from scheduling_core.api.v1 import appointments, availability, departments, schedules

router = APIRouter(
    prefix="/api/v1",
    tags=["v1"],
    responses={
        404: {"description": "Not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)

router.include_router(availability.router)
router.include_router(appointments.router)
router.include_router(departments.router)
router.include_router(schedules.router)


@router.get(
    "/",
    summary="API Information",
    description="Get API version and status information",
    tags=["v1"],
)
async def api_info():
    """Get API v1 version, status and endpoint roots."""
    return {
        "version": "v1",
        "status": "active",
        "endpoints": {
            "availability": "/api/v1/availability",
            "appointments": "/api/v1/appointments",
            "departments": "/api/v1/departments",
            "schedules": "/api/v1/schedules",
        },
    }
