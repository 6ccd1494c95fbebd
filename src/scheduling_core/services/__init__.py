"""Services package."""

from scheduling_core.services.admin_service import AdminService, get_admin_service
from scheduling_core.services.assignment_service import AssignmentService, get_assignment_service
from scheduling_core.services.availability_service import (
    AvailabilityService,
    get_availability_service,
)
from scheduling_core.services.booking_service import BookingService, get_booking_service
from scheduling_core.services.calendar_service import CalendarService, get_calendar_service
from scheduling_core.services.notifications_service import (
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
    get_notification_dispatcher,
)

__all__ = [
    "AdminService",
    "AssignmentService",
    "AvailabilityService",
    "BookingService",
    "CalendarService",
    "LoggingNotifier",
    "NotificationDispatcher",
    "Notifier",
    "get_admin_service",
    "get_assignment_service",
    "get_availability_service",
    "get_booking_service",
    "get_calendar_service",
    "get_notification_dispatcher",
]
