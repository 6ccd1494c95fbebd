"""Appointment notifications.

Events are dispatched after the transaction commits and delivered in the
background. Delivery failures are logged and never change the outcome of the
operation that produced the event.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional, Protocol, Set

logger = logging.getLogger(__name__)

APPOINTMENT_BOOKED = "appointment.booked"
APPOINTMENT_CANCELLED = "appointment.cancelled"
CALLBACK_REQUESTED = "callback.requested"


@dataclass(frozen=True)
class AppointmentEvent:
    """Something that happened to an appointment."""

    event: str
    appointment_id: str
    organization_id: str
    department_id: str
    status: str
    client_name: str
    client_phone: str
    user_id: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    reason: Optional[str] = None

    @classmethod
    def from_model(cls, event: str, appointment, reason: Optional[str] = None) -> "AppointmentEvent":
        return cls(
            event=event,
            appointment_id=appointment.id,
            organization_id=appointment.organization_id,
            department_id=appointment.department_id,
            status=appointment.status,
            client_name=appointment.client_name,
            client_phone=appointment.client_phone,
            user_id=appointment.user_id,
            start_at=appointment.start_at,
            end_at=appointment.end_at,
            reason=reason,
        )


class Notifier(Protocol):
    """Delivers appointment events (SMS, e-mail, webhook...)."""

    async def send(self, event: AppointmentEvent) -> None: ...


class LoggingNotifier:
    """Notifier that writes events to the log."""

    async def send(self, event: AppointmentEvent) -> None:
        logger.info(
            f"Notification {event.event} for appointment {event.appointment_id}",
            extra={"extra_fields": asdict(event)},
        )


class NotificationDispatcher:
    """Fire-and-forget delivery of events through a notifier."""

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, event: AppointmentEvent) -> asyncio.Task:
        """Schedule delivery of an event and return immediately."""
        task = asyncio.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, event: AppointmentEvent) -> None:
        try:
            await self._notifier.send(event)
        except Exception as e:
            logger.error(
                f"Failed to deliver {event.event} for appointment {event.appointment_id}: {e}",
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for deliveries still in flight (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the process-global dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
