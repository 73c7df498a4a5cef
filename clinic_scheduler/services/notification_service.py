# clinic_scheduler/services/notification_service.py
# Event models and the dispatcher that fans them out to delivery channels.
import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .email_service import ModernEmailService
from .sse_service import SSEBroker

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_STATUS_CHANGED = "booking.status_changed"
DELAY_NOTICE = "delay.notice"
DELAY_CLEARED = "delay.cleared"
REMINDER = "reminder"


class NotificationEvent(BaseModel):
    event_type: str
    appointment_id: int
    patient_id: Optional[int] = None
    patient_name: Optional[str] = None
    patient_email: Optional[str] = None
    doctor_id: int
    doctor_name: str
    appointment_date: date
    appointment_time: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BookingEvent(NotificationEvent):
    status: str
    consultation_type: Optional[str] = None
    confirmation_number: Optional[str] = None
    notes: Optional[str] = None


class DelayEvent(NotificationEvent):
    event_type: str = DELAY_NOTICE
    original_time: str
    estimated_time: str
    estimated_date: date
    delay_minutes: int
    reason: Optional[str] = None

    @property
    def message(self) -> str:
        when = self.estimated_time
        if self.estimated_date != self.appointment_date:
            when = f"{self.estimated_time} on {self.estimated_date.isoformat()}"
        return (
            f"{self.doctor_name} is running {self.delay_minutes} minutes late. "
            f"Your new appointment time is {when}."
        )


class DelayClearedEvent(NotificationEvent):
    event_type: str = DELAY_CLEARED


class ReminderEvent(NotificationEvent):
    event_type: str = REMINDER
    confirmation_number: Optional[str] = None


def event_from_appointment(event_cls, appointment, **fields) -> NotificationEvent:
    """Build ``event_cls`` from an Appointment row plus event-specific fields."""
    doctor = appointment.doctor
    patient = appointment.patient
    return event_cls(
        appointment_id=appointment.id,
        patient_id=appointment.patient_id,
        patient_name=appointment.patient_name or (patient.full_name if patient else None),
        patient_email=appointment.patient_email or (patient.email if patient else None),
        doctor_id=appointment.doctor_id,
        doctor_name=f"Dr. {doctor.full_name}" if doctor else "Your doctor",
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time,
        **fields
    )


class EmailChannel:
    """Delivers events to the patient's email address."""

    name = "email"

    TEMPLATES = {
        BOOKING_CREATED: ("appointment_confirmation", "Appointment booked"),
        BOOKING_STATUS_CHANGED: ("appointment_status", "Appointment update"),
        DELAY_NOTICE: ("appointment_delay", "Your appointment is delayed"),
        DELAY_CLEARED: ("delay_cleared", "Your doctor is back on schedule"),
        REMINDER: ("appointment_reminder", "Appointment reminder"),
    }

    def __init__(self, email_service: ModernEmailService):
        self.email_service = email_service

    async def send(self, event: NotificationEvent) -> bool:
        if not event.patient_email or not self.email_service.enabled:
            return False
        template_name, subject = self.TEMPLATES[event.event_type]
        context = event.model_dump()
        context["subject"] = f"{subject} - {event.appointment_date.isoformat()} {event.appointment_time}"
        context["patient_name"] = event.patient_name or "Patient"
        if isinstance(event, DelayEvent):
            context["message"] = event.message
        result = await self.email_service.send_templated_email(event.patient_email, template_name, context)
        return bool(result.get("success"))


class PushChannel:
    """Pushes events to the patient's open SSE connections."""

    name = "in_app"

    SSE_TYPES = {
        BOOKING_CREATED: "appointment-created",
        BOOKING_STATUS_CHANGED: "appointment-status",
        DELAY_NOTICE: "appointment-delay",
        DELAY_CLEARED: "delay-cleared",
        REMINDER: "appointment-reminder",
    }

    def __init__(self, broker: SSEBroker):
        self.broker = broker

    async def send(self, event: NotificationEvent) -> bool:
        if event.patient_id is None:
            return False
        payload = {
            "type": self.SSE_TYPES[event.event_type],
            "data": event.model_dump(mode="json"),
            "timestamp": event.created_at.isoformat(),
        }
        if isinstance(event, DelayEvent):
            payload["data"]["message"] = event.message
        return self.broker.send_to_user(event.patient_id, payload) > 0


class NotificationDispatcher:
    """Fans an event out to every channel.

    Each channel is isolated: a failure is logged and reported as ``False``
    and never propagates to the caller.
    """

    def __init__(self, channels: Iterable = ()):
        self.channels: List = list(channels)

    async def dispatch(self, event: NotificationEvent) -> Dict[str, bool]:
        results = {}
        for channel in self.channels:
            try:
                results[channel.name] = bool(await channel.send(event))
            except Exception as e:
                logger.error(
                    f"Notification channel '{channel.name}' failed for {event.event_type} "
                    f"on appointment {event.appointment_id}: {e}",
                    exc_info=True,
                )
                results[channel.name] = False
        return results


def build_dispatcher(email_service: ModernEmailService, broker: SSEBroker) -> NotificationDispatcher:
    return NotificationDispatcher([PushChannel(broker), EmailChannel(email_service)])
