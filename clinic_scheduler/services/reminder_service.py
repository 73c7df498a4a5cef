# clinic_scheduler/services/reminder_service.py
# Day-ahead appointment reminders and the background loop that sends them.
import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFoundError, ValidationError
from ..timeutils import Clock, to_minutes
from .notification_service import NotificationDispatcher, ReminderEvent, event_from_appointment

logger = structlog.get_logger(__name__)

WINDOW_START = timedelta(hours=23)
WINDOW_END = timedelta(hours=25)


class ReminderService:
    """Sends one reminder per confirmed appointment, 23 to 25 hours ahead."""

    def __init__(self, dispatcher: NotificationDispatcher, clock: Clock):
        self.dispatcher = dispatcher
        self.clock = clock

    def _starts_at(self, appointment: models.Appointment) -> datetime:
        start = datetime.combine(appointment.appointment_date, datetime.min.time(), tzinfo=self.clock.tz)
        return start + timedelta(minutes=to_minutes(appointment.appointment_time))

    def _confirmed_between(self, db: Session, start: datetime, end: datetime) -> List[models.Appointment]:
        candidates = db.query(models.Appointment).filter(
            models.Appointment.status == models.AppointmentStatus.confirmed,
            models.Appointment.appointment_date >= start.date(),
            models.Appointment.appointment_date <= end.date(),
        ).order_by(models.Appointment.appointment_date, models.Appointment.appointment_time).all()
        return [a for a in candidates if start <= self._starts_at(a) <= end]

    def due_appointments(self, db: Session) -> List[models.Appointment]:
        now = self.clock.now()
        return [
            a for a in self._confirmed_between(db, now + WINDOW_START, now + WINDOW_END)
            if a.patient_email and not a.reminder_sent
        ]

    async def send_reminder(self, db: Session, appointment: models.Appointment) -> bool:
        event = event_from_appointment(
            ReminderEvent, appointment, confirmation_number=appointment.confirmation_number
        )
        results = await self.dispatcher.dispatch(event)
        if not results.get("email"):
            return False
        appointment.reminder_sent = True
        appointment.reminder_sent_at = self.clock.now()
        db.commit()
        return True

    async def send_due_reminders(self, db: Session) -> Dict[str, Any]:
        due = self.due_appointments(db)
        sent = failed = 0
        for appointment in due:
            try:
                if await self.send_reminder(db, appointment):
                    sent += 1
                else:
                    failed += 1
            except Exception as e:
                db.rollback()
                failed += 1
                logger.error("reminder_failed", appointment_id=appointment.id, error=str(e))

        logger.info("reminders_processed", total=len(due), sent=sent, failed=failed)
        return {
            "success": True,
            "message": f"Processed {len(due)} reminder(s)",
            "total": len(due),
            "sent": sent,
            "failed": failed,
        }

    async def send_test_reminder(self, db: Session, appointment_id: int) -> Dict[str, Any]:
        appointment = db.query(models.Appointment).filter(models.Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        if not appointment.patient_email:
            raise ValidationError("Appointment has no patient email")
        sent = await self.send_reminder(db, appointment)
        return {
            "success": sent,
            "message": "Reminder sent" if sent else "Reminder could not be delivered",
            "total": 1,
            "sent": int(sent),
            "failed": int(not sent),
        }

    def stats(self, db: Session) -> Dict[str, int]:
        now = self.clock.now()
        upcoming = self._confirmed_between(db, now, now + timedelta(hours=24))
        pending = self.due_appointments(db)
        sent = db.query(models.Appointment).filter(models.Appointment.reminder_sent.is_(True)).count()
        return {
            "upcoming_24h": len(upcoming),
            "reminders_sent": sent,
            "pending": len(pending),
        }


class ReminderScheduler:
    """Runs ``send_due_reminders`` on a fixed interval in an asyncio task."""

    def __init__(
        self,
        service: ReminderService,
        session_factory: Callable[[], Session],
        interval_seconds: int = 3600,
    ):
        self.service = service
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.last_run_at: Optional[datetime] = None
        self.last_result: Optional[Dict[str, Any]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("reminder_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("reminder_scheduler_stopped")

    async def trigger(self) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            result = await self.service.send_due_reminders(db)
        finally:
            db.close()
        self.last_run_at = self.service.clock.now()
        self.last_result = result
        return result

    async def _loop(self) -> None:
        while True:
            try:
                await self.trigger()
            except Exception as e:
                logger.error("reminder_run_failed", error=str(e))
            await asyncio.sleep(self.interval_seconds)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "last_run_at": self.last_run_at,
            "last_result": self.last_result,
        }
