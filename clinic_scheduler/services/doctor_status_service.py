# clinic_scheduler/services/doctor_status_service.py
# Delay cascade: push a doctor's delay onto today's remaining appointments.
from datetime import timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from .. import models
from ..compliance_logger import compliance_logger
from ..errors import NotFoundError, ValidationError
from ..timeutils import Clock, add_minutes
from .notification_service import (
    DelayClearedEvent, DelayEvent, NotificationDispatcher, event_from_appointment,
)

logger = structlog.get_logger(__name__)

MIN_DELAY_MINUTES = 1
MAX_DELAY_MINUTES = 240

NO_REMAINING_APPOINTMENTS = "No remaining appointments found for today"
NO_ACTIVE_DELAY = "No active delay found for this doctor today"


class DelayCascadeEngine:
    """Marks doctors running late and rolls the delay back when cleared.

    Each affected appointment is updated and notified independently; one
    failure is logged and counted without stopping the rest of the loop.
    """

    def __init__(self, db: Session, dispatcher: NotificationDispatcher, clock: Clock):
        self.db = db
        self.dispatcher = dispatcher
        self.clock = clock

    def _get_doctor(self, doctor_id: int) -> models.User:
        doctor = self.db.query(models.User).filter(
            models.User.id == doctor_id,
            models.User.role == models.UserRole.doctor,
        ).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return doctor

    def remaining_appointments(self, doctor_id: int) -> List[models.Appointment]:
        """Today's active appointments whose start time has not passed."""
        return self.db.query(models.Appointment).filter(
            models.Appointment.doctor_id == doctor_id,
            models.Appointment.appointment_date == self.clock.today(),
            models.Appointment.status.in_(models.ACTIVE_STATUSES),
            models.Appointment.appointment_time >= self.clock.current_hhmm(),
        ).order_by(models.Appointment.appointment_time).all()

    def _today_record(self, doctor_id: int) -> Optional[models.DoctorStatus]:
        return self.db.query(models.DoctorStatus).filter(
            models.DoctorStatus.doctor_id == doctor_id,
            models.DoctorStatus.date == self.clock.today(),
        ).first()

    async def mark_running_late(
        self,
        doctor_id: int,
        delay_minutes: int,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        if not isinstance(delay_minutes, int) or not MIN_DELAY_MINUTES <= delay_minutes <= MAX_DELAY_MINUTES:
            raise ValidationError(
                f"Delay must be between {MIN_DELAY_MINUTES} and {MAX_DELAY_MINUTES} minutes"
            )
        self._get_doctor(doctor_id)

        log = logger.bind(doctor_id=doctor_id, delay_minutes=delay_minutes)
        appointments = self.remaining_appointments(doctor_id)
        if not appointments:
            # Nothing left to shift; today's status stays untouched.
            log.info("doctor_late_nothing_remaining")
            return {
                "success": False,
                "message": NO_REMAINING_APPOINTMENTS,
                "affected_count": 0,
                "failed_count": 0,
                "notifications": {"in_app": 0, "email": 0},
                "status_id": None,
            }

        affected: List[int] = []
        failed = 0
        counts = {"in_app": 0, "email": 0}

        for appointment in appointments:
            appointment_id = appointment.id
            try:
                estimated_time, day_offset = add_minutes(appointment.appointment_time, delay_minutes)
                appointment.estimated_time = estimated_time
                appointment.delay_minutes = delay_minutes
                appointment.delay_notified = True
                appointment.delay_notified_at = self.clock.now()
                self.db.commit()
                affected.append(appointment_id)
            except Exception as e:
                self.db.rollback()
                failed += 1
                log.error("delay_update_failed", appointment_id=appointment_id, error=str(e))
                continue

            try:
                event = event_from_appointment(
                    DelayEvent,
                    appointment,
                    original_time=appointment.appointment_time,
                    estimated_time=estimated_time,
                    estimated_date=appointment.appointment_date + timedelta(days=day_offset),
                    delay_minutes=delay_minutes,
                    reason=reason,
                )
                results = await self.dispatcher.dispatch(event)
                for channel, delivered in results.items():
                    if delivered:
                        counts[channel] = counts.get(channel, 0) + 1
            except Exception as e:
                log.error("delay_notification_failed", appointment_id=appointment_id, error=str(e))

        record = self._today_record(doctor_id)
        if record is None:
            record = models.DoctorStatus(doctor_id=doctor_id, date=self.clock.today())
            self.db.add(record)
        record.status = models.DoctorStatusType.running_late
        record.delay_minutes = delay_minutes
        record.reason = reason
        record.updated_by = actor_id
        record.affected_appointments = affected
        record.notifications_sent = counts
        record.cleared_at = None
        record.cleared_by = None
        compliance_logger.log_event(
            self.db,
            user_id=actor_id,
            action="DELAY_UPDATE",
            category="DOCTOR_STATUS",
            resource_type="doctor",
            resource_id=doctor_id,
            details=f"Running {delay_minutes} minutes late; {len(affected)} appointments affected",
            new_values={"delay_minutes": delay_minutes, "reason": reason},
        )
        self.db.commit()
        self.db.refresh(record)

        log.info("doctor_marked_late", affected=len(affected), failed=failed, notifications=counts)

        message = f"Delay applied to {len(affected)} appointment(s)"
        if failed:
            message += f", {failed} failed"
        return {
            "success": True,
            "message": message,
            "affected_count": len(affected),
            "failed_count": failed,
            "notifications": counts,
            "status_id": record.id,
        }

    async def clear_delay(
        self,
        doctor_id: int,
        actor_id: Optional[int] = None,
        notify: bool = False,
    ) -> Dict[str, Any]:
        """Reset today's delay. Safe to call repeatedly."""
        record = self._today_record(doctor_id)
        if record is None or record.status != models.DoctorStatusType.running_late:
            return {"success": False, "message": NO_ACTIVE_DELAY, "appointments_reset": 0, "status_id": None}

        record.status = models.DoctorStatusType.on_time
        record.delay_minutes = 0
        record.cleared_at = self.clock.now()
        record.cleared_by = actor_id

        appointments = self.remaining_appointments(doctor_id)
        for appointment in appointments:
            appointment.estimated_time = None
            appointment.delay_minutes = None
        compliance_logger.log_event(
            self.db,
            user_id=actor_id,
            action="DELAY_CLEAR",
            category="DOCTOR_STATUS",
            resource_type="doctor",
            resource_id=doctor_id,
            details=f"Delay cleared; {len(appointments)} appointments reset",
        )
        self.db.commit()
        logger.info("doctor_delay_cleared", doctor_id=doctor_id, appointments_reset=len(appointments))

        if notify:
            for appointment in appointments:
                try:
                    await self.dispatcher.dispatch(event_from_appointment(DelayClearedEvent, appointment))
                except Exception as e:
                    logger.error("delay_cleared_notification_failed", appointment_id=appointment.id, error=str(e))

        return {
            "success": True,
            "message": "Delay cleared",
            "appointments_reset": len(appointments),
            "status_id": record.id,
        }

    def today_status(self, doctor_id: int) -> Dict[str, Any]:
        self._get_doctor(doctor_id)
        record = self._today_record(doctor_id)
        if record is None:
            return {
                "id": None,
                "doctor_id": doctor_id,
                "date": self.clock.today(),
                "status": models.DoctorStatusType.on_time,
                "delay_minutes": 0,
            }
        return {
            "id": record.id,
            "doctor_id": record.doctor_id,
            "date": record.date,
            "status": record.status,
            "delay_minutes": record.delay_minutes or 0,
            "reason": record.reason,
            "affected_appointments": record.affected_appointments or [],
            "notifications_sent": record.notifications_sent or {},
            "cleared_at": record.cleared_at,
        }

    def appointment_delay_status(self, appointment: models.Appointment) -> Dict[str, Any]:
        return {
            "appointment_id": appointment.id,
            "original_time": appointment.appointment_time,
            "estimated_time": appointment.estimated_time or appointment.appointment_time,
            "delay_minutes": appointment.delay_minutes or 0,
            "has_delay": appointment.has_delay,
            "status": appointment.status,
        }
