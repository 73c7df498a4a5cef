# clinic_scheduler/services/booking_service.py
# Booking engine: the only writer of appointment status.
from datetime import date
from typing import Any, Dict, List, Optional, Union

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..compliance_logger import compliance_logger
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..timeutils import Clock, parse_iso_date, to_minutes, weekday_token
from . import slot_service
from .notification_service import (
    BOOKING_CREATED, BOOKING_STATUS_CHANGED, BookingEvent, NotificationDispatcher,
    event_from_appointment,
)

logger = structlog.get_logger(__name__)

Status = models.AppointmentStatus

ALLOWED_TRANSITIONS = {
    Status.pending: {Status.confirmed, Status.cancelled},
    Status.confirmed: {Status.completed, Status.cancelled, Status.no_show},
}

CANCEL_REJECTED = "Cannot cancel completed or already cancelled appointment"


def make_confirmation_number(prefix: str, appointment_date: date, appointment_id: int) -> str:
    return f"{prefix}-{appointment_date:%Y%m%d}-{appointment_id:04d}".upper()


def ensure_can_view(user: models.User, appointment: models.Appointment) -> None:
    """Only the booking owner, the doctor or an admin may see or cancel a booking."""
    if user.role == models.UserRole.admin:
        return
    if user.id in (appointment.doctor_id, appointment.patient_id):
        return
    raise ForbiddenError("You do not have access to this appointment")


def ensure_can_update_status(user: models.User, appointment: models.Appointment) -> None:
    if user.role in (models.UserRole.admin, models.UserRole.staff):
        return
    if user.id == appointment.doctor_id:
        return
    raise ForbiddenError("Only the doctor, staff or an admin can change appointment status")


class BookingEngine:
    """Creates appointments and drives them through their lifecycle.

    The (doctor, date, time) uniqueness of active bookings is enforced by the
    partial unique index on ``appointments``; the availability check in
    ``create`` only produces friendlier errors for the common case.
    """

    def __init__(
        self,
        db: Session,
        dispatcher: NotificationDispatcher,
        clock: Clock,
        confirmation_prefix: str = "NOVA",
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.clock = clock
        self.confirmation_prefix = confirmation_prefix

    # --- Lookups ---

    def get_doctor(self, doctor_id: int) -> models.User:
        doctor = self.db.query(models.User).filter(models.User.id == doctor_id).first()
        if not doctor or doctor.role != models.UserRole.doctor or not doctor.is_active:
            raise NotFoundError("Doctor not found or inactive")
        return doctor

    def get_schedule(self, doctor_id: int) -> slot_service.Schedule:
        doctor = self.get_doctor(doctor_id)
        if doctor.doctor_profile is None:
            raise NotFoundError("Doctor profile not found")
        return slot_service.Schedule.from_profile(doctor.doctor_profile)

    def get(self, appointment_id: int) -> models.Appointment:
        appointment = self.db.query(models.Appointment).filter(
            models.Appointment.id == appointment_id
        ).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def available_slots(self, doctor_id: int, target_date: Union[date, str]) -> List[Dict[str, Any]]:
        if isinstance(target_date, str):
            target_date = parse_iso_date(target_date)
        schedule = self.get_schedule(doctor_id)
        return slot_service.annotated_slots(self.db, doctor_id, schedule, target_date)

    def check_slot(self, doctor_id: int, target_date: Union[date, str], time_str: str) -> slot_service.Availability:
        if isinstance(target_date, str):
            target_date = parse_iso_date(target_date)
        to_minutes(time_str)
        schedule = self.get_schedule(doctor_id)
        return slot_service.check_availability(self.db, doctor_id, schedule, target_date, time_str)

    def list_by_doctor(
        self,
        doctor_id: int,
        on_date: Optional[date] = None,
        status: Optional[Status] = None,
    ) -> List[models.Appointment]:
        query = self.db.query(models.Appointment).filter(models.Appointment.doctor_id == doctor_id)
        if on_date is not None:
            query = query.filter(models.Appointment.appointment_date == on_date)
        if status is not None:
            query = query.filter(models.Appointment.status == status)
        return query.order_by(
            models.Appointment.appointment_date, models.Appointment.appointment_time
        ).all()

    def list_by_patient(self, patient_id: int, status: Optional[Status] = None) -> List[models.Appointment]:
        query = self.db.query(models.Appointment).filter(models.Appointment.patient_id == patient_id)
        if status is not None:
            query = query.filter(models.Appointment.status == status)
        return query.order_by(
            models.Appointment.appointment_date, models.Appointment.appointment_time
        ).all()

    def list_all(
        self,
        on_date: Optional[date] = None,
        status: Optional[Status] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[models.Appointment]:
        """Every appointment across doctors, newest day first."""
        query = self.db.query(models.Appointment)
        if on_date is not None:
            query = query.filter(models.Appointment.appointment_date == on_date)
        if status is not None:
            query = query.filter(models.Appointment.status == status)
        return query.order_by(
            models.Appointment.appointment_date.desc(), models.Appointment.appointment_time
        ).offset(skip).limit(limit).all()

    # --- Mutations ---

    async def create(
        self,
        doctor_id: int,
        appointment_date: Union[date, str],
        appointment_time: str,
        consultation_type: models.ConsultationType = models.ConsultationType.in_person,
        patient_info: Optional[Dict[str, Any]] = None,
        source: models.BookingSource = models.BookingSource.direct,
        confirm: bool = False,
        reason_for_visit: Optional[str] = None,
        symptoms: Optional[str] = None,
        voice_call_id: Optional[str] = None,
        voice_agent_data: Optional[Dict[str, Any]] = None,
        actor_id: Optional[int] = None,
    ) -> models.Appointment:
        """Book a slot.

        Raises NotFoundError for a missing doctor, profile or patient,
        ValidationError for malformed or out-of-schedule input and
        ConflictError when the slot is already held.
        """
        patient_info = patient_info or {}
        if isinstance(appointment_date, str):
            appointment_date = parse_iso_date(appointment_date)
        to_minutes(appointment_time)

        doctor = self.get_doctor(doctor_id)
        profile = doctor.doctor_profile
        if profile is None:
            raise NotFoundError("Doctor profile not found")
        schedule = slot_service.Schedule.from_profile(profile)

        if appointment_date < self.clock.today():
            raise ValidationError("Cannot book appointment in the past")

        if not schedule.works_on(appointment_date):
            raise ValidationError(f"Doctor is not available on {weekday_token(appointment_date)}")

        availability = slot_service.check_availability(
            self.db, doctor_id, schedule, appointment_date, appointment_time
        )
        if not availability.available:
            if availability.reason == slot_service.REASON_BOOKED:
                raise ConflictError(availability.reason)
            raise ValidationError(availability.reason)

        patient = None
        patient_id = patient_info.get("patient_id")
        if patient_id is not None:
            patient = self.db.query(models.User).filter(models.User.id == patient_id).first()
            if not patient or not patient.is_active:
                raise NotFoundError("Patient not found or inactive")

        voice_confirmed = source == models.BookingSource.voice_agent and confirm
        appointment = models.Appointment(
            doctor_id=doctor_id,
            patient_id=patient_id,
            patient_name=patient_info.get("name") or (patient.full_name if patient else None),
            patient_phone=patient_info.get("phone") or (patient.phone if patient else None),
            patient_email=patient_info.get("email") or (patient.email if patient else None),
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            duration=schedule.appointment_duration,
            status=Status.confirmed if voice_confirmed else Status.pending,
            consultation_type=consultation_type,
            reason_for_visit=reason_for_visit,
            symptoms=symptoms,
            booking_source=source,
            voice_call_id=voice_call_id,
            voice_agent_data=voice_agent_data,
        )

        try:
            self.db.add(appointment)
            self.db.flush()
            appointment.confirmation_number = make_confirmation_number(
                self.confirmation_prefix, appointment_date, appointment.id
            )
            compliance_logger.log_event(
                self.db,
                user_id=actor_id,
                action="APPOINTMENT_BOOK",
                category="APPOINTMENT",
                resource_type="appointment",
                resource_id=appointment.id,
                details=f"Booked {appointment_date} {appointment_time} with doctor {doctor_id}",
                new_values={"status": appointment.status.value, "source": source.value},
            )
            self.db.commit()
        except IntegrityError:
            # Another request took the slot between the check and the insert.
            self.db.rollback()
            logger.info("booking_conflict", doctor_id=doctor_id, date=str(appointment_date), time=appointment_time)
            raise ConflictError(slot_service.REASON_BOOKED)

        self.db.refresh(appointment)
        logger.info(
            "appointment_created",
            appointment_id=appointment.id,
            doctor_id=doctor_id,
            date=str(appointment_date),
            time=appointment_time,
            status=appointment.status.value,
            source=source.value,
        )
        await self._notify(appointment, BOOKING_CREATED)
        return appointment

    async def update_status(
        self,
        appointment_id: int,
        new_status: Status,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> models.Appointment:
        appointment = self.get(appointment_id)
        current = appointment.status

        if current == new_status and not current.is_terminal:
            return appointment

        if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise ConflictError(
                f"Cannot change appointment status from {current.value} to {new_status.value}"
            )

        appointment.status = new_status
        if notes:
            appointment.notes = notes
        compliance_logger.log_event(
            self.db,
            user_id=actor_id,
            action="APPOINTMENT_STATUS",
            category="APPOINTMENT",
            resource_type="appointment",
            resource_id=appointment.id,
            details=f"Status {current.value} -> {new_status.value}",
            new_values={"status": new_status.value},
        )
        self.db.commit()
        self.db.refresh(appointment)

        logger.info(
            "appointment_status_changed",
            appointment_id=appointment.id,
            old_status=current.value,
            new_status=new_status.value,
        )
        await self._notify(appointment, BOOKING_STATUS_CHANGED)
        return appointment

    async def cancel(
        self,
        appointment_id: int,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> models.Appointment:
        appointment = self.get(appointment_id)
        if appointment.status in (Status.completed, Status.cancelled):
            raise ConflictError(CANCEL_REJECTED)
        notes = f"Cancelled: {reason}" if reason else "Cancelled"
        return await self.update_status(appointment_id, Status.cancelled, notes=notes, actor_id=actor_id)

    async def _notify(self, appointment: models.Appointment, event_type: str) -> Dict[str, bool]:
        try:
            event = event_from_appointment(
                BookingEvent,
                appointment,
                event_type=event_type,
                status=appointment.status.value,
                consultation_type=appointment.consultation_type.value,
                confirmation_number=appointment.confirmation_number,
                notes=appointment.notes,
            )
            return await self.dispatcher.dispatch(event)
        except Exception as e:
            logger.error("notification_failed", appointment_id=appointment.id, event_type=event_type, error=str(e))
            return {}
