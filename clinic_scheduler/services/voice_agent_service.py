# clinic_scheduler/services/voice_agent_service.py
# Voice-agent functions and the free-text normalization they rely on.
import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, ValidationError
from ..timeutils import WEEKDAY_TOKENS, Clock, from_minutes, to_minutes
from .booking_service import BookingEngine

logger = logging.getLogger(__name__)

MAX_SLOTS_PER_DOCTOR = 5
MAX_ALTERNATIVES = 3

_WEEKDAY_NAMES = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
}
_WEEKDAY_NAMES.update({token.lower(): i for i, token in enumerate(WEEKDAY_TOKENS)})

_TIME_RE = re.compile(r"^(\d{1,2})(?:[:.](\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)?$")


# --- Normalization adapter ---

def parse_relative_date(text: str, today: date) -> str:
    """Turn "today", "tomorrow", "next monday" or an ISO date into YYYY-MM-DD.

    A weekday name means its next occurrence strictly after ``today``.
    """
    value = (text or "").strip().lower()
    if not value:
        raise ValidationError("Date is required")
    if value == "today":
        return today.isoformat()
    if value == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if value == "day after tomorrow":
        return (today + timedelta(days=2)).isoformat()

    name = re.sub(r"^(next|this|on)\s+", "", value)
    if name in _WEEKDAY_NAMES:
        days_ahead = (_WEEKDAY_NAMES[name] - today.weekday()) % 7 or 7
        return (today + timedelta(days=days_ahead)).isoformat()

    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise ValidationError(f"Could not understand the date '{text}'")


def parse_time(text: str) -> str:
    """Turn "2pm", "2:30 PM", "14:00" or "noon" into 24-hour HH:MM."""
    value = (text or "").strip().lower()
    if value in ("noon", "midday"):
        return "12:00"
    if value == "midnight":
        return "00:00"

    match = _TIME_RE.match(value)
    if not match:
        raise ValidationError(f"Could not understand the time '{text}'")
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").replace(".", "")

    if meridiem:
        if not 1 <= hours <= 12:
            raise ValidationError(f"Could not understand the time '{text}'")
        if meridiem == "pm" and hours != 12:
            hours += 12
        elif meridiem == "am" and hours == 12:
            hours = 0
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Could not understand the time '{text}'")
    return from_minutes(hours * 60 + minutes)


def format_phone_number(from_number: Optional[str], extracted: Optional[str] = None) -> str:
    raw = (extracted or from_number or "").strip()
    if not raw:
        return "N/A"
    digits = re.sub(r"\D", "", raw)
    if raw.startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return digits or "N/A"


def extract_patient_name(name: Optional[str]) -> str:
    cleaned = " ".join((name or "").split())
    if not cleaned:
        return "Unknown Patient"
    return " ".join(part.capitalize() for part in cleaned.split(" "))


# --- Voice functions ---

class VoiceAgentService:
    """Functions exposed to the voice agent: availability, booking, doctors."""

    def __init__(self, db: Session, engine: BookingEngine, clock: Clock):
        self.db = db
        self.engine = engine
        self.clock = clock

    def _doctors(self, doctor_id: Optional[int] = None, specialization: Optional[str] = None) -> List[models.User]:
        query = self.db.query(models.User).join(models.DoctorProfile).filter(
            models.User.role == models.UserRole.doctor,
            models.User.is_active.is_(True),
        )
        if doctor_id is not None:
            query = query.filter(models.User.id == doctor_id)
        elif specialization:
            pattern = f"%{specialization.lower()}%"
            query = query.filter(or_(
                func.lower(models.DoctorProfile.specialization).like(pattern),
                func.lower(models.User.specialization).like(pattern),
            ))
        return query.order_by(models.User.id).all()

    def _open_slots(self, doctor_id: int, iso_date: str, preferred_time: Optional[str] = None) -> List[str]:
        slots = [s["time"] for s in self.engine.available_slots(doctor_id, iso_date) if s["available"]]
        if iso_date == self.clock.today().isoformat():
            now = self.clock.current_hhmm()
            slots = [s for s in slots if s > now]
        if preferred_time:
            target = to_minutes(preferred_time)
            slots.sort(key=lambda s: abs(to_minutes(s) - target))
        return slots

    def check_availability(
        self,
        date_text: str,
        doctor_id: Optional[int] = None,
        specialization: Optional[str] = None,
        preferred_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        iso_date = parse_relative_date(date_text, self.clock.today())
        preferred = parse_time(preferred_time) if preferred_time else None

        doctors = []
        for doctor in self._doctors(doctor_id, specialization):
            slots = self._open_slots(doctor.id, iso_date, preferred)[:MAX_SLOTS_PER_DOCTOR]
            if slots:
                doctors.append({
                    "doctor_id": doctor.id,
                    "doctor_name": f"Dr. {doctor.full_name}",
                    "specialization": doctor.doctor_profile.specialization or doctor.specialization,
                    "available_slots": slots,
                })

        if doctors:
            message = f"Found {len(doctors)} doctor(s) with availability on {iso_date}"
        else:
            message = f"No available slots on {iso_date}"
        return {"success": bool(doctors), "date": iso_date, "doctors": doctors, "message": message}

    async def book_appointment(
        self,
        patient_name: str,
        phone_number: str,
        doctor_id: int,
        date_text: str,
        time_text: str,
        reason: str,
        email: Optional[str] = None,
        consultation_type: models.ConsultationType = models.ConsultationType.in_person,
        call_id: Optional[str] = None,
        confirmed: bool = True,
    ) -> Dict[str, Any]:
        try:
            iso_date = parse_relative_date(date_text, self.clock.today())
            time_str = parse_time(time_text)
        except ValidationError as e:
            return {"success": False, "message": e.message}

        patient_info = {
            "name": extract_patient_name(patient_name),
            "phone": format_phone_number(phone_number),
            "email": email,
        }
        try:
            appointment = await self.engine.create(
                doctor_id=doctor_id,
                appointment_date=iso_date,
                appointment_time=time_str,
                consultation_type=consultation_type,
                patient_info=patient_info,
                source=models.BookingSource.voice_agent,
                confirm=confirmed,
                reason_for_visit=reason,
                voice_call_id=call_id,
                voice_agent_data={"call_id": call_id, "raw_date": date_text, "raw_time": time_text},
            )
        except ConflictError as e:
            alternatives = self._open_slots(doctor_id, iso_date, time_str)[:MAX_ALTERNATIVES]
            logger.info(f"Voice booking conflict for doctor {doctor_id} at {iso_date} {time_str}; offering {alternatives}")
            return {"success": False, "message": e.message, "alternative_slots": sorted(alternatives)}
        except ValidationError as e:
            return {"success": False, "message": e.message}

        doctor_name = f"Dr. {appointment.doctor.full_name}"
        return {
            "success": True,
            "message": (
                f"Appointment {appointment.status.value} with {doctor_name} on {iso_date} at {time_str}. "
                f"Your confirmation number is {appointment.confirmation_number}."
            ),
            "appointment_id": appointment.id,
            "confirmation_number": appointment.confirmation_number,
        }

    def available_doctors(self, specialization: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            {
                "doctor_id": doctor.id,
                "doctor_name": f"Dr. {doctor.full_name}",
                "specialization": doctor.doctor_profile.specialization or doctor.specialization,
                "working_days": doctor.doctor_profile.working_days,
                "working_hours": {
                    "start": doctor.doctor_profile.working_hours_start,
                    "end": doctor.doctor_profile.working_hours_end,
                },
                "consultation_type": doctor.doctor_profile.consultation_type.value,
            }
            for doctor in self._doctors(specialization=specialization)
        ]
