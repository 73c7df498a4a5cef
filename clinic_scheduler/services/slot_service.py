# clinic_scheduler/services/slot_service.py
# Slot generation and single-slot availability for a doctor's schedule.
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from .. import models
from ..errors import ValidationError
from ..timeutils import WEEKDAY_TOKENS, from_minutes, to_minutes, weekday_token

MIN_APPOINTMENT_DURATION = 15

REASON_OUTSIDE_HOURS = "Outside working hours"
REASON_BREAK = "During break time"
REASON_BOOKED = "Time slot already booked"


@dataclass(frozen=True)
class BreakInterval:
    start: str
    end: str


@dataclass(frozen=True)
class Schedule:
    """Immutable view of a doctor's schedule."""

    working_days: tuple
    start: str
    end: str
    appointment_duration: int
    break_times: tuple = field(default_factory=tuple)

    @classmethod
    def from_profile(cls, profile: models.DoctorProfile) -> "Schedule":
        breaks = tuple(
            BreakInterval(b["start"], b["end"]) for b in (profile.break_times or [])
        )
        return cls(
            working_days=tuple(profile.working_days or ()),
            start=profile.working_hours_start,
            end=profile.working_hours_end,
            appointment_duration=profile.appointment_duration,
            break_times=breaks,
        )

    def works_on(self, day: date) -> bool:
        return weekday_token(day) in self.working_days


@dataclass
class Availability:
    available: bool
    reason: Optional[str] = None


def validate_schedule(schedule: Schedule) -> None:
    """Raise ValidationError unless the schedule is internally consistent."""
    unknown = [d for d in schedule.working_days if d not in WEEKDAY_TOKENS]
    if unknown:
        raise ValidationError(f"Unknown working days: {', '.join(unknown)}")
    if schedule.appointment_duration < MIN_APPOINTMENT_DURATION:
        raise ValidationError(
            f"Appointment duration must be at least {MIN_APPOINTMENT_DURATION} minutes"
        )
    start, end = to_minutes(schedule.start), to_minutes(schedule.end)
    if start >= end:
        raise ValidationError("Working hours start must be before end")

    intervals = sorted(
        (to_minutes(b.start), to_minutes(b.end), b) for b in schedule.break_times
    )
    previous_end = None
    for b_start, b_end, b in intervals:
        if b_start >= b_end:
            raise ValidationError(f"Break {b.start} - {b.end} ends before it starts")
        if b_start < start or b_end > end:
            raise ValidationError(
                f"Break {b.start} - {b.end} is outside working hours ({schedule.start} - {schedule.end})"
            )
        if previous_end is not None and b_start < previous_end:
            raise ValidationError(f"Break {b.start} - {b.end} overlaps another break")
        previous_end = b_end


def generate_slots(schedule: Schedule, target_date: date) -> List[str]:
    """Ordered candidate start times for ``target_date``.

    A slot is produced only when its whole duration fits before closing time.
    Bookings are not consulted.
    """
    if not schedule.works_on(target_date):
        return []

    duration = schedule.appointment_duration
    current = to_minutes(schedule.start)
    end = to_minutes(schedule.end)
    slots = []
    while current + duration <= end:
        slots.append(from_minutes(current))
        current += duration
    return slots


def check_schedule_rules(schedule: Schedule, time_str: str) -> Availability:
    """Working-hours and break rules only, in that order."""
    minutes = to_minutes(time_str)
    start, end = to_minutes(schedule.start), to_minutes(schedule.end)
    if minutes < start or minutes + schedule.appointment_duration > end:
        return Availability(False, f"{REASON_OUTSIDE_HOURS} ({schedule.start} - {schedule.end})")

    for b in schedule.break_times:
        if to_minutes(b.start) <= minutes < to_minutes(b.end):
            return Availability(False, f"{REASON_BREAK} ({b.start} - {b.end})")

    return Availability(True)


def booked_times(db: Session, doctor_id: int, target_date: date) -> Set[str]:
    """Times already held by a pending or confirmed appointment."""
    rows = db.query(models.Appointment.appointment_time).filter(
        models.Appointment.doctor_id == doctor_id,
        models.Appointment.appointment_date == target_date,
        models.Appointment.status.in_(models.ACTIVE_STATUSES),
    ).all()
    return {row[0] for row in rows}


def check_availability(
    db: Session,
    doctor_id: int,
    schedule: Schedule,
    target_date: date,
    time_str: str,
    taken: Optional[Iterable[str]] = None,
) -> Availability:
    """Classify one (doctor, date, time). First failing rule wins."""
    result = check_schedule_rules(schedule, time_str)
    if not result.available:
        return result

    if taken is None:
        taken = booked_times(db, doctor_id, target_date)
    if time_str in taken:
        return Availability(False, REASON_BOOKED)

    return Availability(True)


def annotated_slots(db: Session, doctor_id: int, schedule: Schedule, target_date: date) -> List[dict]:
    """Every generated slot with its availability, using one bookings query."""
    slots = generate_slots(schedule, target_date)
    if not slots:
        return []
    taken = booked_times(db, doctor_id, target_date)
    annotated = []
    for slot_time in slots:
        result = check_availability(db, doctor_id, schedule, target_date, slot_time, taken=taken)
        annotated.append({"time": slot_time, "available": result.available, "reason": result.reason})
    return annotated
