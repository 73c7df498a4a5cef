# tests/test_doctor_status_service.py
from datetime import date, datetime, timezone

import pytest

from clinic_scheduler import models
from clinic_scheduler.errors import NotFoundError, ValidationError
from clinic_scheduler.services import doctor_status_service
from clinic_scheduler.services.doctor_status_service import DelayCascadeEngine
from clinic_scheduler.services.notification_service import (
    DELAY_CLEARED, DELAY_NOTICE, NotificationDispatcher,
)

from conftest import RecordingChannel

Status = models.AppointmentStatus
MONDAY = date(2025, 6, 2)
AFTERNOON = datetime(2025, 6, 2, 14, 0, tzinfo=timezone.utc)


def add_appointment(db, doctor, patient=None, time_str="15:00", on_date=MONDAY, status=Status.confirmed):
    appointment = models.Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id if patient else None,
        patient_email=patient.email if patient else None,
        appointment_date=on_date,
        appointment_time=time_str,
        duration=30,
        status=status,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


@pytest.fixture
def afternoon(clock):
    clock.instant = AFTERNOON
    return clock


@pytest.mark.asyncio
async def test_running_late_shifts_remaining_appointment(db, delay_engine, afternoon, doctor, patient,
                                                         push_channel, email_channel):
    appointment = add_appointment(db, doctor, patient, "15:00")

    result = await delay_engine.mark_running_late(doctor.id, 20, reason="Emergency surgery", actor_id=doctor.id)

    assert result["success"] is True
    assert result["affected_count"] == 1
    assert result["failed_count"] == 0
    assert result["notifications"] == {"in_app": 1, "email": 1}

    db.refresh(appointment)
    assert appointment.estimated_time == "15:20"
    assert appointment.delay_minutes == 20
    assert appointment.delay_notified is True
    assert appointment.appointment_time == "15:00"

    assert len(push_channel.events) == 1
    event = push_channel.events[0]
    assert event.event_type == DELAY_NOTICE
    assert event.estimated_time == "15:20"
    assert event.message == (
        "Dr. Ada Lovelace is running 20 minutes late. Your new appointment time is 15:20."
    )

    status = db.query(models.DoctorStatus).filter(models.DoctorStatus.doctor_id == doctor.id).one()
    assert status.status == models.DoctorStatusType.running_late
    assert status.delay_minutes == 20
    assert status.reason == "Emergency surgery"
    assert status.affected_appointments == [appointment.id]


@pytest.mark.asyncio
async def test_past_cancelled_and_other_days_are_untouched(db, delay_engine, afternoon, doctor):
    earlier = add_appointment(db, doctor, time_str="13:30")
    cancelled = add_appointment(db, doctor, time_str="16:00", status=Status.cancelled)
    tomorrow = add_appointment(db, doctor, time_str="15:00", on_date=date(2025, 6, 3))
    pending = add_appointment(db, doctor, time_str="14:00", status=Status.pending)

    result = await delay_engine.mark_running_late(doctor.id, 15)

    assert result["affected_count"] == 1
    for untouched in (earlier, cancelled, tomorrow):
        db.refresh(untouched)
        assert untouched.estimated_time is None
        assert untouched.delay_minutes is None
    db.refresh(pending)
    assert pending.estimated_time == "14:15"


@pytest.mark.asyncio
async def test_no_remaining_appointments_writes_nothing(db, delay_engine, afternoon, doctor, push_channel):
    # a morning slot that has already passed does not count
    earlier = add_appointment(db, doctor, time_str="10:00")

    result = await delay_engine.mark_running_late(doctor.id, 10, reason="Traffic", actor_id=doctor.id)

    assert result["success"] is False
    assert result["affected_count"] == 0
    assert result["status_id"] is None
    assert result["message"] == "No remaining appointments found for today"
    assert push_channel.events == []
    assert db.query(models.DoctorStatus).count() == 0
    assert db.query(models.AuditLog).filter(models.AuditLog.category == "DOCTOR_STATUS").count() == 0
    assert delay_engine.today_status(doctor.id)["status"] == models.DoctorStatusType.on_time
    db.refresh(earlier)
    assert earlier.estimated_time is None


@pytest.mark.asyncio
@pytest.mark.parametrize("delay", [0, -5, 241])
async def test_delay_out_of_range_is_rejected(db, delay_engine, afternoon, doctor, delay):
    appointment = add_appointment(db, doctor)
    with pytest.raises(ValidationError):
        await delay_engine.mark_running_late(doctor.id, delay)
    db.refresh(appointment)
    assert appointment.estimated_time is None
    assert db.query(models.DoctorStatus).count() == 0


@pytest.mark.asyncio
async def test_unknown_doctor(delay_engine, afternoon, patient):
    with pytest.raises(NotFoundError):
        await delay_engine.mark_running_late(patient.id, 10)


@pytest.mark.asyncio
async def test_delay_rolls_past_midnight(db, delay_engine, clock, doctor, push_channel):
    clock.instant = datetime(2025, 6, 2, 23, 0, tzinfo=timezone.utc)
    appointment = add_appointment(db, doctor, time_str="23:30")

    await delay_engine.mark_running_late(doctor.id, 45)

    db.refresh(appointment)
    assert appointment.estimated_time == "00:15"
    event = push_channel.events[0]
    assert event.estimated_date == date(2025, 6, 3)
    assert event.message.endswith("Your new appointment time is 00:15 on 2025-06-03.")


@pytest.mark.asyncio
async def test_marking_late_again_overwrites_the_delay(db, delay_engine, afternoon, doctor):
    appointment = add_appointment(db, doctor)
    await delay_engine.mark_running_late(doctor.id, 20)
    await delay_engine.mark_running_late(doctor.id, 45)

    db.refresh(appointment)
    assert appointment.estimated_time == "15:45"
    assert appointment.delay_minutes == 45
    assert db.query(models.DoctorStatus).count() == 1


@pytest.mark.asyncio
async def test_one_failing_appointment_does_not_stop_the_rest(db, delay_engine, afternoon, doctor, monkeypatch):
    first = add_appointment(db, doctor, time_str="15:00")
    second = add_appointment(db, doctor, time_str="15:30")
    real_add_minutes = doctor_status_service.add_minutes

    def flaky_add_minutes(value, delta):
        if value == "15:00":
            raise RuntimeError("boom")
        return real_add_minutes(value, delta)

    monkeypatch.setattr(doctor_status_service, "add_minutes", flaky_add_minutes)
    result = await delay_engine.mark_running_late(doctor.id, 20)

    assert result["success"] is True
    assert result["affected_count"] == 1
    assert result["failed_count"] == 1
    db.refresh(first)
    db.refresh(second)
    assert first.estimated_time is None
    assert second.estimated_time == "15:50"


@pytest.mark.asyncio
async def test_failed_notifications_are_not_counted(db, afternoon, doctor, patient):
    broken = RecordingChannel("email", error=RuntimeError("smtp down"))
    quiet = RecordingChannel("in_app", result=False)
    engine = DelayCascadeEngine(db, NotificationDispatcher([quiet, broken]), afternoon)
    appointment = add_appointment(db, doctor, patient)

    result = await engine.mark_running_late(doctor.id, 20)

    assert result["affected_count"] == 1
    assert result["notifications"] == {"in_app": 0, "email": 0}
    db.refresh(appointment)
    assert appointment.estimated_time == "15:20"


@pytest.mark.asyncio
async def test_clear_delay_resets_appointments(db, delay_engine, afternoon, doctor, patient, push_channel):
    appointment = add_appointment(db, doctor, patient)
    await delay_engine.mark_running_late(doctor.id, 20)

    result = await delay_engine.clear_delay(doctor.id, actor_id=doctor.id)

    assert result["success"] is True
    assert result["appointments_reset"] == 1
    db.refresh(appointment)
    assert appointment.estimated_time is None
    assert appointment.delay_minutes is None
    status = delay_engine.today_status(doctor.id)
    assert status["status"] == models.DoctorStatusType.on_time
    assert status["delay_minutes"] == 0
    assert status["cleared_at"] is not None
    # Clearing does not notify unless asked to
    assert [e.event_type for e in push_channel.events] == [DELAY_NOTICE]


@pytest.mark.asyncio
async def test_clear_delay_can_notify(db, delay_engine, afternoon, doctor, patient, push_channel):
    add_appointment(db, doctor, patient)
    await delay_engine.mark_running_late(doctor.id, 20)
    await delay_engine.clear_delay(doctor.id, notify=True)
    assert [e.event_type for e in push_channel.events] == [DELAY_NOTICE, DELAY_CLEARED]


@pytest.mark.asyncio
async def test_clear_delay_is_idempotent(db, delay_engine, afternoon, doctor):
    add_appointment(db, doctor)
    await delay_engine.mark_running_late(doctor.id, 20)

    first = await delay_engine.clear_delay(doctor.id)
    second = await delay_engine.clear_delay(doctor.id)

    assert first["success"] is True
    assert second["success"] is False
    assert second["message"] == "No active delay found for this doctor today"
    assert delay_engine.today_status(doctor.id)["status"] == models.DoctorStatusType.on_time


@pytest.mark.asyncio
async def test_clear_without_delay(delay_engine, afternoon, doctor):
    result = await delay_engine.clear_delay(doctor.id)
    assert result["success"] is False
    assert result["appointments_reset"] == 0


def test_today_status_defaults_to_on_time(delay_engine, afternoon, doctor):
    status = delay_engine.today_status(doctor.id)
    assert status["id"] is None
    assert status["status"] == models.DoctorStatusType.on_time
    assert status["date"] == MONDAY


@pytest.mark.asyncio
async def test_appointment_delay_status(db, delay_engine, afternoon, doctor):
    appointment = add_appointment(db, doctor)
    before = delay_engine.appointment_delay_status(appointment)
    assert before["estimated_time"] == "15:00"
    assert before["has_delay"] is False

    await delay_engine.mark_running_late(doctor.id, 30)
    db.refresh(appointment)
    after = delay_engine.appointment_delay_status(appointment)
    assert after["estimated_time"] == "15:30"
    assert after["delay_minutes"] == 30
    assert after["has_delay"] is True
