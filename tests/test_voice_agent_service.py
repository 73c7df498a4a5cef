# tests/test_voice_agent_service.py
from datetime import date

import pytest

from clinic_scheduler import models
from clinic_scheduler.errors import ValidationError
from clinic_scheduler.services.voice_agent_service import (
    VoiceAgentService, extract_patient_name, format_phone_number, parse_relative_date, parse_time,
)

from conftest import make_doctor

MONDAY = date(2025, 6, 2)


@pytest.fixture
def voice(db, booking_engine, clock):
    return VoiceAgentService(db, booking_engine, clock)


@pytest.mark.parametrize("text, expected", [
    ("today", "2025-06-02"),
    ("Tomorrow", "2025-06-03"),
    ("day after tomorrow", "2025-06-04"),
    ("wednesday", "2025-06-04"),
    ("next Friday", "2025-06-06"),
    ("on tue", "2025-06-03"),
    # Same weekday as today means next week
    ("monday", "2025-06-09"),
    ("2025-07-01", "2025-07-01"),
])
def test_parse_relative_date(text, expected):
    assert parse_relative_date(text, MONDAY) == expected


@pytest.mark.parametrize("text", ["", "someday", "32/13/2025"])
def test_parse_relative_date_rejects_garbage(text):
    with pytest.raises(ValidationError):
        parse_relative_date(text, MONDAY)


@pytest.mark.parametrize("text, expected", [
    ("2pm", "14:00"),
    ("2:30 PM", "14:30"),
    ("10am", "10:00"),
    ("12pm", "12:00"),
    ("12am", "00:00"),
    ("9.15 a.m.", "09:15"),
    ("14:00", "14:00"),
    ("noon", "12:00"),
])
def test_parse_time(text, expected):
    assert parse_time(text) == expected


@pytest.mark.parametrize("text", ["", "lunchtime", "25:00", "13pm", "10:75"])
def test_parse_time_rejects_garbage(text):
    with pytest.raises(ValidationError):
        parse_time(text)


def test_format_phone_number():
    assert format_phone_number("(555) 123-4567") == "+15551234567"
    assert format_phone_number("+44 20 7946 0958") == "+442079460958"
    assert format_phone_number("+15550000000", extracted="555-987-6543") == "+15559876543"
    assert format_phone_number(None) == "N/A"


def test_extract_patient_name():
    assert extract_patient_name("  john   SMITH ") == "John Smith"
    assert extract_patient_name("") == "Unknown Patient"
    assert extract_patient_name(None) == "Unknown Patient"


def test_check_availability_lists_open_slots(db, voice, doctor):
    result = voice.check_availability("tomorrow")
    assert result["success"] is True
    assert result["date"] == "2025-06-03"
    assert result["doctors"] == [{
        "doctor_id": doctor.id,
        "doctor_name": "Dr. Ada Lovelace",
        "specialization": "Cardiology",
        "available_slots": ["09:00", "09:30", "10:00", "10:30", "11:00"],
    }]


def test_check_availability_prefers_closest_times(voice, doctor):
    result = voice.check_availability("tomorrow", doctor_id=doctor.id, preferred_time="11am")
    assert result["doctors"][0]["available_slots"][:3] == ["11:00", "10:30", "11:30"]


def test_check_availability_filters_by_specialization(db, voice, doctor):
    make_doctor(db, specialization="Dermatology", first_name="Skin", last_name="Doc")
    result = voice.check_availability("tomorrow", specialization="derma")
    assert [d["doctor_name"] for d in result["doctors"]] == ["Dr. Skin Doc"]


def test_check_availability_drops_passed_slots_today(voice, clock, doctor):
    clock.advance(hours=2, minutes=15)  # 10:15
    result = voice.check_availability("today", doctor_id=doctor.id)
    assert result["doctors"][0]["available_slots"] == ["10:30", "11:00", "11:30"]


def test_check_availability_on_day_off(voice, doctor):
    result = voice.check_availability("saturday")
    assert result["success"] is False
    assert result["doctors"] == []
    assert result["message"] == "No available slots on 2025-06-07"


@pytest.mark.asyncio
async def test_book_appointment_confirms_immediately(db, voice, doctor):
    result = await voice.book_appointment(
        patient_name="john smith",
        phone_number="555-123-4567",
        doctor_id=doctor.id,
        date_text="tomorrow",
        time_text="10am",
        reason="Checkup",
        call_id="call-42",
    )
    assert result["success"] is True
    assert result["confirmation_number"] == f"NOVA-20250603-{result['appointment_id']:04d}"

    appointment = db.get(models.Appointment, result["appointment_id"])
    assert appointment.status == models.AppointmentStatus.confirmed
    assert appointment.booking_source == models.BookingSource.voice_agent
    assert appointment.patient_name == "John Smith"
    assert appointment.patient_phone == "+15551234567"
    assert appointment.voice_call_id == "call-42"
    assert appointment.voice_agent_data["raw_time"] == "10am"


@pytest.mark.asyncio
async def test_book_appointment_offers_alternatives_on_conflict(voice, doctor):
    await voice.book_appointment("First Caller", "5551112222", doctor.id, "tomorrow", "10am", "Checkup")
    result = await voice.book_appointment("Second Caller", "5553334444", doctor.id, "tomorrow", "10am", "Checkup")

    assert result["success"] is False
    assert result["message"] == "Time slot already booked"
    assert result["alternative_slots"] == ["09:00", "09:30", "10:30"]


@pytest.mark.asyncio
async def test_book_appointment_rejects_unparseable_time(db, voice, doctor):
    result = await voice.book_appointment("Caller", "5551112222", doctor.id, "tomorrow", "after lunch", "Checkup")
    assert result["success"] is False
    assert "after lunch" in result["message"]
    assert db.query(models.Appointment).count() == 0


@pytest.mark.asyncio
async def test_book_appointment_outside_hours(voice, doctor):
    result = await voice.book_appointment("Caller", "5551112222", doctor.id, "tomorrow", "5pm", "Checkup")
    assert result["success"] is False
    assert result["message"].startswith("Outside working hours")


def test_available_doctors(db, voice, doctor):
    make_doctor(db, with_profile=False, first_name="No", last_name="Profile")
    doctors = voice.available_doctors()
    assert len(doctors) == 1
    assert doctors[0]["doctor_id"] == doctor.id
    assert doctors[0]["working_hours"] == {"start": "09:00", "end": "12:00"}
    assert doctors[0]["consultation_type"] == "both"
