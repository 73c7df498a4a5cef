# tests/conftest.py
import os

# Settings are read at import time; configure before importing the package.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-1234567890"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["REMINDERS_ENABLED"] = "false"
os.environ["VOICE_AGENT_API_KEYS"] = "voice-test-key,voice-other-key"
os.environ["CLINIC_TIMEZONE"] = "UTC"
os.environ.pop("SENDGRID_API_KEY", None)

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from clinic_scheduler import models, security
from clinic_scheduler.database import SessionLocal, create_tables, drop_tables
from clinic_scheduler.main import app
from clinic_scheduler.services.booking_service import BookingEngine
from clinic_scheduler.services.doctor_status_service import DelayCascadeEngine
from clinic_scheduler.services.notification_service import NotificationDispatcher
from clinic_scheduler.timeutils import FixedClock

# Monday 2025-06-02, 08:00 clinic time
MONDAY = datetime(2025, 6, 2, 8, 0)


class RecordingChannel:
    """Channel double that remembers every event it was handed."""

    def __init__(self, name, result=True, error=None):
        self.name = name
        self.result = result
        self.error = error
        self.events = []

    async def send(self, event):
        self.events.append(event)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def db():
    create_tables()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_tables()


@pytest.fixture
def clock():
    return FixedClock(MONDAY)


@pytest.fixture
def push_channel():
    return RecordingChannel("in_app")


@pytest.fixture
def email_channel():
    return RecordingChannel("email")


@pytest.fixture
def dispatcher(push_channel, email_channel):
    return NotificationDispatcher([push_channel, email_channel])


@pytest.fixture
def booking_engine(db, dispatcher, clock):
    return BookingEngine(db, dispatcher, clock, confirmation_prefix="NOVA")


@pytest.fixture
def delay_engine(db, dispatcher, clock):
    return DelayCascadeEngine(db, dispatcher, clock)


def make_user(db, role=models.UserRole.patient, email=None, first_name="Pat", last_name="Smith",
              password_hash="not-a-real-hash", is_active=True):
    user = models.User(
        email=email or f"{role.value}{db.query(models.User).count() + 1}@example.com",
        password_hash=password_hash,
        role=role,
        first_name=first_name,
        last_name=last_name,
        phone="5551234567",
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_doctor(db, working_days=("Mon", "Tue", "Wed", "Thu", "Fri"), start="09:00", end="12:00",
                duration=30, break_times=(), specialization="Cardiology", first_name="Ada",
                last_name="Lovelace", with_profile=True, **kwargs):
    doctor = make_user(db, role=models.UserRole.doctor, first_name=first_name, last_name=last_name, **kwargs)
    doctor.specialization = specialization
    if with_profile:
        db.add(models.DoctorProfile(
            user_id=doctor.id,
            specialization=specialization,
            working_days=list(working_days),
            working_hours_start=start,
            working_hours_end=end,
            break_times=[{"start": s, "end": e} for s, e in break_times],
            appointment_duration=duration,
        ))
    db.commit()
    db.refresh(doctor)
    return doctor


@pytest.fixture
def doctor(db):
    return make_doctor(db)


@pytest.fixture
def patient(db):
    return make_user(db, email="patient@example.com", first_name="Grace", last_name="Hopper")


@pytest.fixture
def client(db, clock, dispatcher):
    saved = (app.state.clock, app.state.dispatcher)
    app.state.clock = clock
    app.state.dispatcher = dispatcher
    try:
        yield TestClient(app)
    finally:
        app.state.clock, app.state.dispatcher = saved


def auth(user):
    token = security.create_access_token({"sub": user.email, "user_id": user.id})
    return {"Authorization": f"Bearer {token}"}
