# tests/test_api.py
from datetime import date, datetime, timezone

from clinic_scheduler import models

from conftest import auth, make_user

VOICE_HEADERS = {"X-API-Key": "voice-test-key"}


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_register_login_and_me(client):
    response = client.post("/api/v1/auth/register", json={
        "email": "New.Patient@example.com",
        "password": "correct-horse",
        "first_name": "New",
        "last_name": "Patient",
    })
    assert response.status_code == 201
    assert response.json()["role"] == "patient"

    duplicate = client.post("/api/v1/auth/register", json={
        "email": "new.patient@example.com",
        "password": "another-pass",
        "first_name": "Dup",
        "last_name": "Licate",
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["success"] is False

    bad_login = client.post("/api/v1/auth/token", data={"username": "new.patient@example.com", "password": "wrong-pass"})
    assert bad_login.status_code == 401

    login = client.post("/api/v1/auth/token", data={"username": "new.patient@example.com", "password": "correct-horse"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/api/v1/auth/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "new.patient@example.com"


def test_admin_cannot_self_register(client):
    response = client.post("/api/v1/auth/register", json={
        "email": "root@example.com", "password": "password123",
        "first_name": "Root", "last_name": "User", "role": "admin",
    })
    assert response.status_code == 403


def test_protected_routes_require_token(client):
    assert client.get("/api/v1/appointments/me").status_code == 401


def test_doctor_profile_roundtrip(client, db):
    doctor = make_user(db, role=models.UserRole.doctor)
    body = {
        "specialization": "Neurology",
        "working_days": ["Fri", "Mon", "Mon"],
        "working_hours": {"start": "08:00", "end": "12:00"},
        "break_times": [{"start": "10:00", "end": "10:20"}],
        "appointment_duration": 20,
    }
    response = client.put("/api/v1/doctors/me/profile", json=body, headers=auth(doctor))
    assert response.status_code == 200
    assert response.json()["working_days"] == ["Mon", "Fri"]

    profile = client.get(f"/api/v1/doctors/{doctor.id}/profile").json()
    assert profile["appointment_duration"] == 20
    assert profile["break_times"] == [{"start": "10:00", "end": "10:20"}]

    doctors = client.get("/api/v1/doctors", params={"specialization": "neuro"}).json()
    assert [d["id"] for d in doctors] == [doctor.id]
    assert doctors[0]["profile_completed"] is True


def test_doctor_profile_rejects_break_outside_hours(client, db):
    doctor = make_user(db, role=models.UserRole.doctor)
    body = {
        "working_hours": {"start": "09:00", "end": "12:00"},
        "break_times": [{"start": "12:00", "end": "13:00"}],
    }
    response = client.put("/api/v1/doctors/me/profile", json=body, headers=auth(doctor))
    assert response.status_code == 400
    assert "outside working hours" in response.json()["message"]


def test_only_doctors_edit_profiles(client, patient):
    response = client.put("/api/v1/doctors/me/profile", json={}, headers=auth(patient))
    assert response.status_code == 403


def test_slots_endpoint(client, doctor):
    response = client.get(f"/api/v1/slots/{doctor.id}/2025-06-02")
    assert response.status_code == 200
    data = response.json()
    assert data["available_count"] == 6
    assert data["slots"][0] == {"time": "09:00", "available": True, "reason": None}

    assert client.get(f"/api/v1/slots/{doctor.id}/2025-06-07").json()["slots"] == []

    bad = client.get(f"/api/v1/slots/{doctor.id}/June-2")
    assert bad.status_code == 400
    assert bad.json()["success"] is False

    single = client.get(f"/api/v1/slots/{doctor.id}/2025-06-02/08:00").json()
    assert single == {"available": False, "reason": "Outside working hours (09:00 - 12:00)"}


def test_book_and_conflict(client, doctor, patient, push_channel):
    body = {"doctor_id": doctor.id, "appointment_date": "2025-06-02", "appointment_time": "09:00"}

    created = client.post("/api/v1/appointments", json=body, headers=auth(patient))
    assert created.status_code == 201
    data = created.json()
    assert data["status"] == "pending"
    assert data["patient_id"] == patient.id
    assert data["confirmation_number"].startswith("NOVA-20250602-")
    assert len(push_channel.events) == 1

    other = client.post("/api/v1/appointments", json=body, headers=auth(patient))
    assert other.status_code == 409
    assert other.json() == {
        "success": False,
        "message": "Time slot already booked",
        "detail": "Time slot already booked",
    }

    slots = client.get(f"/api/v1/slots/{doctor.id}/2025-06-02").json()["slots"]
    assert slots[0]["reason"] == "Time slot already booked"


def test_patient_books_for_themselves(client, db, doctor, patient):
    someone_else = make_user(db)
    body = {
        "doctor_id": doctor.id, "appointment_date": "2025-06-02",
        "appointment_time": "09:30", "patient_id": someone_else.id,
    }
    data = client.post("/api/v1/appointments", json=body, headers=auth(patient)).json()
    assert data["patient_id"] == patient.id


def test_status_changes_and_permissions(client, db, doctor, patient):
    body = {"doctor_id": doctor.id, "appointment_date": "2025-06-02", "appointment_time": "10:00"}
    appointment_id = client.post("/api/v1/appointments", json=body, headers=auth(patient)).json()["id"]

    forbidden = client.patch(f"/api/v1/appointments/{appointment_id}/status",
                             json={"status": "confirmed"}, headers=auth(patient))
    assert forbidden.status_code == 403

    confirmed = client.patch(f"/api/v1/appointments/{appointment_id}/status",
                             json={"status": "confirmed"}, headers=auth(doctor))
    assert confirmed.json()["status"] == "confirmed"

    completed = client.patch(f"/api/v1/appointments/{appointment_id}/status",
                             json={"status": "completed"}, headers=auth(doctor))
    assert completed.json()["status"] == "completed"

    cancel = client.patch(f"/api/v1/appointments/{appointment_id}/cancel",
                          json={"reason": "changed my mind"}, headers=auth(patient))
    assert cancel.status_code == 409
    assert cancel.json()["message"] == "Cannot cancel completed or already cancelled appointment"

    outsider = make_user(db)
    assert client.get(f"/api/v1/appointments/{appointment_id}", headers=auth(outsider)).status_code == 403
    assert client.get(f"/api/v1/appointments/{appointment_id}", headers=auth(patient)).status_code == 200


def test_staff_cannot_view_or_cancel_other_bookings(client, db, doctor, patient):
    body = {"doctor_id": doctor.id, "appointment_date": "2025-06-02", "appointment_time": "10:30"}
    appointment_id = client.post("/api/v1/appointments", json=body, headers=auth(patient)).json()["id"]
    staff = make_user(db, role=models.UserRole.staff)

    assert client.get(f"/api/v1/appointments/{appointment_id}", headers=auth(staff)).status_code == 403
    cancel = client.patch(f"/api/v1/appointments/{appointment_id}/cancel", json={}, headers=auth(staff))
    assert cancel.status_code == 403
    assert cancel.json()["message"] == "You do not have access to this appointment"
    assert client.get(f"/api/v1/appointments/patient/{patient.id}", headers=auth(staff)).status_code == 403
    assert client.get(f"/api/v1/appointments/doctor/{doctor.id}", headers=auth(staff)).status_code == 403
    assert client.get(f"/api/v1/doctor-status/appointment/{appointment_id}", headers=auth(staff)).status_code == 403

    db.expire_all()
    assert db.get(models.Appointment, appointment_id).status == models.AppointmentStatus.pending

    admin = make_user(db, role=models.UserRole.admin)
    assert client.get(f"/api/v1/appointments/{appointment_id}", headers=auth(admin)).status_code == 200
    assert client.get(f"/api/v1/appointments/patient/{patient.id}", headers=auth(admin)).status_code == 200
    cancelled = client.patch(f"/api/v1/appointments/{appointment_id}/cancel", json={}, headers=auth(doctor))
    assert cancelled.json()["status"] == "cancelled"


def test_admin_lists_all_appointments(client, db, doctor, patient):
    for time_str in ("09:00", "11:00"):
        client.post("/api/v1/appointments", headers=auth(patient), json={
            "doctor_id": doctor.id, "appointment_date": "2025-06-02", "appointment_time": time_str,
        })
    client.post("/api/v1/appointments", headers=auth(patient), json={
        "doctor_id": doctor.id, "appointment_date": "2025-06-03", "appointment_time": "09:00",
    })

    assert client.get("/api/v1/appointments/admin/all", headers=auth(patient)).status_code == 403
    staff = make_user(db, role=models.UserRole.staff)
    assert client.get("/api/v1/appointments/admin/all", headers=auth(staff)).status_code == 403

    admin = make_user(db, role=models.UserRole.admin)
    everything = client.get("/api/v1/appointments/admin/all", headers=auth(admin)).json()
    assert [(a["appointment_date"], a["appointment_time"]) for a in everything] == [
        ("2025-06-03", "09:00"), ("2025-06-02", "09:00"), ("2025-06-02", "11:00"),
    ]
    monday = client.get("/api/v1/appointments/admin/all", params={"on_date": "2025-06-02", "limit": 1},
                        headers=auth(admin)).json()
    assert [a["appointment_time"] for a in monday] == ["09:00"]


def test_appointment_lists(client, doctor, patient):
    for time_str in ("11:00", "09:00"):
        client.post("/api/v1/appointments", headers=auth(patient), json={
            "doctor_id": doctor.id, "appointment_date": "2025-06-02", "appointment_time": time_str,
        })

    mine = client.get("/api/v1/appointments/me", headers=auth(patient)).json()
    assert [a["appointment_time"] for a in mine] == ["09:00", "11:00"]

    schedule = client.get(f"/api/v1/appointments/doctor/{doctor.id}",
                          params={"on_date": "2025-06-02", "status": "pending"}, headers=auth(doctor))
    assert len(schedule.json()) == 2

    assert client.get(f"/api/v1/appointments/doctor/{doctor.id}", headers=auth(patient)).status_code == 403


def test_running_late_flow(client, db, clock, doctor, patient):
    clock.instant = datetime(2025, 6, 2, 14, 0, tzinfo=timezone.utc)
    appointment = models.Appointment(
        doctor_id=doctor.id, patient_id=patient.id, appointment_date=date(2025, 6, 2),
        appointment_time="15:00", duration=30, status=models.AppointmentStatus.confirmed,
    )
    db.add(appointment)
    db.commit()

    late = client.post("/api/v1/doctor-status/running-late",
                       json={"delay_minutes": 20, "reason": "Surgery"}, headers=auth(doctor))
    assert late.status_code == 200
    assert late.json()["affected_count"] == 1

    today = client.get(f"/api/v1/doctor-status/{doctor.id}/today").json()
    assert today["status"] == "running-late"
    assert today["delay_minutes"] == 20

    delay = client.get(f"/api/v1/doctor-status/appointment/{appointment.id}", headers=auth(patient)).json()
    assert delay["estimated_time"] == "15:20"
    assert delay["has_delay"] is True

    cleared = client.post("/api/v1/doctor-status/clear-delay", json={}, headers=auth(doctor))
    assert cleared.json()["success"] is True
    again = client.post("/api/v1/doctor-status/clear-delay", json={}, headers=auth(doctor))
    assert again.json()["success"] is False


def test_running_late_permissions(client, db, doctor):
    other = make_user(db, role=models.UserRole.doctor)
    admin = make_user(db, role=models.UserRole.admin)

    response = client.post("/api/v1/doctor-status/running-late",
                           json={"doctor_id": other.id, "delay_minutes": 10}, headers=auth(doctor))
    assert response.status_code == 403
    assert response.json()["message"] == "You can only update your own status"

    missing = client.post("/api/v1/doctor-status/running-late", json={"delay_minutes": 10}, headers=auth(admin))
    assert missing.status_code == 400

    by_admin = client.post("/api/v1/doctor-status/running-late",
                           json={"doctor_id": doctor.id, "delay_minutes": 10}, headers=auth(admin))
    assert by_admin.status_code == 200
    # clock is Monday 08:00 and the doctor has no bookings
    assert by_admin.json()["success"] is False
    assert by_admin.json()["message"] == "No remaining appointments found for today"
    assert client.get(f"/api/v1/doctor-status/{doctor.id}/today").json()["status"] == "on-time"

    too_long = client.post("/api/v1/doctor-status/running-late", json={"delay_minutes": 300}, headers=auth(doctor))
    assert too_long.status_code == 400


def test_voice_agent_requires_api_key(client):
    assert client.post("/api/v1/voice/available-doctors", json={}).status_code == 401
    wrong = client.post("/api/v1/voice/available-doctors", json={}, headers={"X-API-Key": "nope"})
    assert wrong.status_code == 401


def test_voice_agent_flow(client, doctor):
    doctors = client.post("/api/v1/voice/available-doctors", json={}, headers=VOICE_HEADERS).json()
    assert doctors["count"] == 1

    availability = client.post("/api/v1/voice/check-availability",
                               json={"date": "tomorrow", "preferred_time": "10am"}, headers=VOICE_HEADERS).json()
    assert availability["success"] is True
    assert availability["doctors"][0]["available_slots"][0] == "10:00"

    booking = client.post("/api/v1/voice/book-appointment", headers=VOICE_HEADERS, json={
        "patient_name": "jane doe",
        "phone_number": "5551234567",
        "doctor_id": doctor.id,
        "date": "tomorrow",
        "time": "10am",
        "reason": "Follow-up",
        "call_id": "call-7",
    }).json()
    assert booking["success"] is True
    assert booking["confirmation_number"].startswith("NOVA-20250603-")

    conflict = client.post("/api/v1/voice/book-appointment", headers=VOICE_HEADERS, json={
        "patient_name": "john roe",
        "phone_number": "5557654321",
        "doctor_id": doctor.id,
        "date": "tomorrow",
        "time": "10am",
        "reason": "Follow-up",
    }).json()
    assert conflict["success"] is False
    assert len(conflict["alternative_slots"]) == 3


def test_reminder_endpoints_require_staff(client, db, patient):
    assert client.get("/api/v1/reminders/stats", headers=auth(patient)).status_code == 403

    staff = make_user(db, role=models.UserRole.staff)
    stats = client.get("/api/v1/reminders/stats", headers=auth(staff))
    assert stats.status_code == 200
    assert set(stats.json()) == {"upcoming_24h", "reminders_sent", "pending"}

    status = client.get("/api/v1/reminders/cron-status", headers=auth(staff)).json()
    assert status["running"] is False


def test_consistency_check_is_admin_only(client, db, patient):
    assert client.get("/api/v1/health/consistency-check", headers=auth(patient)).status_code == 403

    admin = make_user(db, role=models.UserRole.admin)
    report = client.get("/api/v1/health/consistency-check", headers=auth(admin)).json()
    assert report["duplicate_active_bookings"] == []
    assert report["stale_delay_fields"] == []
