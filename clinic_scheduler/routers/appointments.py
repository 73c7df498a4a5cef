# clinic_scheduler/routers/appointments.py
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from .. import schemas, models, security
from ..dependencies import get_booking_engine
from ..errors import ForbiddenError
from ..limiter import limiter
from ..services.booking_service import BookingEngine, ensure_can_update_status, ensure_can_view

router = APIRouter(
    prefix="/appointments",
    tags=["Appointments"],
    responses={404: {"description": "Not found"}},
)

STAFF_ROLES = (models.UserRole.admin, models.UserRole.staff)


@router.post("", response_model=schemas.AppointmentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_appointment(
    request: Request,
    appointment: schemas.AppointmentCreate,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    """Book a slot. Patients always book for themselves; staff may book for anyone."""
    patient_id = appointment.patient_id
    if current_user.role == models.UserRole.patient:
        patient_id = current_user.id
    elif current_user.role not in STAFF_ROLES and patient_id is not None and patient_id != current_user.id:
        raise ForbiddenError("Only staff can book on behalf of another patient")

    return await engine.create(
        doctor_id=appointment.doctor_id,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_time,
        consultation_type=appointment.consultation_type,
        patient_info={
            "patient_id": patient_id,
            "name": appointment.patient_name,
            "phone": appointment.patient_phone,
            "email": appointment.patient_email,
        },
        reason_for_visit=appointment.reason_for_visit,
        symptoms=appointment.symptoms,
        actor_id=current_user.id,
    )


@router.get("/me", response_model=List[schemas.AppointmentResponse])
def list_my_appointments(
    status_filter: Optional[models.AppointmentStatus] = Query(None, alias="status"),
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    if current_user.role == models.UserRole.doctor:
        return engine.list_by_doctor(current_user.id, status=status_filter)
    return engine.list_by_patient(current_user.id, status=status_filter)


@router.get("/doctor/{doctor_id}", response_model=List[schemas.AppointmentResponse])
def list_doctor_appointments(
    doctor_id: int,
    on_date: Optional[date] = None,
    status_filter: Optional[models.AppointmentStatus] = Query(None, alias="status"),
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    if current_user.role != models.UserRole.admin and current_user.id != doctor_id:
        raise ForbiddenError("You can only view your own schedule")
    return engine.list_by_doctor(doctor_id, on_date=on_date, status=status_filter)


@router.get("/patient/{patient_id}", response_model=List[schemas.AppointmentResponse])
def list_patient_appointments(
    patient_id: int,
    status_filter: Optional[models.AppointmentStatus] = Query(None, alias="status"),
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    if current_user.role != models.UserRole.admin and current_user.id != patient_id:
        raise ForbiddenError("You can only view your own appointments")
    return engine.list_by_patient(patient_id, status=status_filter)


@router.get("/admin/all", response_model=List[schemas.AppointmentResponse])
def list_all_appointments(
    on_date: Optional[date] = None,
    status_filter: Optional[models.AppointmentStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.require_admin),
):
    return engine.list_all(on_date=on_date, status=status_filter, skip=skip, limit=limit)


@router.get("/{appointment_id}", response_model=schemas.AppointmentResponse)
def get_appointment(
    appointment_id: int,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    appointment = engine.get(appointment_id)
    ensure_can_view(current_user, appointment)
    return appointment


@router.patch("/{appointment_id}/status", response_model=schemas.AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    update: schemas.AppointmentStatusUpdate,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    ensure_can_update_status(current_user, engine.get(appointment_id))
    return await engine.update_status(appointment_id, update.status, notes=update.notes, actor_id=current_user.id)


@router.patch("/{appointment_id}/cancel", response_model=schemas.AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    body: Optional[schemas.AppointmentCancel] = None,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    ensure_can_view(current_user, engine.get(appointment_id))
    reason = body.reason if body else None
    return await engine.cancel(appointment_id, reason=reason, actor_id=current_user.id)
