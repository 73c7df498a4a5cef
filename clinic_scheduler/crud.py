# clinic_scheduler/crud.py
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from . import models, schemas
from .compliance_logger import compliance_logger
from .errors import ConflictError, NotFoundError, ValidationError
from .services import slot_service

logger = logging.getLogger(__name__)


class CRUDError(Exception):
    pass


# ==================== USER CRUD OPERATIONS ====================

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    """Get user by ID with error handling."""
    try:
        return db.query(models.User).filter(models.User.id == user_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user {user_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()


def create_user(db: Session, user: schemas.UserCreate, password_hash: str) -> models.User:
    if get_user_by_email(db, user.email):
        raise ConflictError("User already exists with this email")
    db_user = models.User(
        email=user.email.lower(),
        password_hash=password_hash,
        role=user.role,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        specialization=user.specialization,
    )
    try:
        db.add(db_user)
        db.flush()
        compliance_logger.log_event(
            db, user_id=db_user.id, action="CREATE", category="USER",
            resource_type="user", resource_id=db_user.id,
            details=f"Registered {db_user.role.value} account",
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User already exists with this email")
    db.refresh(db_user)
    logger.info(f"Created user {db_user.id} with role {db_user.role.value}")
    return db_user


def get_user_or_404(db: Session, user_id: int) -> models.User:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def list_users(
    db: Session,
    role: Optional[models.UserRole] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[models.User]:
    query = db.query(models.User)
    if role is not None:
        query = query.filter(models.User.role == role)
    return query.order_by(models.User.id).offset(skip).limit(limit).all()


def update_user_profile(db: Session, user: models.User, data: schemas.UserProfileUpdate) -> models.User:
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(user, field, value)
    compliance_logger.log_event(
        db, user_id=user.id, action="USER_UPDATE", category="USER",
        resource_type="user", resource_id=user.id, new_values=changes,
    )
    db.commit()
    db.refresh(user)
    return user


def set_password_hash(db: Session, user: models.User, password_hash: str) -> None:
    """Store a new hash; callers verify the old password first."""
    user.password_hash = password_hash
    compliance_logger.log_event(
        db, user_id=user.id, action="PASSWORD_UPDATE", category="AUTHENTICATION",
        resource_type="user", resource_id=user.id, details="Password changed",
    )
    db.commit()
    logger.info(f"Password changed for user {user.id}")


def set_user_active(db: Session, user: models.User, is_active: bool, actor_id: Optional[int] = None) -> models.User:
    user.is_active = is_active
    compliance_logger.log_event(
        db, user_id=actor_id, action="USER_UPDATE", category="USER",
        resource_type="user", resource_id=user.id,
        details=f"{'Reactivated' if is_active else 'Deactivated'} account {user.id}",
        new_values={"is_active": is_active},
    )
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} active={is_active} (by {actor_id})")
    return user


def delete_user(db: Session, user_id: int, actor_id: Optional[int] = None) -> None:
    """Hard-delete an account that has no booking or punctuality history.

    Accounts with history must be deactivated instead so appointments and
    delay records keep their doctor and patient references.
    """
    user = get_user_or_404(db, user_id)
    has_history = db.query(models.Appointment.id).filter(
        (models.Appointment.doctor_id == user_id) | (models.Appointment.patient_id == user_id)
    ).first() or db.query(models.DoctorStatus.id).filter(
        models.DoctorStatus.doctor_id == user_id
    ).first()
    if has_history:
        raise ConflictError("User has appointment history; deactivate the account instead")

    email = user.email
    for profile in (user.doctor_profile, user.staff_profile):
        if profile is not None:
            db.delete(profile)
    db.query(models.StaffProfile).filter(
        models.StaffProfile.supervisor_doctor_id == user_id
    ).update({models.StaffProfile.supervisor_doctor_id: None})
    # audit rows outlive the account; the relationship nulls their user_id
    db.delete(user)
    compliance_logger.log_event(
        db, user_id=actor_id, action="USER_DELETE", category="USER",
        resource_type="user", resource_id=user_id, details=f"Deleted account {email}",
    )
    db.commit()
    logger.info(f"Deleted user {user_id} (by {actor_id})")


# ==================== DOCTOR PROFILES ====================

def list_doctors(db: Session, specialization: Optional[str] = None) -> List[models.User]:
    query = db.query(models.User).filter(
        models.User.role == models.UserRole.doctor,
        models.User.is_active.is_(True),
    )
    if specialization:
        query = query.filter(func.lower(models.User.specialization).like(f"%{specialization.lower()}%"))
    return query.order_by(models.User.last_name, models.User.first_name).all()


def get_doctor_profile(db: Session, doctor_id: int) -> models.DoctorProfile:
    profile = db.query(models.DoctorProfile).filter(models.DoctorProfile.user_id == doctor_id).first()
    if not profile:
        raise NotFoundError("Doctor profile not found")
    return profile


def upsert_doctor_profile(db: Session, doctor: models.User, data: schemas.DoctorProfileUpdate) -> models.DoctorProfile:
    """Create or replace the doctor's profile and schedule.

    The schedule is validated as a whole (breaks inside working hours and not
    overlapping) before anything is written.
    """
    schedule = slot_service.Schedule(
        working_days=tuple(data.working_days),
        start=data.working_hours.start,
        end=data.working_hours.end,
        appointment_duration=data.appointment_duration,
        break_times=tuple(slot_service.BreakInterval(b.start, b.end) for b in data.break_times),
    )
    slot_service.validate_schedule(schedule)

    profile = db.query(models.DoctorProfile).filter(models.DoctorProfile.user_id == doctor.id).first()
    created = profile is None
    if created:
        profile = models.DoctorProfile(user_id=doctor.id)
        db.add(profile)

    profile.specialization = data.specialization
    profile.qualification = data.qualification
    profile.experience_years = data.experience_years
    profile.bio = data.bio
    profile.languages = data.languages
    profile.clinic_name = data.clinic_name
    profile.clinic_address = data.clinic_address
    profile.consultation_fee = data.consultation_fee
    profile.consultation_type = data.consultation_type
    profile.working_days = list(schedule.working_days)
    profile.working_hours_start = schedule.start
    profile.working_hours_end = schedule.end
    profile.break_times = [{"start": b.start, "end": b.end} for b in sorted(schedule.break_times, key=lambda b: b.start)]
    profile.appointment_duration = schedule.appointment_duration
    if data.specialization:
        doctor.specialization = data.specialization

    db.flush()
    compliance_logger.log_event(
        db, user_id=doctor.id, action="CREATE" if created else "SCHEDULE_UPDATE", category="SCHEDULE",
        resource_type="doctor_profile", resource_id=profile.id,
        new_values={"working_days": profile.working_days, "duration": profile.appointment_duration},
    )
    db.commit()
    db.refresh(profile)
    return profile


def delete_doctor_profile(db: Session, doctor: models.User) -> None:
    """Drop the profile; existing appointments stay, new slots stop being offered."""
    profile = get_doctor_profile(db, doctor.id)
    profile_id = profile.id
    db.delete(profile)
    compliance_logger.log_event(
        db, user_id=doctor.id, action="PROFILE_DELETE", category="SCHEDULE",
        resource_type="doctor_profile", resource_id=profile_id,
    )
    db.commit()


# ==================== STAFF PROFILES ====================

def get_staff_profile(db: Session, user_id: int) -> models.StaffProfile:
    profile = db.query(models.StaffProfile).filter(models.StaffProfile.user_id == user_id).first()
    if not profile:
        raise NotFoundError("Staff profile not found")
    return profile


def upsert_staff_profile(
    db: Session,
    staff: models.User,
    data: schemas.StaffProfileUpdate,
    must_exist: bool = False,
) -> models.StaffProfile:
    if staff.role != models.UserRole.staff:
        raise ValidationError("User is not staff")
    if data.supervisor_doctor_id is not None:
        supervisor = get_user(db, data.supervisor_doctor_id)
        if not supervisor or supervisor.role != models.UserRole.doctor:
            raise NotFoundError("Supervisor doctor not found")

    profile = db.query(models.StaffProfile).filter(models.StaffProfile.user_id == staff.id).first()
    if profile is None and must_exist:
        raise NotFoundError("Staff profile not found")
    created = profile is None
    if created:
        profile = models.StaffProfile(user_id=staff.id)
        db.add(profile)

    profile.staff_role = data.staff_role
    profile.employee_id = data.employee_id
    profile.department = data.department
    profile.experience_years = data.experience_years
    profile.supervisor_doctor_id = data.supervisor_doctor_id
    profile.shift_start = data.shift_timing.start
    profile.shift_end = data.shift_timing.end
    profile.working_days = list(data.working_days)
    profile.emergency_contact = data.emergency_contact.model_dump()
    profile.gender = data.gender
    profile.date_of_birth = data.date_of_birth
    profile.photo = data.photo
    profile.profile_completed = True

    try:
        db.flush()
        compliance_logger.log_event(
            db, user_id=staff.id, action="CREATE" if created else "PROFILE_UPDATE", category="STAFF",
            resource_type="staff_profile", resource_id=profile.id,
            new_values={"staff_role": profile.staff_role, "department": profile.department},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Employee ID already in use")
    db.refresh(profile)
    return profile


def list_staff_profiles(
    db: Session,
    staff_role: Optional[str] = None,
    department: Optional[str] = None,
    supervisor_doctor_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[models.StaffProfile]:
    query = db.query(models.StaffProfile)
    if staff_role:
        query = query.filter(func.lower(models.StaffProfile.staff_role).like(f"%{staff_role.lower()}%"))
    if department:
        query = query.filter(func.lower(models.StaffProfile.department).like(f"%{department.lower()}%"))
    if supervisor_doctor_id is not None:
        query = query.filter(models.StaffProfile.supervisor_doctor_id == supervisor_doctor_id)
    return query.order_by(models.StaffProfile.id.desc()).offset(skip).limit(limit).all()


def delete_staff_profile(db: Session, staff: models.User) -> None:
    profile = get_staff_profile(db, staff.id)
    profile_id = profile.id
    db.delete(profile)
    compliance_logger.log_event(
        db, user_id=staff.id, action="PROFILE_DELETE", category="STAFF",
        resource_type="staff_profile", resource_id=profile_id,
    )
    db.commit()


# ==================== CONSISTENCY CHECKS ====================

def run_consistency_checks(db: Session, today: date) -> Dict[str, Any]:
    """Report slots holding more than one active booking, and appointments
    carrying delay fields although their doctor has no active delay today."""
    duplicates = []
    groups = db.query(
        models.Appointment.doctor_id,
        models.Appointment.appointment_date,
        models.Appointment.appointment_time,
    ).filter(
        models.Appointment.status.in_(models.ACTIVE_STATUSES)
    ).group_by(
        models.Appointment.doctor_id,
        models.Appointment.appointment_date,
        models.Appointment.appointment_time,
    ).having(func.count(models.Appointment.id) > 1).all()

    for doctor_id, appointment_date, appointment_time in groups:
        ids = [row[0] for row in db.query(models.Appointment.id).filter(
            models.Appointment.doctor_id == doctor_id,
            models.Appointment.appointment_date == appointment_date,
            models.Appointment.appointment_time == appointment_time,
            models.Appointment.status.in_(models.ACTIVE_STATUSES),
        ).order_by(models.Appointment.id).all()]
        duplicates.append({
            "doctor_id": doctor_id,
            "appointment_date": appointment_date,
            "appointment_time": appointment_time,
            "appointment_ids": ids,
        })

    late_doctors = {row[0] for row in db.query(models.DoctorStatus.doctor_id).filter(
        models.DoctorStatus.date == today,
        models.DoctorStatus.status == models.DoctorStatusType.running_late,
    ).all()}
    delayed = db.query(models.Appointment).filter(
        models.Appointment.delay_minutes.isnot(None),
        models.Appointment.delay_minutes > 0,
        models.Appointment.status.in_(models.ACTIVE_STATUSES),
        models.Appointment.appointment_date == today,
    ).all()
    stale = [a.id for a in delayed if a.doctor_id not in late_doctors]

    return {
        "checked_at": datetime.now(timezone.utc),
        "duplicate_active_bookings": duplicates,
        "stale_delay_fields": stale,
    }
