# clinic_scheduler/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, JSON, Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    patient = "patient"
    doctor = "doctor"
    staff = "staff"
    admin = "admin"


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no-show"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = (AppointmentStatus.pending, AppointmentStatus.confirmed)
TERMINAL_STATUSES = (AppointmentStatus.completed, AppointmentStatus.cancelled, AppointmentStatus.no_show)


class ConsultationType(str, enum.Enum):
    online = "online"
    in_person = "in-person"


class ProfileConsultationType(str, enum.Enum):
    online = "online"
    in_person = "in-person"
    both = "both"


class BookingSource(str, enum.Enum):
    direct = "direct"
    voice_agent = "voice_agent"


class DoctorStatusType(str, enum.Enum):
    on_time = "on-time"
    running_late = "running-late"
    emergency = "emergency"


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    ACCESS_DENIED = "ACCESS_DENIED"


class User(Base):
    """Account for every principal: patients, doctors, staff and admins."""
    __tablename__ = "users"
    __table_args__ = (
        Index('idx_users_role_active', 'role', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role', values_callable=_enum_values), default=UserRole.patient, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    specialization = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    doctor_profile = relationship("DoctorProfile", back_populates="user", uselist=False)
    staff_profile = relationship(
        "StaffProfile", back_populates="user", uselist=False, foreign_keys="StaffProfile.user_id"
    )
    audit_logs = relationship("AuditLog", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def profile_completed(self) -> bool:
        # Derived from the role's profile row; never stored on the user.
        if self.role == UserRole.staff:
            return self.staff_profile is not None and bool(self.staff_profile.profile_completed)
        return self.doctor_profile is not None


class DoctorProfile(Base):
    """Doctor profile; owns the schedule used for slot generation."""
    __tablename__ = "doctor_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    specialization = Column(String(100), nullable=True)
    qualification = Column(String(255), nullable=True)
    experience_years = Column(Integer, default=0)
    bio = Column(Text, nullable=True)
    languages = Column(JSON, default=list)
    clinic_name = Column(String(255), nullable=True)
    clinic_address = Column(Text, nullable=True)
    consultation_fee = Column(Integer, default=0)
    consultation_type = Column(
        SQLAlchemyEnum(ProfileConsultationType, name='profile_consultation_type', values_callable=_enum_values),
        default=ProfileConsultationType.both, nullable=False
    )

    # Schedule
    working_days = Column(JSON, nullable=False)  # ["Mon", "Tue", ...]
    working_hours_start = Column(String(5), nullable=False, default="09:00")
    working_hours_end = Column(String(5), nullable=False, default="17:00")
    break_times = Column(JSON, nullable=False, default=list)  # [{"start": "13:00", "end": "14:00"}]
    appointment_duration = Column(Integer, nullable=False, default=30)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="doctor_profile")


class StaffProfile(Base):
    """Employment record for nurses, receptionists and other clinic staff."""
    __tablename__ = "staff_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    gender = Column(String(10), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    photo = Column(String(500), nullable=True)
    staff_role = Column(String(100), nullable=False)  # nurse, technician, receptionist...
    employee_id = Column(String(50), unique=True, index=True, nullable=False)
    department = Column(String(100), nullable=False)
    experience_years = Column(Integer, nullable=False, default=0)
    supervisor_doctor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    shift_start = Column(String(5), nullable=False)
    shift_end = Column(String(5), nullable=False)
    working_days = Column(JSON, nullable=False)
    emergency_contact = Column(JSON, nullable=False)  # {"name", "phone", "relationship"}
    profile_completed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="staff_profile", foreign_keys=[user_id])
    supervisor = relationship("User", foreign_keys=[supervisor_doctor_id])


class Appointment(Base):
    """Booking record. Status is mutated only by the booking and delay engines."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_doctor_date', 'doctor_id', 'appointment_date'),
        Index('idx_appointments_patient_date', 'patient_id', 'appointment_date'),
        Index('idx_appointments_status_date', 'status', 'appointment_date'),
        # At most one active booking per (doctor, date, time).
        Index(
            'uq_appointments_active_slot',
            'doctor_id', 'appointment_date', 'appointment_time',
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Contact details; the only patient identity for voice bookings
    patient_name = Column(String(200), nullable=True)
    patient_phone = Column(String(30), nullable=True)
    patient_email = Column(String(255), nullable=True)

    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False, default=30)

    status = Column(
        SQLAlchemyEnum(AppointmentStatus, name='appointment_status', values_callable=_enum_values),
        default=AppointmentStatus.pending, nullable=False, index=True
    )
    consultation_type = Column(
        SQLAlchemyEnum(ConsultationType, name='consultation_type', values_callable=_enum_values),
        default=ConsultationType.in_person, nullable=False
    )
    reason_for_visit = Column(Text, nullable=True)
    symptoms = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Delay cascade
    estimated_time = Column(String(5), nullable=True)
    delay_minutes = Column(Integer, nullable=True)
    delay_notified = Column(Boolean, default=False)
    delay_notified_at = Column(DateTime(timezone=True), nullable=True)

    # Provenance
    booking_source = Column(
        SQLAlchemyEnum(BookingSource, name='booking_source', values_callable=_enum_values),
        default=BookingSource.direct, nullable=False
    )
    voice_call_id = Column(String(100), nullable=True)
    voice_agent_data = Column(JSON, nullable=True)
    confirmation_number = Column(String(40), nullable=True, index=True)

    # Reminders
    reminder_sent = Column(Boolean, default=False, nullable=False)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    doctor = relationship("User", foreign_keys=[doctor_id])
    patient = relationship("User", foreign_keys=[patient_id])

    @property
    def has_delay(self) -> bool:
        return bool(self.delay_minutes)


class DoctorStatus(Base):
    """Per-doctor, per-day punctuality record. Rows for past dates are history."""
    __tablename__ = "doctor_statuses"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', name='uq_doctor_status_doctor_date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    status = Column(
        SQLAlchemyEnum(DoctorStatusType, name='doctor_status_type', values_callable=_enum_values),
        default=DoctorStatusType.on_time, nullable=False
    )
    delay_minutes = Column(Integer, default=0, nullable=False)
    reason = Column(Text, nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    affected_appointments = Column(JSON, default=list)
    notifications_sent = Column(JSON, default=dict)  # {"in_app": n, "email": m}
    cleared_at = Column(DateTime(timezone=True), nullable=True)
    cleared_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    doctor = relationship("User", foreign_keys=[doctor_id])


class AuditLog(Base):
    """Audit trail of booking, status and delay mutations"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index('idx_audit_user_date', 'user_id', 'timestamp'),
        Index('idx_audit_action_date', 'action', 'timestamp'),
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(SQLAlchemyEnum(AuditAction, name='audit_action'), nullable=False)
    category = Column(String(50), nullable=False, default="GENERAL", index=True)
    severity = Column(String(20), default="INFO", index=True)  # INFO, WARN, ERROR
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    new_values = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="audit_logs")
