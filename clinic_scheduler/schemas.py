# clinic_scheduler/schemas.py
from datetime import datetime, date
from typing import Annotated, List, Literal, Optional, Dict, Any
from pydantic import AfterValidator, BaseModel, Field, EmailStr, field_validator, model_validator

from .models import (
    UserRole, AppointmentStatus, ConsultationType, ProfileConsultationType,
    BookingSource, DoctorStatusType
)
from .timeutils import WEEKDAY_TOKENS, is_valid_hhmm, to_minutes


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


def _check_hhmm(value: str) -> str:
    if not is_valid_hhmm(value):
        raise ValueError("Time must be in HH:MM format")
    return value


HHMM = Annotated[str, AfterValidator(_check_hhmm)]


# --- Auth & User Schemas ---
class UserCreate(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None
    role: UserRole = UserRole.patient
    specialization: Optional[str] = None


class UserResponse(BaseSchema):
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    specialization: Optional[str] = None
    is_active: bool
    profile_completed: bool = False


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str
    expires_in: int
    user: UserResponse


# --- Schedule & Profile Schemas ---
class BreakTime(BaseSchema):
    start: HHMM
    end: HHMM

    @model_validator(mode="after")
    def check_order(self):
        if to_minutes(self.start) >= to_minutes(self.end):
            raise ValueError("Break start must be before break end")
        return self


class WorkingHours(BaseSchema):
    start: HHMM = "09:00"
    end: HHMM = "17:00"

    @model_validator(mode="after")
    def check_order(self):
        if to_minutes(self.start) >= to_minutes(self.end):
            raise ValueError("Working hours start must be before end")
        return self


class ScheduleSchema(BaseSchema):
    working_days: List[str] = Field(default_factory=lambda: ["Mon", "Tue", "Wed", "Thu", "Fri"])
    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    break_times: List[BreakTime] = Field(default_factory=list)
    appointment_duration: int = Field(30, ge=15)

    @field_validator("working_days")
    @classmethod
    def check_working_days(cls, v):
        unknown = [d for d in v if d not in WEEKDAY_TOKENS]
        if unknown:
            raise ValueError(f"Unknown weekday tokens: {', '.join(unknown)}")
        # Keep calendar order, drop duplicates
        return [d for d in WEEKDAY_TOKENS if d in v]


class DoctorProfileUpdate(ScheduleSchema):
    specialization: Optional[str] = None
    qualification: Optional[str] = None
    experience_years: int = Field(0, ge=0)
    bio: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    clinic_name: Optional[str] = None
    clinic_address: Optional[str] = None
    consultation_fee: int = Field(0, ge=0)
    consultation_type: ProfileConsultationType = ProfileConsultationType.both


class DoctorProfileResponse(BaseSchema):
    id: int
    user_id: int
    specialization: Optional[str] = None
    qualification: Optional[str] = None
    experience_years: Optional[int] = 0
    bio: Optional[str] = None
    languages: Optional[List[str]] = None
    clinic_name: Optional[str] = None
    clinic_address: Optional[str] = None
    consultation_fee: Optional[int] = 0
    consultation_type: ProfileConsultationType
    working_days: List[str]
    working_hours_start: str
    working_hours_end: str
    break_times: List[BreakTime]
    appointment_duration: int


class DoctorSummary(BaseSchema):
    id: int
    first_name: str
    last_name: str
    email: str
    specialization: Optional[str] = None
    profile_completed: bool = False


class ProfileStatus(BaseSchema):
    profile_completed: bool


# --- Account Schemas ---
class UserProfileUpdate(BaseSchema):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("first_name", "last_name")
    @classmethod
    def not_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip() if v else v


class PasswordChange(BaseSchema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)

    @model_validator(mode="after")
    def check_different(self):
        if self.current_password == self.new_password:
            raise ValueError("New password must be different from current password")
        return self


# --- Staff Schemas ---
PHONE_PATTERN = r"^[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}$"


class ShiftTiming(BaseSchema):
    start: HHMM
    end: HHMM


class EmergencyContact(BaseSchema):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    relationship: str = Field(..., min_length=1)


class StaffProfileUpdate(BaseSchema):
    staff_role: str = Field(..., min_length=1, max_length=100)
    employee_id: str = Field(..., min_length=1, max_length=50)
    department: str = Field(..., min_length=1, max_length=100)
    experience_years: int = Field(..., ge=0)
    shift_timing: ShiftTiming
    emergency_contact: EmergencyContact
    working_days: List[str] = Field(default_factory=lambda: ["Mon", "Tue", "Wed", "Thu", "Fri"])
    supervisor_doctor_id: Optional[int] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    date_of_birth: Optional[date] = None
    photo: Optional[str] = Field(None, max_length=500)

    @field_validator("staff_role", "employee_id", "department")
    @classmethod
    def strip_required(cls, v):
        if not v.strip():
            raise ValueError("Field cannot be blank")
        return v.strip()

    @field_validator("working_days")
    @classmethod
    def check_working_days(cls, v):
        unknown = [d for d in v if d not in WEEKDAY_TOKENS]
        if unknown:
            raise ValueError(f"Unknown weekday tokens: {', '.join(unknown)}")
        return [d for d in WEEKDAY_TOKENS if d in v]


class StaffProfileResponse(BaseSchema):
    id: int
    user_id: int
    staff_role: str
    employee_id: str
    department: str
    experience_years: int
    supervisor_doctor_id: Optional[int] = None
    shift_start: str
    shift_end: str
    working_days: List[str]
    emergency_contact: EmergencyContact
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    photo: Optional[str] = None
    profile_completed: bool
    user: Optional[UserResponse] = None


# --- Slot Schemas ---
class Slot(BaseSchema):
    time: str
    available: bool
    reason: Optional[str] = None


class SlotListResponse(BaseSchema):
    doctor_id: int
    date: date
    slots: List[Slot]
    available_count: int


class AvailabilityResponse(BaseSchema):
    available: bool
    reason: Optional[str] = None


# --- Appointment Schemas ---
class AppointmentCreate(BaseSchema):
    doctor_id: int
    appointment_date: str
    appointment_time: str
    consultation_type: ConsultationType = ConsultationType.in_person
    reason_for_visit: Optional[str] = Field(None, max_length=500)
    symptoms: Optional[str] = Field(None, max_length=1000)
    patient_id: Optional[int] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    patient_email: Optional[EmailStr] = None


class AppointmentStatusUpdate(BaseSchema):
    status: AppointmentStatus
    notes: Optional[str] = Field(None, max_length=1000)


class AppointmentCancel(BaseSchema):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentResponse(BaseSchema):
    id: int
    doctor_id: int
    patient_id: Optional[int] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    patient_email: Optional[str] = None
    appointment_date: date
    appointment_time: str
    duration: int
    status: AppointmentStatus
    consultation_type: ConsultationType
    reason_for_visit: Optional[str] = None
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    estimated_time: Optional[str] = None
    delay_minutes: Optional[int] = None
    booking_source: BookingSource
    confirmation_number: Optional[str] = None
    reminder_sent: bool = False
    created_at: Optional[datetime] = None


class AppointmentDelayStatus(BaseSchema):
    appointment_id: int
    original_time: str
    estimated_time: str
    delay_minutes: int
    has_delay: bool
    status: AppointmentStatus


# --- Doctor Status Schemas ---
class RunningLateRequest(BaseSchema):
    doctor_id: Optional[int] = None
    delay_minutes: int
    reason: Optional[str] = Field(None, max_length=500)


class ClearDelayRequest(BaseSchema):
    doctor_id: Optional[int] = None
    notify_patients: bool = False


class NotificationCounts(BaseSchema):
    in_app: int = 0
    email: int = 0


class DelayResult(BaseSchema):
    success: bool
    message: str
    affected_count: int = 0
    failed_count: int = 0
    notifications: NotificationCounts = Field(default_factory=NotificationCounts)
    status_id: Optional[int] = None


class ClearDelayResult(BaseSchema):
    success: bool
    message: str
    appointments_reset: int = 0
    status_id: Optional[int] = None


class DoctorStatusResponse(BaseSchema):
    id: Optional[int] = None
    doctor_id: int
    date: date
    status: DoctorStatusType
    delay_minutes: int = 0
    reason: Optional[str] = None
    affected_appointments: List[int] = Field(default_factory=list)
    notifications_sent: Dict[str, int] = Field(default_factory=dict)
    cleared_at: Optional[datetime] = None


# --- Voice Agent Schemas ---
class VoiceCheckAvailabilityRequest(BaseSchema):
    date: str
    doctor_id: Optional[int] = None
    specialization: Optional[str] = None
    preferred_time: Optional[str] = None


class VoiceBookAppointmentRequest(BaseSchema):
    patient_name: str
    phone_number: str
    doctor_id: int
    date: str
    time: str
    reason: str
    email: Optional[EmailStr] = None
    consultation_type: ConsultationType = ConsultationType.in_person
    call_id: Optional[str] = None
    confirmed: bool = True


class VoiceAvailableDoctorsRequest(BaseSchema):
    specialization: Optional[str] = None


class VoiceDoctorSlots(BaseSchema):
    doctor_id: int
    doctor_name: str
    specialization: Optional[str] = None
    available_slots: List[str]


class VoiceAvailabilityResponse(BaseSchema):
    success: bool
    date: str
    doctors: List[VoiceDoctorSlots]
    message: str


class VoiceBookingResponse(BaseSchema):
    success: bool
    message: str
    appointment_id: Optional[int] = None
    confirmation_number: Optional[str] = None
    alternative_slots: List[str] = Field(default_factory=list)


# --- Reminder Schemas ---
class ReminderStats(BaseSchema):
    upcoming_24h: int
    reminders_sent: int
    pending: int


class ReminderRunResult(BaseSchema):
    success: bool
    message: str
    total: int = 0
    sent: int = 0
    failed: int = 0


class SchedulerStatus(BaseSchema):
    running: bool
    interval_seconds: int
    last_run_at: Optional[datetime] = None
    last_result: Optional[ReminderRunResult] = None


# --- Push / SSE Schemas ---
class ConnectionStats(BaseSchema):
    total_connections: int
    unique_users: int
    users: List[int]


# --- Health Schemas ---
class DuplicateSlot(BaseSchema):
    doctor_id: int
    appointment_date: date
    appointment_time: str
    appointment_ids: List[int]


class ConsistencyReport(BaseSchema):
    checked_at: datetime
    duplicate_active_bookings: List[DuplicateSlot]
    stale_delay_fields: List[int]


class MessageResponse(BaseSchema):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
