# clinic_scheduler/routers/doctors.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    prefix="/doctors",
    tags=["Doctors"],
    responses={404: {"description": "Not found"}},
)


@router.put("/me/profile", response_model=schemas.DoctorProfileResponse)
def update_my_profile(
    profile: schemas.DoctorProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_role("doctor")),
):
    """Create or replace the calling doctor's profile and weekly schedule."""
    return crud.upsert_doctor_profile(db, current_user, profile)


@router.get("/me/profile", response_model=schemas.DoctorProfileResponse)
def get_my_profile(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_role("doctor")),
):
    return crud.get_doctor_profile(db, current_user.id)


@router.delete("/me/profile", response_model=schemas.MessageResponse)
def delete_my_profile(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_role("doctor")),
):
    """Remove the profile. Booked appointments are kept; no new slots are offered."""
    crud.delete_doctor_profile(db, current_user)
    return {"success": True, "message": "Doctor profile deleted successfully"}


@router.get("/me/profile-status", response_model=schemas.ProfileStatus)
def check_my_profile(current_user: models.User = Depends(security.require_role("doctor"))):
    return {"profile_completed": current_user.profile_completed}


@router.get("", response_model=List[schemas.DoctorSummary])
def list_doctors(specialization: Optional[str] = None, db: Session = Depends(get_db)):
    return crud.list_doctors(db, specialization)


@router.get("/{doctor_id}/profile", response_model=schemas.DoctorProfileResponse)
def get_doctor_profile(doctor_id: int, db: Session = Depends(get_db)):
    return crud.get_doctor_profile(db, doctor_id)
