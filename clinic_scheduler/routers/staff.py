# clinic_scheduler/routers/staff.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db
from ..errors import ForbiddenError

router = APIRouter(
    prefix="/staff",
    tags=["Staff"],
    responses={404: {"description": "Not found"}},
)

require_staff_member = security.require_role("staff")


@router.post("/profile", response_model=schemas.StaffProfileResponse, status_code=status.HTTP_201_CREATED)
def create_or_update_my_profile(
    profile: schemas.StaffProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff_member),
):
    return crud.upsert_staff_profile(db, current_user, profile)


@router.put("/profile", response_model=schemas.StaffProfileResponse)
def update_my_profile(
    profile: schemas.StaffProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff_member),
):
    return crud.upsert_staff_profile(db, current_user, profile, must_exist=True)


@router.delete("/profile", response_model=schemas.MessageResponse)
def delete_my_profile(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff_member),
):
    crud.delete_staff_profile(db, current_user)
    return {"success": True, "message": "Staff profile deleted successfully"}


@router.get("/profile/me", response_model=schemas.StaffProfileResponse)
def get_my_profile(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff_member),
):
    return crud.get_staff_profile(db, current_user.id)


@router.get("/profile/status/check", response_model=schemas.ProfileStatus)
def check_my_profile(current_user: models.User = Depends(require_staff_member)):
    return {"profile_completed": current_user.profile_completed}


@router.get("/profile/{user_id}", response_model=schemas.StaffProfileResponse)
def get_staff_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_doctor_or_admin),
):
    return crud.get_staff_profile(db, user_id)


@router.get("/profiles", response_model=List[schemas.StaffProfileResponse])
def list_staff_profiles(
    staff_role: Optional[str] = None,
    department: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_admin),
):
    return crud.list_staff_profiles(db, staff_role=staff_role, department=department, skip=skip, limit=limit)


@router.get("/doctor/{doctor_id}/staff", response_model=List[schemas.StaffProfileResponse])
def list_staff_for_doctor(
    doctor_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_doctor_or_admin),
):
    """Staff supervised by a doctor. Doctors only see their own team."""
    if current_user.role == models.UserRole.doctor and current_user.id != doctor_id:
        raise ForbiddenError("You can only view your own staff")
    return crud.list_staff_profiles(db, supervisor_doctor_id=doctor_id, skip=skip, limit=limit)
