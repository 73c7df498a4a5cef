# clinic_scheduler/routers/users.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..database import get_db
from ..errors import ValidationError

import logging

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/users",
    tags=["Users"],
    responses={404: {"description": "Not found"}},
)


@router.get("/profile", response_model=schemas.UserResponse)
def get_my_account(current_user: models.User = Depends(security.get_current_user)):
    return current_user


@router.put("/profile", response_model=schemas.UserResponse)
def update_my_account(
    update: schemas.UserProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user),
):
    return crud.update_user_profile(db, current_user, update)


@router.post("/change-password", response_model=schemas.MessageResponse)
def change_password(
    body: schemas.PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user),
):
    if not security.verify_password(body.current_password, current_user.password_hash):
        logger.warning(f"Rejected password change for user {current_user.id}: wrong current password")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")
    crud.set_password_hash(db, current_user, security.get_password_hash(body.new_password))
    return {"success": True, "message": "Password changed successfully"}


@router.post("/deactivate", response_model=schemas.MessageResponse)
def deactivate_my_account(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user),
):
    """Disable the caller's account. Existing tokens stop working immediately."""
    crud.set_user_active(db, current_user, False, actor_id=current_user.id)
    return {"success": True, "message": "Account deactivated successfully"}


# --- Admin ---

@router.get("/all", response_model=List[schemas.UserResponse])
def list_users(
    role: Optional[models.UserRole] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_admin),
):
    return crud.list_users(db, role=role, skip=skip, limit=limit)


@router.get("/role/{role}", response_model=List[schemas.UserResponse])
def list_users_by_role(
    role: models.UserRole,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_admin),
):
    return crud.list_users(db, role=role, limit=1000)


@router.get("/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_admin),
):
    return crud.get_user_or_404(db, user_id)


@router.patch("/{user_id}/reactivate", response_model=schemas.UserResponse)
def reactivate_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_admin),
):
    return crud.set_user_active(db, crud.get_user_or_404(db, user_id), True, actor_id=current_user.id)


@router.delete("/{user_id}", response_model=schemas.MessageResponse)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_admin),
):
    if user_id == current_user.id:
        raise ValidationError("Admins cannot delete their own account")
    crud.delete_user(db, user_id, actor_id=current_user.id)
    return {"success": True, "message": "User deleted successfully"}
