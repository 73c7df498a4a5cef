# clinic_scheduler/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..compliance_logger import compliance_logger
from ..config import get_settings
from ..database import get_db
from ..limiter import limiter

import logging

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


@router.post("/register", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def register(request: Request, user: schemas.UserCreate, db: Session = Depends(get_db)):
    """Self-registration is limited to patient and doctor accounts."""
    if user.role not in (models.UserRole.patient, models.UserRole.doctor):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only patient and doctor accounts can self-register"
        )
    return crud.create_user(db, user, password_hash=security.get_password_hash(user.password))


@router.post("/token", response_model=schemas.TokenResponse)
@limiter.limit("5/minute")
def login_for_access_token(request: Request, db: Session = Depends(get_db), form_data: OAuth2PasswordRequestForm = Depends()):
    user = crud.get_user_by_email(db, form_data.username)
    if not user or not security.verify_password(form_data.password, user.password_hash):
        logger.warning(f"Failed login attempt for: {form_data.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")

    try:
        compliance_logger.log_event(
            db, user_id=user.id, action="LOGIN", category="AUTHENTICATION",
            details=f"User {user.email} logged in successfully."
        )
        db.commit()
    except Exception as log_error:
        db.rollback()
        # Do not fail login if audit logging fails
        logger.error(f"Failed to create audit log for login of user {user.id}: {log_error}")

    logger.info(f"User {user.id} successfully authenticated.")

    access_token = security.create_access_token(
        data={"sub": user.email, "user_id": user.id, "role": user.role.value}
    )
    expires_in = get_settings().access_token_expire_minutes * 60
    return {"access_token": access_token, "token_type": "bearer", "expires_in": expires_in, "user": user}


@router.get("/users/me", response_model=schemas.UserResponse)
async def read_users_me(current_user: models.User = Depends(security.get_current_user)):
    """
    Get the current logged in user's details.
    """
    return current_user
