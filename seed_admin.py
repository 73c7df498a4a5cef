import os
import sys

from sqlalchemy.orm import Session

# Ensure package import when run as a script
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from clinic_scheduler.database import SessionLocal, create_tables
from clinic_scheduler import models
from clinic_scheduler.security import get_password_hash


def get_env(name: str, default: str | None = None, required: bool = False) -> str:
    val = os.getenv(name, default)
    if required and not val:
        raise RuntimeError(f"Missing required env var: {name}")
    return val or ""


def upsert_admin(db: Session) -> str:
    email = get_env("ADMIN_DEFAULT_EMAIL", "admin@example.com").lower()
    phone = get_env("ADMIN_DEFAULT_PHONE", "0000000000")
    password_hash = get_password_hash(get_env("ADMIN_DEFAULT_PASSWORD", required=True))

    user = db.query(models.User).filter(models.User.email == email).first()
    if user:
        user.role = models.UserRole.admin
        user.is_active = True
        user.phone = phone
        user.password_hash = password_hash
        action = "updated"
    else:
        user = models.User(
            email=email,
            first_name=get_env("ADMIN_DEFAULT_FIRST_NAME", "Clinic"),
            last_name=get_env("ADMIN_DEFAULT_LAST_NAME", "Admin"),
            phone=phone,
            role=models.UserRole.admin,
            is_active=True,
            password_hash=password_hash,
        )
        db.add(user)
        action = "created"

    db.commit()
    print(f"Admin user {action}: email='{email}'")
    return action


def main():
    _ = get_env("ADMIN_DEFAULT_PASSWORD", required=True)

    create_tables()
    db = SessionLocal()
    try:
        upsert_admin(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
