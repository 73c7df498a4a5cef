# clinic_scheduler/routers/health.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from .. import crud, schemas, security
from ..database import get_db
from ..dependencies import get_clock
from ..timeutils import Clock

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
    responses={404: {"description": "Not found"}},
)


@router.get("")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


@router.get("/consistency-check", response_model=schemas.ConsistencyReport, dependencies=[Depends(security.require_admin)])
def check_system_consistency(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    """
    Reports slots holding more than one active booking and appointments that
    still carry delay fields after their doctor's delay was cleared.
    Accessible only by admin users.
    """
    report = crud.run_consistency_checks(db, today=clock.today())
    logger.info(
        f"Consistency check: {len(report['duplicate_active_bookings'])} duplicate slots, "
        f"{len(report['stale_delay_fields'])} stale delays"
    )
    return report
