# clinic_scheduler/routers/reminders.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas, security
from ..database import get_db
from ..dependencies import get_reminder_scheduler, get_reminder_service
from ..services.reminder_service import ReminderScheduler, ReminderService

router = APIRouter(
    prefix="/reminders",
    tags=["Reminders"],
    dependencies=[Depends(security.require_staff)],
)


@router.get("/stats", response_model=schemas.ReminderStats)
def reminder_stats(db: Session = Depends(get_db), service: ReminderService = Depends(get_reminder_service)):
    return service.stats(db)


@router.post("/trigger", response_model=schemas.ReminderRunResult)
async def trigger_reminders(scheduler: ReminderScheduler = Depends(get_reminder_scheduler)):
    """Run the day-ahead reminder pass now instead of waiting for the next tick."""
    return await scheduler.trigger()


@router.post("/test/{appointment_id}", response_model=schemas.ReminderRunResult)
async def send_test_reminder(
    appointment_id: int,
    db: Session = Depends(get_db),
    service: ReminderService = Depends(get_reminder_service),
):
    return await service.send_test_reminder(db, appointment_id)


@router.get("/cron-status", response_model=schemas.SchedulerStatus)
def cron_status(scheduler: ReminderScheduler = Depends(get_reminder_scheduler)):
    return scheduler.status()
