# clinic_scheduler/dependencies.py
# FastAPI dependencies wiring the engines to per-request sessions and to the
# long-lived collaborators kept on app.state.
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from .services.booking_service import BookingEngine
from .services.doctor_status_service import DelayCascadeEngine
from .services.notification_service import NotificationDispatcher
from .services.reminder_service import ReminderScheduler, ReminderService
from .services.sse_service import SSEBroker
from .services.voice_agent_service import VoiceAgentService
from .timeutils import Clock


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_broker(request: Request) -> SSEBroker:
    return request.app.state.broker


def get_reminder_scheduler(request: Request) -> ReminderScheduler:
    return request.app.state.reminder_scheduler


def get_reminder_service(scheduler: ReminderScheduler = Depends(get_reminder_scheduler)) -> ReminderService:
    return scheduler.service


def get_booking_engine(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> BookingEngine:
    return BookingEngine(db, dispatcher, clock, confirmation_prefix=get_settings().confirmation_prefix)


def get_delay_engine(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> DelayCascadeEngine:
    return DelayCascadeEngine(db, dispatcher, clock)


def get_voice_agent_service(
    db: Session = Depends(get_db),
    engine: BookingEngine = Depends(get_booking_engine),
    clock: Clock = Depends(get_clock),
) -> VoiceAgentService:
    return VoiceAgentService(db, engine, clock)
