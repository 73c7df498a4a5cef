import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from clinic_scheduler.config import get_settings
from clinic_scheduler.core.logging import setup_logging
from clinic_scheduler.database import SessionLocal, create_tables
from clinic_scheduler.errors import ClinicError
from clinic_scheduler.limiter import limiter
from clinic_scheduler.routers import (
    appointments, auth, doctor_status, doctors, health, reminders, slots, staff, users, voice_agent
)
from clinic_scheduler.services.email_service import ModernEmailService
from clinic_scheduler.services.notification_service import build_dispatcher
from clinic_scheduler.services.reminder_service import ReminderScheduler, ReminderService
from clinic_scheduler.services.sse_service import SSEBroker
from clinic_scheduler.timeutils import Clock

settings = get_settings()
setup_logging(level="DEBUG" if settings.debug else "INFO", json_output=settings.is_production)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)


def init_state(app: FastAPI) -> None:
    """Attach the long-lived collaborators that request dependencies read."""
    app.state.clock = Clock(settings.clinic_timezone)
    app.state.broker = SSEBroker(heartbeat_seconds=settings.sse_heartbeat_seconds)
    app.state.email_service = ModernEmailService(settings)
    app.state.dispatcher = build_dispatcher(app.state.email_service, app.state.broker)
    app.state.reminder_scheduler = ReminderScheduler(
        ReminderService(app.state.dispatcher, app.state.clock),
        SessionLocal,
        interval_seconds=settings.reminder_interval_seconds,
    )
    app.state.limiter = limiter


init_state(app)


@app.on_event("startup")
async def on_startup():
    create_tables()
    if settings.reminders_enabled:
        app.state.reminder_scheduler.start()


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.reminder_scheduler.stop()


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError):
    logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "detail": exc.message},
    )


app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(doctors.router, prefix="/api/v1")
app.include_router(staff.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(doctor_status.router, prefix="/api/v1")
app.include_router(voice_agent.router, prefix="/api/v1")
app.include_router(reminders.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run("clinic_scheduler.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
