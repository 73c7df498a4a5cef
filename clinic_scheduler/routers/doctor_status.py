# clinic_scheduler/routers/doctor_status.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from .. import schemas, models, security
from ..database import get_db
from ..dependencies import get_booking_engine, get_broker, get_delay_engine
from ..errors import ForbiddenError, ValidationError
from ..services.booking_service import BookingEngine, ensure_can_view
from ..services.doctor_status_service import DelayCascadeEngine
from ..services.sse_service import SSEBroker

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/doctor-status",
    tags=["Doctor Status"],
)


def _target_doctor(requested_id: Optional[int], current_user: models.User) -> int:
    """Doctors act on themselves; admins must name the doctor."""
    if current_user.role == models.UserRole.admin:
        if requested_id is None:
            raise ValidationError("doctor_id is required")
        return requested_id
    if current_user.role == models.UserRole.doctor:
        if requested_id is not None and requested_id != current_user.id:
            raise ForbiddenError("You can only update your own status")
        return current_user.id
    raise ForbiddenError("Only doctors and admins can update doctor status")


@router.post("/running-late", response_model=schemas.DelayResult)
async def mark_running_late(
    body: schemas.RunningLateRequest,
    engine: DelayCascadeEngine = Depends(get_delay_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    doctor_id = _target_doctor(body.doctor_id, current_user)
    return await engine.mark_running_late(doctor_id, body.delay_minutes, body.reason, actor_id=current_user.id)


@router.post("/clear-delay", response_model=schemas.ClearDelayResult)
async def clear_delay(
    body: schemas.ClearDelayRequest,
    engine: DelayCascadeEngine = Depends(get_delay_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    doctor_id = _target_doctor(body.doctor_id, current_user)
    return await engine.clear_delay(doctor_id, actor_id=current_user.id, notify=body.notify_patients)


@router.get("/sse/connect")
async def sse_connect(
    request: Request,
    token: str = Query(...),
    db: Session = Depends(get_db),
    broker: SSEBroker = Depends(get_broker),
):
    """Server-sent events stream. EventSource cannot set headers, so the
    bearer token travels as a query parameter."""
    user = security.user_from_token(db, token)
    user_id = user.id
    db.close()
    client_id, queue = broker.connect(user_id)
    return StreamingResponse(
        broker.stream(user_id, client_id, queue, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


@router.get("/sse/stats", response_model=schemas.ConnectionStats)
def sse_stats(
    broker: SSEBroker = Depends(get_broker),
    current_user: models.User = Depends(security.require_admin),
):
    return broker.stats()


@router.get("/appointment/{appointment_id}", response_model=schemas.AppointmentDelayStatus)
def appointment_delay_status(
    appointment_id: int,
    booking: BookingEngine = Depends(get_booking_engine),
    engine: DelayCascadeEngine = Depends(get_delay_engine),
    current_user: models.User = Depends(security.get_current_user),
):
    appointment = booking.get(appointment_id)
    ensure_can_view(current_user, appointment)
    return engine.appointment_delay_status(appointment)


@router.get("/{doctor_id}/today", response_model=schemas.DoctorStatusResponse)
def today_status(doctor_id: int, engine: DelayCascadeEngine = Depends(get_delay_engine)):
    """Public: patients check whether their doctor is on time."""
    return engine.today_status(doctor_id)
