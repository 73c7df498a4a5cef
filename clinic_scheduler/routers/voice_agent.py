# clinic_scheduler/routers/voice_agent.py
# Function endpoints called by the voice agent platform during a phone call.
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request

from .. import schemas, security
from ..limiter import limiter
from ..dependencies import get_voice_agent_service
from ..services.voice_agent_service import VoiceAgentService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/voice",
    tags=["Voice Agent"],
    dependencies=[Depends(security.verify_voice_agent_key)],
)


@router.post("/check-availability", response_model=schemas.VoiceAvailabilityResponse)
def check_availability(
    body: schemas.VoiceCheckAvailabilityRequest,
    service: VoiceAgentService = Depends(get_voice_agent_service),
):
    logger.info(f"Voice availability check for {body.date!r} (doctor={body.doctor_id}, specialization={body.specialization})")
    return service.check_availability(
        body.date,
        doctor_id=body.doctor_id,
        specialization=body.specialization,
        preferred_time=body.preferred_time,
    )


@router.post("/book-appointment", response_model=schemas.VoiceBookingResponse)
@limiter.limit("20/minute")
async def book_appointment(
    request: Request,
    body: schemas.VoiceBookAppointmentRequest,
    service: VoiceAgentService = Depends(get_voice_agent_service),
):
    logger.info(f"Voice booking request for doctor {body.doctor_id} on {body.date!r} at {body.time!r} (call {body.call_id})")
    return await service.book_appointment(
        patient_name=body.patient_name,
        phone_number=body.phone_number,
        doctor_id=body.doctor_id,
        date_text=body.date,
        time_text=body.time,
        reason=body.reason,
        email=body.email,
        consultation_type=body.consultation_type,
        call_id=body.call_id,
        confirmed=body.confirmed,
    )


@router.post("/available-doctors")
def available_doctors(
    body: schemas.VoiceAvailableDoctorsRequest,
    service: VoiceAgentService = Depends(get_voice_agent_service),
) -> Dict[str, Any]:
    doctors: List[Dict[str, Any]] = service.available_doctors(body.specialization)
    return {"success": True, "count": len(doctors), "doctors": doctors}
