# clinic_scheduler/routers/slots.py
from fastapi import APIRouter, Depends

from .. import schemas
from ..dependencies import get_booking_engine
from ..services.booking_service import BookingEngine
from ..timeutils import parse_iso_date

router = APIRouter(
    prefix="/slots",
    tags=["Slots"],
)


@router.get("/{doctor_id}/{date}", response_model=schemas.SlotListResponse)
def get_available_slots(doctor_id: int, date: str, engine: BookingEngine = Depends(get_booking_engine)):
    """The doctor's full day of slots, each annotated with availability."""
    target_date = parse_iso_date(date)
    slots = engine.available_slots(doctor_id, target_date)
    return {
        "doctor_id": doctor_id,
        "date": target_date,
        "slots": slots,
        "available_count": sum(1 for s in slots if s["available"]),
    }


@router.get("/{doctor_id}/{date}/{time}", response_model=schemas.AvailabilityResponse)
def check_slot(doctor_id: int, date: str, time: str, engine: BookingEngine = Depends(get_booking_engine)):
    result = engine.check_slot(doctor_id, date, time)
    return {"available": result.available, "reason": result.reason}
