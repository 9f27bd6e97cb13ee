import datetime

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_store
from app.api.schemas.booking import GenerateSlotsRequest, GenerateSlotsResponse, SlotOut
from app.core.store import AvailabilityStore
from app.services.slot_service import generate_for_range

router = APIRouter(tags=["slots"])


@router.get("/slots", response_model=list[SlotOut])
async def list_slots(
    date_param: datetime.date = Query(..., alias="date"),
    store: AvailabilityStore = Depends(get_store),
) -> list[SlotOut]:
    """All persisted slots for the date, free and booked, in sheet order."""
    slots = await store.list_slots(date_param.isoformat())
    return [SlotOut.from_slot(s) for s in slots]


@router.post("/admin/slots", response_model=GenerateSlotsResponse)
async def generate_slots(
    body: GenerateSlotsRequest,
    store: AvailabilityStore = Depends(get_store),
) -> GenerateSlotsResponse:
    """Generate slots for `days` consecutive dates; dates that already have slots are skipped."""
    result = await generate_for_range(store, body.date, body.days)
    return GenerateSlotsResponse(
        count=result.count,
        generated_days=result.generated_days,
        skipped_dates=result.skipped_dates,
    )
