from fastapi import APIRouter, BackgroundTasks, Depends

from app.api.deps import get_calendar, get_store
from app.api.schemas.booking import (
    BookingRequest,
    BookingResponse,
    CancelRequest,
    ReservationOut,
    SuccessResponse,
)
from app.core.store import AvailabilityStore
from app.models import Reservation
from app.services.booking_service import book_slot
from app.services.calendar_service import CalendarAdapter
from app.services.cancellation_service import cancel_booking
from app.services.email_service import (
    send_admin_booking_notification,
    send_booking_confirmation_email,
)

router = APIRouter(tags=["bookings"])


@router.post("/bookings", response_model=BookingResponse)
async def create_booking(
    body: BookingRequest,
    background_tasks: BackgroundTasks,
    store: AvailabilityStore = Depends(get_store),
    calendar: CalendarAdapter = Depends(get_calendar),
) -> BookingResponse:
    def notify(reservation: Reservation) -> None:
        # Sent after the response (uses sync SMTP)
        background_tasks.add_task(send_booking_confirmation_email, reservation)
        background_tasks.add_task(send_admin_booking_notification, reservation)

    reservation = await book_slot(store, calendar, body.to_create(), notify=notify)
    return BookingResponse(reservation=ReservationOut.from_reservation(reservation))


@router.post("/cancel", response_model=SuccessResponse)
async def cancel(
    body: CancelRequest,
    store: AvailabilityStore = Depends(get_store),
    calendar: CalendarAdapter = Depends(get_calendar),
) -> SuccessResponse:
    await cancel_booking(
        store,
        calendar,
        slot_id=body.slot_id,
        reservation_id=body.reservation_id,
        date=body.date.isoformat(),
    )
    return SuccessResponse()
