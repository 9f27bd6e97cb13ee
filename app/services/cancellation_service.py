import logging

from app.core.errors import Conflict, InternalInconsistency, NotFound
from app.core.store import AvailabilityStore
from app.models import ReservationStatus
from app.services.audit_service import record_action
from app.services.booking_service import find_slot
from app.services.calendar_service import CalendarAdapter

logger = logging.getLogger(__name__)


async def cancel_booking(
    store: AvailabilityStore,
    calendar: CalendarAdapter,
    slot_id: str,
    reservation_id: str,
    date: str,
) -> None:
    """Free the slot, mark the reservation cancelled and drop its calendar event.

    A cancelled reservation id is never reused; rebooking the slot mints a new one.
    """
    slot = await find_slot(store, date, slot_id)
    reservation = await store.get_reservation(reservation_id)
    if reservation is None:
        raise NotFound("Reservation not found")
    if slot.reservation_id and slot.reservation_id != reservation_id:
        raise Conflict("Slot is held by a different reservation")
    if slot.row_handle is None:
        raise InternalInconsistency("Internal Error: Slot rowIndex missing")

    await store.release_slot(slot.row_handle)
    await store.update_reservation_status(reservation_id, ReservationStatus.CANCELLED)

    if reservation.calendar_event_id:
        try:
            # "none": the patient must not receive a cancellation notice from Google
            await calendar.delete_event(reservation.calendar_event_id, send_updates="none")
        except Exception as e:
            logger.warning(
                "Calendar delete of %s for reservation %s failed: %s",
                reservation.calendar_event_id, reservation_id, e,
            )
            await record_action(
                store,
                "system",
                "calendar_error",
                {
                    "error": str(e),
                    "reservationId": reservation_id,
                    "eventId": reservation.calendar_event_id,
                },
            )

    await record_action(
        store, "admin", "cancel", {"slotId": slot_id, "reservationId": reservation_id, "date": date}
    )
    logger.info("Cancelled reservation %s and freed slot %s", reservation_id, slot_id)
