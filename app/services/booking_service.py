import logging
from collections.abc import Callable

from app.core.errors import Conflict, InternalInconsistency, NotFound, ValidationError
from app.core.store import AvailabilityStore
from app.models import BookingCreate, Reservation, ReservationStatus, Slot, VisitType
from app.services.audit_service import record_action
from app.services.calendar_service import CalendarAdapter

logger = logging.getLogger(__name__)

BLOCK_NAME = "(blocked)"

Notifier = Callable[[Reservation], None]


def _audit_payload(reservation: Reservation) -> dict:
    return reservation.model_dump(mode="json", exclude={"row_handle"})


async def find_slot(store: AvailabilityStore, date: str, slot_id: str) -> Slot:
    slots = await store.list_slots(date)
    for slot in slots:
        if slot.id == slot_id:
            return slot
    raise NotFound("Slot not found")


def _resolve_visit_type(slot: Slot, data: BookingCreate) -> VisitType:
    if data.block:
        return slot.visit_type
    if data.visit_type == VisitType.SHARED:
        raise ValidationError(
            f"visitType must be {VisitType.FIRST.value} or {VisitType.FOLLOW_UP.value}"
        )
    if not slot.accepts(data.visit_type):
        raise ValidationError(f"Slot is reserved for {slot.visit_type.value} visits")
    return data.visit_type


async def _cancel_orphan(store: AvailabilityStore, reservation: Reservation) -> None:
    """Retire a reservation whose slot claim lost to a concurrent booking."""
    try:
        await store.update_reservation_status(reservation.id, ReservationStatus.CANCELLED)
    except Exception as e:
        logger.exception("Could not cancel orphan reservation %s: %s", reservation.id, e)
    await record_action(
        store,
        "system",
        "booking_conflict",
        {"reservationId": reservation.id, "date": reservation.date, "startTime": reservation.start_time},
    )


async def _attach_calendar_event(
    store: AvailabilityStore, calendar: CalendarAdapter, reservation: Reservation
) -> None:
    """Best-effort: the booking is already committed, so calendar trouble is only recorded."""
    try:
        event_id = await calendar.create_event(reservation)
    except Exception as e:
        logger.warning("Calendar event for reservation %s failed: %s", reservation.id, e)
        await record_action(
            store, "system", "calendar_error", {"error": str(e), "reservationId": reservation.id}
        )
        return
    if not event_id:
        return
    reservation.calendar_event_id = event_id
    try:
        await store.update_reservation_event(reservation.id, event_id)
    except Exception as e:
        # Event exists but its id is not on the ledger row; acceptable, the calendar is a mirror
        logger.warning("Could not store event %s on reservation %s: %s", event_id, reservation.id, e)
        await record_action(
            store,
            "system",
            "calendar_error",
            {"error": str(e), "reservationId": reservation.id, "eventId": event_id},
        )


async def book_slot(
    store: AvailabilityStore,
    calendar: CalendarAdapter,
    data: BookingCreate,
    notify: Notifier | None = None,
) -> Reservation:
    """Claim a free slot and create its reservation.

    Validation, NotFound and Conflict are raised before anything is written.
    Once the reservation row exists, calendar and email side effects are
    best-effort and never change the outcome. ``notify`` is called with the
    reservation when the patient gave an email; blocks never notify.
    """
    slot = await find_slot(store, data.date, data.slot_id)
    if not slot.is_free:
        raise Conflict("Slot already booked")
    visit_type = _resolve_visit_type(slot, data)

    reservation = Reservation(
        name=data.name or (BLOCK_NAME if data.block else ""),
        phone=data.phone,
        email=None if data.block else data.email,
        visit_type=visit_type,
        # Times come from the slot, never from the request
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        line_user_id=data.line_user_id or "",
    )
    await store.append_reservation(reservation)

    if slot.row_handle is None:
        # The reservation row stays; an admin reconciles it from the log
        logger.error("Slot %s has no row handle; reservation %s left unlinked", slot.id, reservation.id)
        await record_action(
            store,
            "system",
            "booking_inconsistency",
            {"slotId": slot.id, "reservationId": reservation.id},
        )
        raise InternalInconsistency("Internal Error: Slot rowIndex missing")

    if not await store.claim_slot(slot.row_handle, reservation.id):
        await _cancel_orphan(store, reservation)
        raise Conflict("Slot already booked")

    if not data.block:
        await _attach_calendar_event(store, calendar, reservation)
        if reservation.email and notify is not None:
            notify(reservation)
            await record_action(
                store,
                "system",
                "email_sent",
                {"reservationId": reservation.id, "email": reservation.email},
            )

    await record_action(
        store,
        "admin" if data.block else "user",
        "block" if data.block else "book",
        {"slotId": slot.id, **_audit_payload(reservation)},
    )
    logger.info(
        "Booked slot %s (%s %s-%s) as reservation %s%s",
        slot.id, slot.date, slot.start_time, slot.end_time, reservation.id,
        " [block]" if data.block else "",
    )
    return reservation
