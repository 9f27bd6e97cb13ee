"""Tests for the cancellation engine."""

import pytest

from app.core.errors import Conflict, NotFound
from app.models import BookingCreate, ReservationStatus, SlotStatus, VisitType
from app.services.booking_service import book_slot
from app.services.cancellation_service import cancel_booking
from tests.conftest import WEDNESDAY, FakeCalendar


async def _book_first(store, calendar, **overrides):
    slot = (await store.list_slots(WEDNESDAY))[0]
    fields = {
        "slot_id": slot.id,
        "date": WEDNESDAY,
        "name": "佐藤 花子",
        "phone": "08011112222",
        "visit_type": VisitType.FOLLOW_UP,
    }
    fields.update(overrides)
    reservation = await book_slot(store, calendar, BookingCreate(**fields))
    return slot, reservation


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_frees_slot_and_cancels_reservation(self, seeded_store, calendar):
        slot, reservation = await _book_first(seeded_store, calendar)

        await cancel_booking(seeded_store, calendar, slot.id, reservation.id, WEDNESDAY)

        after = (await seeded_store.list_slots(WEDNESDAY))[0]
        assert after.status == SlotStatus.FREE
        assert after.reservation_id == ""
        stored = await seeded_store.get_reservation(reservation.id)
        assert stored.status == ReservationStatus.CANCELLED
        assert seeded_store.audit[-1].action == "cancel"

    @pytest.mark.asyncio
    async def test_deletes_event_without_notifying_patient(self, seeded_store, calendar):
        slot, reservation = await _book_first(seeded_store, calendar)

        await cancel_booking(seeded_store, calendar, slot.id, reservation.id, WEDNESDAY)

        assert calendar.deleted == [("evt_1", "none")]

    @pytest.mark.asyncio
    async def test_calendar_delete_failure_is_recorded_not_raised(self, seeded_store, calendar):
        slot, reservation = await _book_first(seeded_store, calendar)

        await cancel_booking(
            seeded_store, FakeCalendar(fail_delete=True), slot.id, reservation.id, WEDNESDAY
        )

        assert (await seeded_store.get_reservation(reservation.id)).status == ReservationStatus.CANCELLED
        actions = [e.action for e in seeded_store.audit]
        assert actions[-2:] == ["calendar_error", "cancel"]

    @pytest.mark.asyncio
    async def test_freed_slot_rebooks_with_new_reservation_id(self, seeded_store, calendar):
        slot, reservation = await _book_first(seeded_store, calendar)
        await cancel_booking(seeded_store, calendar, slot.id, reservation.id, WEDNESDAY)

        _, again = await _book_first(seeded_store, calendar)

        assert again.id != reservation.id
        assert (await seeded_store.list_slots(WEDNESDAY))[0].reservation_id == again.id
        assert (await seeded_store.get_reservation(reservation.id)).status == ReservationStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_slot(self, seeded_store, calendar):
        _, reservation = await _book_first(seeded_store, calendar)
        with pytest.raises(NotFound):
            await cancel_booking(seeded_store, calendar, "missing", reservation.id, WEDNESDAY)

    @pytest.mark.asyncio
    async def test_unknown_reservation_writes_nothing(self, seeded_store, calendar):
        slot, _ = await _book_first(seeded_store, calendar)

        with pytest.raises(NotFound):
            await cancel_booking(seeded_store, calendar, slot.id, "missing", WEDNESDAY)

        assert (await seeded_store.list_slots(WEDNESDAY))[0].status == SlotStatus.BOOKED

    @pytest.mark.asyncio
    async def test_reservation_of_another_slot_conflicts(self, seeded_store, calendar):
        slot, _ = await _book_first(seeded_store, calendar)
        other = (await seeded_store.list_slots(WEDNESDAY))[1]
        foreign = await book_slot(
            seeded_store,
            calendar,
            BookingCreate(
                slot_id=other.id, date=WEDNESDAY, name="X", phone="1", visit_type=VisitType.FIRST
            ),
        )

        with pytest.raises(Conflict):
            await cancel_booking(seeded_store, calendar, slot.id, foreign.id, WEDNESDAY)
