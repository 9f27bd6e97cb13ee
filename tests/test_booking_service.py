"""Tests for the booking engine against the in-memory ledger."""

import asyncio
from datetime import date

import httpx
import pytest

from app.core.errors import Conflict, InternalInconsistency, NotFound, ValidationError
from app.core.store import InMemoryStore
from app.models import BookingCreate, ReservationStatus, SlotStatus, VisitType
from app.services.booking_service import BLOCK_NAME, book_slot
from app.services.calendar_service import GoogleCalendar
from app.services.slot_service import SlotMode, generate_slots
from tests.conftest import WEDNESDAY, FakeCalendar


def _request(slot_id: str, **overrides) -> BookingCreate:
    fields = {
        "slot_id": slot_id,
        "date": WEDNESDAY,
        "name": "山田 太郎",
        "phone": "09012345678",
        "visit_type": VisitType.FIRST,
    }
    fields.update(overrides)
    return BookingCreate(**fields)


async def _first_slot(store):
    return (await store.list_slots(WEDNESDAY))[0]


def _assert_link_invariant(store):
    for s in store.slots:
        assert (s.status == SlotStatus.BOOKED) == bool(s.reservation_id)


class TestBookSlot:
    @pytest.mark.asyncio
    async def test_books_free_slot(self, seeded_store, calendar):
        slot = await _first_slot(seeded_store)

        reservation = await book_slot(seeded_store, calendar, _request(slot.id))

        after = await _first_slot(seeded_store)
        assert after.status == SlotStatus.BOOKED
        assert after.reservation_id == reservation.id
        stored = await seeded_store.get_reservation(reservation.id)
        assert stored.status == ReservationStatus.ACTIVE
        assert stored.visit_type == VisitType.FIRST
        _assert_link_invariant(seeded_store)

    @pytest.mark.asyncio
    async def test_times_come_from_slot_not_request(self, seeded_store, calendar):
        slot = await _first_slot(seeded_store)

        reservation = await book_slot(seeded_store, calendar, _request(slot.id))

        assert (reservation.date, reservation.start_time, reservation.end_time) == (
            slot.date, slot.start_time, slot.end_time,
        )

    @pytest.mark.asyncio
    async def test_unknown_slot_is_not_found(self, seeded_store, calendar):
        with pytest.raises(NotFound):
            await book_slot(seeded_store, calendar, _request("missing"))
        assert seeded_store.reservations == []

    @pytest.mark.asyncio
    async def test_booked_slot_conflicts_without_overwrite(self, seeded_store, calendar):
        slot = await _first_slot(seeded_store)
        first = await book_slot(seeded_store, calendar, _request(slot.id))

        with pytest.raises(Conflict):
            await book_slot(seeded_store, calendar, _request(slot.id, name="別の 患者"))

        assert (await _first_slot(seeded_store)).reservation_id == first.id
        assert len(seeded_store.reservations) == 1

    @pytest.mark.asyncio
    async def test_shared_is_not_a_patient_visit_type(self, seeded_store, calendar):
        slot = await _first_slot(seeded_store)
        with pytest.raises(ValidationError):
            await book_slot(seeded_store, calendar, _request(slot.id, visit_type=VisitType.SHARED))

    @pytest.mark.asyncio
    async def test_category_slot_rejects_other_category(self, store, calendar):
        store.slots.extend(generate_slots(date.fromisoformat(WEDNESDAY), 30, SlotMode.PER_CATEGORY))
        first_visit_slot = await _first_slot(store)
        assert first_visit_slot.visit_type == VisitType.FIRST

        with pytest.raises(ValidationError):
            await book_slot(store, calendar, _request(first_visit_slot.id, visit_type=VisitType.FOLLOW_UP))
        assert store.reservations == []

    @pytest.mark.asyncio
    async def test_calendar_event_id_is_stored(self, seeded_store, calendar):
        slot = await _first_slot(seeded_store)

        reservation = await book_slot(seeded_store, calendar, _request(slot.id))

        assert reservation.calendar_event_id == "evt_1"
        assert (await seeded_store.get_reservation(reservation.id)).calendar_event_id == "evt_1"

    @pytest.mark.asyncio
    async def test_calendar_failure_does_not_fail_booking(self, seeded_store):
        slot = await _first_slot(seeded_store)

        reservation = await book_slot(seeded_store, FakeCalendar(fail_create=True), _request(slot.id))

        assert (await _first_slot(seeded_store)).status == SlotStatus.BOOKED
        assert reservation.calendar_event_id == ""
        actions = [e.action for e in seeded_store.audit]
        assert "calendar_error" in actions
        assert actions[-1] == "book"

    @pytest.mark.asyncio
    async def test_calendar_rejection_is_audited(self, seeded_store):
        class StaticToken:
            async def get_token(self) -> str:
                return "test-token"

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(403, json={"error": "forbidden"}))
        )
        calendar = GoogleCalendar(client, StaticToken(), "clinic@example.com", "+09:00")
        slot = await _first_slot(seeded_store)

        reservation = await book_slot(seeded_store, calendar, _request(slot.id))

        assert reservation.calendar_event_id == ""
        assert (await _first_slot(seeded_store)).reservation_id == reservation.id
        errors = [e for e in seeded_store.audit if e.action == "calendar_error"]
        assert len(errors) == 1
        assert "403" in errors[0].payload["error"]
        assert seeded_store.audit[-1].action == "book"

    @pytest.mark.asyncio
    async def test_notify_called_only_with_email(self, seeded_store, calendar):
        slots = await seeded_store.list_slots(WEDNESDAY)
        notified = []

        await book_slot(seeded_store, calendar, _request(slots[0].id), notify=notified.append)
        await book_slot(
            seeded_store, calendar, _request(slots[1].id, email="taro@example.com"), notify=notified.append
        )

        assert [r.email for r in notified] == ["taro@example.com"]
        assert [e.action for e in seeded_store.audit].count("email_sent") == 1

    @pytest.mark.asyncio
    async def test_block_suppresses_side_effects(self, seeded_store, calendar):
        slot = await _first_slot(seeded_store)
        notified = []

        reservation = await book_slot(
            seeded_store,
            calendar,
            BookingCreate(slot_id=slot.id, date=WEDNESDAY, email="x@example.com", block=True),
            notify=notified.append,
        )

        assert reservation.name == BLOCK_NAME
        assert calendar.created == []
        assert notified == []
        assert (await _first_slot(seeded_store)).reservation_id == reservation.id
        assert seeded_store.audit[-1].actor == "admin"
        assert seeded_store.audit[-1].action == "block"

    @pytest.mark.asyncio
    async def test_missing_row_handle_keeps_reservation(self, seeded_store, calendar):
        class NoHandleStore(InMemoryStore):
            async def list_slots(self, date):
                return [s.model_copy(update={"row_handle": None}) for s in await super().list_slots(date)]

        store = NoHandleStore()
        store.slots = seeded_store.slots
        slot = store.slots[0]

        with pytest.raises(InternalInconsistency):
            await book_slot(store, calendar, _request(slot.id))

        assert len(store.reservations) == 1
        assert store.slots[0].status == SlotStatus.FREE
        assert store.audit[-1].action == "booking_inconsistency"

    @pytest.mark.asyncio
    async def test_concurrent_claims_book_slot_once(self, calendar):
        class InterleavingStore(InMemoryStore):
            async def list_slots(self, date):
                slots = await super().list_slots(date)
                await asyncio.sleep(0)  # let the other request read the same state
                return slots

        store = InterleavingStore()
        store.slots.extend(generate_slots(date.fromisoformat(WEDNESDAY), 30, SlotMode.SHARED))
        slot_id = store.slots[0].id

        results = await asyncio.gather(
            book_slot(store, calendar, _request(slot_id, name="A")),
            book_slot(store, calendar, _request(slot_id, name="B")),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Conflict)]
        assert len(winners) == 1 and len(losers) == 1
        assert store.slots[0].reservation_id == winners[0].id
        statuses = {r.id: r.status for r in store.reservations}
        assert statuses[winners[0].id] == ReservationStatus.ACTIVE
        assert list(statuses.values()).count(ReservationStatus.CANCELLED) == 1
        assert "booking_conflict" in [e.action for e in store.audit]
        _assert_link_invariant(store)
