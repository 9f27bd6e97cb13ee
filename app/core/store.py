"""Availability Store contract: the authoritative ledger of slots, reservations and audit rows.

Every method is an independent round trip; nothing is transactional across calls.
Row handles are 1-based sheet rows (row 1 is the header).
"""
import asyncio
from typing import Any, Protocol

from app.core.errors import InternalInconsistency, NotFound
from app.models import AuditEntry, Reservation, ReservationStatus, Slot, SlotStatus

FIRST_DATA_ROW = 2


class AvailabilityStore(Protocol):
    async def list_slots(self, date: str) -> list[Slot]: ...

    async def append_slots(self, slots: list[Slot]) -> None: ...

    async def update_slot_status(
        self, row_handle: int, status: SlotStatus, reservation_id: str
    ) -> None: ...

    async def claim_slot(self, row_handle: int, reservation_id: str) -> bool:
        """Set the slot to booked only if it is currently free. Returns False if it was not."""
        ...

    async def release_slot(self, row_handle: int) -> None: ...

    async def append_reservation(self, reservation: Reservation) -> None: ...

    async def update_reservation_status(
        self, reservation_id: str, status: ReservationStatus
    ) -> None: ...

    async def update_reservation_event(self, reservation_id: str, event_id: str) -> None: ...

    async def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    async def append_audit(self, actor: str, action: str, payload: dict[str, Any]) -> None: ...


class InMemoryStore:
    """Process-local store with the same row semantics as the Sheets ledger."""

    def __init__(self) -> None:
        self.slots: list[Slot] = []
        self.reservations: list[Reservation] = []
        self.audit: list[AuditEntry] = []
        self._lock = asyncio.Lock()

    def _slot_at(self, row_handle: int) -> Slot:
        index = row_handle - FIRST_DATA_ROW
        if index < 0 or index >= len(self.slots):
            raise InternalInconsistency(f"No slot at row {row_handle}")
        return self.slots[index]

    def _find_reservation(self, reservation_id: str) -> Reservation:
        for r in self.reservations:
            if r.id == reservation_id:
                return r
        raise NotFound(f"Reservation {reservation_id} not found")

    async def list_slots(self, date: str) -> list[Slot]:
        return [
            s.model_copy(update={"row_handle": i + FIRST_DATA_ROW})
            for i, s in enumerate(self.slots)
            if s.date == date
        ]

    async def append_slots(self, slots: list[Slot]) -> None:
        self.slots.extend(s.model_copy(update={"row_handle": None}) for s in slots)

    async def update_slot_status(
        self, row_handle: int, status: SlotStatus, reservation_id: str
    ) -> None:
        slot = self._slot_at(row_handle)
        slot.status = status
        slot.reservation_id = reservation_id

    async def claim_slot(self, row_handle: int, reservation_id: str) -> bool:
        async with self._lock:
            slot = self._slot_at(row_handle)
            if slot.status != SlotStatus.FREE:
                return False
            slot.status = SlotStatus.BOOKED
            slot.reservation_id = reservation_id
            return True

    async def release_slot(self, row_handle: int) -> None:
        await self.update_slot_status(row_handle, SlotStatus.FREE, "")

    async def append_reservation(self, reservation: Reservation) -> None:
        # email is not a ledger column
        self.reservations.append(
            reservation.model_copy(update={"email": None, "row_handle": None})
        )

    async def update_reservation_status(
        self, reservation_id: str, status: ReservationStatus
    ) -> None:
        self._find_reservation(reservation_id).status = status

    async def update_reservation_event(self, reservation_id: str, event_id: str) -> None:
        self._find_reservation(reservation_id).calendar_event_id = event_id

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        for i, r in enumerate(self.reservations):
            if r.id == reservation_id:
                return r.model_copy(update={"row_handle": i + FIRST_DATA_ROW})
        return None

    async def append_audit(self, actor: str, action: str, payload: dict[str, Any]) -> None:
        self.audit.append(AuditEntry(actor=actor, action=action, payload=payload))
