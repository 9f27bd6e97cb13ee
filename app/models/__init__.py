from app.models.slot import Slot, SlotStatus, VisitType
from app.models.reservation import BookingCreate, Reservation, ReservationStatus
from app.models.audit_entry import AuditEntry

__all__ = [
    "Slot",
    "SlotStatus",
    "VisitType",
    "BookingCreate",
    "Reservation",
    "ReservationStatus",
    "AuditEntry",
]
