from datetime import UTC, datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from app.models.slot import VisitType, new_id


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with a trailing Z, as written to the sheets."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Reservation(SQLModel):
    """A patient's claim on a slot; a row in the Reservations sheet (columns A-K).

    Date and times are copied from the slot at creation. After that only
    ``status`` and ``calendar_event_id`` change.
    """

    id: str = Field(default_factory=new_id)
    name: str
    phone: str
    email: str | None = None  # not persisted; the sheet has no email column
    visit_type: VisitType
    date: str
    start_time: str
    end_time: str
    line_user_id: str = ""
    calendar_event_id: str = ""
    status: ReservationStatus = ReservationStatus.ACTIVE
    created_at: str = Field(default_factory=utc_now_iso)
    row_handle: int | None = None

    def to_row(self) -> list[str]:
        return [
            self.id,
            self.name,
            self.phone,
            self.visit_type.value,
            self.date,
            self.start_time,
            self.end_time,
            self.line_user_id,
            self.calendar_event_id,
            self.status.value,
            self.created_at,
        ]

    @classmethod
    def from_row(cls, row: list[str], row_handle: int | None = None) -> "Reservation":
        cells = list(row) + [""] * (11 - len(row))
        return cls(
            id=cells[0],
            name=cells[1],
            phone=cells[2],
            visit_type=VisitType(cells[3] or VisitType.SHARED.value),
            date=cells[4],
            start_time=cells[5],
            end_time=cells[6],
            line_user_id=cells[7],
            calendar_event_id=cells[8],
            status=ReservationStatus(cells[9] or ReservationStatus.ACTIVE.value),
            created_at=cells[10],
            row_handle=row_handle,
        )


class BookingCreate(SQLModel):
    slot_id: str
    date: str
    name: str = ""
    phone: str = ""
    visit_type: VisitType = VisitType.SHARED
    email: str | None = None
    line_user_id: str | None = None
    # Admin hold: the slot is taken out of availability with no patient side effects
    block: bool = False
