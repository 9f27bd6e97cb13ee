from enum import Enum
from uuid import uuid4

from sqlmodel import Field, SQLModel


def new_id() -> str:
    return str(uuid4())


class VisitType(str, Enum):
    FIRST = "初診"
    FOLLOW_UP = "再診"
    SHARED = "shared"  # bookable as either category


class SlotStatus(str, Enum):
    FREE = "free"
    BOOKED = "booked"


class Slot(SQLModel):
    """One bookable window; a row in the Slots sheet (columns A-G)."""

    id: str = Field(default_factory=new_id)
    date: str  # YYYY-MM-DD
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    visit_type: VisitType
    status: SlotStatus = SlotStatus.FREE
    reservation_id: str = ""
    # 1-based sheet row; only known for slots read back from a store
    row_handle: int | None = None

    @property
    def is_free(self) -> bool:
        return self.status == SlotStatus.FREE

    def accepts(self, visit_type: VisitType) -> bool:
        return self.visit_type == VisitType.SHARED or self.visit_type == visit_type

    def to_row(self) -> list[str]:
        return [
            self.id,
            self.date,
            self.start_time,
            self.end_time,
            self.visit_type.value,
            self.status.value,
            self.reservation_id,
        ]

    @classmethod
    def from_row(cls, row: list[str], row_handle: int | None = None) -> "Slot":
        cells = list(row) + [""] * (7 - len(row))
        return cls(
            id=cells[0],
            date=cells[1],
            start_time=cells[2],
            end_time=cells[3],
            visit_type=VisitType(cells[4] or VisitType.SHARED.value),
            status=SlotStatus(cells[5] or SlotStatus.FREE.value),
            reservation_id=cells[6],
            row_handle=row_handle,
        )
