import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.models import BookingCreate, Reservation, ReservationStatus, Slot, SlotStatus, VisitType


class CamelModel(BaseModel):
    """JSON bodies use camelCase (slotId, visitType, ...) as the booking UI sends them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotOut(CamelModel):
    id: str
    date: str
    start_time: str
    end_time: str
    visit_type: VisitType
    status: SlotStatus
    reservation_id: str = ""

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotOut":
        return cls.model_validate(slot.model_dump(exclude={"row_handle"}))


class ReservationOut(CamelModel):
    id: str
    name: str
    phone: str
    email: str | None = None
    visit_type: VisitType
    date: str
    start_time: str
    end_time: str
    line_user_id: str = ""
    calendar_event_id: str = ""
    status: ReservationStatus
    created_at: str

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationOut":
        return cls.model_validate(reservation.model_dump(exclude={"row_handle"}))


class BookingRequest(CamelModel):
    slot_id: str = Field(min_length=1)
    date: datetime.date
    name: str = ""
    phone: str = ""
    visit_type: VisitType | None = None
    email: str | None = None
    line_user_id: str | None = None
    block: bool = False

    @field_validator("name", "phone")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _require_patient_fields(self) -> "BookingRequest":
        if self.block:
            return self
        missing = [
            alias
            for alias, value in (("name", self.name), ("phone", self.phone), ("visitType", self.visit_type))
            if not value
        ]
        if missing:
            raise ValueError(f"Missing fields: {', '.join(missing)}")
        return self

    def to_create(self) -> BookingCreate:
        return BookingCreate(
            slot_id=self.slot_id,
            date=self.date.isoformat(),
            name=self.name,
            phone=self.phone,
            visit_type=self.visit_type or VisitType.SHARED,
            email=self.email or None,
            line_user_id=self.line_user_id,
            block=self.block,
        )


class BookingResponse(CamelModel):
    success: bool = True
    reservation: ReservationOut


class CancelRequest(CamelModel):
    slot_id: str = Field(min_length=1)
    reservation_id: str = Field(min_length=1)
    date: datetime.date


class SuccessResponse(CamelModel):
    success: bool = True


class GenerateSlotsRequest(CamelModel):
    date: datetime.date
    days: int = Field(default=1, ge=1, le=366)


class GenerateSlotsResponse(CamelModel):
    count: int
    generated_days: list[str]
    skipped_dates: list[str]
