import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum

from app.core.config import settings
from app.core.errors import ValidationError
from app.core.store import AvailabilityStore
from app.models import Slot, VisitType

logger = logging.getLogger(__name__)

WEEKDAY_WINDOW = (time(9, 0), time(20, 30))
WEEKEND_WINDOW = (time(10, 0), time(16, 0))
ALLOWED_INTERVALS = (15, 30)


class SlotMode(str, Enum):
    SHARED = "shared"  # one slot per window, bookable by either category
    PER_CATEGORY = "per_category"  # one 初診 and one 再診 slot per window


@dataclass
class GenerationResult:
    count: int = 0
    generated_days: list[str] = field(default_factory=list)
    skipped_dates: list[str] = field(default_factory=list)


def schedule_window(d: date) -> tuple[time, time]:
    """Opening hours for the day: Saturday and Sunday run the short weekend window."""
    return WEEKEND_WINDOW if d.weekday() >= 5 else WEEKDAY_WINDOW


def _slot_windows(d: date, interval_minutes: int) -> list[tuple[str, str]]:
    """(start, end) as HH:MM for each window; the last start is strictly before closing."""
    open_at, close_at = schedule_window(d)
    current = datetime.combine(d, open_at)
    end = datetime.combine(d, close_at)
    delta = timedelta(minutes=interval_minutes)
    windows: list[tuple[str, str]] = []
    while current < end:
        nxt = current + delta
        windows.append((current.strftime("%H:%M"), nxt.strftime("%H:%M")))
        current = nxt
    return windows


def generate_slots(
    d: date,
    interval_minutes: int | None = None,
    mode: SlotMode | str | None = None,
) -> list[Slot]:
    """Build (unpersisted) slots for a date. Pure: each call mints fresh ids."""
    interval = interval_minutes or settings.slot_interval_minutes
    if interval not in ALLOWED_INTERVALS:
        raise ValidationError(f"Slot interval must be one of {ALLOWED_INTERVALS}, got {interval}")
    try:
        slot_mode = SlotMode(mode or settings.slot_mode)
    except ValueError as e:
        raise ValidationError(f"Unknown slot mode: {mode or settings.slot_mode!r}") from e

    if slot_mode == SlotMode.SHARED:
        categories = [VisitType.SHARED]
    else:
        categories = [VisitType.FIRST, VisitType.FOLLOW_UP]

    day = d.isoformat()
    return [
        Slot(date=day, start_time=start, end_time=end, visit_type=category)
        for start, end in _slot_windows(d, interval)
        for category in categories
    ]


async def needs_generation(store: AvailabilityStore, d: date) -> bool:
    """False once any slot exists for the date; generation must never duplicate a day."""
    existing = await store.list_slots(d.isoformat())
    return not existing


async def generate_for_range(
    store: AvailabilityStore,
    start: date,
    days: int = 1,
    interval_minutes: int | None = None,
    mode: SlotMode | str | None = None,
) -> GenerationResult:
    if days < 1:
        raise ValidationError("days must be at least 1")
    result = GenerationResult()
    for offset in range(days):
        d = start + timedelta(days=offset)
        if not await needs_generation(store, d):
            result.skipped_dates.append(d.isoformat())
            continue
        slots = generate_slots(d, interval_minutes, mode)
        await store.append_slots(slots)
        result.count += len(slots)
        result.generated_days.append(d.isoformat())
    logger.info(
        "Slot generation from %s for %d day(s): %d slot(s), skipped %s",
        start.isoformat(), days, result.count, result.skipped_dates,
    )
    return result
