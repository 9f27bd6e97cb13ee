from fastapi import Request

from app.core.store import AvailabilityStore
from app.services.calendar_service import CalendarAdapter


def get_store(request: Request) -> AvailabilityStore:
    """The ledger built in the app lifespan (or injected by create_app)."""
    return request.app.state.store


def get_calendar(request: Request) -> CalendarAdapter:
    return request.app.state.calendar
