"""Shared fixtures: an in-memory ledger, a recording calendar and a test client."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from app.core.errors import UpstreamFailure
from app.core.store import InMemoryStore
from app.models import Reservation
from app.services.slot_service import generate_slots

WEDNESDAY = "2025-01-15"
SATURDAY = "2025-01-18"


class FakeCalendar:
    """Records calls; optionally fails like an unreachable Calendar API."""

    def __init__(self, fail_create: bool = False, fail_delete: bool = False):
        self.fail_create = fail_create
        self.fail_delete = fail_delete
        self.created: list[Reservation] = []
        self.deleted: list[tuple[str, str]] = []

    async def create_event(self, reservation: Reservation) -> str | None:
        if self.fail_create:
            raise UpstreamFailure("Calendar request failed: connection refused")
        self.created.append(reservation)
        return f"evt_{len(self.created)}"

    async def delete_event(self, event_id: str, send_updates: str = "none") -> None:
        if self.fail_delete:
            raise UpstreamFailure("Calendar request failed: connection refused")
        self.deleted.append((event_id, send_updates))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def seeded_store(store):
    """Store holding one weekday's shared 30-minute slots."""
    store.slots.extend(generate_slots(date.fromisoformat(WEDNESDAY), 30, "shared"))
    return store


@pytest.fixture
def client(store, calendar):
    from app.main import create_app

    app = create_app(store=store, calendar=calendar)
    return TestClient(app)
