"""Calendar mirror of active reservations. Never authoritative: the sheet wins on disagreement."""
import logging
from typing import Literal, Protocol
from urllib.parse import quote

import httpx

from app.core.config import settings
from app.core.errors import UpstreamFailure
from app.models import Reservation, VisitType
from app.services.google_auth_service import TokenSource

logger = logging.getLogger(__name__)

CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3/calendars"

SendUpdates = Literal["all", "externalOnly", "none"]

# Google Calendar palette: 11 Tomato for first visits, 9 Blueberry for follow-ups
_COLOR_IDS = {
    VisitType.FIRST: "11",
    VisitType.FOLLOW_UP: "9",
}


class CalendarAdapter(Protocol):
    async def create_event(self, reservation: Reservation) -> str | None: ...

    async def delete_event(self, event_id: str, send_updates: SendUpdates = "none") -> None: ...


def build_event_body(reservation: Reservation, utc_offset: str) -> dict:
    event: dict = {
        "summary": f"【{reservation.visit_type.value}】{reservation.name} 様",
        "description": (
            f"電話番号: {reservation.phone}\n"
            f"来院区分: {reservation.visit_type.value}\n"
            f"予約ID: {reservation.id}"
        ),
        "start": {"dateTime": f"{reservation.date}T{reservation.start_time}:00{utc_offset}"},
        "end": {"dateTime": f"{reservation.date}T{reservation.end_time}:00{utc_offset}"},
    }
    color_id = _COLOR_IDS.get(reservation.visit_type)
    if color_id:
        event["colorId"] = color_id
    if reservation.email:
        # Google sends the invitation email to attendees
        event["attendees"] = [{"email": reservation.email}]
    return event


class GoogleCalendar:
    def __init__(
        self,
        client: httpx.AsyncClient,
        token_source: TokenSource,
        calendar_id: str,
        utc_offset: str | None = None,
    ) -> None:
        self._client = client
        self._token_source = token_source
        self._events_url = f"{CALENDAR_API_URL}/{quote(calendar_id, safe='')}/events"
        self._utc_offset = utc_offset or settings.calendar_utc_offset

    async def create_event(self, reservation: Reservation) -> str | None:
        """Insert the event and return its id. Raises UpstreamFailure if Google rejects it."""
        token = await self._token_source.get_token()
        try:
            resp = await self._client.post(
                self._events_url,
                params={"sendUpdates": "all"},
                json=build_event_body(reservation, self._utc_offset),
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Calendar request failed: {e}") from e
        if resp.is_error:
            logger.warning(
                "Calendar create failed: status=%s body=%s reservation_id=%s",
                resp.status_code, resp.text[:500], reservation.id,
            )
            raise UpstreamFailure(
                f"Calendar insert for reservation {reservation.id} failed with status {resp.status_code}"
            )
        event_id = resp.json().get("id")
        logger.info("Created calendar event %s for reservation %s", event_id, reservation.id)
        return event_id

    async def delete_event(self, event_id: str, send_updates: SendUpdates = "none") -> None:
        token = await self._token_source.get_token()
        try:
            resp = await self._client.delete(
                f"{self._events_url}/{quote(event_id, safe='')}",
                params={"sendUpdates": send_updates},
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Calendar request failed: {e}") from e
        # 410 Gone: already deleted
        if resp.is_error and resp.status_code != 410:
            raise UpstreamFailure(
                f"Calendar delete of {event_id} failed with status {resp.status_code}"
            )
        logger.info("Deleted calendar event %s", event_id)


class DisabledCalendar:
    """Used when no calendar is configured."""

    async def create_event(self, reservation: Reservation) -> str | None:
        logger.debug("Calendar disabled, skipping event for reservation %s", reservation.id)
        return None

    async def delete_event(self, event_id: str, send_updates: SendUpdates = "none") -> None:
        logger.debug("Calendar disabled, skipping delete of %s", event_id)
