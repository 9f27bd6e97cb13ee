"""Availability Store backed by a Google Sheets spreadsheet.

Sheets: Slots (A-G), Reservations (A-K), Logs (A-D); row 1 of each is a header.
"""
import asyncio
import logging
import re
from typing import Any

import httpx

from app.core.errors import NotFound, UpstreamFailure
from app.core.store import FIRST_DATA_ROW
from app.models import AuditEntry, Reservation, ReservationStatus, Slot, SlotStatus
from app.services.google_auth_service import TokenSource

logger = logging.getLogger(__name__)

SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"

SLOTS_RANGE = "Slots!A2:G"
RESERVATIONS_RANGE = "Reservations!A2:K"
ROW_LOCK_STRIPES = 64

_ROW_IN_RANGE = re.compile(r"![A-Z]+(\d+)")


def _row_from_range(a1_range: str | None) -> int | None:
    """First row number of an A1 range such as ``Reservations!A7:K7``."""
    if not a1_range:
        return None
    match = _ROW_IN_RANGE.search(a1_range)
    return int(match.group(1)) if match else None


class SheetsStore:
    def __init__(
        self,
        client: httpx.AsyncClient,
        token_source: TokenSource,
        spreadsheet_id: str,
    ) -> None:
        self._client = client
        self._token_source = token_source
        self._base_url = f"{SHEETS_API_URL}/{spreadsheet_id}/values"
        # reservation id -> sheet row; filled from append responses and full scans
        self._reservation_rows: dict[str, int] = {}
        # Striped by row so memory stays fixed; two rows may share a lock
        self._row_locks = [asyncio.Lock() for _ in range(ROW_LOCK_STRIPES)]

    async def _request(
        self,
        method: str,
        a1_range: str,
        *,
        suffix: str = "",
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = await self._token_source.get_token()
        try:
            resp = await self._client.request(
                method,
                f"{self._base_url}/{a1_range}{suffix}",
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Sheets request failed: {e}") from e
        if resp.is_error:
            logger.warning(
                "Sheets %s %s failed: status=%s body=%s",
                method, a1_range, resp.status_code, resp.text[:500],
            )
            raise UpstreamFailure(f"Sheets {method} {a1_range} failed with status {resp.status_code}")
        return resp.json() if resp.content else {}

    async def _read(self, a1_range: str) -> list[list[str]]:
        data = await self._request("GET", a1_range)
        return data.get("values", [])

    async def _append(self, a1_range: str, rows: list[list[str]]) -> dict[str, Any]:
        # RAW keeps times and phone numbers as typed text
        return await self._request(
            "POST",
            a1_range,
            suffix=":append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": rows},
        )

    async def _write(self, a1_range: str, rows: list[list[str]]) -> None:
        await self._request(
            "PUT",
            a1_range,
            params={"valueInputOption": "RAW"},
            json={"values": rows},
        )

    # --- slots ---

    async def list_slots(self, date: str) -> list[Slot]:
        rows = await self._read(SLOTS_RANGE)
        return [
            Slot.from_row(row, i + FIRST_DATA_ROW)
            for i, row in enumerate(rows)
            if len(row) > 1 and row[1] == date
        ]

    async def append_slots(self, slots: list[Slot]) -> None:
        if not slots:
            return
        await self._append("Slots!A:G", [s.to_row() for s in slots])

    async def update_slot_status(
        self, row_handle: int, status: SlotStatus, reservation_id: str
    ) -> None:
        await self._write(
            f"Slots!F{row_handle}:G{row_handle}", [[status.value, reservation_id]]
        )

    async def claim_slot(self, row_handle: int, reservation_id: str) -> bool:
        # Serializes claims within this process only; the sheet itself has no
        # conditional write, so a second writer process can still race this.
        lock = self._row_locks[row_handle % ROW_LOCK_STRIPES]
        async with lock:
            cells = await self._read(f"Slots!F{row_handle}:G{row_handle}")
            current = cells[0][0] if cells and cells[0] else ""
            if current and current != SlotStatus.FREE.value:
                return False
            await self.update_slot_status(row_handle, SlotStatus.BOOKED, reservation_id)
            return True

    async def release_slot(self, row_handle: int) -> None:
        await self.update_slot_status(row_handle, SlotStatus.FREE, "")

    # --- reservations ---

    async def append_reservation(self, reservation: Reservation) -> None:
        data = await self._append("Reservations!A:K", [reservation.to_row()])
        row = _row_from_range(data.get("updates", {}).get("updatedRange"))
        if row is not None:
            self._reservation_rows[reservation.id] = row

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        row = self._reservation_rows.get(reservation_id)
        if row is not None:
            cells = await self._read(f"Reservations!A{row}:K{row}")
            if cells and cells[0] and cells[0][0] == reservation_id:
                return Reservation.from_row(cells[0], row)
            # rows moved under us (manual edit); fall back to a scan
            self._reservation_rows.pop(reservation_id, None)

        found: Reservation | None = None
        for i, cells in enumerate(await self._read(RESERVATIONS_RANGE)):
            if not cells or not cells[0]:
                continue
            self._reservation_rows[cells[0]] = i + FIRST_DATA_ROW
            if cells[0] == reservation_id:
                found = Reservation.from_row(cells, i + FIRST_DATA_ROW)
        return found

    async def _reservation_row(self, reservation_id: str) -> int:
        reservation = await self.get_reservation(reservation_id)
        if reservation is None or reservation.row_handle is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        return reservation.row_handle

    async def update_reservation_status(
        self, reservation_id: str, status: ReservationStatus
    ) -> None:
        row = await self._reservation_row(reservation_id)
        await self._write(f"Reservations!J{row}", [[status.value]])

    async def update_reservation_event(self, reservation_id: str, event_id: str) -> None:
        row = await self._reservation_row(reservation_id)
        await self._write(f"Reservations!I{row}", [[event_id]])

    # --- audit ---

    async def append_audit(self, actor: str, action: str, payload: dict[str, Any]) -> None:
        entry = AuditEntry(actor=actor, action=action, payload=payload)
        await self._append("Logs!A:D", [entry.to_row()])
