import json
from typing import Any

from sqlmodel import Field, SQLModel

from app.models.reservation import utc_now_iso


class AuditEntry(SQLModel):
    """Append-only record of one action; a row in the Logs sheet (columns A-D)."""

    timestamp: str = Field(default_factory=utc_now_iso)
    actor: str
    action: str
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_row(self) -> list[str]:
        return [
            self.timestamp,
            self.actor,
            self.action,
            json.dumps(self.payload, ensure_ascii=False, default=str),
        ]
