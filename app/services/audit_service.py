import logging
from typing import Any

from app.core.store import AvailabilityStore

logger = logging.getLogger(__name__)


async def record_action(
    store: AvailabilityStore, actor: str, action: str, payload: dict[str, Any]
) -> None:
    """Append an audit row. Never raises: the audit trail must not fail a request."""
    try:
        await store.append_audit(actor, action, payload)
    except Exception as e:
        logger.exception("Audit write failed: actor=%s action=%s: %s", actor, action, e)
