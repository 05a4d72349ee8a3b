"""
Append-only audit trail for order payment events.

Each entry records:
  - Order ID (when the event could be tied to an order)
  - Action (payment_dispatched, webhook_received, webhook_rejected, ...)
  - Details (provider codes, status transitions, reasons)
  - Timestamp (UTC)

Entries are never modified or deleted.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.models.order import AuditLog

logger = logging.getLogger("checkout_engine.audit")


def _dumps(details: Optional[dict[str, Any]]) -> Optional[str]:
    if not details:
        return None
    return json.dumps(details, default=str)


async def log_event(
    session: AsyncSession,
    action: str,
    order_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit log entry to the session.

    The entry is committed together with the state change it describes.
    """
    serialized = _dumps(details)
    entry = AuditLog(
        order_id=order_id,
        action=action,
        details=serialized,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | order=%s action=%s | %s",
        order_id or "-",
        action,
        serialized[:200] if serialized else "",
    )
    return entry


def append_note(existing_notes: Optional[str], message: str) -> str:
    """
    Append a timestamped line to an order's free-text notes.

    Earlier notes are always kept.
    """
    line = f"[{datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}] {message}"
    if not existing_notes:
        return line
    return f"{existing_notes}\n{line}"
