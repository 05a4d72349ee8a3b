"""
Order cancellation guard.

Customers may cancel an order only while it is pending or confirmed. Every
other status has its own explanation so the storefront can tell the
customer what to do instead. A successful cancellation appends the reason
to the order notes and reports refund expectations; issuing the refund is
handled elsewhere.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.audit.logger import append_note, log_event
from checkout_engine.models.enums import OrderStatus
from checkout_engine.models.order import Order

logger = logging.getLogger("checkout_engine.cancellation")

CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value)
DEFAULT_REASON = "Customer requested cancellation"

BLOCKED_MESSAGES = {
    OrderStatus.PROCESSING.value: (
        "Order is currently being processed and cannot be cancelled. "
        "Please contact customer support."
    ),
    OrderStatus.SHIPPED.value: (
        "Order has been shipped and cannot be cancelled. You may return it after delivery."
    ),
    OrderStatus.DELIVERED.value: (
        "Order has been delivered. You may return it following our return policy."
    ),
    OrderStatus.CANCELLED.value: "Order has already been cancelled.",
}
FALLBACK_MESSAGE = "Order cannot be cancelled at this time"


class CancellationError(Exception):
    """Cancellation refused because of the order's current status."""

    def __init__(self, message: str, status: Optional[str]):
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass
class RefundInfo:
    will_be_refunded: bool
    amount: Decimal
    timeframe: str
    method: str = "Original payment method"

    def to_dict(self) -> dict[str, Any]:
        return {
            "will_be_refunded": self.will_be_refunded,
            "amount": str(self.amount),
            "timeframe": self.timeframe,
            "method": self.method,
        }


@dataclass
class CancellationOutcome:
    order: Order
    refund_info: RefundInfo


def can_cancel(order: Order) -> bool:
    return order.status in CANCELLABLE_STATUSES


def cancellation_block_reason(status: Optional[str]) -> Optional[str]:
    """Why an order in ``status`` cannot be cancelled, or None if it can."""
    if status in CANCELLABLE_STATUSES:
        return None
    return BLOCKED_MESSAGES.get(status, FALLBACK_MESSAGE)


async def cancel_order(
    session: AsyncSession,
    order: Order,
    reason: Optional[str] = None,
    refund_timeframe: str = "3-5 business days",
) -> CancellationOutcome:
    """
    Cancel ``order`` if its status allows it.

    The update is a compare-and-set on (id, owner, cancellable status), so a
    concurrent status change wins and this call reports the new state.

    Raises:
        CancellationError: If the order is not in a cancellable status.
    """
    blocked = cancellation_block_reason(order.status)
    if blocked:
        raise CancellationError(blocked, order.status)

    reason = (reason or "").strip() or DEFAULT_REASON
    previous_status = order.status
    conditions = [Order.id == order.id, Order.status.in_(CANCELLABLE_STATUSES)]
    if order.user_id is not None:
        conditions.append(Order.user_id == order.user_id)

    result = await session.execute(
        update(Order)
        .where(*conditions)
        .values(
            status=OrderStatus.CANCELLED.value,
            notes=append_note(order.notes, f"Cancelled: {reason}"),
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    await session.refresh(order)

    if result.rowcount != 1:
        blocked = cancellation_block_reason(order.status) or FALLBACK_MESSAGE
        raise CancellationError(blocked, order.status)

    await log_event(session, "order_cancelled", order_id=order.id, details={
        "from": previous_status,
        "reason": reason,
        "user_id": order.user_id,
    })
    await session.commit()

    logger.info("Order %s cancelled by user %s: %s", order.order_number, order.user_id, reason)

    total = Decimal(order.total_amount or 0)
    return CancellationOutcome(
        order=order,
        refund_info=RefundInfo(
            will_be_refunded=total > 0,
            amount=total,
            timeframe=refund_timeframe,
        ),
    )
