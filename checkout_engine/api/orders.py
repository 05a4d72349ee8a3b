"""
Order cancellation endpoints.

POST /orders/{id}/cancel — Cancel an order owned by the caller.
GET  /orders/{id}/cancel — Whether the order can currently be cancelled.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.api.deps import get_current_user_id, get_services
from checkout_engine.database import get_session
from checkout_engine.engine.cancellation import (
    CancellationError,
    can_cancel,
    cancel_order,
    cancellation_block_reason,
)
from checkout_engine.models.order import Order
from checkout_engine.services import PaymentServices

router = APIRouter(prefix="/orders", tags=["orders"])


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class OrderDetail(BaseModel):
    id: str
    order_number: str
    status: str
    payment_status: str
    payment_method: Optional[str]
    total_amount: Decimal
    notes: Optional[str]
    updated_at: Optional[str]


class CancelCheck(BaseModel):
    can_cancel: bool
    status: str
    order_number: str
    hours_elapsed: Optional[float]
    reason: Optional[str]


def _order_to_detail(o: Order) -> OrderDetail:
    return OrderDetail(
        id=o.id,
        order_number=o.order_number,
        status=o.status,
        payment_status=o.payment_status,
        payment_method=o.payment_method,
        total_amount=o.total_amount,
        notes=o.notes,
        updated_at=o.updated_at.isoformat() if o.updated_at else None,
    )


def _hours_since(moment: Optional[datetime]) -> Optional[float]:
    if moment is None:
        return None
    if moment.tzinfo is None:
        # SQLite hands back naive datetimes
        moment = moment.replace(tzinfo=timezone.utc)
    return round((datetime.now(timezone.utc) - moment).total_seconds() / 3600, 2)


async def _owned_order(session: AsyncSession, order_id: str, user_id: str) -> Order:
    order = await session.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.user_id != user_id:
        raise HTTPException(
            status_code=403,
            detail="Unauthorized - You can only cancel your own orders",
        )
    return order


@router.post("/{order_id}/cancel")
async def cancel(
    order_id: str,
    body: Optional[CancelRequest] = Body(None),
    user_id: str = Depends(get_current_user_id),
    services: PaymentServices = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    order = await _owned_order(session, order_id, user_id)

    try:
        outcome = await cancel_order(
            session,
            order,
            reason=body.reason if body else None,
            refund_timeframe=services.settings.refund_timeframe,
        )
    except CancellationError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": e.message, "current_status": e.status, "can_cancel": False},
        )

    return {
        "success": True,
        "message": "Order cancelled successfully",
        "order": _order_to_detail(outcome.order),
        "refund_info": outcome.refund_info.to_dict(),
    }


@router.get("/{order_id}/cancel", response_model=CancelCheck)
async def cancel_check(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    order = await _owned_order(session, order_id, user_id)
    return CancelCheck(
        can_cancel=can_cancel(order),
        status=order.status,
        order_number=order.order_number,
        hours_elapsed=_hours_since(order.created_at),
        reason=cancellation_block_reason(order.status),
    )
