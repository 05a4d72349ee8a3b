"""Payment transaction log keyed by provider transaction id."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.models.order import PaymentTransaction


async def get_transaction(session: AsyncSession, transaction_id: str) -> Optional[PaymentTransaction]:
    result = await session.execute(
        select(PaymentTransaction).where(PaymentTransaction.transaction_id == transaction_id)
    )
    return result.scalar_one_or_none()


async def upsert_transaction(
    session: AsyncSession,
    order_id: str,
    payment_method: str,
    transaction_id: str,
    status: str,
    amount: Optional[Decimal] = None,
    gateway_response: Optional[dict[str, Any]] = None,
) -> PaymentTransaction:
    """
    Insert or update the row for transaction_id.

    A redelivered notification updates status and payload in place; the
    unique constraint on transaction_id backs this up at the database level.
    """
    raw = json.dumps(gateway_response, default=str) if gateway_response is not None else None
    txn = await get_transaction(session, transaction_id)
    if txn is None:
        txn = PaymentTransaction(
            order_id=order_id,
            payment_method=payment_method,
            transaction_id=transaction_id,
            amount=amount,
            status=status,
            gateway_response=raw,
        )
        session.add(txn)
    else:
        txn.status = status
        if amount is not None:
            txn.amount = amount
        if raw is not None:
            txn.gateway_response = raw
        txn.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return txn
