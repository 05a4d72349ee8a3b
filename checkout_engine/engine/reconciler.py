"""
Payment reconciler — applies asynchronous provider notifications to orders.

For each notification:

  1. Authenticate and parse it (provider-specific NotificationSource)
  2. Find the order by business key (order number) or internal id
  3. Map the provider status code to a canonical (payment, order) status
  4. Skip replays of an already-completed payment, and hold a success that
     paid less than the amount due for manual verification
  5. Move the order with a compare-and-set update and upsert the
     transaction row keyed by the provider transaction id
  6. Announce completed payments to the notifier

Outcomes are reported, not raised, for the routine cases: unknown orders and
duplicates are acknowledged so providers stop retrying. Rejected
notifications (bad signature, malformed) raise RejectedNotificationError and
are never retried by us. Anything failing while touching the database is
rolled back and raised as ReconciliationError so the provider redelivers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.audit.logger import log_event
from checkout_engine.engine.ledger import get_transaction, upsert_transaction
from checkout_engine.models.enums import OrderStatus, PaymentStatus, Provider, ReconcileAction
from checkout_engine.models.order import Order
from checkout_engine.notifications import Notifier
from checkout_engine.providers.base import (
    NotificationSource,
    ProviderNotification,
    RejectedNotificationError,
)

logger = logging.getLogger("checkout_engine.reconciler")

COMPLETED = (PaymentStatus.COMPLETED, OrderStatus.CONFIRMED)
PENDING = (PaymentStatus.PENDING, OrderStatus.PENDING)
FAILED = (PaymentStatus.FAILED, OrderStatus.PAYMENT_FAILED)
UNDERPAID = (PaymentStatus.PENDING_VERIFICATION, OrderStatus.PENDING)

# Provider status code -> (payment status, order status)
STATUS_TABLES: dict[Provider, dict[str, tuple[PaymentStatus, OrderStatus]]] = {
    Provider.JAZZCASH: {
        "000": COMPLETED,
        "124": PENDING,
    },
    Provider.EASYPAISA: {
        "SUCCESS": COMPLETED,
        "0000": COMPLETED,
        "PENDING": PENDING,
        "0001": PENDING,
        "FAILED": FAILED,
        "CANCELLED": FAILED,
        "0002": FAILED,
        "1001": FAILED,
        "1002": FAILED,
        "1003": FAILED,
        "2001": FAILED,
        "2002": FAILED,
        "3001": FAILED,
        "9999": FAILED,
    },
    Provider.STRIPE: {
        "payment_intent.succeeded": COMPLETED,
        "payment_intent.processing": PENDING,
        "payment_intent.payment_failed": FAILED,
        "payment_intent.canceled": FAILED,
    },
}

# Fallback for codes missing from the table; None means "not a payment status event"
DEFAULT_STATUS: dict[Provider, Optional[tuple[PaymentStatus, OrderStatus]]] = {
    Provider.JAZZCASH: FAILED,
    Provider.EASYPAISA: PENDING,
    Provider.STRIPE: None,
}

# Order statuses a notification may move the order out of
VALID_SOURCES: dict[OrderStatus, tuple[OrderStatus, ...]] = {
    OrderStatus.CONFIRMED: (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED),
    OrderStatus.PENDING: (OrderStatus.PENDING,),
    OrderStatus.PAYMENT_FAILED: (OrderStatus.PENDING,),
}


class ReconciliationError(Exception):
    """Transient failure while applying a notification; the provider should retry."""


@dataclass
class ReconcileOutcome:
    action: ReconcileAction
    message: str
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_status: Optional[str] = None
    order_status: Optional[str] = None


def map_status(provider: Provider, status_code: str) -> Optional[tuple[PaymentStatus, OrderStatus]]:
    """Canonical (payment, order) status for a provider code."""
    table = STATUS_TABLES.get(provider, {})
    key = status_code.upper() if provider == Provider.EASYPAISA else status_code
    if key in table:
        return table[key]
    return DEFAULT_STATUS.get(provider)


class PaymentReconciler:
    """Applies verified provider notifications to orders and the transaction log."""

    def __init__(self, notifier: Notifier):
        self._notifier = notifier

    async def reconcile(
        self,
        session: AsyncSession,
        source: NotificationSource,
        payload: Mapping[str, Any],
    ) -> ReconcileOutcome:
        try:
            notification = source.parse(payload)
        except RejectedNotificationError as e:
            logger.warning(
                "Rejected %s %s notification: %s",
                source.provider.value,
                source.channel,
                e,
            )
            await self._record_rejection(session, source, e)
            raise

        try:
            outcome = await self._apply(session, notification)
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.exception(
                "Failed to reconcile %s transaction %s",
                notification.provider.value,
                notification.transaction_id,
            )
            raise ReconciliationError(str(e)) from e

        if outcome.action == ReconcileAction.APPLIED and outcome.payment_status == PaymentStatus.COMPLETED.value:
            await self._notify_completed(notification, outcome)
        return outcome

    async def _record_rejection(
        self, session: AsyncSession, source: NotificationSource, error: Exception
    ) -> None:
        # Rejections never mutate orders; the audit row is best effort.
        try:
            await log_event(session, "webhook_rejected", details={
                "provider": source.provider.value,
                "channel": source.channel,
                "reason": str(error),
            })
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Could not record rejected %s notification", source.provider.value)

    async def _find_order(self, session: AsyncSession, notification: ProviderNotification) -> Optional[Order]:
        if notification.order_number:
            result = await session.execute(
                select(Order)
                .where(Order.order_number == notification.order_number)
                .execution_options(populate_existing=True)
            )
            order = result.scalar_one_or_none()
            if order is not None:
                return order
        if notification.order_id:
            return await session.get(Order, notification.order_id, populate_existing=True)
        return None

    async def _amount_due(
        self, session: AsyncSession, order: Order, notification: ProviderNotification
    ) -> Optional[Decimal]:
        """The total recorded at dispatch (fee included), else the order total."""
        txn = await get_transaction(session, notification.transaction_id)
        if txn is not None and txn.amount is not None:
            return txn.amount
        return order.total_amount

    async def _apply(self, session: AsyncSession, notification: ProviderNotification) -> ReconcileOutcome:
        provider = notification.provider.value
        order = await self._find_order(session, notification)

        await log_event(session, "webhook_received", order_id=order.id if order else None, details={
            "provider": provider,
            "channel": notification.channel,
            "transaction_id": notification.transaction_id,
            "status_code": notification.status_code,
            "order_number": notification.order_number,
            "amount": notification.amount,
        })

        if order is None:
            logger.warning(
                "%s notification for unknown order %s (transaction %s); acknowledging",
                provider,
                notification.order_number or notification.order_id,
                notification.transaction_id,
            )
            return ReconcileOutcome(
                action=ReconcileAction.IGNORED,
                message="Order not found",
                order_number=notification.order_number,
                transaction_id=notification.transaction_id,
            )

        mapped = map_status(notification.provider, notification.status_code)
        if mapped is None:
            logger.info("Ignoring %s event %s for order %s", provider, notification.status_code, order.order_number)
            return ReconcileOutcome(
                action=ReconcileAction.IGNORED,
                message=f"Unhandled event {notification.status_code}",
                order_id=order.id,
                order_number=order.order_number,
                transaction_id=notification.transaction_id,
            )
        payment_status, order_status = mapped

        if (
            order.payment_status == PaymentStatus.COMPLETED.value
            and payment_status == PaymentStatus.COMPLETED
        ):
            logger.info(
                "Payment for order %s already completed; %s replay ignored",
                order.order_number,
                provider,
            )
            return ReconcileOutcome(
                action=ReconcileAction.DUPLICATE,
                message="Payment already processed",
                order_id=order.id,
                order_number=order.order_number,
                transaction_id=notification.transaction_id,
                payment_status=order.payment_status,
                order_status=order.status,
            )

        held_for_review = False
        if payment_status == PaymentStatus.COMPLETED:
            due = await self._amount_due(session, order, notification)
            if notification.amount is not None and due is not None and notification.amount < due:
                logger.warning(
                    "%s reported %s for order %s but %s is due; holding for verification",
                    provider,
                    notification.amount,
                    order.order_number,
                    due,
                )
                await log_event(session, "payment_amount_mismatch", order_id=order.id, details={
                    "provider": provider,
                    "transaction_id": notification.transaction_id,
                    "paid": notification.amount,
                    "due": due,
                })
                payment_status, order_status = UNDERPAID
                held_for_review = True

        previous = {"status": order.status, "payment_status": order.payment_status}
        now = datetime.now(timezone.utc)
        values = {
            "status": order_status.value,
            "payment_status": payment_status.value,
            "payment_method": order.payment_method or provider,
            "transaction_id": notification.transaction_id,
            "updated_at": now,
        }
        if payment_status == PaymentStatus.COMPLETED:
            values["payment_confirmed_at"] = now

        sources = [s.value for s in VALID_SOURCES[mapped[1]]]
        result = await session.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.status.in_(sources),
                Order.payment_status != PaymentStatus.COMPLETED.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        await session.refresh(order)

        await upsert_transaction(
            session,
            order_id=order.id,
            payment_method=order.payment_method or provider,
            transaction_id=notification.transaction_id,
            status=payment_status.value,
            amount=notification.amount,
            gateway_response=notification.raw,
        )

        if not applied:
            logger.warning(
                "Order %s is %s/%s; %s status %s recorded without moving the order",
                order.order_number,
                order.status,
                order.payment_status,
                provider,
                notification.status_code,
            )
            return ReconcileOutcome(
                action=ReconcileAction.STALE,
                message="Order is no longer awaiting this payment update",
                order_id=order.id,
                order_number=order.order_number,
                transaction_id=notification.transaction_id,
                payment_status=order.payment_status,
                order_status=order.status,
            )

        await log_event(session, "payment_status_applied", order_id=order.id, details={
            "provider": provider,
            "transaction_id": notification.transaction_id,
            "from": previous,
            "to": {"status": order_status.value, "payment_status": payment_status.value},
        })

        return ReconcileOutcome(
            action=ReconcileAction.APPLIED,
            message=(
                "Paid amount is below the amount due; held for verification"
                if held_for_review
                else "Webhook processed successfully"
            ),
            order_id=order.id,
            order_number=order.order_number,
            transaction_id=notification.transaction_id,
            payment_status=payment_status.value,
            order_status=order_status.value,
        )

    async def _notify_completed(self, notification: ProviderNotification, outcome: ReconcileOutcome) -> None:
        try:
            await self._notifier.send("payment_confirmed", outcome.order_number or "", {
                "order_id": outcome.order_id,
                "provider": notification.provider.value,
                "transaction_id": notification.transaction_id,
                "amount": str(notification.amount) if notification.amount is not None else None,
            })
        except Exception:
            logger.exception(
                "Payment confirmation notification failed for order %s",
                outcome.order_number,
            )
