"""
Payment dispatcher — routes a checkout payment to its provider flow.

For each payment request:

  1. Validation (currency, amount, method, contact details, method bounds)
  2. Pricing (order amount + method fee)
  3. Provider flow
       card           create a payment intent; completes client-side later
       mobile wallet  build a signed redirect; completes via callback/webhook
       cash on del.   confirmed immediately, no network
       bank transfer  pending until someone verifies the transfer
  4. Normalized PaymentResult

Invalid requests never reach a provider. Provider failures, timeouts and
unexpected errors are all turned into failed results; nothing raised by a
provider escapes process().

record_dispatch() performs the initial write of the outcome to the order.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.audit.logger import log_event
from checkout_engine.catalog.fees import to_decimal
from checkout_engine.catalog.methods import MethodCatalog, PaymentMethod, format_amount
from checkout_engine.config import Settings
from checkout_engine.engine.ledger import upsert_transaction
from checkout_engine.engine.payment_types import BankDetails, PaymentRequest, PaymentResult
from checkout_engine.engine.retry import ProviderError, call_provider
from checkout_engine.engine.validator import PaymentValidator
from checkout_engine.models.enums import OrderStatus, PaymentStatus, Provider, ResultStatus
from checkout_engine.models.order import Order
from checkout_engine.providers.base import CardGateway, PaymentIntentRequest
from checkout_engine.providers.wallets import WalletGateway

logger = logging.getLogger("checkout_engine.dispatcher")

GENERIC_FAILURE = "Payment could not be processed. Please try again or choose another payment method."
CARD_FAILURE = "Credit card payment failed. Please try again."

# A new attempt may follow an earlier failed one
DISPATCHABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PAYMENT_FAILED.value)

# Result status -> (order status, payment status) written after dispatch
DISPATCH_TRANSITIONS = {
    ResultStatus.CONFIRMED: (OrderStatus.CONFIRMED, PaymentStatus.PENDING),
    ResultStatus.PENDING: (OrderStatus.PENDING, PaymentStatus.PENDING),
    ResultStatus.PENDING_VERIFICATION: (OrderStatus.PENDING, PaymentStatus.PENDING_VERIFICATION),
    ResultStatus.FAILED: (OrderStatus.PAYMENT_FAILED, PaymentStatus.FAILED),
}


@dataclass(frozen=True)
class CardFlow:
    method: PaymentMethod


@dataclass(frozen=True)
class WalletFlow:
    method: PaymentMethod
    gateway: WalletGateway


@dataclass(frozen=True)
class CashOnDeliveryFlow:
    method: PaymentMethod


@dataclass(frozen=True)
class BankTransferFlow:
    method: PaymentMethod
    bank_details: BankDetails


ProviderFlow = Union[CardFlow, WalletFlow, CashOnDeliveryFlow, BankTransferFlow]


def _millis() -> int:
    return int(time.time() * 1000)


def can_dispatch(order: Order) -> bool:
    return order.status in DISPATCHABLE_STATUSES and order.payment_status != PaymentStatus.COMPLETED.value


def bank_details_for(settings: Settings, order_number: str) -> BankDetails:
    return BankDetails(
        bank_name=settings.bank_name,
        account_title=settings.bank_account_title,
        account_number=settings.bank_account_number,
        iban=settings.bank_iban,
        branch_code=settings.bank_branch_code,
        swift_code=settings.bank_swift_code,
        reference=order_number,
        instructions=(
            "Transfer the exact amount as shown in your order",
            "Use your order number as reference",
            "Order will be processed after payment confirmation",
        ),
    )


class PaymentDispatcher:
    """Validates, prices and dispatches checkout payments."""

    def __init__(
        self,
        settings: Settings,
        catalog: MethodCatalog,
        validator: PaymentValidator,
        card_gateway: CardGateway,
        wallets: dict[Provider, WalletGateway],
    ):
        self._settings = settings
        self._catalog = catalog
        self._validator = validator
        self._card_gateway = card_gateway
        self._wallets = wallets

    def _resolve_flow(self, method: PaymentMethod, request: PaymentRequest) -> ProviderFlow:
        if method.provider == Provider.STRIPE:
            return CardFlow(method=method)
        if method.provider in (Provider.JAZZCASH, Provider.EASYPAISA):
            return WalletFlow(method=method, gateway=self._wallets[method.provider])
        if method.provider == Provider.COD:
            return CashOnDeliveryFlow(method=method)
        if method.provider == Provider.BANK_TRANSFER:
            return BankTransferFlow(
                method=method,
                bank_details=bank_details_for(self._settings, request.order_number),
            )
        raise ValueError(f"No flow for provider {method.provider}")

    async def process(self, request: PaymentRequest) -> PaymentResult:
        validation = self._validator.validate(request)
        if not validation.is_valid:
            logger.info(
                "Rejected payment request for order %s: %s",
                request.order_number,
                "; ".join(validation.errors),
            )
            return PaymentResult.failed(
                validation.errors,
                message="Please correct the highlighted payment details",
                method_id=request.method_id,
            )

        amount = to_decimal(request.amount)
        method = self._catalog.get_method(request.method_id, amount)
        total = amount + method.fee

        try:
            flow = self._resolve_flow(method, request)
            if isinstance(flow, CardFlow):
                result = await self._process_card(flow, request, total)
            elif isinstance(flow, WalletFlow):
                result = self._process_wallet(flow, request, total)
            elif isinstance(flow, CashOnDeliveryFlow):
                result = self._process_cod(flow, request, total)
            else:
                result = self._process_bank_transfer(flow, request, total)
        except Exception:
            logger.exception(
                "Unexpected error dispatching %s payment for order %s",
                request.method_id,
                request.order_number,
            )
            return PaymentResult.failed(
                [GENERIC_FAILURE],
                message=GENERIC_FAILURE,
                method_id=request.method_id,
                error_type="unexpected",
            )

        result.fee = method.fee
        result.total_amount = total
        logger.info(
            "Dispatched %s payment for order %s: %s (%s)",
            method.id,
            request.order_number,
            result.status.value,
            format_amount(total, self._settings.currency),
        )
        return result

    async def _process_card(self, flow: CardFlow, request: PaymentRequest, total: Decimal) -> PaymentResult:
        address = request.shipping_address
        intent_request = PaymentIntentRequest(
            amount_minor=int((total * 100).to_integral_value(rounding=ROUND_HALF_UP)),
            currency=request.currency,
            description=f"Payment for Order #{request.order_number}",
            receipt_email=request.customer_email,
            metadata={
                "orderId": request.order_id,
                "orderNumber": request.order_number,
                "customerEmail": request.customer_email,
                "customerPhone": request.customer_phone or "",
                "shippingCity": address.city if address else "",
                "shippingProvince": address.province if address else "",
            },
            idempotency_key=f"{request.order_id}-{total}",
        )

        try:
            intent = await call_provider(
                self._card_gateway.create_payment_intent,
                intent_request,
                timeout=self._settings.provider_timeout_seconds,
                max_retries=self._settings.provider_max_retries,
            )
        except ProviderError as e:
            logger.error(
                "Card payment intent failed for order %s via %s: %s (status %s)",
                request.order_number,
                self._card_gateway.name,
                e,
                e.status_code,
            )
            return PaymentResult.failed(
                [CARD_FAILURE],
                message="Payment processing failed. Please check your card details and try again.",
                method_id=flow.method.id,
                error_type="provider",
            )

        return PaymentResult(
            success=True,
            status=ResultStatus.PENDING,
            message=(
                f"Payment initiated via Stripe. Confirm your card to pay "
                f"{format_amount(total, self._settings.currency)}."
            ),
            method_id=flow.method.id,
            transaction_id=intent.intent_id,
            requires_action=True,
            action_type="verification",
            client_secret=intent.client_secret,
        )

    def _process_wallet(self, flow: WalletFlow, request: PaymentRequest, total: Decimal) -> PaymentResult:
        checkout = flow.gateway.build_checkout(request, total)
        return PaymentResult(
            success=True,
            status=ResultStatus.PENDING,
            message=(
                f"Payment initiated via {flow.gateway.display_name} for "
                f"{format_amount(total, self._settings.currency)}. "
                "You will be redirected to complete payment."
            ),
            method_id=flow.method.id,
            transaction_id=checkout.transaction_id,
            requires_action=True,
            action_type="redirect",
            redirect_url=checkout.redirect_url,
            redirect_payload=checkout.payload,
        )

    def _process_cod(self, flow: CashOnDeliveryFlow, request: PaymentRequest, total: Decimal) -> PaymentResult:
        return PaymentResult(
            success=True,
            status=ResultStatus.CONFIRMED,
            message=(
                f"Cash on Delivery order confirmed for "
                f"{format_amount(total, self._settings.currency)}. Please keep exact change ready."
            ),
            method_id=flow.method.id,
            transaction_id=f"cod_{request.order_number}_{_millis()}",
        )

    def _process_bank_transfer(
        self, flow: BankTransferFlow, request: PaymentRequest, total: Decimal
    ) -> PaymentResult:
        return PaymentResult(
            success=True,
            status=ResultStatus.PENDING_VERIFICATION,
            message=(
                f"Order placed, pending bank transfer verification. Please transfer "
                f"{format_amount(total, self._settings.currency)} using order "
                f"#{request.order_number} as reference."
            ),
            method_id=flow.method.id,
            transaction_id=f"bt_{request.order_number}_{_millis()}",
            requires_action=True,
            action_type="manual_confirmation",
            bank_details=flow.bank_details,
        )


async def record_dispatch(
    session: AsyncSession,
    request: PaymentRequest,
    result: PaymentResult,
) -> bool:
    """
    Write the dispatch outcome to the order.

    The order only moves if it is still pending (or its last attempt failed)
    and its payment has not already been completed by a faster callback. Validation failures leave
    the order untouched. Returns whether the order row was updated.
    """
    if result.error_type == "validation":
        return False

    order_status, payment_status = DISPATCH_TRANSITIONS[result.status]
    values = {
        "status": order_status.value,
        "payment_status": payment_status.value,
        "payment_method": request.method_id,
        "updated_at": datetime.now(timezone.utc),
    }
    if result.transaction_id:
        values["transaction_id"] = result.transaction_id

    outcome = await session.execute(
        update(Order)
        .where(
            Order.id == request.order_id,
            Order.status.in_(DISPATCHABLE_STATUSES),
            Order.payment_status != PaymentStatus.COMPLETED.value,
        )
        .values(**values)
    )
    applied = outcome.rowcount == 1

    if applied and result.transaction_id:
        await upsert_transaction(
            session,
            order_id=request.order_id,
            payment_method=request.method_id,
            transaction_id=result.transaction_id,
            status=payment_status.value,
            amount=result.total_amount,
            gateway_response={"dispatch_status": result.status.value, "message": result.message},
        )

    await log_event(session, "payment_dispatched", order_id=request.order_id, details={
        "method": request.method_id,
        "result": result.status.value,
        "transaction_id": result.transaction_id,
        "total": result.total_amount,
        "applied": applied,
    })
    await session.commit()

    if not applied:
        logger.warning(
            "Order %s no longer awaits payment; dispatch outcome %s not written",
            request.order_number,
            result.status.value,
        )
    return applied
