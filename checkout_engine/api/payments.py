"""
Payment endpoints.

GET  /payments/methods             — Priced payment methods for an order amount.
POST /payments/process             — Validate and dispatch a checkout payment.
POST /payments/stripe/webhook      — Stripe payment intent events.
POST /payments/jazzcash/callback   — JazzCash form post; redirects the browser.
GET  /payments/jazzcash/return     — Browser return from JazzCash.
POST /payments/easypaisa/callback  — EasyPaisa return notification.
GET  /payments/easypaisa/callback  — Browser return from EasyPaisa.
POST /payments/easypaisa/webhook   — EasyPaisa server notification.
"""

from decimal import Decimal
from typing import Any, Mapping, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.api.deps import get_services
from checkout_engine.database import get_session
from checkout_engine.engine.dispatcher import can_dispatch, record_dispatch
from checkout_engine.engine.payment_types import PaymentRequest, PaymentResult, ShippingAddress
from checkout_engine.engine.reconciler import ReconcileOutcome, ReconciliationError
from checkout_engine.models.enums import PaymentStatus, ReconcileAction
from checkout_engine.models.order import Order
from checkout_engine.providers.base import NotificationSource, RejectedNotificationError
from checkout_engine.services import PaymentServices

router = APIRouter(prefix="/payments", tags=["payments"])

ORDER_NOT_PAYABLE = "This order is no longer awaiting payment"


class PaymentMethodOut(BaseModel):
    id: str
    provider: str
    name: str
    description: str
    fee: Decimal
    total: Decimal
    available: bool
    processing_time: str
    min_amount: Decimal
    max_amount: Decimal
    instructions: list[str] = []


class ShippingAddressIn(BaseModel):
    name: str = ""
    address: str = ""
    city: str = ""
    province: str = ""
    postal_code: str = ""


class ProcessPaymentIn(BaseModel):
    order_id: str
    amount: Optional[Decimal] = None
    method_id: str = Field(alias="payment_method")
    customer_email: str
    currency: str = "PKR"
    customer_phone: Optional[str] = None
    shipping_address: Optional[ShippingAddressIn] = None

    model_config = {"populate_by_name": True}


def _outcome_body(outcome: ReconcileOutcome) -> dict[str, Any]:
    return {
        "status": "success" if outcome.action == ReconcileAction.APPLIED else outcome.action.value,
        "message": outcome.message,
        "order_number": outcome.order_number,
        "transaction_id": outcome.transaction_id,
        "payment_status": outcome.payment_status,
    }


async def _reconcile(
    services: PaymentServices,
    session: AsyncSession,
    source: NotificationSource,
    payload: Mapping[str, Any],
) -> ReconcileOutcome:
    """Run the reconciler, translating its errors to HTTP statuses."""
    try:
        return await services.reconciler.reconcile(session, source, payload)
    except RejectedNotificationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ReconciliationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Notification could not be processed",
        )


async def _json_payload(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected a JSON object")
    return payload


@router.get("/methods", response_model=list[PaymentMethodOut])
async def list_payment_methods(
    amount: Decimal = Query(..., ge=0, description="Order amount before fees"),
    services: PaymentServices = Depends(get_services),
):
    """All payment methods with fee and availability for ``amount``."""
    catalog = services.catalog
    return [
        PaymentMethodOut(
            id=m.id,
            provider=m.provider.value,
            name=m.name,
            description=m.description,
            fee=m.fee,
            total=amount + m.fee,
            available=m.available,
            processing_time=m.processing_time,
            min_amount=m.min_amount,
            max_amount=m.max_amount,
            instructions=catalog.payment_instructions(m.id, amount),
        )
        for m in catalog.list_methods(amount)
    ]


@router.post("/process")
async def process_payment(
    body: ProcessPaymentIn,
    services: PaymentServices = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    """
    Dispatch a payment for an existing order.

    The order's stored total is what gets charged; a client-sent amount
    that differs from it is rejected. Validation and provider failures come
    back as a structured result with success=false rather than an HTTP
    error, so checkout can show them inline.
    """
    order = await session.get(Order, body.order_id)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order not found: {body.order_id}")
    if not can_dispatch(order):
        return PaymentResult.failed(
            [ORDER_NOT_PAYABLE], method_id=body.method_id, error_type="order_state"
        ).to_dict()

    address = body.shipping_address
    request = PaymentRequest(
        order_id=order.id,
        order_number=order.order_number,
        amount=body.amount if body.amount is not None else order.total_amount,
        currency=body.currency,
        method_id=body.method_id,
        customer_email=body.customer_email,
        customer_phone=body.customer_phone,
        shipping_address=ShippingAddress(**address.model_dump()) if address else None,
        order_total=order.total_amount,
    )

    result = await services.dispatcher.process(request)
    recorded = await record_dispatch(session, request, result)
    if result.success and not recorded:
        # Another attempt or a callback moved the order while this one ran
        return PaymentResult.failed(
            [ORDER_NOT_PAYABLE], method_id=body.method_id, error_type="order_state"
        ).to_dict()
    return result.to_dict()


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    services: PaymentServices = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    payload = {
        "body": await request.body(),
        "signature": request.headers.get("stripe-signature", ""),
    }
    outcome = await _reconcile(services, session, services.stripe_webhook, payload)
    return {"received": True, **_outcome_body(outcome)}


@router.post("/jazzcash/callback")
async def jazzcash_callback(
    request: Request,
    services: PaymentServices = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    """JazzCash posts the result form here, then the customer is redirected on."""
    form = await request.form()
    outcome = await _reconcile(services, session, services.jazzcash_callback, dict(form))

    gateway = services.jazzcash
    if outcome.payment_status == PaymentStatus.COMPLETED.value:
        target = gateway.return_redirect("SUCCESS", outcome.order_id, outcome.transaction_id)
    elif outcome.payment_status in (PaymentStatus.PENDING.value, PaymentStatus.PENDING_VERIFICATION.value):
        site = services.settings.site_url.rstrip("/")
        target = f"{site}/account/orders/{outcome.order_id}?payment=pending"
    else:
        target = gateway.return_redirect("FAILED")
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/jazzcash/return")
async def jazzcash_return(
    status_: Optional[str] = Query(None, alias="status"),
    order_id: Optional[str] = Query(None),
    transaction_id: Optional[str] = Query(None),
    services: PaymentServices = Depends(get_services),
):
    target = services.jazzcash.return_redirect(status_, order_id, transaction_id)
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/easypaisa/callback")
async def easypaisa_callback(
    request: Request,
    services: PaymentServices = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    payload = await _json_payload(request)
    outcome = await _reconcile(services, session, services.easypaisa_callback, payload)
    return _outcome_body(outcome)


@router.get("/easypaisa/callback")
async def easypaisa_return(
    status_: Optional[str] = Query(None, alias="status"),
    order_id: Optional[str] = Query(None),
    transaction_id: Optional[str] = Query(None),
    services: PaymentServices = Depends(get_services),
):
    target = services.easypaisa.return_redirect(status_, order_id, transaction_id)
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/easypaisa/webhook")
async def easypaisa_webhook(
    request: Request,
    services: PaymentServices = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    payload = await _json_payload(request)
    outcome = await _reconcile(services, session, services.easypaisa_webhook, payload)
    return _outcome_body(outcome)
