"""
Stripe card processing through the official SDK.

Outbound: payment intents are created with ``stripe.PaymentIntent.create_async``;
the browser confirms them with the returned client secret, so a card payment
never completes synchronously. SDK-level retries are switched off because
``call_provider`` owns the retry and timeout budget.

Inbound: webhook events are authenticated with ``stripe.Webhook.construct_event``
against the endpoint's signing secret and replay tolerance.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Mapping

import stripe

from checkout_engine.engine.retry import (
    PermanentError,
    ProviderError,
    RateLimitError,
    error_for_status,
)
from checkout_engine.models.enums import Provider
from checkout_engine.providers.base import (
    CardGateway,
    InvalidSignatureError,
    MalformedNotificationError,
    NotificationSource,
    PaymentIntentRequest,
    PaymentIntentResponse,
    ProviderNotification,
)

logger = logging.getLogger("checkout_engine.providers.stripe")


def provider_error_from_stripe(error: stripe.StripeError) -> ProviderError:
    """Translate an SDK exception into the retry policy's error types."""
    message = f"Stripe: {error.user_message or error}"
    if isinstance(error, stripe.CardError):
        return PermanentError(message, status_code=error.http_status or 402)
    if isinstance(error, stripe.RateLimitError):
        return RateLimitError(message)
    if isinstance(error, stripe.APIConnectionError):
        return ProviderError(message, status_code=503, retriable=True)
    if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError, stripe.InvalidRequestError)):
        return PermanentError(message, status_code=error.http_status or 400)
    return error_for_status(error.http_status or 500, message)


class StripeCardGateway(CardGateway):
    """Creates payment intents through the Stripe API."""

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("Stripe secret key is not configured")
        self._secret_key = secret_key

    @property
    def name(self) -> str:
        return "stripe"

    async def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResponse:
        params: dict[str, Any] = {
            "amount": request.amount_minor,
            "currency": request.currency.lower(),
            "automatic_payment_methods": {"enabled": True},
            "metadata": dict(request.metadata),
        }
        if request.description:
            params["description"] = request.description
        if request.receipt_email:
            params["receipt_email"] = request.receipt_email
        if request.idempotency_key:
            params["idempotency_key"] = request.idempotency_key

        try:
            intent = await stripe.PaymentIntent.create_async(
                api_key=self._secret_key,
                max_network_retries=0,
                **params,
            )
        except stripe.StripeError as e:
            raise provider_error_from_stripe(e) from e

        if not intent.id or not intent.client_secret:
            raise ProviderError("Stripe returned an incomplete payment intent", retriable=False)

        return PaymentIntentResponse(
            intent_id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status or "",
            provider=self.name,
        )


class StripeWebhookSource(NotificationSource):
    """
    Parses Stripe webhook deliveries.

    Payload keys: ``body`` (raw request body, str or bytes) and
    ``signature`` (the Stripe-Signature header).
    """

    provider = Provider.STRIPE
    channel = "webhook"

    def __init__(self, webhook_secret: str, tolerance_seconds: int = 300):
        self._secret = webhook_secret
        self._tolerance = tolerance_seconds

    def parse(self, payload: Mapping[str, Any]) -> ProviderNotification:
        if not self._secret:
            raise InvalidSignatureError("Stripe webhook secret is not configured")
        body = payload.get("body") or ""
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        signature = payload.get("signature") or ""
        if not signature:
            raise InvalidSignatureError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(body, signature, self._secret, tolerance=self._tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(f"Stripe signature rejected: {e}") from e
        except ValueError as e:
            raise MalformedNotificationError(f"Unreadable Stripe event: {e}") from e

        try:
            raw = json.loads(body)
            event_type = raw["type"]
            intent = raw["data"]["object"]
            intent_id = intent["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedNotificationError(f"Unreadable Stripe event: {e}") from e

        metadata = intent.get("metadata") or {}
        amount = intent.get("amount")
        logger.debug("Verified Stripe event %s (%s)", event.id, event_type)
        return ProviderNotification(
            provider=self.provider,
            channel=self.channel,
            transaction_id=intent_id,
            status_code=event_type,
            order_number=metadata.get("orderNumber"),
            order_id=metadata.get("orderId"),
            amount=Decimal(amount) / 100 if isinstance(amount, int) else None,
            raw=raw,
        )
