"""Tests for the card gateways, retry policy and notifiers."""

import json
from decimal import Decimal

import httpx
import pytest
import stripe

from checkout_engine.engine.retry import (
    PermanentError,
    ProviderError,
    RateLimitError,
    error_for_status,
    with_retry,
)
from checkout_engine.notifications import HttpNotifier, LogNotifier, build_notifier
from checkout_engine.providers.base import (
    InvalidSignatureError,
    MalformedNotificationError,
    PaymentIntentRequest,
)
from checkout_engine.providers.mock_gateway import MockCardGateway
from checkout_engine.providers.stripe_gateway import StripeCardGateway, StripeWebhookSource
from tests.conftest import STRIPE_WEBHOOK_SECRET, stripe_signature


def _intent_request():
    return PaymentIntentRequest(
        amount_minor=517500,
        currency="PKR",
        description="Payment for Order #ORD-1001",
        receipt_email="ayesha@example.pk",
        metadata={"orderId": "order-1", "orderNumber": "ORD-1001"},
        idempotency_key="order-1-5175",
    )


class TestStripeCardGateway:
    @pytest.mark.asyncio
    async def test_creates_payment_intent(self, monkeypatch):
        seen = {}

        async def create_async(**params):
            seen.update(params)
            return stripe.PaymentIntent.construct_from({
                "id": "pi_123",
                "client_secret": "pi_123_secret_abc",
                "status": "requires_payment_method",
            }, "sk_test_123")

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", create_async)
        intent = await StripeCardGateway("sk_test_123").create_payment_intent(_intent_request())

        assert intent.intent_id == "pi_123"
        assert intent.client_secret == "pi_123_secret_abc"
        assert intent.provider == "stripe"
        assert seen["api_key"] == "sk_test_123"
        assert seen["idempotency_key"] == "order-1-5175"
        assert seen["max_network_retries"] == 0
        assert seen["amount"] == 517500
        assert seen["currency"] == "pkr"
        assert seen["metadata"]["orderNumber"] == "ORD-1001"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,cls,retriable", [
        (stripe.CardError("Your card was declined.", None, "card_declined", http_status=402), PermanentError, False),
        (stripe.RateLimitError("Too many requests", http_status=429), RateLimitError, True),
        (stripe.APIConnectionError("connection refused"), ProviderError, True),
        (stripe.InvalidRequestError("No such customer", "customer", http_status=400), PermanentError, False),
        (stripe.APIError("Internal error", http_status=500), ProviderError, True),
    ])
    async def test_sdk_errors_are_mapped(self, monkeypatch, error, cls, retriable):
        async def create_async(**params):
            raise error

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", create_async)
        with pytest.raises(ProviderError) as exc_info:
            await StripeCardGateway("sk_test_123").create_payment_intent(_intent_request())

        assert type(exc_info.value) is cls
        assert exc_info.value.retriable is retriable
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_declined_card_keeps_status_and_message(self, monkeypatch):
        async def create_async(**params):
            raise stripe.CardError("Your card was declined.", None, "card_declined", http_status=402)

        monkeypatch.setattr(stripe.PaymentIntent, "create_async", create_async)
        with pytest.raises(PermanentError) as exc_info:
            await StripeCardGateway("sk_test_123").create_payment_intent(_intent_request())

        assert exc_info.value.status_code == 402
        assert "declined" in str(exc_info.value)

    def test_requires_secret_key(self):
        with pytest.raises(ValueError):
            StripeCardGateway("")


class TestStripeWebhookSource:
    def test_parses_verified_event(self):
        body = json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {"object": {
                "id": "pi_123",
                "object": "payment_intent",
                "amount": 517500,
                "metadata": {"orderId": "order-1", "orderNumber": "ORD-1001"},
            }},
        })
        source = StripeWebhookSource(STRIPE_WEBHOOK_SECRET)

        notification = source.parse({"body": body.encode(), "signature": stripe_signature(body)})

        assert notification.transaction_id == "pi_123"
        assert notification.status_code == "payment_intent.succeeded"
        assert notification.order_id == "order-1"
        assert notification.order_number == "ORD-1001"
        assert notification.amount == Decimal("5175")

    def test_missing_secret_rejects_everything(self):
        body = '{"id": "evt_1"}'
        with pytest.raises(InvalidSignatureError):
            StripeWebhookSource("").parse({"body": body, "signature": stripe_signature(body)})

    def test_missing_header_is_rejected(self):
        with pytest.raises(InvalidSignatureError):
            StripeWebhookSource(STRIPE_WEBHOOK_SECRET).parse({"body": "{}", "signature": ""})

    def test_signed_garbage_is_malformed(self):
        body = "not json"
        with pytest.raises(MalformedNotificationError):
            StripeWebhookSource(STRIPE_WEBHOOK_SECRET).parse({"body": body, "signature": stripe_signature(body)})


@pytest.mark.asyncio
async def test_mock_gateway_returns_intent():
    gateway = MockCardGateway()
    intent = await gateway.create_payment_intent(_intent_request())

    assert intent.intent_id.startswith("pi_mock_")
    assert intent.client_secret.startswith(intent.intent_id + "_secret_")
    assert len(gateway.requests) == 1


@pytest.mark.asyncio
async def test_mock_gateway_always_fails_at_full_rate():
    gateway = MockCardGateway(failure_rate=1.0)
    with pytest.raises(ProviderError):
        await gateway.create_payment_intent(_intent_request())


class TestRetry:
    @pytest.mark.parametrize("status,cls,retriable", [
        (429, RateLimitError, True),
        (503, ProviderError, True),
        (500, ProviderError, True),
        (400, PermanentError, False),
        (402, PermanentError, False),
    ])
    def test_error_for_status(self, status, cls, retriable):
        error = error_for_status(status, "boom")
        assert type(error) is cls
        assert error.retriable is retriable

    @pytest.mark.asyncio
    async def test_recovers_after_transient_error(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise ProviderError("unavailable", status_code=503)
            return "ok"

        assert await with_retry(flaky, max_retries=2, base_delay=0) == "ok"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        attempts = []

        async def declined():
            attempts.append(1)
            raise PermanentError("declined")

        with pytest.raises(PermanentError):
            await with_retry(declined, max_retries=3, base_delay=0)
        assert len(attempts) == 1


class TestNotifiers:
    def test_build_notifier(self):
        assert isinstance(build_notifier(""), LogNotifier)
        assert isinstance(build_notifier("https://notify.example.pk/events"), HttpNotifier)

    @pytest.mark.asyncio
    async def test_http_notifier_posts_event(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(202)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = HttpNotifier("https://notify.example.pk/events", client=client)
            await notifier.send("payment_confirmed", "ORD-1001", {"provider": "jazzcash"})

        assert received == [{
            "event": "payment_confirmed",
            "order_number": "ORD-1001",
            "context": {"provider": "jazzcash"},
        }]

    @pytest.mark.asyncio
    async def test_http_notifier_raises_on_error_status(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))) as client:
            notifier = HttpNotifier("https://notify.example.pk/events", client=client)
            with pytest.raises(httpx.HTTPStatusError):
                await notifier.send("payment_confirmed", "ORD-1001", {})
