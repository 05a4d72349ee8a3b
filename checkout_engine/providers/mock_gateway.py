"""
Mock card gateway for local development and tests.

Mimics the card processor's payment-intent API:
  - Configurable latency
  - Configurable failure rate (rate limits, transient 503s, declines)
  - Realistic intent ids and client secrets

Used whenever no Stripe secret key is configured.
"""

import asyncio
import random
import uuid

from checkout_engine.engine.retry import PermanentError, ProviderError, RateLimitError
from checkout_engine.providers.base import CardGateway, PaymentIntentRequest, PaymentIntentResponse


class MockCardGateway(CardGateway):
    """In-process stand-in for the card processor."""

    def __init__(self, failure_rate: float = 0.0, latency_ms: int = 0):
        self._failure_rate = failure_rate
        self._latency_ms = latency_ms
        self.requests: list[PaymentIntentRequest] = []

    @property
    def name(self) -> str:
        return "mock_card"

    async def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResponse:
        self.requests.append(request)

        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        roll = random.random()

        if roll < self._failure_rate * 0.3:
            raise RateLimitError(message="Mock rate limit - too many requests", retry_after=0.1)

        if roll < self._failure_rate * 0.6:
            raise ProviderError(
                message="Mock transient error - service temporarily unavailable",
                status_code=503,
                retriable=True,
            )

        if roll < self._failure_rate:
            raise PermanentError(message="Mock decline - card was declined", status_code=402)

        intent_id = f"pi_mock_{uuid.uuid4().hex[:20]}"
        return PaymentIntentResponse(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:12]}",
            status="requires_payment_method",
            provider=self.name,
        )
