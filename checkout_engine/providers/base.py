"""
Provider interfaces.

Two kinds of provider integration exist:

  - CardGateway: outbound. Creates a payment intent that the browser later
    confirms. Implemented with the Stripe SDK and by a mock.
  - NotificationSource: inbound. Authenticates and parses an asynchronous
    provider notification (callback or webhook) into a ProviderNotification
    the reconciler understands. One source per provider channel.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional

from checkout_engine.models.enums import Provider


@dataclass
class PaymentIntentRequest:
    """Request to create a card payment intent."""

    amount_minor: int  # amount in the smallest currency unit (paisa)
    currency: str  # ISO 4217, lower-cased for the gateway
    description: str = ""
    receipt_email: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    idempotency_key: Optional[str] = None


@dataclass
class PaymentIntentResponse:
    """Response from creating a payment intent."""

    intent_id: str
    client_secret: str
    status: str  # e.g. "requires_payment_method"
    provider: str


class CardGateway(ABC):
    """Abstract base class for card processors."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g. 'stripe')."""
        ...

    @abstractmethod
    async def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResponse:
        """
        Create a payment intent to be confirmed client-side.

        Raises:
            ProviderError: On transient failure (will be retried).
            PermanentError: On non-retriable failure.
        """
        ...


class RejectedNotificationError(Exception):
    """A notification that must not be processed and must not be retried."""


class InvalidSignatureError(RejectedNotificationError):
    """Signature or secure hash did not verify."""


class MalformedNotificationError(RejectedNotificationError):
    """Required fields are missing or unparsable."""


@dataclass
class ProviderNotification:
    """A verified provider notification, normalized across providers."""

    provider: Provider
    channel: str  # "callback", "webhook"
    transaction_id: str
    status_code: str
    order_number: Optional[str] = None
    order_id: Optional[str] = None
    amount: Optional[Decimal] = None
    raw: dict[str, Any] = field(default_factory=dict)


class NotificationSource(ABC):
    """Authenticates and parses inbound notifications for one provider channel."""

    provider: Provider
    channel: str

    @abstractmethod
    def parse(self, payload: Mapping[str, Any]) -> ProviderNotification:
        """
        Verify and normalize a payload.

        Raises:
            InvalidSignatureError: If authenticity cannot be established.
            MalformedNotificationError: If required fields are missing.
        """
        ...
