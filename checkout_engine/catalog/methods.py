"""
Method Catalog — the fixed set of checkout payment methods.

Five methods are supported: card (Stripe), two mobile wallets (JazzCash,
EasyPaisa), cash on delivery, and bank transfer. The catalog prices each
method for a given order amount and reports whether it is available for
that amount. Method ids are stable and are the join key used by the
validator, the dispatcher and the reconciler.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from checkout_engine.catalog.fees import (
    FeeRule,
    FlatFee,
    PercentageFee,
    PercentagePlusFixedFee,
    to_decimal,
)
from checkout_engine.config import Settings
from checkout_engine.models.enums import PaymentMethodId, Provider


@dataclass(frozen=True)
class MethodDefinition:
    """Static definition of a payment method."""

    id: str
    provider: Provider
    name: str
    description: str
    processing_time: str
    fee_rule: FeeRule
    min_amount: Decimal
    max_amount: Decimal
    # Above this order amount the method is switched off entirely.
    availability_ceiling: Optional[Decimal] = None

    def is_available(self, amount: Decimal) -> bool:
        if self.availability_ceiling is not None and amount > self.availability_ceiling:
            return False
        return True


@dataclass(frozen=True)
class PaymentMethod:
    """A method priced for one order amount."""

    id: str
    provider: Provider
    name: str
    description: str
    fee: Decimal
    available: bool
    processing_time: str
    min_amount: Decimal
    max_amount: Decimal


def format_amount(amount, currency: str = "PKR") -> str:
    """Format an amount for display, e.g. ``PKR 7,156`` or ``PKR 12.50``."""
    value = to_decimal(amount)
    if value == value.to_integral_value():
        return f"{currency} {value:,.0f}"
    return f"{currency} {value:,.2f}"


def build_method_definitions(settings: Settings) -> list[MethodDefinition]:
    """Build the fixed method definitions from configuration."""
    wallet_fee = PercentageFee(rate=settings.wallet_fee_rate, minimum=settings.wallet_min_fee)
    return [
        MethodDefinition(
            id=PaymentMethodId.STRIPE.value,
            provider=Provider.STRIPE,
            name="Credit/Debit Card",
            description="Visa, MasterCard, American Express",
            processing_time="Instant",
            fee_rule=PercentagePlusFixedFee(
                rate=settings.card_fee_rate,
                fixed=settings.card_fixed_fee,
                minimum=settings.card_min_fee,
            ),
            min_amount=settings.card_min_amount,
            max_amount=settings.card_max_amount,
        ),
        MethodDefinition(
            id=PaymentMethodId.JAZZCASH.value,
            provider=Provider.JAZZCASH,
            name="JazzCash",
            description="Pay using JazzCash mobile wallet",
            processing_time="Instant",
            fee_rule=wallet_fee,
            min_amount=settings.jazzcash_min_amount,
            max_amount=settings.jazzcash_max_amount,
        ),
        MethodDefinition(
            id=PaymentMethodId.EASYPAISA.value,
            provider=Provider.EASYPAISA,
            name="EasyPaisa",
            description="Pay using EasyPaisa mobile wallet",
            processing_time="Instant",
            fee_rule=wallet_fee,
            min_amount=settings.easypaisa_min_amount,
            max_amount=settings.easypaisa_max_amount,
        ),
        MethodDefinition(
            id=PaymentMethodId.COD.value,
            provider=Provider.COD,
            name="Cash on Delivery",
            description="Pay when you receive your order",
            processing_time="On delivery",
            fee_rule=FlatFee(amount=settings.cod_fee),
            min_amount=settings.cod_min_amount,
            max_amount=settings.cod_max_amount,
            availability_ceiling=settings.cod_max_amount,
        ),
        MethodDefinition(
            id=PaymentMethodId.BANK_TRANSFER.value,
            provider=Provider.BANK_TRANSFER,
            name="Bank Transfer",
            description="Direct transfer to our bank account",
            processing_time="1-2 business days",
            fee_rule=FlatFee(amount=settings.bank_transfer_fee),
            min_amount=settings.bank_transfer_min_amount,
            max_amount=settings.bank_transfer_max_amount,
        ),
    ]


class MethodCatalog:
    """Prices and looks up the supported payment methods."""

    def __init__(self, settings: Settings):
        self._currency = settings.currency
        self._minor_unit = settings.currency_minor_unit
        self._definitions = build_method_definitions(settings)
        self._by_id = {definition.id: definition for definition in self._definitions}

    @property
    def currency(self) -> str:
        return self._currency

    def definition(self, method_id: Optional[str]) -> Optional[MethodDefinition]:
        if not method_id:
            return None
        return self._by_id.get(method_id)

    def calculate_fee(self, method_id: str, amount) -> Optional[Decimal]:
        definition = self.definition(method_id)
        if definition is None:
            return None
        return definition.fee_rule.compute(to_decimal(amount), self._minor_unit)

    def total_with_fee(self, method_id: str, amount) -> Decimal:
        """Order amount plus the method fee; unknown methods add nothing."""
        value = to_decimal(amount)
        fee = self.calculate_fee(method_id, value)
        return value + fee if fee is not None else value

    def _price(self, definition: MethodDefinition, amount: Decimal) -> PaymentMethod:
        return PaymentMethod(
            id=definition.id,
            provider=definition.provider,
            name=definition.name,
            description=definition.description,
            fee=definition.fee_rule.compute(amount, self._minor_unit),
            available=definition.is_available(amount),
            processing_time=definition.processing_time,
            min_amount=definition.min_amount,
            max_amount=definition.max_amount,
        )

    def list_methods(self, order_amount) -> list[PaymentMethod]:
        amount = to_decimal(order_amount)
        return [self._price(definition, amount) for definition in self._definitions]

    def get_method(self, method_id: Optional[str], order_amount) -> Optional[PaymentMethod]:
        definition = self.definition(method_id)
        if definition is None:
            return None
        return self._price(definition, to_decimal(order_amount))

    def payment_instructions(self, method_id: str, amount) -> list[str]:
        """Customer-facing steps for completing payment with a method."""
        shown = format_amount(amount, self._currency)
        if method_id == PaymentMethodId.JAZZCASH.value:
            return [
                "You will be redirected to JazzCash payment page",
                f"Pay {shown} using your Jazz mobile account",
                "Enter your Jazz account PIN to complete payment",
                "You will receive SMS confirmation after successful payment",
            ]
        if method_id == PaymentMethodId.EASYPAISA.value:
            return [
                "You will be redirected to EasyPaisa payment page",
                f"Pay {shown} using your Telenor mobile account",
                "Enter your EasyPaisa PIN to complete payment",
                "Payment confirmation will be sent via SMS",
            ]
        if method_id == PaymentMethodId.COD.value:
            return [
                f"Prepare exact amount: {shown}",
                "Our delivery agent will collect payment upon delivery",
                "Payment receipt will be provided",
            ]
        if method_id == PaymentMethodId.BANK_TRANSFER.value:
            return [
                f"Transfer exactly {shown} to our bank account",
                "Use your order number as reference",
                "Order will be processed after payment verification",
            ]
        if method_id == PaymentMethodId.STRIPE.value:
            return [
                f"Confirm your card details to pay {shown}",
                "Your bank may ask you to verify the payment",
            ]
        return ["Follow the payment instructions to complete your order"]
