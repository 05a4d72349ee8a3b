"""
Payment request validation with categorized reasons.

Before dispatching a payment we verify:
  1. Currency is the single supported currency
  2. Amount is positive and matches the order total, when one is known
  3. Method id resolves in the catalog
  4. Customer email has a plausible shape
  5. Customer phone is a national mobile number in international format
  6. Amount is within the method's bounds (and the method is available)

Every check runs; failures accumulate so the caller can flag all offending
fields at once. Validation never raises.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

from checkout_engine.catalog.fees import to_decimal
from checkout_engine.catalog.methods import MethodCatalog, format_amount
from checkout_engine.config import Settings
from checkout_engine.engine.payment_types import PaymentRequest
from checkout_engine.models.enums import ValidationReason

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    reason: ValidationReason
    message: str


@dataclass
class ValidationResult:
    """Result of validating a payment request."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def errors(self) -> list[str]:
        return [issue.message for issue in self.issues]

    def has(self, reason: ValidationReason) -> bool:
        return any(issue.reason == reason for issue in self.issues)


class PaymentValidator:
    """Checks payment requests against global and per-method rules."""

    def __init__(self, settings: Settings, catalog: MethodCatalog):
        self._currency = settings.currency
        self._region = settings.phone_region_label
        self._phone_pattern = re.compile(rf"\+{re.escape(settings.phone_country_code)}[0-9]{{10}}")
        self._catalog = catalog

    def is_valid_phone(self, phone: Optional[str]) -> bool:
        return bool(phone) and bool(self._phone_pattern.fullmatch(phone))

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        return bool(email) and bool(EMAIL_PATTERN.fullmatch(email))

    def validate(self, request: PaymentRequest) -> ValidationResult:
        result = ValidationResult()
        issues = result.issues

        if request.currency != self._currency:
            issues.append(ValidationIssue(
                "currency",
                ValidationReason.UNSUPPORTED_CURRENCY,
                f"Only {self._currency} currency is supported",
            ))

        amount = _parse_amount(request.amount)
        if amount is None or amount <= 0:
            issues.append(ValidationIssue(
                "amount",
                ValidationReason.INVALID_AMOUNT,
                "Amount must be greater than 0",
            ))
            amount = None
        elif request.order_total is not None and amount != to_decimal(request.order_total):
            issues.append(ValidationIssue(
                "amount",
                ValidationReason.AMOUNT_MISMATCH,
                "Amount does not match the order total",
            ))

        definition = self._catalog.definition(request.method_id)
        if definition is None:
            issues.append(ValidationIssue(
                "method_id",
                ValidationReason.INVALID_METHOD,
                "Invalid payment method",
            ))

        if not self.is_valid_email(request.customer_email):
            issues.append(ValidationIssue(
                "customer_email",
                ValidationReason.INVALID_EMAIL,
                "Invalid email format",
            ))

        if not self.is_valid_phone(request.customer_phone):
            issues.append(ValidationIssue(
                "customer_phone",
                ValidationReason.INVALID_PHONE,
                f"Invalid {self._region} phone number format",
            ))

        # Bounds only make sense for a real method and a positive amount
        if definition is not None and amount is not None:
            if not definition.is_available(amount):
                issues.append(ValidationIssue(
                    "method_id",
                    ValidationReason.METHOD_UNAVAILABLE,
                    f"{definition.name} is not available for orders above "
                    f"{format_amount(definition.availability_ceiling, self._currency)}",
                ))
            elif amount > definition.max_amount:
                issues.append(ValidationIssue(
                    "amount",
                    ValidationReason.AMOUNT_ABOVE_MAXIMUM,
                    f"Amount exceeds {definition.name} limit of "
                    f"{format_amount(definition.max_amount, self._currency)}",
                ))
            elif amount < definition.min_amount:
                issues.append(ValidationIssue(
                    "amount",
                    ValidationReason.AMOUNT_BELOW_MINIMUM,
                    f"Minimum amount for {definition.name} is "
                    f"{format_amount(definition.min_amount, self._currency)}",
                ))

        return result


def _parse_amount(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite():
        return None
    return amount
