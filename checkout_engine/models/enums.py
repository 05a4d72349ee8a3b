"""Enumerations for the checkout payment domain model."""

from enum import Enum


class Provider(str, Enum):
    """Payment providers behind the fixed set of checkout methods."""

    STRIPE = "stripe"
    JAZZCASH = "jazzcash"
    EASYPAISA = "easypaisa"
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"


class PaymentMethodId(str, Enum):
    """Stable method ids used as the join key by every component."""

    STRIPE = "stripe"
    JAZZCASH = "jazzcash"
    EASYPAISA = "easypaisa"
    COD = "cod"
    BANK_TRANSFER = "bank-transfer"


class OrderStatus(str, Enum):
    """Lifecycle states for an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(str, Enum):
    """Payment state tracked alongside the order status."""

    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"
    COMPLETED = "completed"
    FAILED = "failed"


class ResultStatus(str, Enum):
    """Status reported back to the checkout caller after dispatch."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"
    FAILED = "failed"


class ValidationReason(str, Enum):
    """Categorized reasons a payment request is rejected."""

    UNSUPPORTED_CURRENCY = "unsupported_currency"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_METHOD = "invalid_method"
    INVALID_EMAIL = "invalid_email"
    INVALID_PHONE = "invalid_phone"
    METHOD_UNAVAILABLE = "method_unavailable"
    AMOUNT_BELOW_MINIMUM = "amount_below_minimum"
    AMOUNT_ABOVE_MAXIMUM = "amount_above_maximum"
    AMOUNT_MISMATCH = "amount_mismatch"


class ReconcileAction(str, Enum):
    """What the reconciler did with a provider notification."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    STALE = "stale"
