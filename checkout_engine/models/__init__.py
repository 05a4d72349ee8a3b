from checkout_engine.models.enums import (
    OrderStatus,
    PaymentMethodId,
    PaymentStatus,
    Provider,
    ReconcileAction,
    ResultStatus,
    ValidationReason,
)
from checkout_engine.models.order import AuditLog, Base, Order, PaymentTransaction

__all__ = [
    "Base",
    "Order",
    "PaymentTransaction",
    "AuditLog",
    "OrderStatus",
    "PaymentMethodId",
    "PaymentStatus",
    "Provider",
    "ReconcileAction",
    "ResultStatus",
    "ValidationReason",
]
