from checkout_engine.catalog.fees import FlatFee, PercentageFee, PercentagePlusFixedFee
from checkout_engine.catalog.methods import MethodCatalog, MethodDefinition, PaymentMethod, format_amount

__all__ = [
    "FlatFee",
    "PercentageFee",
    "PercentagePlusFixedFee",
    "MethodCatalog",
    "MethodDefinition",
    "PaymentMethod",
    "format_amount",
]
