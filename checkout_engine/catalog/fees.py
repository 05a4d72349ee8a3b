"""
Fee rules for checkout payment methods.

Three shapes cover every supported method:
  - percentage plus a fixed charge, with a floor (card processing)
  - percentage only, with a floor (mobile wallets)
  - flat charge independent of the amount (COD, bank transfer)

All results are rounded half-up to the currency's minor unit.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Union


def to_decimal(value) -> Decimal:
    """Coerce ints, floats and strings to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_minor(value: Decimal, minor_unit: Decimal) -> Decimal:
    return value.quantize(minor_unit, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PercentagePlusFixedFee:
    rate: Decimal
    fixed: Decimal
    minimum: Decimal

    def compute(self, amount: Decimal, minor_unit: Decimal) -> Decimal:
        fee = round_minor(amount * self.rate, minor_unit) + self.fixed
        return max(round_minor(self.minimum, minor_unit), round_minor(fee, minor_unit))


@dataclass(frozen=True)
class PercentageFee:
    rate: Decimal
    minimum: Decimal

    def compute(self, amount: Decimal, minor_unit: Decimal) -> Decimal:
        fee = round_minor(amount * self.rate, minor_unit)
        return max(round_minor(self.minimum, minor_unit), fee)


@dataclass(frozen=True)
class FlatFee:
    amount: Decimal

    def compute(self, amount: Decimal, minor_unit: Decimal) -> Decimal:
        return round_minor(self.amount, minor_unit)


FeeRule = Union[PercentagePlusFixedFee, PercentageFee, FlatFee]
