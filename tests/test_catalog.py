"""Tests for method pricing and availability."""

from decimal import Decimal

import pytest

from checkout_engine.catalog.fees import FlatFee, PercentageFee, PercentagePlusFixedFee
from checkout_engine.catalog import MethodCatalog, MethodDefinition
from checkout_engine.catalog.methods import format_amount


class TestFeeRules:
    def test_card_fee_is_percentage_plus_fixed(self):
        rule = PercentagePlusFixedFee(rate=Decimal("0.029"), fixed=Decimal("30"), minimum=Decimal("30"))
        assert rule.compute(Decimal("1000"), Decimal("1")) == Decimal("59")
        assert rule.compute(Decimal("10000"), Decimal("1")) == Decimal("320")

    def test_percentage_fee_has_floor(self):
        rule = PercentageFee(rate=Decimal("0.015"), minimum=Decimal("10"))
        assert rule.compute(Decimal("100"), Decimal("1")) == Decimal("10")
        assert rule.compute(Decimal("1000"), Decimal("1")) == Decimal("15")

    def test_rounding_is_half_up_to_minor_unit(self):
        rule = PercentageFee(rate=Decimal("0.015"), minimum=Decimal("0"))
        assert rule.compute(Decimal("7050"), Decimal("1")) == Decimal("106")  # 105.75
        assert rule.compute(Decimal("7050"), Decimal("0.01")) == Decimal("105.75")

    def test_flat_fee_ignores_amount(self):
        rule = FlatFee(amount=Decimal("100"))
        assert rule.compute(Decimal("1"), Decimal("1")) == Decimal("100")
        assert rule.compute(Decimal("49999"), Decimal("1")) == Decimal("100")


class TestMethodCatalog:
    def test_lists_all_methods_in_order(self, catalog):
        ids = [m.id for m in catalog.list_methods(Decimal("5000"))]
        assert ids == ["stripe", "jazzcash", "easypaisa", "cod", "bank-transfer"]

    @pytest.mark.parametrize("method_id,amount,fee", [
        ("stripe", "1000", "59"),
        ("stripe", "10000", "320"),
        ("jazzcash", "1000", "15"),
        ("easypaisa", "10000", "150"),
        ("jazzcash", "200", "10"),
        ("cod", "5000", "100"),
        ("bank-transfer", "5000", "0"),
    ])
    def test_calculate_fee(self, catalog, method_id, amount, fee):
        assert catalog.calculate_fee(method_id, Decimal(amount)) == Decimal(fee)

    def test_unknown_method_has_no_fee(self, catalog):
        assert catalog.calculate_fee("paypal", Decimal("1000")) is None
        assert catalog.get_method("paypal", Decimal("1000")) is None

    def test_total_with_fee(self, catalog):
        assert catalog.total_with_fee("stripe", Decimal("1000")) == Decimal("1059")
        assert catalog.total_with_fee("paypal", Decimal("1000")) == Decimal("1000")

    def test_accepts_float_and_string_amounts(self, catalog):
        assert catalog.calculate_fee("stripe", 1000.0) == Decimal("59")
        assert catalog.calculate_fee("stripe", "1000") == Decimal("59")

    def test_cod_unavailable_above_ceiling(self, catalog):
        at_limit = catalog.get_method("cod", Decimal("50000"))
        above = catalog.get_method("cod", Decimal("50001"))
        assert at_limit.available is True
        assert above.available is False
        # Other methods stay available
        assert catalog.get_method("bank-transfer", Decimal("50001")).available is True

    def test_priced_method_carries_bounds(self, catalog):
        jazzcash = catalog.get_method("jazzcash", Decimal("1000"))
        assert jazzcash.name == "JazzCash"
        assert jazzcash.min_amount == Decimal("50")
        assert jazzcash.max_amount == Decimal("500000")

    def test_payment_instructions_show_amount(self, catalog):
        steps = catalog.payment_instructions("cod", Decimal("7156"))
        assert steps[0] == "Prepare exact amount: PKR 7,156"

    def test_payment_instructions_fallback(self, catalog):
        assert catalog.payment_instructions("paypal", Decimal("10")) == [
            "Follow the payment instructions to complete your order"
        ]


def test_format_amount():
    assert format_amount(Decimal("7156")) == "PKR 7,156"
    assert format_amount(Decimal("12.5")) == "PKR 12.50"
    assert format_amount(50000) == "PKR 50,000"


def test_package_exports_definitions(settings):
    definition = MethodCatalog(settings).definition("cod")
    assert isinstance(definition, MethodDefinition)
    assert definition.availability_ceiling == Decimal("50000")
    assert MethodCatalog(settings).definition("paypal") is None
