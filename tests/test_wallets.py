"""Tests for the mobile wallet integrations."""

from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest

from checkout_engine.engine.payment_types import PaymentRequest
from checkout_engine.providers.wallets import (
    EASYPAISA_REQUEST_HASH_FIELDS,
    JAZZCASH_REQUEST_HASH_FIELDS,
    EasyPaisaGateway,
    JazzCashGateway,
    WalletGateway,
    _WalletNotificationSource,
    format_mobile_for_gateway,
    secure_hash,
)
from tests.conftest import EASYPAISA_SECRET, JAZZCASH_SALT


@pytest.fixture
def request_():
    return PaymentRequest(
        order_id="order-1",
        order_number="ORD-2001",
        amount=Decimal("2000"),
        currency="PKR",
        method_id="jazzcash",
        customer_email="bilal@example.pk",
        customer_phone="+923211234567",
    )


def test_secure_hash_is_upper_hex_hmac():
    value = secure_hash({"a": "1", "b": "2"}, ("a", "b"), "secret", "&")
    assert len(value) == 64
    assert value == value.upper()
    assert value != secure_hash({"a": "1", "b": "2"}, ("a", "b"), "secret")


def test_secure_hash_treats_missing_fields_as_empty():
    assert secure_hash({"a": "1"}, ("a", "b"), "k") == secure_hash({"a": "1", "b": ""}, ("a", "b"), "k")


@pytest.mark.parametrize("mobile,expected", [
    ("+923001234567", "03001234567"),
    ("+92 300 1234567", "03001234567"),
    ("03001234567", "03001234567"),
    (None, ""),
])
def test_format_mobile_for_gateway(mobile, expected):
    assert format_mobile_for_gateway(mobile) == expected


def test_jazzcash_checkout_is_signed(settings, request_):
    checkout = JazzCashGateway(settings).build_checkout(request_, Decimal("2030"))
    payload = checkout.payload

    assert checkout.redirect_url == settings.jazzcash_checkout_url
    assert payload["pp_Amount"] == "203000"
    assert payload["pp_BillReference"] == "ORD-2001"
    assert payload["pp_ReturnURL"] == "https://shop.example.pk/api/payments/jazzcash/callback"
    assert payload["pp_TxnExpiryDateTime"] > payload["pp_TxnDateTime"]
    assert payload["pp_SecureHash"] == secure_hash(payload, JAZZCASH_REQUEST_HASH_FIELDS, JAZZCASH_SALT, "&")


def test_easypaisa_checkout_is_signed(settings, request_):
    checkout = EasyPaisaGateway(settings).build_checkout(request_, Decimal("2030"))
    payload = checkout.payload

    assert payload["amount"] == "2030"
    assert payload["webhook_url"] == "https://shop.example.pk/api/payments/easypaisa/webhook"
    assert payload["secure_hash"] == secure_hash(payload, EASYPAISA_REQUEST_HASH_FIELDS, EASYPAISA_SECRET)

    query = parse_qs(urlparse(checkout.redirect_url).query)
    assert query["order_id"] == ["ORD-2001"]
    assert "password" not in query


def test_transaction_refs_are_unique(settings, request_):
    gateway = JazzCashGateway(settings)
    refs = {gateway.build_checkout(request_, Decimal("2030")).transaction_id for _ in range(20)}
    assert len(refs) == 20


class TestReturnRedirect:
    def test_success_goes_to_order_page(self, settings):
        url = EasyPaisaGateway(settings).return_redirect("success", "ORD-2001", "EP123")
        assert url == "https://shop.example.pk/account/orders/ORD-2001?payment=success&transaction=EP123"

    def test_failure_names_the_wallet(self, settings):
        url = JazzCashGateway(settings).return_redirect("FAILED")
        assert url == "https://shop.example.pk/checkout?payment=failed&reason=jazzcash_failed"

    def test_cancelled(self, settings):
        url = EasyPaisaGateway(settings).return_redirect("CANCELLED", "ORD-2001")
        assert url.endswith("/checkout?payment=cancelled&reason=user_cancelled")

    def test_success_without_order_falls_back_to_checkout(self, settings):
        assert EasyPaisaGateway(settings).return_redirect("SUCCESS") == "https://shop.example.pk/checkout"


def test_wallet_bases_are_abstract(settings):
    with pytest.raises(TypeError):
        WalletGateway(settings)

    class Unsigned(_WalletNotificationSource):
        def parse(self, payload):
            return None

    with pytest.raises(TypeError):
        Unsigned("secret", "EP12345")
