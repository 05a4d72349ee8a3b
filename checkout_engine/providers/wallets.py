"""
JazzCash and EasyPaisa mobile wallet integrations.

Both wallets use a redirect hand-off: we build a signed initiation payload,
the customer completes payment on the wallet's page, and the wallet reports
the outcome asynchronously (browser callback and/or server webhook). Payloads
are signed with HMAC-SHA256 over a fixed field sequence and rendered as
upper-case hex.

Response codes:
  JazzCash   000 success, 124 pending, anything else is a failure
  EasyPaisa  0000 success, 0001 pending, 0002 failed, 1xxx-9xxx errors
"""

import hashlib
import hmac
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

from checkout_engine.config import Settings
from checkout_engine.engine.payment_types import PaymentRequest
from checkout_engine.models.enums import Provider
from checkout_engine.providers.base import (
    InvalidSignatureError,
    MalformedNotificationError,
    NotificationSource,
    ProviderNotification,
)

logger = logging.getLogger("checkout_engine.providers.wallets")

PAKISTAN_TZ = ZoneInfo("Asia/Karachi")

JAZZCASH_RESPONSE_CODES = {
    "000": "Transaction Successful",
    "001": "Transaction Failed",
    "101": "Invalid Merchant ID",
    "102": "Invalid Password",
    "103": "Invalid Amount",
    "104": "Invalid Transaction Reference Number",
    "124": "Transaction Pending",
    "201": "Invalid Mobile Number",
    "202": "Insufficient Balance",
    "203": "Mobile Account Blocked",
    "999": "System Error",
}

EASYPAISA_RESPONSE_CODES = {
    "0000": "Success",
    "0001": "Transaction Pending",
    "0002": "Transaction Failed",
    "1001": "Invalid Merchant",
    "1002": "Invalid Amount",
    "1003": "Invalid Mobile Number",
    "2001": "Insufficient Balance",
    "2002": "Account Blocked",
    "3001": "Network Error",
    "9999": "System Error",
}

JAZZCASH_REQUEST_HASH_FIELDS = (
    "pp_Amount",
    "pp_BillReference",
    "pp_Description",
    "pp_Language",
    "pp_MerchantID",
    "pp_Password",
    "pp_ReturnURL",
    "pp_SubMerchantID",
    "pp_TxnCurrency",
    "pp_TxnDateTime",
    "pp_TxnExpiryDateTime",
    "pp_TxnRefNo",
    "pp_TxnType",
    "pp_Version",
)

JAZZCASH_CALLBACK_HASH_FIELDS = (
    "pp_Amount",
    "pp_BillReference",
    "pp_Description",
    "pp_Language",
    "pp_MerchantID",
    "pp_ResponseCode",
    "pp_ReturnURL",
    "pp_SubMerchantID",
    "pp_TxnCurrency",
    "pp_TxnDateTime",
    "pp_TxnExpiryDateTime",
    "pp_TxnRefNo",
    "pp_TxnType",
    "pp_Version",
)

EASYPAISA_REQUEST_HASH_FIELDS = (
    "merchant_id",
    "password",
    "transaction_id",
    "amount",
    "currency",
    "order_id",
    "return_url",
)
EASYPAISA_CALLBACK_HASH_FIELDS = ("merchant_id", "transaction_id", "order_id", "amount", "currency", "status")
EASYPAISA_WEBHOOK_HASH_FIELDS = ("merchant_id", "transaction_id", "order_id", "amount", "status")


def secure_hash(data: Mapping[str, Any], fields: tuple[str, ...], secret: str, separator: str = "") -> str:
    """HMAC-SHA256 over the given fields in order, upper-case hex."""
    message = separator.join(str(data.get(name) or "") for name in fields)
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest().upper()


def format_mobile_for_gateway(mobile: Optional[str]) -> str:
    """+923001234567 -> 03001234567 (wallets expect the national 11-digit form)."""
    formatted = (mobile or "").replace(" ", "")
    if formatted.startswith("+92"):
        formatted = "0" + formatted[3:]
    return formatted


def generate_transaction_ref(prefix: str) -> str:
    return f"{prefix}{int(datetime.now().timestamp() * 1000)}{uuid.uuid4().hex[:6].upper()}"


@dataclass
class WalletCheckout:
    """Everything the browser needs to hand the customer over to a wallet."""

    transaction_id: str
    redirect_url: str
    payload: dict[str, str] = field(default_factory=dict)


class WalletGateway(ABC):
    """Shared behaviour of the two wallet integrations."""

    provider: Provider
    display_name: str
    transaction_prefix: str

    def __init__(self, settings: Settings):
        self._settings = settings
        self._site_url = settings.site_url.rstrip("/")

    @abstractmethod
    def build_checkout(self, request: PaymentRequest, total: Decimal) -> WalletCheckout:
        """Signed initiation payload and redirect target for one payment."""
        ...

    def return_redirect(
        self,
        status: Optional[str],
        order_ref: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> str:
        """Map a browser return (status query parameter) to a storefront URL."""
        status = (status or "").upper()
        if status == "SUCCESS" and order_ref:
            query = urlencode({"payment": "success", "transaction": transaction_id or ""})
            return f"{self._site_url}/account/orders/{order_ref}?{query}"
        if status == "FAILED":
            return f"{self._site_url}/checkout?payment=failed&reason={self.provider.value}_failed"
        if status == "CANCELLED":
            return f"{self._site_url}/checkout?payment=cancelled&reason=user_cancelled"
        return f"{self._site_url}/checkout"


class JazzCashGateway(WalletGateway):
    provider = Provider.JAZZCASH
    display_name = "JazzCash"
    transaction_prefix = "JC"

    def build_checkout(self, request: PaymentRequest, total: Decimal) -> WalletCheckout:
        s = self._settings
        now = datetime.now(PAKISTAN_TZ)
        expires = now + timedelta(minutes=s.wallet_session_minutes)
        transaction_id = generate_transaction_ref(self.transaction_prefix)

        payload = {
            "pp_Version": "1.1",
            "pp_TxnType": "MWALLET",
            "pp_Language": "EN",
            "pp_MerchantID": s.jazzcash_merchant_id,
            "pp_SubMerchantID": "",
            "pp_Password": s.jazzcash_password,
            "pp_TxnRefNo": transaction_id,
            "pp_Amount": str(int(total * 100)),  # paisa
            "pp_TxnCurrency": s.currency,
            "pp_TxnDateTime": now.strftime("%Y%m%d%H%M%S"),
            "pp_BillReference": request.order_number,
            "pp_Description": f"Payment for Order #{request.order_number}",
            "pp_TxnExpiryDateTime": expires.strftime("%Y%m%d%H%M%S"),
            "pp_ReturnURL": f"{self._site_url}/api/payments/jazzcash/callback",
            "pp_MobileNumber": format_mobile_for_gateway(request.customer_phone),
        }
        payload["pp_SecureHash"] = secure_hash(
            payload, JAZZCASH_REQUEST_HASH_FIELDS, s.jazzcash_integrity_salt, separator="&"
        )
        return WalletCheckout(
            transaction_id=transaction_id,
            redirect_url=s.jazzcash_checkout_url,
            payload=payload,
        )


class EasyPaisaGateway(WalletGateway):
    provider = Provider.EASYPAISA
    display_name = "EasyPaisa"
    transaction_prefix = "EP"

    def build_checkout(self, request: PaymentRequest, total: Decimal) -> WalletCheckout:
        s = self._settings
        expires = datetime.now(PAKISTAN_TZ) + timedelta(minutes=s.wallet_session_minutes)
        transaction_id = generate_transaction_ref(self.transaction_prefix)

        payload = {
            "merchant_id": s.easypaisa_merchant_id,
            "password": s.easypaisa_password,
            "transaction_id": transaction_id,
            "amount": str(total),
            "currency": s.currency,
            "order_id": request.order_number,
            "description": f"Payment for Order #{request.order_number}",
            "customer_mobile": format_mobile_for_gateway(request.customer_phone),
            "customer_email": request.customer_email,
            "return_url": f"{self._site_url}/api/payments/easypaisa/callback",
            "cancel_url": f"{self._site_url}/checkout?payment=cancelled",
            "webhook_url": f"{self._site_url}/api/payments/easypaisa/webhook",
            "expiry_time": expires.isoformat(),
            "payment_method": "MA",  # mobile account
            "version": "2.0",
        }
        payload["secure_hash"] = secure_hash(payload, EASYPAISA_REQUEST_HASH_FIELDS, s.easypaisa_secret_key)

        # Credentials travel in the signed form post, never in the redirect URL
        query = {k: v for k, v in payload.items() if k != "password"}
        return WalletCheckout(
            transaction_id=transaction_id,
            redirect_url=f"{s.easypaisa_checkout_url}?{urlencode(query)}",
            payload=payload,
        )


class _WalletNotificationSource(NotificationSource):
    hash_fields: tuple[str, ...] = ()
    hash_separator: str = ""

    def __init__(self, secret: str, merchant_id: str, verify_signatures: bool = True):
        self._secret = secret
        self._merchant_id = merchant_id
        self._verify_signatures = verify_signatures

    @abstractmethod
    def _supplied_hash(self, payload: Mapping[str, Any]) -> str:
        ...

    @abstractmethod
    def _merchant(self, payload: Mapping[str, Any]) -> Optional[str]:
        ...

    def verify(self, payload: Mapping[str, Any]) -> None:
        if not self._verify_signatures:
            logger.warning(
                "Signature verification disabled; accepting %s %s unverified",
                self.provider.value,
                self.channel,
            )
            return
        if not self._secret:
            raise InvalidSignatureError(f"{self.provider.value} secret is not configured")

        merchant = self._merchant(payload)
        if merchant != self._merchant_id:
            raise InvalidSignatureError(f"Unexpected merchant id: {merchant}")

        supplied = (self._supplied_hash(payload) or "").upper()
        if not supplied:
            raise InvalidSignatureError("Missing secure hash")
        expected = secure_hash(payload, self.hash_fields, self._secret, self.hash_separator)
        if not hmac.compare_digest(expected, supplied):
            raise InvalidSignatureError("Secure hash mismatch")


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class JazzCashCallbackSource(_WalletNotificationSource):
    """Form POST sent by JazzCash to pp_ReturnURL after payment."""

    provider = Provider.JAZZCASH
    channel = "callback"
    hash_fields = JAZZCASH_CALLBACK_HASH_FIELDS
    hash_separator = "&"

    @classmethod
    def from_settings(cls, settings: Settings) -> "JazzCashCallbackSource":
        return cls(
            secret=settings.jazzcash_integrity_salt,
            merchant_id=settings.jazzcash_merchant_id,
            verify_signatures=settings.verify_wallet_signatures,
        )

    def _supplied_hash(self, payload):
        return payload.get("pp_SecureHash")

    def _merchant(self, payload):
        return payload.get("pp_MerchantID")

    def parse(self, payload: Mapping[str, Any]) -> ProviderNotification:
        self.verify(payload)

        transaction_id = payload.get("pp_TxnRefNo")
        order_number = payload.get("pp_BillReference")
        response_code = payload.get("pp_ResponseCode")
        if not transaction_id or not order_number or not response_code:
            raise MalformedNotificationError(
                "JazzCash callback requires pp_TxnRefNo, pp_BillReference and pp_ResponseCode"
            )

        paisa = _parse_decimal(payload.get("pp_Amount"))
        return ProviderNotification(
            provider=self.provider,
            channel=self.channel,
            transaction_id=str(transaction_id),
            status_code=str(response_code),
            order_number=str(order_number),
            amount=paisa / 100 if paisa is not None else None,
            raw=dict(payload),
        )


class _EasyPaisaSource(_WalletNotificationSource):
    provider = Provider.EASYPAISA

    @classmethod
    def from_settings(cls, settings: Settings):
        return cls(
            secret=settings.easypaisa_secret_key,
            merchant_id=settings.easypaisa_merchant_id,
            verify_signatures=settings.verify_wallet_signatures,
        )

    def _supplied_hash(self, payload):
        return payload.get("secure_hash")

    def _merchant(self, payload):
        return payload.get("merchant_id")

    def parse(self, payload: Mapping[str, Any]) -> ProviderNotification:
        self.verify(payload)

        transaction_id = payload.get("transaction_id")
        order_number = payload.get("order_id")
        status = (payload.get("status") or "").upper()
        status_code = status or payload.get("response_code")
        if not transaction_id or not order_number or not status_code:
            raise MalformedNotificationError(
                "EasyPaisa notification requires transaction_id, order_id and status"
            )

        return ProviderNotification(
            provider=self.provider,
            channel=self.channel,
            transaction_id=str(transaction_id),
            status_code=str(status_code),
            order_number=str(order_number),
            amount=_parse_decimal(payload.get("amount")),
            raw=dict(payload),
        )


class EasyPaisaCallbackSource(_EasyPaisaSource):
    """JSON POST to return_url after the customer completes payment."""

    channel = "callback"
    hash_fields = EASYPAISA_CALLBACK_HASH_FIELDS


class EasyPaisaWebhookSource(_EasyPaisaSource):
    """Server-to-server status notification sent to webhook_url."""

    channel = "webhook"
    hash_fields = EASYPAISA_WEBHOOK_HASH_FIELDS
