"""Application configuration via environment variables."""

from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./checkout_engine.db"
    log_level: str = "INFO"
    site_url: str = "http://localhost:3000"

    # Storefront locale
    currency: str = "PKR"
    currency_minor_unit: Decimal = Decimal("1")  # fees are charged in whole rupees
    phone_country_code: str = "92"
    phone_region_label: str = "Pakistani"

    # Fees
    card_fee_rate: Decimal = Decimal("0.029")
    card_fixed_fee: Decimal = Decimal("30")
    card_min_fee: Decimal = Decimal("30")
    wallet_fee_rate: Decimal = Decimal("0.015")
    wallet_min_fee: Decimal = Decimal("10")
    cod_fee: Decimal = Decimal("100")
    bank_transfer_fee: Decimal = Decimal("0")

    # Per-method amount bounds
    card_min_amount: Decimal = Decimal("100")
    card_max_amount: Decimal = Decimal("1000000")
    jazzcash_min_amount: Decimal = Decimal("50")
    jazzcash_max_amount: Decimal = Decimal("500000")
    easypaisa_min_amount: Decimal = Decimal("50")
    easypaisa_max_amount: Decimal = Decimal("300000")
    cod_min_amount: Decimal = Decimal("100")
    cod_max_amount: Decimal = Decimal("50000")
    bank_transfer_min_amount: Decimal = Decimal("100")
    bank_transfer_max_amount: Decimal = Decimal("10000000")

    # Provider calls
    provider_timeout_seconds: float = 15.0
    provider_max_retries: int = 2

    # Card processor
    card_gateway: str = "mock"  # "stripe" or "mock"
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_signature_tolerance_seconds: int = 300
    mock_failure_rate: float = 0.0
    mock_latency_ms: int = 0

    # Mobile wallets
    verify_wallet_signatures: bool = True
    wallet_session_minutes: int = 15
    jazzcash_merchant_id: str = "MC12345"
    jazzcash_password: str = ""
    jazzcash_integrity_salt: str = ""
    jazzcash_checkout_url: str = (
        "https://sandbox.jazzcash.com.pk/CustomerPortal/transactionmanagement/merchantform/"
    )
    easypaisa_merchant_id: str = "EP12345"
    easypaisa_password: str = ""
    easypaisa_secret_key: str = ""
    easypaisa_checkout_url: str = "https://easypaisa.com.pk/easypay/Index.jsf"

    # Bank transfer
    bank_name: str = "Allied Bank Limited"
    bank_account_title: str = "Arts & Crafts Home Decor"
    bank_account_number: str = "1234567890123456"
    bank_iban: str = "PK36ABPA0010001234567890"
    bank_branch_code: str = "0001"
    bank_swift_code: str = "ABPAPKKA"

    # Orders
    refund_timeframe: str = "3-5 business days"
    notification_url: str = ""  # empty: notifications are only logged

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()


settings = get_settings()
