"""
Construction of the payment components from one Settings instance.

Everything the HTTP layer needs is built once at startup and shared
read-only between requests.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from checkout_engine.catalog.methods import MethodCatalog
from checkout_engine.config import Settings
from checkout_engine.engine.dispatcher import PaymentDispatcher
from checkout_engine.engine.reconciler import PaymentReconciler
from checkout_engine.engine.validator import PaymentValidator
from checkout_engine.models.enums import Provider
from checkout_engine.notifications import Notifier, build_notifier
from checkout_engine.providers.base import CardGateway
from checkout_engine.providers.mock_gateway import MockCardGateway
from checkout_engine.providers.stripe_gateway import StripeCardGateway, StripeWebhookSource
from checkout_engine.providers.wallets import (
    EasyPaisaCallbackSource,
    EasyPaisaGateway,
    EasyPaisaWebhookSource,
    JazzCashCallbackSource,
    JazzCashGateway,
)

logger = logging.getLogger("checkout_engine.services")


@dataclass
class PaymentServices:
    settings: Settings
    catalog: MethodCatalog
    validator: PaymentValidator
    dispatcher: PaymentDispatcher
    reconciler: PaymentReconciler
    jazzcash: JazzCashGateway
    easypaisa: EasyPaisaGateway
    stripe_webhook: StripeWebhookSource
    jazzcash_callback: JazzCashCallbackSource
    easypaisa_callback: EasyPaisaCallbackSource
    easypaisa_webhook: EasyPaisaWebhookSource


def build_card_gateway(settings: Settings) -> CardGateway:
    if settings.card_gateway == "stripe":
        return StripeCardGateway(secret_key=settings.stripe_secret_key)
    logger.warning("Using mock card gateway; card payments will not reach a processor")
    return MockCardGateway(failure_rate=settings.mock_failure_rate, latency_ms=settings.mock_latency_ms)


def build_services(
    settings: Settings,
    card_gateway: Optional[CardGateway] = None,
    notifier: Optional[Notifier] = None,
) -> PaymentServices:
    catalog = MethodCatalog(settings)
    validator = PaymentValidator(settings, catalog)
    jazzcash = JazzCashGateway(settings)
    easypaisa = EasyPaisaGateway(settings)
    dispatcher = PaymentDispatcher(
        settings=settings,
        catalog=catalog,
        validator=validator,
        card_gateway=card_gateway or build_card_gateway(settings),
        wallets={Provider.JAZZCASH: jazzcash, Provider.EASYPAISA: easypaisa},
    )
    return PaymentServices(
        settings=settings,
        catalog=catalog,
        validator=validator,
        dispatcher=dispatcher,
        reconciler=PaymentReconciler(notifier or build_notifier(settings.notification_url)),
        jazzcash=jazzcash,
        easypaisa=easypaisa,
        stripe_webhook=StripeWebhookSource(
            webhook_secret=settings.stripe_webhook_secret,
            tolerance_seconds=settings.stripe_signature_tolerance_seconds,
        ),
        jazzcash_callback=JazzCashCallbackSource.from_settings(settings),
        easypaisa_callback=EasyPaisaCallbackSource.from_settings(settings),
        easypaisa_webhook=EasyPaisaWebhookSource.from_settings(settings),
    )
