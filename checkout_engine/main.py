"""
Checkout Engine — payment orchestration API for the storefront checkout.

Prices and validates payment methods, dispatches payments to card, mobile
wallet, cash-on-delivery and bank-transfer flows, reconciles provider
callbacks and webhooks, and guards order cancellation.

Start the server:
    uvicorn checkout_engine.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from checkout_engine.api.health import router as health_router
from checkout_engine.api.orders import router as orders_router
from checkout_engine.api.payments import router as payments_router
from checkout_engine.config import Settings, get_settings
from checkout_engine.database import dispose_db, init_db
from checkout_engine.services import PaymentServices, build_services

logger = logging.getLogger("checkout_engine")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, release pooled connections on shutdown."""
    await init_db()
    yield
    await dispose_db()


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. Please try again later."},
    )


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[PaymentServices] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="Checkout Engine",
        description=(
            "Payment orchestration for storefront checkout: priced method catalog, "
            "request validation, provider dispatch, idempotent webhook reconciliation "
            "and order cancellation."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)
    app.add_exception_handler(Exception, unhandled_error)

    app.include_router(health_router)
    app.include_router(payments_router, prefix="/api")
    app.include_router(orders_router, prefix="/api")
    return app


app = create_app()
