from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stripe_gateway.config import Settings
from stripe_gateway.database import configure_database
from stripe_gateway.key_client import KeyResolver
from stripe_gateway.logging_config import configure_logging
from stripe_gateway.routers import coupons, customers, health, payments, prices, products, status, webhooks
from stripe_gateway.runs_client import RunsClient
from stripe_gateway.stripe_service import StripeService

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = configure_database(settings.database_url)

        # Built once; request handlers receive them through dependencies
        app.state.settings = settings
        app.state.stripe = StripeService(settings.stripe_secret_key)
        app.state.key_resolver = KeyResolver(
            settings.key_service_url,
            settings.key_service_api_key,
            default_key=settings.stripe_secret_key,
            timeout=settings.http_timeout,
        )
        app.state.runs = RunsClient(
            settings.runs_service_url,
            settings.runs_service_api_key,
            timeout=settings.http_timeout,
        )
        logger.info("stripe_service_startup")
        yield
        app.state.key_resolver.close()
        app.state.runs.close()
        engine.dispose()
        logger.info("stripe_service_shutdown")

    app = FastAPI(title="Stripe Service", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )

    app.include_router(health.router)
    app.include_router(payments.router)
    app.include_router(status.router)
    app.include_router(webhooks.router)
    app.include_router(products.router)
    app.include_router(prices.router)
    app.include_router(coupons.router)
    app.include_router(customers.router)

    return app


app = create_app()
