"""
FastAPI application factory.

``create_app()`` with no arguments builds the production app from
``get_active_config()``: it initializes the database engine, creates the
schema for SQLite URLs or when ``database.create_schema`` is set, wires
the shared settings cache and mounts the routers.  Tests pass their own
config, session factory, clock, cipher, gateway client and notifier.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Callable

from fastapi import FastAPI, Request
from sqlalchemy.orm import Session

from homestay_api.errors import register_exception_handlers
from homestay_api.routes import applications, payments, service_center
from homestay_config import HomestayConfig, get_active_config
from homestay_engines.gateway_codec import GatewayCipher
from homestay_kernel.db.engine import create_tables, get_session, init_engine_from_url
from homestay_kernel.db.immutability import register_immutability_listeners
from homestay_kernel.domain.clock import Clock, SystemClock
from homestay_kernel.logging_config import LogContext, configure_logging, get_logger
from homestay_kernel.services.settings_store import SettingsStore
from homestay_services.gateway_client import GatewayClient
from homestay_services.notification_dispatcher import LoggingNotifier, Notifier

logger = get_logger("api.app")


def create_app(
    config: HomestayConfig | None = None,
    session_factory: Callable[[], Session] | None = None,
    clock: Clock | None = None,
    cipher: GatewayCipher | None = None,
    gateway_client: GatewayClient | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    configure_logging()
    register_immutability_listeners()
    config = config or get_active_config()
    clock = clock or SystemClock()

    if session_factory is None:
        init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
        if config.database.create_schema or config.database.url.startswith("sqlite"):
            create_tables()
            logger.info("schema_created", extra={"url_scheme": config.database.url.split(":", 1)[0]})
        session_factory = get_session

    app = FastAPI(title="HP Homestay Registration", version="0.1.0")
    app.state.config = config
    app.state.session_factory = session_factory
    app.state.clock = clock
    app.state.cipher = cipher
    app.state.gateway_client = gateway_client
    app.state.notifier = notifier or LoggingNotifier()
    app.state.settings_store = SettingsStore(
        clock, ttl=timedelta(seconds=config.payment.settings_cache_ttl_seconds)
    )

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        with LogContext.bind(correlation_id=correlation_id):
            response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id
        return response

    register_exception_handlers(app)
    app.include_router(applications.router)
    app.include_router(payments.router)
    app.include_router(service_center.router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok", "gatewayConfigured": config.gateway.is_configured}

    logger.info(
        "api_created",
        extra={"gateway_configured": config.gateway.is_configured},
    )
    return app
