"""Checkout FastAPI application.

Usage:
    uvicorn checkout_api.app:create_app --factory --host 0.0.0.0 --port 8000

The application factory takes its collaborators as arguments so tests can
inject a catalog, a clock and a session factory.  Anything not supplied is
built from ``get_active_config()``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from checkout_api.dependencies import AppState
from checkout_api.routes import admin_router, intent_router, internal_router
from checkout_batch.reaper import ExpiryReaper
from checkout_config import get_active_config
from checkout_config.bridges import build_catalog, build_service_kwargs
from checkout_config.schema import CheckoutConfig
from checkout_kernel import __version__
from checkout_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.domain.collaborators import (
    AcceptAllAddressValidator,
    AddressValidator,
    Catalog,
)
from checkout_kernel.exceptions import (
    CheckoutDisabledError,
    CheckoutKernelError,
    ConcurrencyError,
    IntentAccessDeniedError,
    IntentNotFoundError,
    StockError,
    ValidationError,
)
from checkout_kernel.logging_config import configure_logging, get_logger

logger = get_logger("api")

# Most specific first; the first isinstance match wins.
_STATUS_BY_ERROR: tuple[tuple[type[CheckoutKernelError], int], ...] = (
    (IntentNotFoundError, 404),
    (IntentAccessDeniedError, 403),
    (CheckoutDisabledError, 503),
    (ValidationError, 400),
    (StockError, 409),
    (ConcurrencyError, 409),
)
_DEFAULT_ERROR_STATUS = 409


def status_for(exc: CheckoutKernelError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return _DEFAULT_ERROR_STATUS


def error_body(exc: CheckoutKernelError) -> dict:
    """``{"code", "message", ...structured fields}`` for an error response."""
    body = {"code": exc.code, "message": str(exc)}
    for key, value in vars(exc).items():
        if key.startswith("_") or key in body:
            continue
        body[key] = value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
    return body


async def checkout_error_handler(request: Request, exc: CheckoutKernelError) -> JSONResponse:
    status = status_for(exc)
    log = logger.warning if status >= 500 else logger.info
    log(
        "request_rejected",
        extra={"path": request.url.path, "status": status, "error_code": exc.code},
    )
    return JSONResponse(status_code=status, content=error_body(exc))


def create_app(
    config: CheckoutConfig | None = None,
    *,
    catalog: Catalog | None = None,
    address_validator: AddressValidator | None = None,
    clock: Clock | None = None,
    session_factory: Callable[[], Session] | None = None,
    start_reaper: bool | None = None,
) -> FastAPI:
    """
    Build the checkout application.

    Args:
        config: Defaults to ``get_active_config()``.
        catalog: Defaults to the in-process catalog built from config.
        session_factory: When omitted the engine is initialized from
            ``config.database`` during startup and tables are created.
        start_reaper: Overrides ``config.reaper.enabled``.
    """
    config = config or get_active_config()
    state = AppState(
        config=config,
        catalog=catalog or build_catalog(config),
        address_validator=address_validator or AcceptAllAddressValidator(),
        clock=clock or SystemClock(),
        service_kwargs=build_service_kwargs(config),
        session_factory=session_factory,
    )
    run_reaper = config.reaper.enabled if start_reaper is None else start_reaper

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(level=getattr(logging, config.logging.level))
        if state.session_factory is None:
            init_engine_from_url(
                config.database.url,
                echo=config.database.echo,
                pool_size=config.database.pool_size,
                max_overflow=config.database.max_overflow,
            )
            create_tables()
            state.session_factory = get_session_factory()

        if run_reaper:
            state.reaper = ExpiryReaper(
                state.session_factory,
                clock=state.clock,
                interval_seconds=config.reaper.interval_seconds,
                batch_size=config.reaper.batch_size,
            )
            state.reaper.start()

        logger.info(
            "checkout_api_started",
            extra={"reaper": run_reaper, "config_source": config.source},
        )
        try:
            yield
        finally:
            if state.reaper is not None:
                state.reaper.stop()
                state.reaper = None
            logger.info("checkout_api_stopped")

    app = FastAPI(
        title="Checkout API",
        description="Order intents with time-bounded inventory holds",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.checkout = state
    app.add_exception_handler(CheckoutKernelError, checkout_error_handler)

    app.include_router(intent_router)
    app.include_router(internal_router)
    app.include_router(admin_router)

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "version": __version__,
            "checkout_enabled": config.accepting_checkouts,
            "reaper_running": bool(state.reaper and state.reaper.is_running),
        }

    return app
