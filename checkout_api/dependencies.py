"""
Request-scoped dependencies for the checkout API.

One SQLAlchemy session and one CheckoutOrchestrator per request.  Identity
arrives in headers set by the storefront gateway (``X-User-Id``,
``X-User-Role``); the internal conversion route is guarded by a shared
secret in ``X-Internal-Token``.
"""

from __future__ import annotations

import hmac
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from checkout_batch.reaper import ExpiryReaper
from checkout_config.schema import CheckoutConfig
from checkout_kernel.domain.clock import Clock
from checkout_kernel.domain.collaborators import AddressValidator, Catalog
from checkout_kernel.services.checkout_orchestrator import CheckoutOrchestrator

ADMIN_ROLE = "admin"


@dataclass
class AppState:
    """Everything a request needs, built once per application."""

    config: CheckoutConfig
    catalog: Catalog
    address_validator: AddressValidator
    clock: Clock
    service_kwargs: dict[str, Any]
    session_factory: Callable[[], Session] | None = None
    reaper: ExpiryReaper | None = None


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def get_app_state(request: Request) -> AppState:
    return request.app.state.checkout


def get_session(state: AppState = Depends(get_app_state)) -> Iterator[Session]:
    if state.session_factory is None:
        raise HTTPException(status_code=503, detail="Database not initialized")
    session = state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_orchestrator(
    session: Session = Depends(get_session),
    state: AppState = Depends(get_app_state),
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        session,
        state.catalog,
        state.clock,
        address_validator=state.address_validator,
        **state.service_kwargs,
    )


def get_actor(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Actor:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return Actor(user_id=x_user_id, role=(x_user_role or "").lower() or None)


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return actor


def require_internal_token(
    x_internal_token: str | None = Header(None),
    state: AppState = Depends(get_app_state),
) -> None:
    """Only the payment collaborator may trigger conversion."""
    expected = state.config.internal_token
    if not expected:
        raise HTTPException(status_code=403, detail="Internal route disabled")
    if not x_internal_token or not hmac.compare_digest(x_internal_token, expected):
        raise HTTPException(status_code=403, detail="Invalid internal token")
