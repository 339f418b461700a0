"""FastAPI routes for checkout -- order intents, conversion, inventory admin."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from checkout_api.dependencies import (
    Actor,
    AppState,
    get_actor,
    get_app_state,
    get_orchestrator,
    require_admin,
    require_internal_token,
)
from checkout_api.schemas import (
    AdjustStockRequest,
    ConvertIntentRequest,
    CreateIntentRequest,
    IntentCreatedResponse,
    IntentResponse,
    InventorySummaryResponse,
    LockResponse,
    OrderRefResponse,
    SetStockRequest,
    StockLevelResponse,
)
from checkout_kernel.domain.cart import CartLine
from checkout_kernel.domain.dtos import IntentRequest, PaymentDetails
from checkout_kernel.models.inventory_lock import LockStatus
from checkout_kernel.models.order_intent import IntentStatus
from checkout_kernel.services.checkout_orchestrator import CheckoutOrchestrator

# ---------------------------------------------------------------------------
# Order intents (client-facing)
# ---------------------------------------------------------------------------
intent_router = APIRouter(prefix="/order-intents", tags=["order-intents"])


@intent_router.post("", status_code=201, response_model=IntentCreatedResponse)
def create_intent(
    body: CreateIntentRequest,
    actor: Actor = Depends(get_actor),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> IntentCreatedResponse:
    result = orchestrator.create_intent(
        IntentRequest(
            user_id=actor.user_id,
            lines=[CartLine(line.variant_id, line.quantity) for line in body.lines],
            shipping_address_id=body.shipping_address_id,
            billing_address_id=body.billing_address_id,
            discount_code=body.discount_code,
        )
    )
    return IntentCreatedResponse.from_result(result)


@intent_router.get("", response_model=list[IntentResponse])
def list_intents(
    status: IntentStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> list[IntentResponse]:
    views = orchestrator.list_intents(actor.user_id, status, limit, offset)
    return [IntentResponse.from_view(view) for view in views]


@intent_router.get("/{intent_id}", response_model=IntentResponse)
def get_intent(
    intent_id: UUID,
    actor: Actor = Depends(get_actor),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> IntentResponse:
    owner = None if actor.is_admin else actor.user_id
    return IntentResponse.from_view(orchestrator.get_intent(intent_id, owner))


@intent_router.post("/{intent_id}/cancel", response_model=IntentResponse)
def cancel_intent(
    intent_id: UUID,
    actor: Actor = Depends(get_actor),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> IntentResponse:
    view = orchestrator.cancel_intent(intent_id, actor.user_id, is_admin=actor.is_admin)
    return IntentResponse.from_view(view)


# ---------------------------------------------------------------------------
# Internal (payment collaborator only)
# ---------------------------------------------------------------------------
internal_router = APIRouter(
    prefix="/internal/order-intents",
    tags=["internal"],
    dependencies=[Depends(require_internal_token)],
)


@internal_router.post("/{intent_id}/convert", response_model=OrderRefResponse)
def convert_intent(
    intent_id: UUID,
    body: ConvertIntentRequest | None = None,
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> OrderRefResponse:
    payment = None
    if body is not None:
        payment = PaymentDetails(
            method=body.payment_method, reference=body.payment_reference
        )
    return OrderRefResponse.from_ref(orchestrator.convert(intent_id, payment))


# ---------------------------------------------------------------------------
# Inventory administration
# ---------------------------------------------------------------------------
admin_router = APIRouter(
    prefix="/admin/inventory",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@admin_router.get("/locks", response_model=list[LockResponse])
def list_locks(
    status: LockStatus | None = None,
    variant_id: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> list[LockResponse]:
    locks = orchestrator.list_locks(status, variant_id, limit, offset)
    return [LockResponse.from_view(lock) for lock in locks]


@admin_router.get("/summary", response_model=InventorySummaryResponse)
def inventory_summary(
    low_stock_threshold: int | None = Query(None, ge=0),
    state: AppState = Depends(get_app_state),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> InventorySummaryResponse:
    if low_stock_threshold is None:
        low_stock_threshold = state.config.inventory.low_stock_threshold
    summary = orchestrator.inventory_summary(low_stock_threshold)
    return InventorySummaryResponse.from_summary(summary)


@admin_router.get("/variants/{variant_id}", response_model=StockLevelResponse)
def get_stock_level(
    variant_id: str,
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> StockLevelResponse:
    return StockLevelResponse.from_level(orchestrator.stock_level(variant_id))


@admin_router.put("/variants/{variant_id}", response_model=StockLevelResponse)
def set_stock(
    variant_id: str,
    body: SetStockRequest,
    actor: Actor = Depends(require_admin),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> StockLevelResponse:
    level = orchestrator.register_stock(
        variant_id, body.total_stock, body.product_id, actor_id=actor.user_id
    )
    return StockLevelResponse.from_level(level)


@admin_router.post("/variants/{variant_id}/adjust", response_model=StockLevelResponse)
def adjust_stock(
    variant_id: str,
    body: AdjustStockRequest,
    actor: Actor = Depends(require_admin),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> StockLevelResponse:
    level = orchestrator.adjust_stock(variant_id, body.delta, actor_id=actor.user_id)
    return StockLevelResponse.from_level(level)
