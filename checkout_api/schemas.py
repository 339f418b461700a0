"""Pydantic request/response schemas for the checkout API.

These are external contracts -- separate from the kernel DTOs, which never
leave the service layer as-is.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from checkout_kernel.domain.dtos import (
    IntentResult,
    IntentView,
    InventorySummary,
    LockView,
    OrderRef,
    StockLevel,
)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class CartLineRequest(BaseModel):
    variant_id: str
    # Range checks happen in the kernel so that bad quantities surface as
    # INVALID_QUANTITY rather than a generic 422.
    quantity: int


class CreateIntentRequest(BaseModel):
    lines: list[CartLineRequest]
    shipping_address_id: str | None = None
    billing_address_id: str | None = None
    discount_code: str | None = None


class ConvertIntentRequest(BaseModel):
    payment_method: str | None = None
    payment_reference: str | None = None


class SetStockRequest(BaseModel):
    total_stock: int = Field(ge=0)
    product_id: str | None = None


class AdjustStockRequest(BaseModel):
    delta: int


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class PricingResponse(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    total_amount: Decimal
    discount_code: str | None = None


class IntentLineResponse(BaseModel):
    variant_id: str
    product_id: str | None = None
    product_name: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    attributes: dict[str, Any] = Field(default_factory=dict)


class LockResponse(BaseModel):
    lock_id: UUID
    variant_id: str
    quantity_locked: int
    status: str
    locked_at: datetime
    expires_at: datetime
    released_at: datetime | None = None

    @classmethod
    def from_view(cls, view: LockView) -> LockResponse:
        return cls(
            lock_id=view.lock_id,
            variant_id=view.variant_id,
            quantity_locked=view.quantity_locked,
            status=view.status,
            locked_at=view.locked_at,
            expires_at=view.expires_at,
            released_at=view.released_at,
        )


class IntentResponse(BaseModel):
    intent_id: UUID
    intent_number: str
    status: str
    expires_at: datetime
    created_at: datetime
    total_amount: Decimal
    pricing: PricingResponse
    shipping_address_id: str
    billing_address_id: str
    lines: list[IntentLineResponse]
    locks: list[LockResponse]
    locked_quantity: int
    order_id: UUID | None = None

    @classmethod
    def from_view(cls, view: IntentView) -> IntentResponse:
        return cls(
            intent_id=view.intent_id,
            intent_number=view.intent_number,
            status=view.status,
            expires_at=view.expires_at,
            created_at=view.created_at,
            total_amount=view.total_amount,
            pricing=PricingResponse(
                subtotal=view.subtotal,
                discount_amount=view.discount_amount,
                tax_amount=view.tax_amount,
                shipping_charge=view.shipping_charge,
                total_amount=view.total_amount,
                discount_code=view.discount_code,
            ),
            shipping_address_id=view.shipping_address_id,
            billing_address_id=view.billing_address_id,
            lines=[
                IntentLineResponse(
                    variant_id=line.variant_id,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                    attributes=dict(line.attributes),
                )
                for line in view.lines
            ],
            locks=[LockResponse.from_view(lock) for lock in view.locks],
            locked_quantity=view.locked_quantity,
            order_id=view.order_id,
        )


class IntentCreatedResponse(IntentResponse):
    reused: bool = False

    @classmethod
    def from_result(cls, result: IntentResult) -> IntentCreatedResponse:
        base = IntentResponse.from_view(result.intent)
        return cls(**base.model_dump(), reused=result.reused)


class OrderRefResponse(BaseModel):
    order_id: UUID
    order_number: str
    intent_id: UUID
    created: bool

    @classmethod
    def from_ref(cls, ref: OrderRef) -> OrderRefResponse:
        return cls(
            order_id=ref.order_id,
            order_number=ref.order_number,
            intent_id=ref.intent_id,
            created=ref.created,
        )


class StockLevelResponse(BaseModel):
    variant_id: str
    product_id: str | None = None
    total_stock: int
    locked_quantity: int
    available: int

    @classmethod
    def from_level(cls, level: StockLevel) -> StockLevelResponse:
        return cls(
            variant_id=level.variant_id,
            product_id=level.product_id,
            total_stock=level.total_stock,
            locked_quantity=level.locked_quantity,
            available=level.available,
        )


class InventorySummaryResponse(BaseModel):
    variant_count: int
    total_stock: int
    locked_stock: int
    available_stock: int
    active_locks: int
    low_stock_threshold: int
    low_stock_variants: list[StockLevelResponse]

    @classmethod
    def from_summary(cls, summary: InventorySummary) -> InventorySummaryResponse:
        return cls(
            variant_count=summary.variant_count,
            total_stock=summary.total_stock,
            locked_stock=summary.locked_quantity,
            available_stock=summary.available,
            active_locks=summary.active_lock_count,
            low_stock_threshold=summary.low_stock_threshold,
            low_stock_variants=[
                StockLevelResponse.from_level(level) for level in summary.low_stock
            ],
        )


class ErrorResponse(BaseModel):
    code: str
    message: str
