"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundary:
    IntentRequest (input to CreateIntent), IntentView / LockView (read
    models returned by services and selectors), OrderRef (conversion result),
    PaymentDetails, and the inventory views used by the admin surface.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Callers outside the kernel never receive ORM instances, so a returned
      view cannot be used to mutate state behind a service's back.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from checkout_kernel.domain.cart import CartLine, SnapshotLine

if TYPE_CHECKING:
    from checkout_kernel.models.inventory_lock import InventoryLock
    from checkout_kernel.models.order import Order
    from checkout_kernel.models.order_intent import OrderIntent
    from checkout_kernel.models.variant_stock import VariantStock


@dataclass(frozen=True)
class IntentRequest:
    """Input to OrderIntentService.create_intent."""

    user_id: str
    lines: Sequence[CartLine | Mapping[str, Any]]
    shipping_address_id: str | None
    billing_address_id: str | None = None
    discount_code: str | None = None


@dataclass(frozen=True)
class PaymentDetails:
    """What the payment collaborator reports when it triggers conversion."""

    method: str | None = None
    reference: str | None = None


@dataclass(frozen=True)
class LockView:
    lock_id: UUID
    variant_id: str
    quantity_locked: int
    status: str
    locked_at: datetime
    expires_at: datetime
    released_at: datetime | None

    @classmethod
    def from_model(cls, model: InventoryLock) -> LockView:
        return cls(
            lock_id=model.id,
            variant_id=model.variant_id,
            quantity_locked=model.quantity_locked,
            status=model.status,
            locked_at=model.locked_at,
            expires_at=model.expires_at,
            released_at=model.released_at,
        )


@dataclass(frozen=True)
class IntentView:
    """Read model of an order intent with its locks."""

    intent_id: UUID
    intent_number: str
    user_id: str
    status: str
    lines: tuple[SnapshotLine, ...]
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    total_amount: Decimal
    discount_code: str | None
    shipping_address_id: str
    billing_address_id: str
    expires_at: datetime
    created_at: datetime
    order_id: UUID | None
    locks: tuple[LockView, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, model: OrderIntent) -> IntentView:
        return cls(
            intent_id=model.id,
            intent_number=model.intent_number,
            user_id=model.user_id,
            status=model.status,
            lines=tuple(SnapshotLine.from_dict(d) for d in model.cart_snapshot),
            subtotal=model.subtotal,
            discount_amount=model.discount_amount,
            tax_amount=model.tax_amount,
            shipping_charge=model.shipping_charge,
            total_amount=model.total_amount,
            discount_code=model.discount_code,
            shipping_address_id=model.shipping_address_id,
            billing_address_id=model.billing_address_id,
            expires_at=model.expires_at,
            created_at=model.created_at,
            order_id=model.order_id,
            locks=tuple(LockView.from_model(lock) for lock in model.locks),
        )

    @property
    def locked_quantity(self) -> int:
        return sum(lock.quantity_locked for lock in self.locks if lock.status == "LOCKED")


@dataclass(frozen=True)
class IntentResult:
    """Outcome of create_intent: the intent and whether it was reused."""

    intent: IntentView
    reused: bool = False


@dataclass(frozen=True)
class OrderRef:
    """Outcome of a conversion."""

    order_id: UUID
    order_number: str
    intent_id: UUID
    # False when an earlier conversion of the same intent is returned
    created: bool = True

    @classmethod
    def from_model(cls, model: Order, created: bool = True) -> OrderRef:
        return cls(
            order_id=model.id,
            order_number=model.order_number,
            intent_id=model.order_intent_id,
            created=created,
        )


@dataclass(frozen=True)
class StockLevel:
    variant_id: str
    product_id: str | None
    total_stock: int
    locked_quantity: int

    @property
    def available(self) -> int:
        return self.total_stock - self.locked_quantity

    @classmethod
    def from_model(cls, model: VariantStock) -> StockLevel:
        return cls(
            variant_id=model.variant_id,
            product_id=model.product_id,
            total_stock=model.total_stock,
            locked_quantity=model.locked_quantity,
        )


@dataclass(frozen=True)
class InventorySummary:
    variant_count: int
    total_stock: int
    locked_quantity: int
    available: int
    active_lock_count: int
    low_stock: tuple[StockLevel, ...]
    low_stock_threshold: int
