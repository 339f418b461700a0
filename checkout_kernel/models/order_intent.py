"""
Module: checkout_kernel.models.order_intent
Responsibility: ORM persistence for order intents -- a frozen, time-bound
    proposal to buy a specific cart at a specific price before payment.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - intent_number is unique (uq_order_intent_number).
    - At most one active intent per (user, cart): active_cart_key is set while
      the intent is DRAFT or INTENT_CREATED and cleared (NULL) on every
      terminal transition; its UNIQUE constraint is what makes concurrent
      duplicate requests for the same cart collide.
    - Pricing columns and cart_snapshot are written once at creation and never
      recomputed.
    - Status transitions follow INTENT_TRANSITIONS; every transition is a
      conditional UPDATE keyed on the expected prior status (see
      OrderIntentService / ConversionCoordinator / ExpiryReaper).

Failure modes:
    - IntegrityError on duplicate intent_number or active_cart_key.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from checkout_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from checkout_kernel.models.inventory_lock import InventoryLock


class IntentStatus(str, Enum):
    """
    Lifecycle status of an order intent.

    State machine:
        DRAFT -> INTENT_CREATED
        INTENT_CREATED -> EXPIRED | CANCELLED | CONVERTED
        EXPIRED, CANCELLED, CONVERTED: terminal
    """

    DRAFT = "DRAFT"
    INTENT_CREATED = "INTENT_CREATED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"
    CANCELLED = "CANCELLED"


# Allowed state transitions (from -> set of valid targets)
INTENT_TRANSITIONS: dict[IntentStatus, frozenset[IntentStatus]] = {
    IntentStatus.DRAFT: frozenset({IntentStatus.INTENT_CREATED}),
    IntentStatus.INTENT_CREATED: frozenset({
        IntentStatus.EXPIRED, IntentStatus.CANCELLED, IntentStatus.CONVERTED,
    }),
    # Terminal states -- no transitions allowed
    IntentStatus.EXPIRED: frozenset(),
    IntentStatus.CONVERTED: frozenset(),
    IntentStatus.CANCELLED: frozenset(),
}

TERMINAL_INTENT_STATUSES: frozenset[IntentStatus] = frozenset(
    status for status, targets in INTENT_TRANSITIONS.items() if not targets
)


def can_transition(current: str, target: str) -> bool:
    """Return True if moving from current to target is a legal transition."""
    return IntentStatus(target) in INTENT_TRANSITIONS[IntentStatus(current)]


class OrderIntent(TrackedBase):
    """
    Order intent header with its frozen cart snapshot and pricing.

    Contract:
        While status is INTENT_CREATED the intent owns exactly one LOCKED
        InventoryLock per snapshot line.  An intent is never visible as
        INTENT_CREATED with a partial lock set: the DRAFT row, its locks and
        the DRAFT -> INTENT_CREATED transition commit in one transaction.

    Non-goals:
        - This model does not enforce transitions; the conditional updates in
          the services do.
    """

    __tablename__ = "order_intents"

    __table_args__ = (
        UniqueConstraint("intent_number", name="uq_order_intent_number"),
        UniqueConstraint("active_cart_key", name="uq_order_intent_active_cart"),
        Index("idx_order_intent_status_expires", "status", "expires_at"),
        Index("idx_order_intent_user_created", "user_id", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Human-facing identifier: INT-<epoch ms>-<7 alnum>
    intent_number: Mapped[str] = mapped_column(String(40), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=IntentStatus.DRAFT.value,
    )

    # Immutable copy of the normalized cart lines (with catalog unit prices)
    cart_snapshot: Mapped[list] = mapped_column(JSON, nullable=False)

    # SHA-256 of the canonical (variant_id, quantity) line set
    cart_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # "<user_id>:<cart_hash>" while active, NULL once terminal
    active_cart_key: Mapped[str | None] = mapped_column(String(140), nullable=True)

    # Frozen pricing
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    shipping_charge: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    discount_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    shipping_address_id: Mapped[str] = mapped_column(String(64), nullable=False)
    billing_address_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Computed once at creation, never extended
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    # Set by ConversionCoordinator in the conversion transaction
    order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Terminal transition timestamps (at most one is ever set)
    converted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(nullable=True)

    cancelled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    locks: Mapped[list["InventoryLock"]] = relationship(
        back_populates="intent",
        lazy="selectin",
        order_by="InventoryLock.variant_id",
    )

    def __repr__(self) -> str:
        return f"<OrderIntent {self.intent_number} status={self.status}>"

    @property
    def is_terminal(self) -> bool:
        return IntentStatus(self.status) in TERMINAL_INTENT_STATUSES

    def is_past_expiry(self, now: datetime) -> bool:
        """True once now has passed expires_at (regardless of status)."""
        return self.expires_at < now
