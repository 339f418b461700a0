"""
Module: checkout_kernel.models.inventory_lock
Responsibility: ORM persistence for inventory locks -- a temporary claim on a
    quantity of one variant's stock, owned by one order intent.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One lock per (intent, variant) (UNIQUE uq_inventory_lock_intent_variant).
    - quantity_locked > 0 (CHECK ck_inventory_lock_quantity_positive).
    - While status is LOCKED the quantity is counted exactly once in the
      variant's VariantStock.locked_quantity.  Leaving LOCKED is a conditional
      UPDATE (WHERE status = 'LOCKED'), so the ledger is adjusted at most once
      per lock.
    - Terminal rows (RELEASED, CONVERTED, EXPIRED) are never updated again.
    - expires_at is copied from the owning intent, so a lock never outlives it.

Failure modes:
    - IntegrityError on duplicate (order_intent_id, variant_id).
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from checkout_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from checkout_kernel.models.order_intent import OrderIntent


class LockStatus(str, Enum):
    """
    Status of an inventory lock.

    LOCKED -> RELEASED (cancel) | EXPIRED (reaper / lazy expiry) | CONVERTED
    """

    LOCKED = "LOCKED"
    RELEASED = "RELEASED"
    CONVERTED = "CONVERTED"
    EXPIRED = "EXPIRED"


TERMINAL_LOCK_STATUSES: frozenset[LockStatus] = frozenset({
    LockStatus.RELEASED, LockStatus.CONVERTED, LockStatus.EXPIRED,
})


class InventoryLock(Base):
    """A per-variant quantity hold owned by an order intent."""

    __tablename__ = "inventory_locks"

    __table_args__ = (
        UniqueConstraint(
            "order_intent_id", "variant_id",
            name="uq_inventory_lock_intent_variant",
        ),
        CheckConstraint("quantity_locked > 0", name="ck_inventory_lock_quantity_positive"),
        # Reaper sweep
        Index("idx_inventory_lock_status_expires", "status", "expires_at"),
        Index("idx_inventory_lock_variant_status", "variant_id", "status"),
    )

    order_intent_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("order_intents.id"),
        nullable=False,
    )

    variant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    quantity_locked: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LockStatus.LOCKED.value,
    )

    locked_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    # Set on any terminal transition
    released_at: Mapped[datetime | None] = mapped_column(nullable=True)

    intent: Mapped["OrderIntent"] = relationship(back_populates="locks")

    def __repr__(self) -> str:
        return (
            f"<InventoryLock {self.variant_id} qty={self.quantity_locked} "
            f"status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        return self.status == LockStatus.LOCKED.value
