"""
Module: checkout_kernel.models.order
Responsibility: ORM persistence for orders created from converted intents and
    their line items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one order per intent (UNIQUE uq_order_intent).  Together with
      the INTENT_CREATED -> CONVERTED conditional update this makes
      conversion exactly-once.
    - order_number is unique (uq_order_number).
    - Amounts are copied from the intent's frozen pricing, never recomputed.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from checkout_kernel.db.base import Base, TrackedBase, UUIDString


class OrderStatus(str, Enum):
    """Order status.  Conversion only happens on confirmed payment."""

    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class Order(TrackedBase):
    """Order header created from exactly one converted intent."""

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_intent_id", name="uq_order_intent"),
        UniqueConstraint("order_number", name="uq_order_number"),
        Index("idx_order_user_created", "user_id", "created_at"),
    )

    # ORD-YYYYMMDD-<8 hex>
    order_number: Mapped[str] = mapped_column(String(40), nullable=False)

    order_intent_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("order_intents.id"),
        nullable=False,
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.PAID.value,
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PAID.value,
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    shipping_charge: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    discount_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    shipping_address_id: Mapped[str] = mapped_column(String(64), nullable=False)
    billing_address_id: Mapped[str] = mapped_column(String(64), nullable=False)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.line_no",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(Base):
    """One line of an order, copied from the intent's cart snapshot."""

    __tablename__ = "order_items"

    __table_args__ = (
        Index("idx_order_item_order", "order_id"),
        UniqueConstraint("order_id", "line_no", name="uq_order_item_line"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    variant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Size / colour / material at the time of purchase
    variant_attributes: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem {self.variant_id} x{self.quantity}>"
