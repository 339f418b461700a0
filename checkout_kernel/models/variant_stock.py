"""
Module: checkout_kernel.models.variant_stock
Responsibility: ORM persistence for the stock ledger -- one row per variant
    holding its total stock and the quantity currently held by LOCKED
    inventory locks.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - available = total_stock - locked_quantity >= 0 (CHECK constraint
      ck_variant_stock_locked_within_total, backed by the conditional UPDATEs
      in StockLedger).
    - locked_quantity >= 0 (CHECK ck_variant_stock_locked_non_negative).
    - One ledger row per variant (UNIQUE uq_variant_stock_variant).

Failure modes:
    - IntegrityError if a write would violate a CHECK constraint.  StockLedger
      never issues such a write; the constraint is the last line of defence.
"""

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from checkout_kernel.db.base import TrackedBase


class VariantStock(TrackedBase):
    """
    Authoritative stock counters for one variant.

    Contract:
        Mutated only through StockLedger (reserve, release, commit, adjust).
        The Catalog is never consulted for stock once a row exists.
    """

    __tablename__ = "variant_stock"

    __table_args__ = (
        UniqueConstraint("variant_id", name="uq_variant_stock_variant"),
        CheckConstraint("total_stock >= 0", name="ck_variant_stock_total_non_negative"),
        CheckConstraint("locked_quantity >= 0", name="ck_variant_stock_locked_non_negative"),
        CheckConstraint(
            "locked_quantity <= total_stock",
            name="ck_variant_stock_locked_within_total",
        ),
    )

    variant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Product the variant belongs to (informational, for summaries)
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    total_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    locked_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<VariantStock {self.variant_id} total={self.total_stock} "
            f"locked={self.locked_quantity}>"
        )

    @property
    def available(self) -> int:
        return self.total_stock - self.locked_quantity
