"""
Module: checkout_kernel.selectors.inventory_selector
Responsibility: Read queries for the admin inventory view -- lock listing,
    per-variant stock levels, and the inventory summary.
Architecture position: Kernel > Selectors.
"""

from sqlalchemy import func, select

from checkout_kernel.domain.dtos import InventorySummary, LockView, StockLevel
from checkout_kernel.models.inventory_lock import InventoryLock, LockStatus
from checkout_kernel.models.variant_stock import VariantStock
from checkout_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector[VariantStock]):
    """Read-only stock and lock queries."""

    def stock_level(self, variant_id: str) -> StockLevel | None:
        row = self.session.execute(
            select(VariantStock)
            .where(VariantStock.variant_id == variant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return StockLevel.from_model(row) if row else None

    def stock_levels(self) -> list[StockLevel]:
        rows = self.session.execute(
            select(VariantStock)
            .order_by(VariantStock.variant_id)
            .execution_options(populate_existing=True)
        ).scalars()
        return [StockLevel.from_model(row) for row in rows]

    def locks(
        self,
        status: LockStatus | str | None = None,
        variant_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[LockView]:
        """Inventory locks, newest first, optionally filtered."""
        query = select(InventoryLock)
        if status is not None:
            query = query.where(InventoryLock.status == LockStatus(status).value)
        if variant_id is not None:
            query = query.where(InventoryLock.variant_id == variant_id)
        query = (
            query.order_by(InventoryLock.locked_at.desc(), InventoryLock.variant_id)
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return [LockView.from_model(lock) for lock in self.session.execute(query).scalars()]

    def locked_sum(self, variant_id: str) -> int:
        """Sum of LOCKED quantities for a variant, recomputed from lock rows."""
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryLock.quantity_locked), 0)).where(
                InventoryLock.variant_id == variant_id,
                InventoryLock.status == LockStatus.LOCKED.value,
            )
        ).scalar_one()
        return int(total)

    def summary(self, low_stock_threshold: int = 10) -> InventorySummary:
        levels = self.stock_levels()
        active_locks = self.session.execute(
            select(func.count(InventoryLock.id)).where(
                InventoryLock.status == LockStatus.LOCKED.value
            )
        ).scalar_one()

        total = sum(level.total_stock for level in levels)
        locked = sum(level.locked_quantity for level in levels)
        return InventorySummary(
            variant_count=len(levels),
            total_stock=total,
            locked_quantity=locked,
            available=total - locked,
            active_lock_count=int(active_locks),
            low_stock=tuple(
                level for level in levels if level.available < low_stock_threshold
            ),
            low_stock_threshold=low_stock_threshold,
        )
