"""
StockLedger -- authoritative per-variant stock counters.

Responsibility:
    Owns ``available = total_stock - locked_quantity >= 0`` for every variant.
    Reserves quantity for inventory locks, returns it when a lock is released,
    and turns it into a permanent decrement when a lock is converted.

Architecture position:
    Kernel > Services -- leaf service.  Called by InventoryLockManager (and
    by the admin stock operations through CheckoutOrchestrator).

Invariants enforced:
    - Atomic reserve: ``try_reserve`` is one conditional UPDATE
      (``... WHERE total_stock - locked_quantity >= :qty``).  On PostgreSQL the
      UPDATE takes the variant's row lock and re-checks the predicate after
      any concurrent writer commits, so reservations for one variant are
      serialized while reservations for different variants never wait on
      each other.  There is no read-then-write window.
    - Idempotent release: ``release`` never drives locked_quantity negative;
      a release that finds nothing to return is logged and ignored.
    - Paired commit: ``commit`` decrements total_stock and locked_quantity in
      the same statement.  It is only called by InventoryLockManager.convert_all
      after the owning lock's LOCKED -> CONVERTED update succeeded, inside the
      conversion transaction.
    - Adjustments never push total_stock below locked_quantity.

Failure modes:
    - VariantNotFoundError when the variant has no ledger row.
    - InsufficientStockError from ``reserve`` when available < requested.
    - OptimisticLockError from ``commit`` if the ledger no longer holds the
      locked quantity (the transaction must roll back).
    - StockLevelError when an adjustment would go below the locked quantity.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.domain.dtos import StockLevel
from checkout_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    OptimisticLockError,
    StockLevelError,
    VariantNotFoundError,
)
from checkout_kernel.logging_config import get_logger
from checkout_kernel.models.audit_log import AuditAction
from checkout_kernel.models.variant_stock import VariantStock
from checkout_kernel.services.audit_service import AuditService
from checkout_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


class StockLedger(BaseService[VariantStock]):
    """
    Per-variant stock counters with row-level atomic updates.

    Non-goals:
        - Does NOT know about intents or locks; InventoryLockManager pairs
          ledger movements with lock rows.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit: AuditService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, variant_id: str) -> VariantStock | None:
        return self.session.execute(
            select(VariantStock)
            .where(VariantStock.variant_id == variant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def level(self, variant_id: str) -> StockLevel:
        """
        Current counters for a variant.

        Raises:
            VariantNotFoundError: If the variant has no ledger row.
        """
        row = self._load(variant_id)
        if row is None:
            raise VariantNotFoundError(variant_id)
        return StockLevel.from_model(row)

    # ------------------------------------------------------------------
    # Lock movements
    # ------------------------------------------------------------------

    def try_reserve(self, variant_id: str, quantity: int) -> bool:
        """
        Atomically add quantity to the variant's locked counter if available.

        Returns:
            True if reserved; False (with no side effect) if available stock
            is below quantity.

        Raises:
            VariantNotFoundError: If the variant has no ledger row.
            InvalidQuantityError: If quantity is not positive.
        """
        if quantity <= 0:
            raise InvalidQuantityError(variant_id, quantity)

        # INVARIANT: check and increment in one statement; the row lock taken
        # by the UPDATE serializes concurrent reservations for this variant.
        changed = self._conditional_update(
            update(VariantStock)
            .where(
                VariantStock.variant_id == variant_id,
                VariantStock.total_stock - VariantStock.locked_quantity >= quantity,
            )
            .values(locked_quantity=VariantStock.locked_quantity + quantity)
        )
        if changed == 1:
            logger.debug(
                "inventory_reserved",
                extra={"variant_id": variant_id, "quantity": quantity},
            )
            return True

        if self._load(variant_id) is None:
            raise VariantNotFoundError(variant_id)
        return False

    def reserve(self, variant_id: str, quantity: int) -> None:
        """
        Reserve quantity or fail.

        Raises:
            InsufficientStockError: With the currently available quantity.
            VariantNotFoundError: If the variant has no ledger row.
        """
        if not self.try_reserve(variant_id, quantity):
            available = self.level(variant_id).available
            logger.info(
                "inventory_insufficient",
                extra={
                    "variant_id": variant_id,
                    "requested": quantity,
                    "available": available,
                },
            )
            raise InsufficientStockError(variant_id, quantity, available)

    def release(self, variant_id: str, quantity: int) -> bool:
        """
        Return quantity from the locked counter to available stock.

        Not idempotent per call: the counter has no notion of which hold the
        quantity belongs to, so a repeated call would free stock another
        intent still holds.  Callers pair each call with a won
        LOCKED -> RELEASED/EXPIRED lock transition
        (InventoryLockManager._finish_lock); that transition is what makes
        releasing an intent idempotent.  Returns False without changing
        anything only when fewer than quantity units are locked.
        """
        changed = self._conditional_update(
            update(VariantStock)
            .where(
                VariantStock.variant_id == variant_id,
                VariantStock.locked_quantity >= quantity,
            )
            .values(locked_quantity=VariantStock.locked_quantity - quantity)
        )
        if changed != 1:
            logger.warning(
                "inventory_release_noop",
                extra={"variant_id": variant_id, "quantity": quantity},
            )
            return False

        logger.debug(
            "inventory_released",
            extra={"variant_id": variant_id, "quantity": quantity},
        )
        return True

    def commit(self, variant_id: str, quantity: int) -> None:
        """
        Permanently remove locked quantity from stock (final sale).

        Raises:
            OptimisticLockError: If the ledger does not hold quantity locked.
        """
        changed = self._conditional_update(
            update(VariantStock)
            .where(
                VariantStock.variant_id == variant_id,
                VariantStock.locked_quantity >= quantity,
                VariantStock.total_stock >= quantity,
            )
            .values(
                total_stock=VariantStock.total_stock - quantity,
                locked_quantity=VariantStock.locked_quantity - quantity,
            )
        )
        if changed != 1:
            logger.error(
                "inventory_commit_conflict",
                extra={"variant_id": variant_id, "quantity": quantity},
            )
            raise OptimisticLockError("variant_stock", variant_id)

        logger.debug(
            "inventory_committed",
            extra={"variant_id": variant_id, "quantity": quantity},
        )

    # ------------------------------------------------------------------
    # Stock administration
    # ------------------------------------------------------------------

    def register_variant(
        self,
        variant_id: str,
        total_stock: int,
        product_id: str | None = None,
        actor_id: str | None = None,
    ) -> StockLevel:
        """
        Create the ledger row for a variant, or set its total if it exists.

        Raises:
            StockLevelError: If an existing row has more locked than total_stock.
        """
        if total_stock < 0:
            raise StockLevelError(variant_id, total_stock, 0)

        if self._load(variant_id) is None:
            # Another worker may register the same variant concurrently;
            # the savepoint keeps the caller's transaction usable.
            savepoint = self.session.begin_nested()
            try:
                row = VariantStock(
                    variant_id=variant_id,
                    product_id=product_id,
                    total_stock=total_stock,
                    locked_quantity=0,
                    created_at=self._clock.now(),
                )
                self.session.add(row)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.debug(
                    "variant_register_race_retry",
                    extra={"variant_id": variant_id},
                )
            else:
                self._audit.record(
                    AuditAction.STOCK_ADJUSTED,
                    "variant_stock",
                    variant_id,
                    actor_id=actor_id,
                    old_values=None,
                    new_values={"total_stock": total_stock},
                )
                logger.info(
                    "variant_registered",
                    extra={"variant_id": variant_id, "total_stock": total_stock},
                )
                return StockLevel.from_model(row)

        return self.set_total_stock(variant_id, total_stock, actor_id=actor_id)

    def set_total_stock(
        self,
        variant_id: str,
        total_stock: int,
        actor_id: str | None = None,
    ) -> StockLevel:
        """
        Set a variant's total stock, never below its locked quantity.

        Raises:
            VariantNotFoundError: If the variant has no ledger row.
            StockLevelError: If total_stock < locked_quantity.
        """
        before = self.level(variant_id)
        changed = self._conditional_update(
            update(VariantStock)
            .where(
                VariantStock.variant_id == variant_id,
                VariantStock.locked_quantity <= total_stock,
            )
            .values(total_stock=total_stock)
        )
        if changed != 1:
            current = self.level(variant_id)
            raise StockLevelError(variant_id, total_stock, current.locked_quantity)

        self._audit.record(
            AuditAction.STOCK_ADJUSTED,
            "variant_stock",
            variant_id,
            actor_id=actor_id,
            old_values={"total_stock": before.total_stock},
            new_values={"total_stock": total_stock},
        )
        logger.info(
            "stock_adjusted",
            extra={
                "variant_id": variant_id,
                "old_total_stock": before.total_stock,
                "new_total_stock": total_stock,
            },
        )
        return self.level(variant_id)

    def adjust_total_stock(
        self,
        variant_id: str,
        delta: int,
        actor_id: str | None = None,
    ) -> StockLevel:
        """
        Add delta (may be negative) to total stock in one statement.

        Raises:
            VariantNotFoundError: If the variant has no ledger row.
            StockLevelError: If the result would be below locked_quantity.
        """
        before = self.level(variant_id)
        changed = self._conditional_update(
            update(VariantStock)
            .where(
                VariantStock.variant_id == variant_id,
                VariantStock.total_stock + delta >= VariantStock.locked_quantity,
            )
            .values(total_stock=VariantStock.total_stock + delta)
        )
        if changed != 1:
            current = self.level(variant_id)
            raise StockLevelError(
                variant_id, current.total_stock + delta, current.locked_quantity
            )

        after = self.level(variant_id)
        self._audit.record(
            AuditAction.STOCK_ADJUSTED,
            "variant_stock",
            variant_id,
            actor_id=actor_id,
            old_values={"total_stock": before.total_stock},
            new_values={"total_stock": after.total_stock, "delta": delta},
        )
        logger.info(
            "stock_adjusted",
            extra={
                "variant_id": variant_id,
                "delta": delta,
                "new_total_stock": after.total_stock,
            },
        )
        return after
