"""
InventoryLockManager -- all-or-nothing inventory holds for an intent.

Responsibility:
    Acquires one InventoryLock per cart line against the StockLedger,
    releases an intent's locks back to stock (cancel / expiry), and converts
    them into permanent stock decrements (conversion).

Architecture position:
    Kernel > Services.  Called by OrderIntentService (acquire, release),
    ConversionCoordinator (convert) and ExpiryReaper (release as EXPIRED).

Invariants enforced:
    - All-or-nothing acquisition: reservations run inside a SAVEPOINT; the
      first shortfall rolls the savepoint back (undoing every reservation and
      lock row made by the call) before InsufficientStockError propagates.
    - Fixed acquisition order: lines are reserved in ascending variant_id,
      so two multi-line intents touching the same variants always take
      their row locks in the same order and cannot deadlock.
    - Exactly-once ledger movement per lock: a lock leaves LOCKED through a
      conditional UPDATE (``WHERE status = 'LOCKED'``).  Only the caller whose
      UPDATE matched moves ledger quantity, so concurrent cancel / reaper /
      lazy-expiry passes never return the same quantity twice.
    - CONVERTED locks are never released.

Failure modes:
    - InsufficientStockError / VariantNotFoundError from acquire_all (nothing
      held afterwards).
    - OptimisticLockError from convert_all when a lock is no longer LOCKED;
      the conversion transaction must roll back.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from checkout_kernel.domain.cart import CartLine
from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.exceptions import CheckoutKernelError, OptimisticLockError
from checkout_kernel.logging_config import get_logger
from checkout_kernel.models.inventory_lock import InventoryLock, LockStatus
from checkout_kernel.services.base import BaseService
from checkout_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.inventory_lock_manager")


class InventoryLockManager(BaseService[InventoryLock]):
    """
    Acquires, releases and converts an intent's inventory locks.

    Non-goals:
        - Does NOT change intent status; callers pair lock movements with the
          intent's own conditional transition in the same transaction.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        ledger: StockLedger | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._ledger = ledger or StockLedger(session, self._clock)

    @property
    def ledger(self) -> StockLedger:
        return self._ledger

    def locks_for(self, intent_id: UUID) -> list[InventoryLock]:
        """All locks owned by an intent, freshly read, in variant order."""
        return list(
            self.session.execute(
                select(InventoryLock)
                .where(InventoryLock.order_intent_id == intent_id)
                .order_by(InventoryLock.variant_id)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def acquire_all(
        self,
        intent_id: UUID,
        lines: Iterable[CartLine],
        expires_at: datetime,
    ) -> list[InventoryLock]:
        """
        Lock every line or none.

        Preconditions:
            - The intent row exists (flushed) in the current transaction.
            - lines hold at most one entry per variant.

        Returns:
            The created locks, in ascending variant_id order.

        Raises:
            InsufficientStockError: On the first line that cannot be
                reserved; every reservation made by this call has already
                been rolled back.
            VariantNotFoundError: If a variant has no ledger row.
        """
        ordered = sorted(lines, key=lambda line: line.variant_id)
        now = self._clock.now()
        locks: list[InventoryLock] = []

        try:
            with self.session.begin_nested():
                for line in ordered:
                    self._ledger.reserve(line.variant_id, line.quantity)
                    lock = InventoryLock(
                        order_intent_id=intent_id,
                        variant_id=line.variant_id,
                        quantity_locked=line.quantity,
                        status=LockStatus.LOCKED.value,
                        locked_at=now,
                        expires_at=expires_at,
                    )
                    self.session.add(lock)
                    locks.append(lock)
                self.session.flush()
        except CheckoutKernelError as exc:
            logger.info(
                "inventory_acquire_rolled_back",
                extra={
                    "intent_id": str(intent_id),
                    "attempted_lines": len(ordered),
                    "reserved_before_failure": len(locks),
                    "reason": exc.code,
                },
            )
            raise

        logger.info(
            "inventory_locks_acquired",
            extra={
                "intent_id": str(intent_id),
                "lock_count": len(locks),
                "expires_at": expires_at,
            },
        )
        return locks

    def _finish_lock(self, lock_id: UUID, target: LockStatus) -> bool:
        """CAS a single lock LOCKED -> target.  True if this caller won."""
        changed = self._conditional_update(
            update(InventoryLock)
            .where(
                InventoryLock.id == lock_id,
                InventoryLock.status == LockStatus.LOCKED.value,
            )
            .values(status=target.value, released_at=self._clock.now())
        )
        return changed == 1

    def release_all(
        self,
        intent_id: UUID,
        target: LockStatus = LockStatus.RELEASED,
    ) -> int:
        """
        Release every LOCKED lock of an intent back to available stock.

        Idempotent: terminal locks are skipped, so calling it twice neither
        errors nor returns stock twice.

        Args:
            target: RELEASED (cancel) or EXPIRED (reaper / lazy expiry).

        Returns:
            Number of locks this call released.
        """
        if target not in (LockStatus.RELEASED, LockStatus.EXPIRED):
            raise ValueError(f"release target must be RELEASED or EXPIRED, got {target}")

        released = 0
        for lock in self.locks_for(intent_id):
            if lock.status != LockStatus.LOCKED.value:
                continue
            if not self._finish_lock(lock.id, target):
                continue
            self._ledger.release(lock.variant_id, lock.quantity_locked)
            released += 1

        if released:
            self.session.flush()
        logger.info(
            "inventory_locks_released",
            extra={
                "intent_id": str(intent_id),
                "released": released,
                "target_status": target.value,
            },
        )
        return released

    def convert_all(self, intent_id: UUID) -> list[InventoryLock]:
        """
        Turn every lock of an intent into a permanent stock decrement.

        Only invoked by ConversionCoordinator inside its transaction, after
        the intent's INTENT_CREATED -> CONVERTED update succeeded.

        Raises:
            OptimisticLockError: If the intent has no locks or any lock is not
                LOCKED.  The caller's transaction must roll back.
        """
        locks = self.locks_for(intent_id)
        if not locks:
            raise OptimisticLockError("inventory_lock", str(intent_id))

        for lock in locks:
            if not self._finish_lock(lock.id, LockStatus.CONVERTED):
                raise OptimisticLockError("inventory_lock", str(lock.id))
            self._ledger.commit(lock.variant_id, lock.quantity_locked)

        self.session.flush()
        logger.info(
            "inventory_locks_converted",
            extra={"intent_id": str(intent_id), "lock_count": len(locks)},
        )
        return self.locks_for(intent_id)

