"""
CheckoutOrchestrator -- wires the checkout services and owns the transaction.

Responsibility:
    Creates every kernel service for one session exactly once, wires them
    together, and exposes the checkout operations with a transaction
    boundary: commit on success, roll back on failure.

Architecture position:
    Kernel > Services -- top of the kernel service layer.  The API creates
    one orchestrator per request session; scripts and tests create them
    directly.  Configuration reaches the kernel only through the arguments
    given here (see checkout_config.bridges).

Invariants enforced:
    - Single-instance lifecycle: one AuditService, StockLedger,
      InventoryLockManager and IntentStateMachine per orchestrator, shared
      by the intent service and the conversion coordinator.
    - Transaction ownership: kernel services only flush; the orchestrator
      commits (auto_commit=True) or leaves it to the caller.
    - A conversion that fails with IntentNoLongerValidError after expiring a
      timed-out intent still commits that expiry, so the released stock is
      not lost to the rollback.

Usage:
    orchestrator = CheckoutOrchestrator(session, catalog=catalog, clock=clock)
    result = orchestrator.create_intent(request)
    ref = orchestrator.convert(result.intent.intent_id)
"""

import time
from collections.abc import Callable
from typing import TypeVar
from uuid import UUID
from uuid import uuid4 as _uuid4

from sqlalchemy.orm import Session

from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.domain.collaborators import (
    AddressValidator,
    Catalog,
    DiscountValidator,
    ShippingCalculator,
    TaxCalculator,
)
from checkout_kernel.domain.dtos import (
    IntentRequest,
    IntentResult,
    IntentView,
    InventorySummary,
    LockView,
    OrderRef,
    PaymentDetails,
    StockLevel,
)
from checkout_kernel.exceptions import IntentNoLongerValidError
from checkout_kernel.logging_config import LogContext, get_logger
from checkout_kernel.models.inventory_lock import LockStatus
from checkout_kernel.models.order_intent import IntentStatus
from checkout_kernel.selectors.intent_selector import IntentSelector
from checkout_kernel.selectors.inventory_selector import InventorySelector
from checkout_kernel.services.audit_service import AuditService
from checkout_kernel.services.conversion_coordinator import ConversionCoordinator
from checkout_kernel.services.intent_state_machine import IntentStateMachine
from checkout_kernel.services.inventory_lock_manager import InventoryLockManager
from checkout_kernel.services.order_intent_service import (
    IntentPolicy,
    OrderIntentService,
)
from checkout_kernel.services.order_store import OrderStore, SqlOrderStore
from checkout_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.checkout_orchestrator")

T = TypeVar("T")


class CheckoutOrchestrator:
    """
    DI container and transaction boundary for checkout operations.

    Set auto_commit=False to delegate transaction control to the caller
    (tests that inspect uncommitted state, or callers composing several
    operations in one transaction).
    """

    def __init__(
        self,
        session: Session,
        catalog: Catalog,
        clock: Clock | None = None,
        *,
        policy: IntentPolicy | None = None,
        tax_calculator: TaxCalculator | None = None,
        shipping_calculator: ShippingCalculator | None = None,
        discount_validator: DiscountValidator | None = None,
        address_validator: AddressValidator | None = None,
        order_store: OrderStore | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        self._audit = AuditService(session, self._clock)
        self._ledger = StockLedger(session, self._clock, self._audit)
        self._lock_manager = InventoryLockManager(session, self._ledger, self._clock)
        self._states = IntentStateMachine(
            session, self._lock_manager, self._clock, self._audit
        )
        self._intents = OrderIntentService(
            session,
            catalog,
            self._clock,
            state_machine=self._states,
            audit=self._audit,
            tax_calculator=tax_calculator,
            shipping_calculator=shipping_calculator,
            discount_validator=discount_validator,
            address_validator=address_validator,
            policy=policy,
        )
        self._conversion = ConversionCoordinator(
            session,
            self._clock,
            state_machine=self._states,
            order_store=order_store or SqlOrderStore(session, self._clock),
            audit=self._audit,
        )
        self._intent_selector = IntentSelector(session)
        self._inventory_selector = InventorySelector(session)

    # ------------------------------------------------------------------
    # Service accessors
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def ledger(self) -> StockLedger:
        return self._ledger

    @property
    def lock_manager(self) -> InventoryLockManager:
        return self._lock_manager

    @property
    def state_machine(self) -> IntentStateMachine:
        return self._states

    @property
    def intents(self) -> OrderIntentService:
        return self._intents

    @property
    def conversion(self) -> ConversionCoordinator:
        return self._conversion

    @property
    def audit(self) -> AuditService:
        return self._audit

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        work: Callable[[], T],
        commit_on: tuple[type[Exception], ...] = (),
    ) -> T:
        t0 = time.monotonic()
        try:
            result = work()
        except commit_on:
            if self._auto_commit:
                self._session.commit()
            logger.info(
                f"{operation}_rejected",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                exc_info=True,
            )
            raise
        except Exception:
            if self._auto_commit:
                self._session.rollback()
            logger.warning(
                f"{operation}_failed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                exc_info=True,
            )
            raise

        if self._auto_commit:
            self._session.commit()
        logger.debug(
            f"{operation}_completed",
            extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
        )
        return result

    # ------------------------------------------------------------------
    # Intent operations
    # ------------------------------------------------------------------

    def create_intent(self, request: IntentRequest) -> IntentResult:
        with LogContext.bind(correlation_id=str(_uuid4()), user_id=request.user_id):
            return self._run(
                "create_intent", lambda: self._intents.create_intent(request)
            )

    def get_intent(self, intent_id: UUID, user_id: str | None = None) -> IntentView:
        """Read an intent; a lazily expired intent is committed as EXPIRED."""
        with LogContext.bind(intent_id=str(intent_id), user_id=user_id):
            return self._run(
                "get_intent", lambda: self._intents.get_intent(intent_id, user_id)
            )

    def list_intents(
        self,
        user_id: str,
        status: IntentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[IntentView]:
        return self._run(
            "list_intents",
            lambda: self._intent_selector.list_for_user(user_id, status, limit, offset),
        )

    def cancel_intent(
        self,
        intent_id: UUID,
        actor_id: str,
        is_admin: bool = False,
    ) -> IntentView:
        with LogContext.bind(intent_id=str(intent_id), actor_id=actor_id):
            return self._run(
                "cancel_intent",
                lambda: self._intents.cancel_intent(intent_id, actor_id, is_admin),
            )

    def convert(
        self,
        intent_id: UUID,
        payment: PaymentDetails | None = None,
    ) -> OrderRef:
        with LogContext.bind(correlation_id=str(_uuid4()), intent_id=str(intent_id)):
            return self._run(
                "convert_intent",
                lambda: self._conversion.convert(intent_id, payment),
                commit_on=(IntentNoLongerValidError,),
            )

    # ------------------------------------------------------------------
    # Inventory administration
    # ------------------------------------------------------------------

    def register_stock(
        self,
        variant_id: str,
        total_stock: int,
        product_id: str | None = None,
        actor_id: str | None = None,
    ) -> StockLevel:
        with LogContext.bind(actor_id=actor_id):
            return self._run(
                "register_stock",
                lambda: self._ledger.register_variant(
                    variant_id, total_stock, product_id, actor_id
                ),
            )

    def adjust_stock(
        self,
        variant_id: str,
        delta: int,
        actor_id: str | None = None,
    ) -> StockLevel:
        with LogContext.bind(actor_id=actor_id):
            return self._run(
                "adjust_stock",
                lambda: self._ledger.adjust_total_stock(variant_id, delta, actor_id),
            )

    def stock_level(self, variant_id: str) -> StockLevel:
        return self._run("stock_level", lambda: self._ledger.level(variant_id))

    def list_locks(
        self,
        status: LockStatus | None = None,
        variant_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[LockView]:
        return self._run(
            "list_locks",
            lambda: self._inventory_selector.locks(status, variant_id, limit, offset),
        )

    def inventory_summary(self, low_stock_threshold: int = 10) -> InventorySummary:
        return self._run(
            "inventory_summary",
            lambda: self._inventory_selector.summary(low_stock_threshold),
        )
