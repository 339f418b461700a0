"""
ConversionCoordinator -- exactly-once conversion of a paid intent to an order.

Responsibility:
    The only component allowed to turn an INTENT_CREATED intent and its
    LOCKED holds into a persisted Order.  Invoked by the payment
    collaborator on confirmed payment, possibly more than once.

Architecture position:
    Kernel > Services.  Composes IntentStateMachine, InventoryLockManager,
    an OrderStore and AuditService inside the caller's transaction.

Invariants enforced:
    - Single linearization point: the conditional INTENT_CREATED ->
      CONVERTED update (which also requires the hold not to have run out).
      Whoever's UPDATE matches creates the order; everybody else observes
      the outcome.
    - Idempotent retry: if the intent is already CONVERTED the previously
      created order is returned and nothing is written.
    - Atomic conversion: status change, order, lock conversion, ledger commit
      and intent.order_id are flushed into one transaction.  Any failure
      propagates and the caller rolls back, leaving the intent
      INTENT_CREATED and retryable.

Failure modes:
    - IntentNotFoundError: unknown intent.
    - IntentNoLongerValidError: intent EXPIRED or CANCELLED, or its hold ran
      out before payment arrived (the intent is expired here first).  Terminal
      for the payment collaborator, which should refund.
    - InvalidTransitionError: intent still DRAFT.
    - OptimisticLockError: a lock or ledger row was not in the expected state.
"""

from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.domain.dtos import OrderRef, PaymentDetails
from checkout_kernel.exceptions import (
    IntentNoLongerValidError,
    IntentNotFoundError,
    InvalidTransitionError,
    OptimisticLockError,
)
from checkout_kernel.logging_config import LogContext, get_logger
from checkout_kernel.models.audit_log import AuditAction
from checkout_kernel.models.order_intent import IntentStatus, OrderIntent
from checkout_kernel.services.audit_service import AuditService
from checkout_kernel.services.base import BaseService
from checkout_kernel.services.intent_state_machine import IntentStateMachine
from checkout_kernel.services.order_store import OrderStore, SqlOrderStore

logger = get_logger("services.conversion_coordinator")


class ConversionCoordinator(BaseService[OrderIntent]):
    """
    Converts intents to orders exactly once.

    Non-goals:
        - Does NOT capture payment or issue refunds.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        state_machine: IntentStateMachine | None = None,
        order_store: OrderStore | None = None,
        audit: AuditService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._states = state_machine or IntentStateMachine(
            session, clock=self._clock, audit=self._audit
        )
        self._orders = order_store or SqlOrderStore(session, self._clock)

    def convert(
        self,
        intent_id: UUID,
        payment: PaymentDetails | None = None,
    ) -> OrderRef:
        """
        Convert a paid intent into an order.

        Returns:
            OrderRef for the new order (created=True) or for the order a
            previous call already created (created=False).

        Raises:
            IntentNotFoundError, IntentNoLongerValidError,
            InvalidTransitionError, OptimisticLockError.
        """
        with LogContext.bind(intent_id=str(intent_id)):
            now = self._clock.now()
            won = self._states.transition(
                intent_id,
                IntentStatus.INTENT_CREATED,
                IntentStatus.CONVERTED,
                not_expired_at=now,
            )
            if not won:
                return self._resolve_lost_transition(intent_id)

            intent = self._states.load(intent_id)
            assert intent is not None, "intent vanished after winning conversion"

            order = self._orders.create_order(intent, payment)
            self._states.lock_manager.convert_all(intent_id)

            changed = self._conditional_update(
                update(OrderIntent)
                .where(
                    OrderIntent.id == intent_id,
                    OrderIntent.status == IntentStatus.CONVERTED.value,
                    OrderIntent.order_id.is_(None),
                )
                .values(order_id=order.id)
            )
            if changed != 1:
                raise OptimisticLockError("order_intent", str(intent_id))

            self._audit.record(
                AuditAction.ORDER_CREATED_FROM_INTENT,
                "order",
                order.id,
                actor_id=intent.user_id,
                old_values={
                    "intent_id": str(intent_id),
                    "intent_status": IntentStatus.INTENT_CREATED.value,
                },
                new_values={
                    "order_number": order.order_number,
                    "total_amount": str(order.total_amount),
                    "payment_method": order.payment_method,
                    "payment_reference": order.payment_reference,
                },
            )
            logger.info(
                "intent_converted",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "total_amount": order.total_amount,
                },
            )
            return OrderRef.from_model(order, created=True)

    def _resolve_lost_transition(self, intent_id: UUID) -> OrderRef:
        """Explain why the INTENT_CREATED -> CONVERTED update matched nothing."""
        intent = self._states.load(intent_id)
        if intent is None:
            raise IntentNotFoundError(str(intent_id))

        status = IntentStatus(intent.status)
        if status == IntentStatus.CONVERTED:
            order = self._orders.get_by_intent(intent_id)
            if order is None:
                raise OptimisticLockError("order", str(intent_id))
            logger.info(
                "intent_conversion_replayed",
                extra={"order_id": str(order.id)},
            )
            return OrderRef.from_model(order, created=False)

        if status == IntentStatus.INTENT_CREATED:
            # Hold ran out before payment arrived and nobody has reaped it yet.
            self._states.expire(intent_id, actor_id=None, trigger="conversion")
            raise IntentNoLongerValidError(str(intent_id), IntentStatus.EXPIRED.value)

        if status in (IntentStatus.EXPIRED, IntentStatus.CANCELLED):
            logger.warning(
                "intent_conversion_rejected",
                extra={"status": status.value},
            )
            raise IntentNoLongerValidError(str(intent_id), status.value)

        raise InvalidTransitionError(
            str(intent_id), status.value, IntentStatus.CONVERTED.value
        )
