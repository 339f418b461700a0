"""
IntentStateMachine -- conditional status transitions for order intents.

Responsibility:
    The single place where an OrderIntent's status changes.  Every
    transition is a compare-and-swap UPDATE keyed on the expected prior
    status; the UPDATE's row count decides the winner.  Expiry and
    cancellation also release the intent's locks, in the same transaction,
    only when this caller won the transition.

Architecture position:
    Kernel > Services.  Used by OrderIntentService (create, cancel, lazy
    expiry), ConversionCoordinator (convert, inline expiry) and ExpiryReaper.

Invariants enforced:
    - For a given intent at most one of {expire, cancel, convert} succeeds:
      all three are ``UPDATE ... WHERE id = :id AND status = 'INTENT_CREATED'``
      and the first to commit wins.  No application-level lock is involved.
    - Terminal transitions clear active_cart_key, freeing the cart for a new
      intent, and stamp the matching terminal timestamp.
    - Transitions outside INTENT_TRANSITIONS are refused before any SQL runs.
    - Locks are released only by the transition winner, to EXPIRED on expiry
      and RELEASED on cancel.  A CONVERTED intent's locks are never touched.

Failure modes:
    - InvalidTransitionError for a transition not in INTENT_TRANSITIONS.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.exceptions import InvalidTransitionError
from checkout_kernel.logging_config import get_logger
from checkout_kernel.models.audit_log import AuditAction
from checkout_kernel.models.inventory_lock import LockStatus
from checkout_kernel.models.order_intent import (
    TERMINAL_INTENT_STATUSES,
    IntentStatus,
    OrderIntent,
    can_transition,
)
from checkout_kernel.services.audit_service import AuditService
from checkout_kernel.services.base import BaseService
from checkout_kernel.services.inventory_lock_manager import InventoryLockManager

logger = get_logger("services.intent_state_machine")

# Column stamped when an intent enters each terminal status
_TERMINAL_TIMESTAMP = {
    IntentStatus.EXPIRED: "expired_at",
    IntentStatus.CANCELLED: "cancelled_at",
    IntentStatus.CONVERTED: "converted_at",
}


class IntentStateMachine(BaseService[OrderIntent]):
    """Compare-and-swap transitions plus the lock release that goes with them."""

    def __init__(
        self,
        session: Session,
        lock_manager: InventoryLockManager | None = None,
        clock: Clock | None = None,
        audit: AuditService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._lock_manager = lock_manager or InventoryLockManager(
            session, clock=self._clock
        )
        self._audit = audit or AuditService(session, self._clock)

    @property
    def lock_manager(self) -> InventoryLockManager:
        return self._lock_manager

    def load(self, intent_id: UUID) -> OrderIntent | None:
        """Read an intent and its locks, discarding stale in-session state."""
        # Conditional updates bypass the identity map, so cached rows may be
        # out of date.
        self.session.expire_all()
        return self.session.execute(
            select(OrderIntent).where(OrderIntent.id == intent_id)
        ).scalar_one_or_none()

    def transition(
        self,
        intent_id: UUID,
        expected: IntentStatus,
        target: IntentStatus,
        *,
        not_expired_at: datetime | None = None,
        **values: Any,
    ) -> bool:
        """
        CAS the intent from expected to target.

        Args:
            not_expired_at: If given, the update additionally requires
                ``expires_at >= not_expired_at`` (conversion must not win on an
                intent whose hold has run out).
            values: Extra columns to set with the status.

        Returns:
            True if this caller performed the transition.

        Raises:
            InvalidTransitionError: If expected -> target is not a legal edge.
        """
        if not can_transition(expected, target):
            raise InvalidTransitionError(str(intent_id), expected.value, target.value)

        now = self._clock.now()
        if target in TERMINAL_INTENT_STATUSES:
            values.setdefault("active_cart_key", None)
            values.setdefault(_TERMINAL_TIMESTAMP[target], now)

        conditions = [
            OrderIntent.id == intent_id,
            OrderIntent.status == expected.value,
        ]
        if not_expired_at is not None:
            conditions.append(OrderIntent.expires_at >= not_expired_at)

        changed = self._conditional_update(
            update(OrderIntent)
            .where(*conditions)
            .values(status=target.value, **values)
        )
        won = changed == 1
        logger.debug(
            "intent_transition_attempted",
            extra={
                "intent_id": str(intent_id),
                "from_status": expected.value,
                "to_status": target.value,
                "won": won,
            },
        )
        return won

    def expire(
        self,
        intent_id: UUID,
        now: datetime | None = None,
        actor_id: str | None = None,
        trigger: str = "reaper",
    ) -> bool:
        """
        Expire an INTENT_CREATED intent whose hold has run out.

        The transition only matches when ``expires_at < now``, so a reaper
        running on a skewed or stale selection can never expire a live hold.

        Returns:
            True if this call expired the intent (and released its locks).
        """
        now = now or self._clock.now()
        changed = self._conditional_update(
            update(OrderIntent)
            .where(
                OrderIntent.id == intent_id,
                OrderIntent.status == IntentStatus.INTENT_CREATED.value,
                OrderIntent.expires_at < now,
            )
            .values(
                status=IntentStatus.EXPIRED.value,
                expired_at=now,
                active_cart_key=None,
            )
        )
        if changed != 1:
            return False

        released = self._lock_manager.release_all(intent_id, LockStatus.EXPIRED)
        self._audit.record(
            AuditAction.INTENT_EXPIRED,
            "order_intent",
            intent_id,
            actor_id=actor_id,
            old_values={"status": IntentStatus.INTENT_CREATED.value},
            new_values={
                "status": IntentStatus.EXPIRED.value,
                "released_locks": released,
                "trigger": trigger,
            },
        )
        logger.info(
            "intent_expired",
            extra={
                "intent_id": str(intent_id),
                "released_locks": released,
                "trigger": trigger,
            },
        )
        return True

    def cancel(self, intent_id: UUID, actor_id: str) -> bool:
        """
        Cancel an INTENT_CREATED intent and release its locks.

        Returns:
            True if this call cancelled the intent.
        """
        if not self.transition(
            intent_id,
            IntentStatus.INTENT_CREATED,
            IntentStatus.CANCELLED,
            cancelled_by=actor_id,
        ):
            return False

        released = self._lock_manager.release_all(intent_id, LockStatus.RELEASED)
        self._audit.record(
            AuditAction.INTENT_CANCELLED,
            "order_intent",
            intent_id,
            actor_id=actor_id,
            old_values={"status": IntentStatus.INTENT_CREATED.value},
            new_values={
                "status": IntentStatus.CANCELLED.value,
                "released_locks": released,
            },
        )
        logger.info(
            "intent_cancelled",
            extra={"intent_id": str(intent_id), "released_locks": released},
        )
        return True
