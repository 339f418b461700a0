"""
Module: checkout_kernel.selectors.intent_selector
Responsibility: Read queries over order intents -- per-user listing and the
    reaper's sweep queries.
Architecture position: Kernel > Selectors.

The sweep queries only nominate candidates.  Whether an intent is actually
expired is decided by the conditional update in IntentStateMachine.expire,
so a stale candidate list is harmless.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from checkout_kernel.domain.dtos import IntentView
from checkout_kernel.models.inventory_lock import InventoryLock, LockStatus
from checkout_kernel.models.order_intent import IntentStatus, OrderIntent
from checkout_kernel.selectors.base import BaseSelector


class IntentSelector(BaseSelector[OrderIntent]):
    """Read-only intent queries."""

    def get(self, intent_id: UUID) -> IntentView | None:
        intent = self.session.execute(
            select(OrderIntent)
            .where(OrderIntent.id == intent_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return IntentView.from_model(intent) if intent else None

    def list_for_user(
        self,
        user_id: str,
        status: IntentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[IntentView]:
        """A user's intents, newest first."""
        query = select(OrderIntent).where(OrderIntent.user_id == user_id)
        if status is not None:
            query = query.where(OrderIntent.status == IntentStatus(status).value)
        query = (
            query.order_by(OrderIntent.created_at.desc(), OrderIntent.intent_number.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return [IntentView.from_model(i) for i in self.session.execute(query).scalars()]

    def expired_intent_ids(self, now: datetime, limit: int = 100) -> list[UUID]:
        """
        Intents still INTENT_CREATED whose hold ran out before now.

        Candidates come from LOCKED locks past expires_at (served by the
        (status, expires_at) index on inventory_locks) and from the intents'
        own expiry, so an intent is found even if its lock rows lag.
        """
        from_locks = (
            select(InventoryLock.order_intent_id)
            .where(
                InventoryLock.status == LockStatus.LOCKED.value,
                InventoryLock.expires_at < now,
            )
            .distinct()
            .limit(limit)
        )
        from_intents = (
            select(OrderIntent.id)
            .where(
                OrderIntent.status == IntentStatus.INTENT_CREATED.value,
                OrderIntent.expires_at < now,
            )
            .order_by(OrderIntent.expires_at)
            .limit(limit)
        )

        ids: list[UUID] = []
        seen: set[UUID] = set()
        for query in (from_intents, from_locks):
            for intent_id in self.session.execute(query).scalars():
                if intent_id not in seen:
                    seen.add(intent_id)
                    ids.append(intent_id)
        return ids[:limit]

    def stranded_lock_intent_ids(self, limit: int = 100) -> list[UUID]:
        """
        Intents that are EXPIRED or CANCELLED but still own LOCKED locks.

        Expiry and cancellation release locks in the same transaction as the
        status change, so this normally returns nothing.  CONVERTED intents
        are never included.
        """
        query = (
            select(InventoryLock.order_intent_id)
            .join(OrderIntent, OrderIntent.id == InventoryLock.order_intent_id)
            .where(
                InventoryLock.status == LockStatus.LOCKED.value,
                OrderIntent.status.in_(
                    [IntentStatus.EXPIRED.value, IntentStatus.CANCELLED.value]
                ),
            )
            .distinct()
            .limit(limit)
        )
        return list(self.session.execute(query).scalars())
