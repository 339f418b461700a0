"""
AuditService -- append-only audit trail for checkout state changes.

Responsibility:
    Records who did what to which intent, order or stock row, with the
    before/after values, in the same transaction as the change.

Architecture position:
    Kernel > Services -- called by OrderIntentService, ConversionCoordinator,
    StockLedger and the ExpiryReaper.

Invariants enforced:
    - Same-transaction recording: audit rows are flushed into the caller's
      transaction, so a rolled-back change leaves no audit row and a
      committed change always has one.
    - Append-only: this service exposes no update or delete.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.logging_config import get_logger
from checkout_kernel.models.audit_log import AuditLog
from checkout_kernel.services.base import BaseService

logger = get_logger("services.audit")


class AuditService(BaseService[AuditLog]):
    """Creates AuditLog rows; never commits."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Any,
        *,
        actor_id: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "audit_recorded",
            extra={
                "action": action,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return entry

    def history(self, entity_type: str, entity_id: Any) -> list[AuditLog]:
        """Audit rows for one entity, oldest first."""
        return list(
            self.session.execute(
                select(AuditLog)
                .where(
                    AuditLog.entity_type == entity_type,
                    AuditLog.entity_id == str(entity_id),
                )
                .order_by(AuditLog.created_at, AuditLog.id)
            ).scalars()
        )
