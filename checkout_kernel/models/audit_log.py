"""
Module: checkout_kernel.models.audit_log
Responsibility: ORM persistence for checkout audit entries (who did what to
    which intent, order or stock row, with before/after values).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are written by AuditService in the same transaction as the
      change they describe, so a rolled-back change leaves no audit row.
    - Rows are append-only.  There is deliberately no sequence column: a
      global counter row would serialize every checkout on one hot row.
"""

from datetime import datetime

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from checkout_kernel.db.base import Base


class AuditAction:
    """Audit action names."""

    INTENT_CREATED = "intent_created"
    INTENT_REUSED = "intent_reused"
    INTENT_CANCELLED = "intent_cancelled"
    INTENT_EXPIRED = "intent_expired"
    ORDER_CREATED_FROM_INTENT = "order_created_from_intent"
    STOCK_ADJUSTED = "stock_adjusted"


class AuditLog(Base):
    """One audit entry."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action_created", "action", "created_at"),
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # None for system actors (reaper)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"
