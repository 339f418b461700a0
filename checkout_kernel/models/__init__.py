"""ORM models for the checkout kernel."""

from checkout_kernel.models.audit_log import AuditAction, AuditLog
from checkout_kernel.models.inventory_lock import (
    TERMINAL_LOCK_STATUSES,
    InventoryLock,
    LockStatus,
)
from checkout_kernel.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from checkout_kernel.models.order_intent import (
    INTENT_TRANSITIONS,
    TERMINAL_INTENT_STATUSES,
    IntentStatus,
    OrderIntent,
    can_transition,
)
from checkout_kernel.models.variant_stock import VariantStock

__all__ = [
    "AuditAction",
    "AuditLog",
    "InventoryLock",
    "LockStatus",
    "TERMINAL_LOCK_STATUSES",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "OrderIntent",
    "IntentStatus",
    "INTENT_TRANSITIONS",
    "TERMINAL_INTENT_STATUSES",
    "can_transition",
    "VariantStock",
]
