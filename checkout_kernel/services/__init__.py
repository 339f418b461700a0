"""Write services for the checkout kernel."""

from checkout_kernel.services.audit_service import AuditService
from checkout_kernel.services.base import BaseService
from checkout_kernel.services.checkout_orchestrator import CheckoutOrchestrator
from checkout_kernel.services.conversion_coordinator import ConversionCoordinator
from checkout_kernel.services.intent_state_machine import IntentStateMachine
from checkout_kernel.services.inventory_lock_manager import InventoryLockManager
from checkout_kernel.services.order_intent_service import (
    IntentPolicy,
    OrderIntentService,
)
from checkout_kernel.services.order_store import OrderStore, SqlOrderStore
from checkout_kernel.services.stock_ledger import StockLedger

__all__ = [
    "AuditService",
    "BaseService",
    "CheckoutOrchestrator",
    "ConversionCoordinator",
    "IntentPolicy",
    "IntentStateMachine",
    "InventoryLockManager",
    "OrderIntentService",
    "OrderStore",
    "SqlOrderStore",
    "StockLedger",
]
