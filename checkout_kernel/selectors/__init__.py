"""Read-only query selectors."""

from checkout_kernel.selectors.base import BaseSelector
from checkout_kernel.selectors.intent_selector import IntentSelector
from checkout_kernel.selectors.inventory_selector import InventorySelector

__all__ = ["BaseSelector", "IntentSelector", "InventorySelector"]
