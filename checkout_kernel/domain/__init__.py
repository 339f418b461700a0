"""Pure domain layer: cart, pricing, collaborators, clock and DTOs."""

from checkout_kernel.domain.cart import (
    CartLine,
    SnapshotLine,
    compute_cart_hash,
    normalize_lines,
)
from checkout_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from checkout_kernel.domain.collaborators import (
    AcceptAllAddressValidator,
    AddressValidator,
    Catalog,
    DiscountRule,
    DiscountValidator,
    InMemoryAddressBook,
    InMemoryCatalog,
    PercentageTaxCalculator,
    ShippingCalculator,
    StaticDiscountValidator,
    TaxCalculator,
    ThresholdShippingCalculator,
    VariantInfo,
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
from checkout_kernel.domain.pricing import PriceBreakdown, price_cart

__all__ = [
    "CartLine",
    "SnapshotLine",
    "compute_cart_hash",
    "normalize_lines",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "AcceptAllAddressValidator",
    "AddressValidator",
    "Catalog",
    "DiscountRule",
    "DiscountValidator",
    "InMemoryAddressBook",
    "InMemoryCatalog",
    "PercentageTaxCalculator",
    "ShippingCalculator",
    "StaticDiscountValidator",
    "TaxCalculator",
    "ThresholdShippingCalculator",
    "VariantInfo",
    "IntentRequest",
    "IntentResult",
    "IntentView",
    "InventorySummary",
    "LockView",
    "OrderRef",
    "PaymentDetails",
    "StockLevel",
    "PriceBreakdown",
    "price_cart",
]
