"""
Checkout Kernel

Order intent and inventory reservation core for the storefront checkout:
- Per-variant stock ledger with row-level atomic reservations
- All-or-nothing inventory holds with a fixed lifetime
- Compare-and-swap intent state machine (expire / cancel / convert)
- Exactly-once conversion of paid intents to orders
"""

__version__ = "0.1.0"
