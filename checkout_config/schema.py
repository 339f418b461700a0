"""
CheckoutConfig schema.

Defines the typed, frozen form of the checkout configuration.  YAML is
parsed into these types by the loader; the bridges turn them into kernel
inputs (IntentPolicy, calculators, catalog).

Every dataclass validates itself in ``__post_init__`` so that an invalid
configuration fails at load time, never halfway through a checkout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from checkout_kernel.db.types import ROUNDING_MODES

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings handed to ``init_engine_from_url``."""

    url: str = "sqlite:///checkout.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(
                f"database.max_overflow must be >= 0, got {self.max_overflow}"
            )


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"logging.level must be one of {_LOG_LEVELS}, got {self.level!r}")


# ---------------------------------------------------------------------------
# Checkout policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HoldsConfig:
    """How long an intent holds its stock, and what re-requests do."""

    duration_minutes: int = 30
    reuse_active_intent: bool = True

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError(
                f"holds.duration_minutes must be positive, got {self.duration_minutes}"
            )


@dataclass(frozen=True)
class ReaperConfig:
    enabled: bool = True
    interval_seconds: float = 30
    batch_size: int = 100

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(
                f"reaper.interval_seconds must be positive, got {self.interval_seconds}"
            )
        if self.batch_size < 1:
            raise ValueError(f"reaper.batch_size must be >= 1, got {self.batch_size}")


@dataclass(frozen=True)
class PricingConfig:
    """Tax, shipping and rounding settings (amounts in currency units)."""

    tax_percentage: Decimal = Decimal("18")
    free_shipping_threshold: Decimal = Decimal("5000")
    shipping_charge: Decimal = Decimal("0")
    rounding: str = "round"

    def __post_init__(self) -> None:
        if self.tax_percentage < 0:
            raise ValueError(
                f"pricing.tax_percentage must be >= 0, got {self.tax_percentage}"
            )
        if self.free_shipping_threshold < 0:
            raise ValueError("pricing.free_shipping_threshold must be >= 0")
        if self.shipping_charge < 0:
            raise ValueError("pricing.shipping_charge must be >= 0")
        if self.rounding not in ROUNDING_MODES:
            raise ValueError(
                f"pricing.rounding must be one of {sorted(ROUNDING_MODES)}, "
                f"got {self.rounding!r}"
            )


@dataclass(frozen=True)
class InventoryConfig:
    low_stock_threshold: int = 10

    def __post_init__(self) -> None:
        if self.low_stock_threshold < 0:
            raise ValueError("inventory.low_stock_threshold must be >= 0")


# ---------------------------------------------------------------------------
# Development catalog and discount table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CatalogVariantDef:
    """A variant served by the in-process catalog (development wiring)."""

    variant_id: str
    price: Decimal
    product_id: str | None = None
    product_name: str | None = None
    is_active: bool = True
    initial_stock: int = 0
    attributes: tuple[tuple[str, Any], ...] = ()

    def __post_init__(self) -> None:
        if self.price < 0:
            raise ValueError(f"catalog variant {self.variant_id}: price must be >= 0")
        if self.initial_stock < 0:
            raise ValueError(
                f"catalog variant {self.variant_id}: initial_stock must be >= 0"
            )


@dataclass(frozen=True)
class DiscountCodeDef:
    """A static discount code: a percentage or a flat amount, not both."""

    code: str
    percentage: Decimal | None = None
    amount: Decimal | None = None
    min_subtotal: Decimal = Decimal("0")
    max_discount: Decimal | None = None

    def __post_init__(self) -> None:
        if (self.percentage is None) == (self.amount is None):
            raise ValueError(
                f"discount {self.code}: exactly one of percentage / amount is required"
            )
        if self.percentage is not None and not (0 < self.percentage <= 100):
            raise ValueError(f"discount {self.code}: percentage must be in (0, 100]")
        if self.amount is not None and self.amount <= 0:
            raise ValueError(f"discount {self.code}: amount must be positive")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckoutConfig:
    """The complete checkout configuration -- the only runtime config artifact."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    holds: HoldsConfig = field(default_factory=HoldsConfig)
    reaper: ReaperConfig = field(default_factory=ReaperConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checkout_enabled: bool = True
    maintenance_mode: bool = False
    internal_token: str | None = None
    catalog: tuple[CatalogVariantDef, ...] = ()
    discounts: tuple[DiscountCodeDef, ...] = ()
    source: str = "<defaults>"

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for variant in self.catalog:
            if variant.variant_id in seen:
                raise ValueError(f"duplicate catalog variant {variant.variant_id}")
            seen.add(variant.variant_id)
        codes = [d.code.upper() for d in self.discounts]
        if len(codes) != len(set(codes)):
            raise ValueError("duplicate discount codes")

    @property
    def accepting_checkouts(self) -> bool:
        """Maintenance mode overrides checkout_enabled."""
        return self.checkout_enabled and not self.maintenance_mode
