"""
Configuration Loader (``checkout_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into typed
``checkout_config.schema`` dataclass instances.  Runtime callers use
``checkout_config.get_active_config()``; this module is the tooling it is
built on.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Money and percentages are parsed to ``Decimal`` from their string form,
  never through ``float``.
* Unknown top-level sections raise ``ValueError`` so that a typo in a key
  cannot silently fall back to a default.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema dataclasses.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from checkout_config.schema import (
    CatalogVariantDef,
    CheckoutConfig,
    DatabaseConfig,
    DiscountCodeDef,
    HoldsConfig,
    InventoryConfig,
    LoggingConfig,
    PricingConfig,
    ReaperConfig,
)

_KNOWN_SECTIONS = frozenset({
    "database",
    "holds",
    "reaper",
    "pricing",
    "inventory",
    "logging",
    "checkout_enabled",
    "maintenance_mode",
    "internal_token",
    "catalog",
    "discounts",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a Decimal from a YAML scalar (int, float or string)."""
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{name}: expected a number, got {value!r}") from exc


def _optional_decimal(value: Any, name: str) -> Decimal | None:
    return None if value is None else parse_decimal(value, name)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{key}: expected a mapping, got {type(section).__name__}")
    return section


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    default = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", default.url)),
        echo=bool(data.get("echo", default.echo)),
        pool_size=int(data.get("pool_size", default.pool_size)),
        max_overflow=int(data.get("max_overflow", default.max_overflow)),
    )


def parse_holds(data: dict[str, Any]) -> HoldsConfig:
    return HoldsConfig(
        duration_minutes=int(data.get("duration_minutes", 30)),
        reuse_active_intent=bool(data.get("reuse_active_intent", True)),
    )


def parse_reaper(data: dict[str, Any]) -> ReaperConfig:
    return ReaperConfig(
        enabled=bool(data.get("enabled", True)),
        interval_seconds=float(data.get("interval_seconds", 30)),
        batch_size=int(data.get("batch_size", 100)),
    )


def parse_pricing(data: dict[str, Any]) -> PricingConfig:
    default = PricingConfig()
    return PricingConfig(
        tax_percentage=parse_decimal(
            data.get("tax_percentage", default.tax_percentage), "pricing.tax_percentage"
        ),
        free_shipping_threshold=parse_decimal(
            data.get("free_shipping_threshold", default.free_shipping_threshold),
            "pricing.free_shipping_threshold",
        ),
        shipping_charge=parse_decimal(
            data.get("shipping_charge", default.shipping_charge),
            "pricing.shipping_charge",
        ),
        rounding=str(data.get("rounding", default.rounding)),
    )


def parse_catalog_variant(data: dict[str, Any]) -> CatalogVariantDef:
    """
    Parse one catalog entry.

    Preconditions:
        - ``data`` contains ``variant_id`` and ``price``.
    Raises:
        KeyError: if a required key is missing.
    """
    attributes = data.get("attributes") or {}
    return CatalogVariantDef(
        variant_id=str(data["variant_id"]),
        price=parse_decimal(data["price"], f"catalog.{data['variant_id']}.price"),
        product_id=data.get("product_id"),
        product_name=data.get("product_name"),
        is_active=bool(data.get("is_active", True)),
        initial_stock=int(data.get("initial_stock", 0)),
        attributes=tuple(sorted(attributes.items())),
    )


def parse_discount(data: dict[str, Any]) -> DiscountCodeDef:
    code = str(data["code"])
    return DiscountCodeDef(
        code=code,
        percentage=_optional_decimal(data.get("percentage"), f"discounts.{code}.percentage"),
        amount=_optional_decimal(data.get("amount"), f"discounts.{code}.amount"),
        min_subtotal=parse_decimal(
            data.get("min_subtotal", 0), f"discounts.{code}.min_subtotal"
        ),
        max_discount=_optional_decimal(
            data.get("max_discount"), f"discounts.{code}.max_discount"
        ),
    )


def parse_config(data: dict[str, Any], source: str = "<dict>") -> CheckoutConfig:
    """
    Parse a complete ``CheckoutConfig`` from a dict.

    Missing sections take their schema defaults; unknown sections are
    rejected.
    """
    unknown = set(data) - _KNOWN_SECTIONS
    if unknown:
        raise ValueError(f"unknown configuration keys: {sorted(unknown)}")

    token = data.get("internal_token")
    return CheckoutConfig(
        database=parse_database(_section(data, "database")),
        holds=parse_holds(_section(data, "holds")),
        reaper=parse_reaper(_section(data, "reaper")),
        pricing=parse_pricing(_section(data, "pricing")),
        inventory=InventoryConfig(
            low_stock_threshold=int(
                _section(data, "inventory").get("low_stock_threshold", 10)
            ),
        ),
        logging=LoggingConfig(
            level=str(_section(data, "logging").get("level", "INFO")).upper()
        ),
        checkout_enabled=bool(data.get("checkout_enabled", True)),
        maintenance_mode=bool(data.get("maintenance_mode", False)),
        internal_token=str(token) if token else None,
        catalog=tuple(parse_catalog_variant(v) for v in data.get("catalog") or ()),
        discounts=tuple(parse_discount(d) for d in data.get("discounts") or ()),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the raw configuration, for the load trace."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()
