"""
Collaborators -- narrow interfaces to the systems checkout consumes.

Responsibility:
    Declares the protocols the checkout kernel calls out to (catalog,
    discount validation, tax, shipping, address ownership) and ships simple
    in-process implementations used by the default application wiring and by
    the test suite.

Architecture position:
    Kernel > Domain.  Protocols are pure; the in-memory implementations hold
    only process-local dictionaries.

Non-goals:
    - Product / variant catalog management, discount rule evaluation and
      address CRUD belong to the surrounding storefront.  The defaults here
      are deliberately minimal stand-ins.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from threading import Lock
from typing import Any, Protocol, runtime_checkable

from checkout_kernel.exceptions import InvalidDiscountCodeError

from checkout_kernel.domain.cart import SnapshotLine

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class VariantInfo:
    """What the catalog knows about a variant at snapshot time."""

    variant_id: str
    unit_price: Decimal
    product_id: str | None = None
    product_name: str | None = None
    is_active: bool = True
    attributes: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class Catalog(Protocol):
    def get_variant(self, variant_id: str) -> VariantInfo | None:
        """Return the variant, or None if it does not exist."""
        ...


@runtime_checkable
class DiscountValidator(Protocol):
    def validate(self, code: str, subtotal: Decimal) -> Decimal:
        """
        Return the discount amount for code against subtotal.

        Raises:
            InvalidDiscountCodeError: If the code is not applicable.
        """
        ...


@runtime_checkable
class TaxCalculator(Protocol):
    def calculate(
        self,
        lines: Sequence[SnapshotLine],
        taxable_amount: Decimal,
        shipping_address_id: str,
    ) -> Decimal:
        ...


@runtime_checkable
class ShippingCalculator(Protocol):
    def calculate(
        self,
        lines: Sequence[SnapshotLine],
        net_amount: Decimal,
        shipping_address_id: str,
    ) -> Decimal:
        ...


@runtime_checkable
class AddressValidator(Protocol):
    def is_valid(self, user_id: str, address_id: str) -> bool:
        """True if address_id exists and belongs to user_id."""
        ...


# ---------------------------------------------------------------------------
# Default implementations
# ---------------------------------------------------------------------------


class InMemoryCatalog:
    """Process-local catalog keyed by variant_id."""

    def __init__(self, variants: Sequence[VariantInfo] = ()):
        self._variants: dict[str, VariantInfo] = {v.variant_id: v for v in variants}
        self._lock = Lock()

    def get_variant(self, variant_id: str) -> VariantInfo | None:
        with self._lock:
            return self._variants.get(variant_id)

    def add(self, variant: VariantInfo) -> None:
        with self._lock:
            self._variants[variant.variant_id] = variant

    def set_price(self, variant_id: str, unit_price: Decimal) -> None:
        with self._lock:
            self._variants[variant_id] = replace(
                self._variants[variant_id], unit_price=unit_price
            )

    def deactivate(self, variant_id: str) -> None:
        with self._lock:
            self._variants[variant_id] = replace(
                self._variants[variant_id], is_active=False
            )


@dataclass(frozen=True)
class DiscountRule:
    """Either a percentage or a flat amount off, with an optional minimum."""

    percentage: Decimal | None = None
    amount: Decimal | None = None
    min_subtotal: Decimal = _ZERO
    max_discount: Decimal | None = None


class StaticDiscountValidator:
    """Discount codes from a fixed table (case-insensitive)."""

    def __init__(self, rules: Mapping[str, DiscountRule] | None = None):
        self._rules = {code.upper(): rule for code, rule in (rules or {}).items()}

    def validate(self, code: str, subtotal: Decimal) -> Decimal:
        rule = self._rules.get(code.upper())
        if rule is None:
            raise InvalidDiscountCodeError(code)
        if subtotal < rule.min_subtotal:
            raise InvalidDiscountCodeError(code, reason="minimum order value not met")

        if rule.percentage is not None:
            discount = subtotal * rule.percentage / _HUNDRED
        else:
            discount = rule.amount or _ZERO
        if rule.max_discount is not None:
            discount = min(discount, rule.max_discount)
        return min(discount, subtotal)


class PercentageTaxCalculator:
    """Flat percentage of the post-discount amount."""

    def __init__(self, tax_percentage: Decimal):
        self.tax_percentage = Decimal(tax_percentage)

    def calculate(
        self,
        lines: Sequence[SnapshotLine],
        taxable_amount: Decimal,
        shipping_address_id: str,
    ) -> Decimal:
        return taxable_amount * self.tax_percentage / _HUNDRED


class ThresholdShippingCalculator:
    """Free shipping at or above the threshold, flat charge below it."""

    def __init__(self, free_shipping_threshold: Decimal, shipping_charge: Decimal):
        self.free_shipping_threshold = Decimal(free_shipping_threshold)
        self.shipping_charge = Decimal(shipping_charge)

    def calculate(
        self,
        lines: Sequence[SnapshotLine],
        net_amount: Decimal,
        shipping_address_id: str,
    ) -> Decimal:
        if net_amount >= self.free_shipping_threshold:
            return _ZERO
        return self.shipping_charge


class AcceptAllAddressValidator:
    """Accepts any non-empty address id (address ownership checked upstream)."""

    def is_valid(self, user_id: str, address_id: str) -> bool:
        return bool(address_id)


class InMemoryAddressBook:
    """Per-user address ids held in memory."""

    def __init__(self, addresses: Mapping[str, Sequence[str]] | None = None):
        self._addresses: dict[str, set[str]] = {
            user_id: set(ids) for user_id, ids in (addresses or {}).items()
        }

    def add(self, user_id: str, address_id: str) -> None:
        self._addresses.setdefault(user_id, set()).add(address_id)

    def is_valid(self, user_id: str, address_id: str) -> bool:
        return address_id in self._addresses.get(user_id, ())
