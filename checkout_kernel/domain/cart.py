"""
Cart -- normalization and snapshotting of cart lines.

Responsibility:
    Turns the raw lines a client submits into the canonical, sorted,
    de-duplicated line set an intent is created from, and freezes each line
    together with the catalog data (unit price, names, attributes) read at
    snapshot time.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Quantities are positive integers (bool is rejected).
    - One line per variant: duplicate lines are merged by summing quantities.
    - Lines are ordered by ascending variant_id.  This is the order in which
      stock is reserved, which is what rules out lock-order deadlocks between
      concurrent multi-line intents.
    - The cart hash depends only on the (variant_id, quantity) set.

Failure modes:
    - EmptyCartError when no lines are supplied.
    - InvalidQuantityError for a non-positive or non-integer quantity.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from checkout_kernel.exceptions import EmptyCartError, InvalidQuantityError
from checkout_kernel.utils.hashing import hash_payload


@dataclass(frozen=True)
class CartLine:
    """A requested (variant, quantity) pair."""

    variant_id: str
    quantity: int

    @classmethod
    def coerce(cls, raw: CartLine | Mapping[str, Any]) -> CartLine:
        if isinstance(raw, CartLine):
            return raw
        return cls(variant_id=str(raw["variant_id"]), quantity=raw["quantity"])


def _valid_quantity(quantity: Any) -> bool:
    return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity > 0


def normalize_lines(
    user_id: str,
    lines: Iterable[CartLine | Mapping[str, Any]],
) -> tuple[CartLine, ...]:
    """
    Validate and canonicalize cart lines.

    Returns:
        Lines merged per variant and sorted by variant_id.

    Raises:
        EmptyCartError: If no lines are supplied.
        InvalidQuantityError: If any quantity is not a positive integer.
    """
    merged: dict[str, int] = {}
    for raw in lines:
        line = CartLine.coerce(raw)
        if not _valid_quantity(line.quantity):
            raise InvalidQuantityError(line.variant_id, line.quantity)
        merged[line.variant_id] = merged.get(line.variant_id, 0) + line.quantity

    if not merged:
        raise EmptyCartError(user_id)

    return tuple(
        CartLine(variant_id=variant_id, quantity=merged[variant_id])
        for variant_id in sorted(merged)
    )


def compute_cart_hash(lines: Iterable[CartLine]) -> str:
    """SHA-256 over the canonical (variant_id, quantity) line set."""
    canonical = sorted((line.variant_id, line.quantity) for line in lines)
    return hash_payload({"lines": [[v, q] for v, q in canonical]})


@dataclass(frozen=True)
class SnapshotLine:
    """
    A cart line frozen with the catalog data read at intent creation.

    Guarantees:
        - line_total == unit_price * quantity.
        - Serializes to a JSON-safe dict (Decimal as string) for storage in
          OrderIntent.cart_snapshot and back without loss.
    """

    variant_id: str
    quantity: int
    unit_price: Decimal
    product_id: str | None = None
    product_name: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.attributes, MappingProxyType):
            object.__setattr__(
                self, "attributes", MappingProxyType(dict(self.attributes))
            )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SnapshotLine:
        return cls(
            variant_id=data["variant_id"],
            quantity=int(data["quantity"]),
            unit_price=Decimal(data["unit_price"]),
            product_id=data.get("product_id"),
            product_name=data.get("product_name"),
            attributes=data.get("attributes") or {},
        )
