"""
Pricing -- compute the frozen price breakdown of an intent.

Responsibility:
    Given the snapshotted lines and the pricing collaborators, compute
    subtotal, discount, tax, shipping and total exactly once.  The result is
    stored on the intent and copied to the order; nothing downstream ever
    recomputes it.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal arithmetic only.
    - Every component is rounded with the configured rounding mode and the
      total is the sum of the rounded components, so the stored figures
      always reconcile: total == subtotal - discount + tax + shipping.
    - 0 <= discount <= subtotal.

Failure modes:
    - InvalidDiscountCodeError propagated from the DiscountValidator.
    - ValueError on an unknown rounding mode.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from checkout_kernel.db.types import round_with_mode
from checkout_kernel.domain.cart import SnapshotLine
from checkout_kernel.domain.collaborators import (
    DiscountValidator,
    ShippingCalculator,
    TaxCalculator,
)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    total_amount: Decimal

    def as_dict(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "tax_amount": str(self.tax_amount),
            "shipping_charge": str(self.shipping_charge),
            "total_amount": str(self.total_amount),
        }


def compute_subtotal(lines: Sequence[SnapshotLine]) -> Decimal:
    return sum((line.line_total for line in lines), _ZERO)


def price_cart(
    lines: Sequence[SnapshotLine],
    *,
    shipping_address_id: str,
    tax_calculator: TaxCalculator,
    shipping_calculator: ShippingCalculator,
    rounding: str = "round",
    discount_code: str | None = None,
    discount_validator: DiscountValidator | None = None,
) -> PriceBreakdown:
    """
    Compute the price breakdown for snapshotted lines.

    Tax applies to (subtotal - discount).  Shipping is decided on the same
    post-discount amount.

    Raises:
        InvalidDiscountCodeError: If the discount validator rejects the code.
    """
    subtotal = round_with_mode(compute_subtotal(lines), rounding)

    discount = _ZERO
    if discount_code and discount_validator is not None:
        discount = discount_validator.validate(discount_code, subtotal)
    discount = round_with_mode(min(max(discount, _ZERO), subtotal), rounding)

    net = subtotal - discount
    tax = round_with_mode(
        tax_calculator.calculate(lines, net, shipping_address_id), rounding
    )
    shipping = round_with_mode(
        shipping_calculator.calculate(lines, net, shipping_address_id), rounding
    )

    return PriceBreakdown(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        shipping_charge=shipping,
        total_amount=net + tax + shipping,
    )
