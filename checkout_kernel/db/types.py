"""
Module: checkout_kernel.db.types
Responsibility: Annotated type aliases and the canonical rounding helper for
    price columns.  Centralizes precision so that every model, the pricing
    calculator and every DTO agree on how amounts are stored and rounded.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the checkout kernel.  All monetary amounts use
      Decimal with explicit precision.
    - round_money() is the ONLY sanctioned rounding function for prices.
"""

from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Integer, Numeric, String

# Monetary amount, two decimal places (storefront prices)
Money = Annotated[Decimal, Numeric(18, 2)]

# Stock quantities
Quantity = Annotated[int, Integer]

# Catalog identifiers (variant / product / address ids are opaque strings)
ExternalId = Annotated[str, String(64)]

# Status enums stored by value
StatusCode = Annotated[str, String(20)]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

# Configured rounding mode name -> decimal rounding constant.
# ``floor`` / ``ceil`` round to whole units, ``round`` to two decimals.
ROUNDING_MODES: dict[str, tuple[str, int]] = {
    "round": (ROUND_HALF_UP, MONEY_DECIMAL_PLACES),
    "floor": (ROUND_FLOOR, 0),
    "ceil": (ROUND_CEILING, 0),
}


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for prices in the entire
    system.  All other code MUST delegate rounding to this function.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value, always carrying two decimal places so that
        amounts compare and serialize consistently.
    """
    if decimal_places == 0:
        whole = value.quantize(Decimal("1"), rounding=rounding)
        return whole.quantize(Decimal("0.01"))
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_with_mode(value: Decimal, mode: str) -> Decimal:
    """
    Round using a configured mode name (``round`` | ``floor`` | ``ceil``).

    Raises:
        ValueError: If mode is not a known rounding mode.
    """
    try:
        rounding, places = ROUNDING_MODES[mode]
    except KeyError:
        raise ValueError(f"Unknown rounding mode: {mode!r}") from None
    return round_money(value, decimal_places=places, rounding=rounding)
