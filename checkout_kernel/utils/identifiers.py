"""
Human-facing identifiers for intents and orders.

Both are random rather than drawn from a counter: a counter row would be a
single hot row every checkout in the system serializes on.  Uniqueness is
enforced by the UNIQUE constraints on the columns; collisions are retried by
the caller.
"""

import secrets
import string
from datetime import datetime

_ALPHANUMERIC = string.ascii_uppercase + string.digits


def generate_intent_number(now: datetime) -> str:
    """INT-<epoch millis>-<7 uppercase alphanumerics>."""
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_ALPHANUMERIC) for _ in range(7))
    return f"INT-{millis}-{suffix}"


def generate_order_number(now: datetime) -> str:
    """ORD-<YYYYMMDD>-<8 uppercase hex>."""
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"
