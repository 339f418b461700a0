"""Utility functions for the checkout kernel."""

from checkout_kernel.utils.hashing import canonicalize_json, hash_payload
from checkout_kernel.utils.identifiers import (
    generate_intent_number,
    generate_order_number,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "generate_intent_number",
    "generate_order_number",
]
