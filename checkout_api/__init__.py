"""
checkout_api -- HTTP surface for order intents and inventory administration.

Thin FastAPI layer: parses requests into kernel DTOs, calls a
CheckoutOrchestrator per request and maps CheckoutKernelError codes to HTTP
status codes.  No business rules live here.
"""

from checkout_api.app import create_app

__all__ = ["create_app"]
