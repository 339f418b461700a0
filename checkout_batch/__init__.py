"""
checkout_batch -- background workers for the checkout kernel.

Provides the ExpiryReaper, an in-process polling worker that expires
order intents whose inventory hold has run out and returns their stock.

Architecture:
    checkout_batch/ is a top-level package.  Nothing in checkout_kernel
    imports from checkout_batch.
"""

from checkout_batch.reaper import REAPER_ACTOR_ID, ExpiryReaper, ReapResult

__all__ = ["ExpiryReaper", "REAPER_ACTOR_ID", "ReapResult"]
