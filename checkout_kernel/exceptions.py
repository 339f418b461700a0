"""
Typed Exception Hierarchy for the Checkout Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Checkout callers branch on what went wrong: an HTTP handler maps an
insufficient-stock failure to 409, a payment webhook turns a no-longer-valid
intent into a refund, the reaper logs and moves on.  None of them should parse
message strings to decide.

Every exception here:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (variant_id, intent_id, ...)

Example:
    try:
        intent = intent_service.create_intent(request)
    except InsufficientStockError as e:
        return {"code": e.code, "variant_id": e.variant_id,
                "available": e.available}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CheckoutKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyCartError
    |   +-- InvalidQuantityError
    |   +-- InvalidAddressError
    |   +-- VariantNotFoundError
    |   +-- VariantInactiveError
    |   +-- InvalidDiscountCodeError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- StockLevelError
    |
    +-- IntentError
    |   +-- IntentNotFoundError
    |   +-- IntentAccessDeniedError
    |   +-- InvalidTransitionError
    |   +-- IntentAlreadyActiveError
    |   +-- IntentNoLongerValidError
    |   +-- CheckoutDisabledError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|--------------------------------------
Validation   | EMPTY_CART               | Intent requested for an empty cart
             | INVALID_QUANTITY         | Line quantity is not a positive int
             | INVALID_ADDRESS          | Address missing or not the user's
             | VARIANT_NOT_FOUND        | Catalog / ledger has no such variant
             | VARIANT_INACTIVE         | Variant exists but is not for sale
             | INVALID_DISCOUNT_CODE    | DiscountValidator rejected the code
-------------|--------------------------|--------------------------------------
Stock        | INSUFFICIENT_STOCK       | available < requested (user-retryable)
             | STOCK_LEVEL_INVALID      | total_stock would drop below locked
-------------|--------------------------|--------------------------------------
Intent       | INTENT_NOT_FOUND         | No such intent (or not the caller's)
             | INTENT_ACCESS_DENIED     | Caller may not act on this intent
             | INVALID_TRANSITION       | Transition illegal from current status
             | INTENT_ALREADY_ACTIVE    | An active intent already holds the cart
             | INTENT_NO_LONGER_VALID   | Convert on EXPIRED / CANCELLED intent
             | CHECKOUT_DISABLED        | Maintenance mode, no new intents
-------------|--------------------------|--------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT | Row not in the state a step requires

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION errors are raised before any stock is touched; no side effects.

2. INSUFFICIENT STOCK is raised only after every partial reservation of the
   same call has been rolled back.

3. INTENT NO LONGER VALID is terminal for the payment collaborator: start a
   refund, do not retry.

4. CONCURRENCY errors mean the surrounding transaction was rolled back; the
   operation is safe to retry.
"""


class CheckoutKernelError(Exception):
    """
    Base exception for all checkout kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CHECKOUT_KERNEL_ERROR"


# Validation exceptions


class ValidationError(CheckoutKernelError):
    """Base exception for request validation failures (no side effects)."""

    code: str = "VALIDATION_ERROR"


class EmptyCartError(ValidationError):
    """Intent requested for a cart with no lines."""

    code: str = "EMPTY_CART"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Cart is empty for user {user_id}")


class InvalidQuantityError(ValidationError):
    """Cart line quantity is not a positive integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, variant_id: str, quantity: object):
        self.variant_id = variant_id
        self.quantity = quantity
        super().__init__(
            f"Invalid quantity {quantity!r} for variant {variant_id}"
        )


class InvalidAddressError(ValidationError):
    """Address is missing or does not belong to the user."""

    code: str = "INVALID_ADDRESS"

    def __init__(self, address_id: str | None, role: str):
        self.address_id = address_id
        self.role = role
        super().__init__(f"Invalid {role} address: {address_id}")


class VariantNotFoundError(ValidationError):
    """Variant does not exist in the catalog or the stock ledger."""

    code: str = "VARIANT_NOT_FOUND"

    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Variant not found: {variant_id}")


class VariantInactiveError(ValidationError):
    """Variant exists but is no longer available for sale."""

    code: str = "VARIANT_INACTIVE"

    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Variant is no longer available: {variant_id}")


class InvalidDiscountCodeError(ValidationError):
    """DiscountValidator rejected the supplied code."""

    code: str = "INVALID_DISCOUNT_CODE"

    def __init__(self, discount_code: str, reason: str = "invalid"):
        self.discount_code = discount_code
        self.reason = reason
        super().__init__(f"Discount code {discount_code} rejected: {reason}")


# Stock exceptions


class StockError(CheckoutKernelError):
    """Base exception for stock ledger errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    Requested quantity exceeds the variant's available stock.

    Retryable by the user (reduce quantity).  Raised only after every partial
    reservation made by the same call has been rolled back.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, variant_id: str, requested: int, available: int):
        self.variant_id = variant_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for variant {variant_id}: "
            f"requested {requested}, available {available}"
        )


class StockLevelError(StockError):
    """Stock adjustment would leave total_stock below the locked quantity."""

    code: str = "STOCK_LEVEL_INVALID"

    def __init__(self, variant_id: str, total_stock: int, locked_quantity: int):
        self.variant_id = variant_id
        self.total_stock = total_stock
        self.locked_quantity = locked_quantity
        super().__init__(
            f"Variant {variant_id}: total_stock {total_stock} "
            f"cannot be below locked quantity {locked_quantity}"
        )


# Intent exceptions


class IntentError(CheckoutKernelError):
    """Base exception for order intent errors."""

    code: str = "INTENT_ERROR"


class IntentNotFoundError(IntentError):
    """Order intent with given ID was not found."""

    code: str = "INTENT_NOT_FOUND"

    def __init__(self, intent_id: str):
        self.intent_id = intent_id
        super().__init__(f"Order intent not found: {intent_id}")


class IntentAccessDeniedError(IntentError):
    """Caller is neither the intent's owner nor an admin."""

    code: str = "INTENT_ACCESS_DENIED"

    def __init__(self, intent_id: str, actor_id: str):
        self.intent_id = intent_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} may not act on intent {intent_id}")


class InvalidTransitionError(IntentError):
    """Attempted status change is not legal from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, intent_id: str, current_status: str, target_status: str):
        self.intent_id = intent_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move intent {intent_id} from {current_status} "
            f"to {target_status}"
        )


class IntentAlreadyActiveError(IntentError):
    """An unexpired intent already holds stock for this cart."""

    code: str = "INTENT_ALREADY_ACTIVE"

    def __init__(self, intent_id: str, reason: str = "active intent exists"):
        self.intent_id = intent_id
        self.reason = reason
        super().__init__(
            f"Order intent {intent_id} is already active for this cart: {reason}"
        )


class IntentNoLongerValidError(IntentError):
    """
    Conversion attempted on an EXPIRED or CANCELLED intent.

    Terminal business error: the payment collaborator should start a
    refund / compensation flow instead of retrying.
    """

    code: str = "INTENT_NO_LONGER_VALID"

    def __init__(self, intent_id: str, status: str):
        self.intent_id = intent_id
        self.status = status
        super().__init__(
            f"Order intent {intent_id} can no longer be converted (status {status})"
        )


class CheckoutDisabledError(IntentError):
    """Checkout is switched off (maintenance mode)."""

    code: str = "CHECKOUT_DISABLED"

    def __init__(self):
        super().__init__("Checkout is currently disabled. Please try again later.")


# Concurrency exceptions


class ConcurrencyError(CheckoutKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Row was not in the state the operation required; transaction rolled back."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
