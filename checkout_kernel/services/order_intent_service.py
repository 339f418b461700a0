"""
OrderIntentService -- create, read and cancel order intents.

Responsibility:
    Validates a checkout request, snapshots the cart with catalog prices,
    computes the frozen pricing, and persists the intent together with its
    inventory locks.  Also serves reads (with lazy expiry) and owner/admin
    cancellation.

Architecture position:
    Kernel > Services.  Composes InventoryLockManager (through
    IntentStateMachine), AuditService and the pricing collaborators.  Called
    by CheckoutOrchestrator, which owns the transaction.

Invariants enforced:
    - Validation before locking: empty carts, bad quantities, unknown or
      inactive variants, invalid addresses and rejected discount codes fail
      before any stock is touched.
    - All-or-nothing creation: the DRAFT row, its locks and the
      DRAFT -> INTENT_CREATED transition run inside one SAVEPOINT.  Any
      failure rolls all three back, so no caller ever observes an
      INTENT_CREATED intent with a partial lock set.
    - Frozen pricing: unit prices come from the catalog exactly once, here.
    - One active intent per (user, cart): enforced by the UNIQUE
      active_cart_key.  A colliding request either reuses the live intent
      (same addresses and discount) or fails with IntentAlreadyActiveError.
      A colliding intent whose hold already ran out is expired inline and
      creation is retried.
    - Hold duration is fixed at creation; there is no refresh operation.

Failure modes:
    - ValidationError subclasses (no side effects).
    - InsufficientStockError (nothing held afterwards).
    - IntentAlreadyActiveError, CheckoutDisabledError.
    - IntentNotFoundError, IntentAccessDeniedError, InvalidTransitionError
      from reads and cancellation.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout_kernel.domain.cart import (
    CartLine,
    SnapshotLine,
    compute_cart_hash,
    normalize_lines,
)
from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.domain.collaborators import (
    AcceptAllAddressValidator,
    AddressValidator,
    Catalog,
    DiscountValidator,
    PercentageTaxCalculator,
    ShippingCalculator,
    TaxCalculator,
    ThresholdShippingCalculator,
)
from checkout_kernel.domain.dtos import IntentRequest, IntentResult, IntentView
from checkout_kernel.domain.pricing import PriceBreakdown, price_cart
from checkout_kernel.exceptions import (
    CheckoutDisabledError,
    IntentAccessDeniedError,
    IntentAlreadyActiveError,
    IntentNotFoundError,
    InvalidAddressError,
    InvalidDiscountCodeError,
    InvalidTransitionError,
    OptimisticLockError,
    VariantInactiveError,
    VariantNotFoundError,
)
from checkout_kernel.logging_config import get_logger
from checkout_kernel.models.audit_log import AuditAction
from checkout_kernel.models.order_intent import IntentStatus, OrderIntent
from checkout_kernel.services.audit_service import AuditService
from checkout_kernel.services.base import BaseService
from checkout_kernel.services.intent_state_machine import IntentStateMachine
from checkout_kernel.utils.identifiers import generate_intent_number

logger = get_logger("services.order_intent")


@dataclass(frozen=True)
class IntentPolicy:
    """Checkout policy knobs, supplied by configuration."""

    hold_duration: timedelta = timedelta(minutes=30)
    reuse_active_intent: bool = True
    checkout_enabled: bool = True
    rounding: str = "round"
    max_create_attempts: int = 3

    def __post_init__(self) -> None:
        if self.hold_duration <= timedelta(0):
            raise ValueError("hold_duration must be positive")
        if self.max_create_attempts < 1:
            raise ValueError("max_create_attempts must be at least 1")


class OrderIntentService(BaseService[OrderIntent]):
    """
    Order intent lifecycle: create, get (with lazy expiry), cancel.

    Non-goals:
        - Does NOT convert intents (ConversionCoordinator does).
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        catalog: Catalog,
        clock: Clock | None = None,
        *,
        state_machine: IntentStateMachine | None = None,
        audit: AuditService | None = None,
        tax_calculator: TaxCalculator | None = None,
        shipping_calculator: ShippingCalculator | None = None,
        discount_validator: DiscountValidator | None = None,
        address_validator: AddressValidator | None = None,
        policy: IntentPolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._catalog = catalog
        self._audit = audit or AuditService(session, self._clock)
        self._states = state_machine or IntentStateMachine(
            session, clock=self._clock, audit=self._audit
        )
        self._tax = tax_calculator or PercentageTaxCalculator(18)
        self._shipping = shipping_calculator or ThresholdShippingCalculator(5000, 0)
        self._discounts = discount_validator
        self._addresses = address_validator or AcceptAllAddressValidator()
        self._policy = policy or IntentPolicy()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_intent(self, request: IntentRequest) -> IntentResult:
        """
        Create (or reuse) an order intent holding stock for the cart.

        Preconditions:
            - Every variant in the cart has a StockLedger row.

        Postconditions:
            - On success the intent is INTENT_CREATED with exactly one LOCKED
              lock per distinct variant, all expiring at intent.expires_at.
            - On failure nothing is held and no intent row remains.

        Raises:
            CheckoutDisabledError, ValidationError subclasses,
            InsufficientStockError, IntentAlreadyActiveError.
        """
        if not self._policy.checkout_enabled:
            raise CheckoutDisabledError()

        user_id = request.user_id
        lines = normalize_lines(user_id, request.lines)
        shipping_id, billing_id = self._validate_addresses(request)
        discount_code = self._normalize_code(request.discount_code)

        snapshot = self._snapshot(lines)
        pricing = price_cart(
            snapshot,
            shipping_address_id=shipping_id,
            tax_calculator=self._tax,
            shipping_calculator=self._shipping,
            rounding=self._policy.rounding,
            discount_code=discount_code,
            discount_validator=self._require_discounts(discount_code),
        )

        active_key = f"{user_id}:{compute_cart_hash(lines)}"
        now = self._clock.now()
        expires_at = now + self._policy.hold_duration

        for attempt in range(1, self._policy.max_create_attempts + 1):
            try:
                intent = self._insert_with_locks(
                    user_id=user_id,
                    lines=lines,
                    snapshot=snapshot,
                    pricing=pricing,
                    active_key=active_key,
                    shipping_id=shipping_id,
                    billing_id=billing_id,
                    discount_code=discount_code,
                    now=now,
                    expires_at=expires_at,
                )
            except IntegrityError:
                logger.info(
                    "intent_active_key_collision",
                    extra={"user_id": user_id, "attempt": attempt},
                )
                reused = self._resolve_active_holder(
                    active_key, shipping_id, billing_id, discount_code, now
                )
                if reused is not None:
                    return reused
                continue

            self._audit.record(
                AuditAction.INTENT_CREATED,
                "order_intent",
                intent.id,
                actor_id=user_id,
                new_values={
                    "intent_number": intent.intent_number,
                    "status": IntentStatus.INTENT_CREATED.value,
                    "expires_at": expires_at.isoformat(),
                    **pricing.as_dict(),
                },
            )
            logger.info(
                "intent_created",
                extra={
                    "intent_id": str(intent.id),
                    "intent_number": intent.intent_number,
                    "user_id": user_id,
                    "line_count": len(lines),
                    "total_amount": pricing.total_amount,
                    "expires_at": expires_at,
                },
            )
            return IntentResult(intent=self._view(intent.id), reused=False)

        raise OptimisticLockError("order_intent", active_key)

    def _insert_with_locks(
        self,
        *,
        user_id: str,
        lines: Sequence[CartLine],
        snapshot: Sequence[SnapshotLine],
        pricing: PriceBreakdown,
        active_key: str,
        shipping_id: str,
        billing_id: str,
        discount_code: str | None,
        now: datetime,
        expires_at: datetime,
    ) -> OrderIntent:
        """DRAFT row, locks and the DRAFT -> INTENT_CREATED step, or none of them."""
        with self.session.begin_nested():
            intent = OrderIntent(
                user_id=user_id,
                intent_number=generate_intent_number(now),
                status=IntentStatus.DRAFT.value,
                cart_snapshot=[line.to_dict() for line in snapshot],
                cart_hash=active_key.split(":", 1)[1],
                active_cart_key=active_key,
                subtotal=pricing.subtotal,
                discount_amount=pricing.discount_amount,
                tax_amount=pricing.tax_amount,
                shipping_charge=pricing.shipping_charge,
                total_amount=pricing.total_amount,
                discount_code=discount_code,
                shipping_address_id=shipping_id,
                billing_address_id=billing_id,
                expires_at=expires_at,
                created_at=now,
            )
            self.session.add(intent)
            self.session.flush()

            self._states.lock_manager.acquire_all(intent.id, lines, expires_at)

            if not self._states.transition(
                intent.id, IntentStatus.DRAFT, IntentStatus.INTENT_CREATED
            ):
                raise OptimisticLockError("order_intent", str(intent.id))
        return intent

    def _resolve_active_holder(
        self,
        active_key: str,
        shipping_id: str,
        billing_id: str,
        discount_code: str | None,
        now: datetime,
    ) -> IntentResult | None:
        """
        Decide what to do about the intent already holding this cart.

        Returns:
            IntentResult(reused=True) to hand back the live intent, or None
            to retry creation (the holder went away or was expired here).

        Raises:
            IntentAlreadyActiveError: If the live intent cannot be reused.
        """
        self.session.expire_all()
        holder = self.session.execute(
            select(OrderIntent).where(OrderIntent.active_cart_key == active_key)
        ).scalar_one_or_none()

        if holder is None:
            return None

        if holder.status == IntentStatus.INTENT_CREATED.value and holder.is_past_expiry(now):
            self._states.expire(holder.id, now=now, trigger="superseded")
            return None

        if not self._policy.reuse_active_intent:
            raise IntentAlreadyActiveError(str(holder.id))

        same_details = (
            holder.shipping_address_id == shipping_id
            and holder.billing_address_id == billing_id
            and holder.discount_code == discount_code
        )
        if holder.status != IntentStatus.INTENT_CREATED.value or not same_details:
            raise IntentAlreadyActiveError(
                str(holder.id), reason="active intent has different checkout details"
            )

        self._audit.record(
            AuditAction.INTENT_REUSED,
            "order_intent",
            holder.id,
            actor_id=holder.user_id,
        )
        logger.info(
            "intent_reused",
            extra={"intent_id": str(holder.id), "user_id": holder.user_id},
        )
        return IntentResult(intent=IntentView.from_model(holder), reused=True)

    def _validate_addresses(self, request: IntentRequest) -> tuple[str, str]:
        shipping_id = request.shipping_address_id
        if not shipping_id or not self._addresses.is_valid(request.user_id, shipping_id):
            raise InvalidAddressError(shipping_id, "shipping")

        # Billing defaults to the shipping address
        billing_id = request.billing_address_id or shipping_id
        if billing_id != shipping_id and not self._addresses.is_valid(
            request.user_id, billing_id
        ):
            raise InvalidAddressError(billing_id, "billing")
        return shipping_id, billing_id

    @staticmethod
    def _normalize_code(code: str | None) -> str | None:
        if code is None:
            return None
        code = code.strip().upper()
        return code or None

    def _require_discounts(self, discount_code: str | None) -> DiscountValidator | None:
        if discount_code is not None and self._discounts is None:
            raise InvalidDiscountCodeError(discount_code, reason="discounts unavailable")
        return self._discounts

    def _snapshot(self, lines: Sequence[CartLine]) -> list[SnapshotLine]:
        snapshot = []
        for line in lines:
            info = self._catalog.get_variant(line.variant_id)
            if info is None:
                raise VariantNotFoundError(line.variant_id)
            if not info.is_active:
                raise VariantInactiveError(line.variant_id)
            snapshot.append(
                SnapshotLine(
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    unit_price=info.unit_price,
                    product_id=info.product_id,
                    product_name=info.product_name,
                    attributes=info.attributes,
                )
            )
        return snapshot

    # ------------------------------------------------------------------
    # Read / cancel
    # ------------------------------------------------------------------

    def _view(self, intent_id: UUID) -> IntentView:
        intent = self._states.load(intent_id)
        if intent is None:
            raise IntentNotFoundError(str(intent_id))
        return IntentView.from_model(intent)

    def get_intent(self, intent_id: UUID, user_id: str | None = None) -> IntentView:
        """
        Return an intent, expiring it first if its hold has run out.

        Args:
            user_id: If given, intents owned by someone else are reported as
                not found.

        Raises:
            IntentNotFoundError: If missing or not owned by user_id.
        """
        intent = self._states.load(intent_id)
        if intent is None or (user_id is not None and intent.user_id != user_id):
            raise IntentNotFoundError(str(intent_id))

        now = self._clock.now()
        if intent.status == IntentStatus.INTENT_CREATED.value and intent.is_past_expiry(now):
            self._states.expire(intent.id, now=now, trigger="read")

        return self._view(intent_id)

    def cancel_intent(
        self,
        intent_id: UUID,
        actor_id: str,
        is_admin: bool = False,
    ) -> IntentView:
        """
        Cancel an INTENT_CREATED intent, releasing its locks.

        Raises:
            IntentNotFoundError: If the intent does not exist.
            IntentAccessDeniedError: If actor is neither owner nor admin.
            InvalidTransitionError: If the intent is not INTENT_CREATED.
        """
        intent = self._states.load(intent_id)
        if intent is None:
            raise IntentNotFoundError(str(intent_id))
        if intent.user_id != actor_id and not is_admin:
            raise IntentAccessDeniedError(str(intent_id), actor_id)

        if not self._states.cancel(intent_id, actor_id):
            current = self._states.load(intent_id)
            raise InvalidTransitionError(
                str(intent_id),
                current.status if current else "UNKNOWN",
                IntentStatus.CANCELLED.value,
            )
        return self._view(intent_id)
