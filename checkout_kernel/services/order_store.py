"""
OrderStore -- persistence for orders created from converted intents.

Responsibility:
    Creates the Order and its OrderItems from an intent's frozen snapshot and
    pricing, and finds the order previously created for an intent (for
    idempotent conversion retries).

Architecture position:
    Kernel > Services.  ``OrderStore`` is the collaborator contract;
    ``SqlOrderStore`` writes into the conversion transaction's session.

Invariants enforced:
    - No recomputation: every amount is copied from the intent.
    - One order per intent (UNIQUE uq_order_intent).
    - Unique order numbers; a random-number collision is retried under a
      SAVEPOINT without disturbing the conversion transaction.
"""

from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout_kernel.domain.cart import SnapshotLine
from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.domain.dtos import PaymentDetails
from checkout_kernel.exceptions import OptimisticLockError
from checkout_kernel.logging_config import get_logger
from checkout_kernel.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from checkout_kernel.models.order_intent import OrderIntent
from checkout_kernel.services.base import BaseService
from checkout_kernel.utils.identifiers import generate_order_number

logger = get_logger("services.order_store")


class OrderStore(Protocol):
    def create_order(
        self, intent: OrderIntent, payment: PaymentDetails | None = None
    ) -> Order:
        ...

    def get_by_intent(self, intent_id: UUID) -> Order | None:
        ...


class SqlOrderStore(BaseService[Order]):
    """OrderStore backed by the orders / order_items tables."""

    MAX_NUMBER_ATTEMPTS = 3

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def get_by_intent(self, intent_id: UUID) -> Order | None:
        return self.session.execute(
            select(Order)
            .where(Order.order_intent_id == intent_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def create_order(
        self, intent: OrderIntent, payment: PaymentDetails | None = None
    ) -> Order:
        """
        Persist the order for a CONVERTED intent.

        Raises:
            OptimisticLockError: If no unique order number could be allocated
                (or an order for this intent already exists).
        """
        payment = payment or PaymentDetails()
        now = self._clock.now()
        lines = [SnapshotLine.from_dict(d) for d in intent.cart_snapshot]

        for attempt in range(1, self.MAX_NUMBER_ATTEMPTS + 1):
            savepoint = self.session.begin_nested()
            try:
                order = Order(
                    order_number=generate_order_number(now),
                    order_intent_id=intent.id,
                    user_id=intent.user_id,
                    status=OrderStatus.PAID.value,
                    payment_status=PaymentStatus.PAID.value,
                    payment_method=payment.method,
                    payment_reference=payment.reference,
                    subtotal=intent.subtotal,
                    discount_amount=intent.discount_amount,
                    tax_amount=intent.tax_amount,
                    shipping_charge=intent.shipping_charge,
                    total_amount=intent.total_amount,
                    discount_code=intent.discount_code,
                    shipping_address_id=intent.shipping_address_id,
                    billing_address_id=intent.billing_address_id,
                    created_at=now,
                    items=[
                        OrderItem(
                            line_no=line_no,
                            product_id=line.product_id,
                            variant_id=line.variant_id,
                            product_name=line.product_name,
                            variant_attributes=dict(line.attributes),
                            unit_price=line.unit_price,
                            quantity=line.quantity,
                            line_total=line.line_total,
                        )
                        for line_no, line in enumerate(lines, start=1)
                    ],
                )
                self.session.add(order)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.warning(
                    "order_number_collision_retry",
                    extra={"intent_id": str(intent.id), "attempt": attempt},
                )
                continue

            logger.info(
                "order_created",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "intent_id": str(intent.id),
                    "total_amount": order.total_amount,
                },
            )
            return order

        raise OptimisticLockError("order", str(intent.id))
