"""
Tests for order intent creation, reads (with lazy expiry) and cancellation.

Tests cover:
1. Creation: locks, frozen pricing, expiry and identifiers
2. One active intent per cart: reuse, conflicts, supersede after expiry
3. Validation failures leave no intent and no held stock
4. Lazy expiry on read, ownership checks
5. Cancellation by owner / admin
6. Audit trail
"""

import re
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from checkout_kernel.domain.collaborators import InMemoryAddressBook
from checkout_kernel.exceptions import (
    CheckoutDisabledError,
    EmptyCartError,
    InsufficientStockError,
    IntentAccessDeniedError,
    IntentAlreadyActiveError,
    IntentNotFoundError,
    InvalidAddressError,
    InvalidDiscountCodeError,
    InvalidQuantityError,
    InvalidTransitionError,
    VariantInactiveError,
    VariantNotFoundError,
)
from checkout_kernel.models.inventory_lock import LockStatus
from checkout_kernel.models.order_intent import IntentStatus, OrderIntent
from checkout_kernel.services.order_intent_service import IntentPolicy


def _intent_count(session) -> int:
    return session.execute(select(func.count()).select_from(OrderIntent)).scalar_one()


# ============================================================================
# Creation
# ============================================================================


class TestCreateIntent:
    def test_creates_intent_with_locks(self, orchestrator, standard_stock, intent_request, clock):
        result = orchestrator.create_intent(intent_request())
        intent = result.intent

        assert result.reused is False
        assert intent.status == IntentStatus.INTENT_CREATED.value
        assert intent.user_id == "user-1"
        assert re.fullmatch(r"INT-\d+-[A-Z0-9]{7}", intent.intent_number)
        assert intent.expires_at == clock.now() + timedelta(minutes=30)

        assert len(intent.locks) == 1
        lock = intent.locks[0]
        assert lock.variant_id == "V-RED-M"
        assert lock.quantity_locked == 2
        assert lock.status == LockStatus.LOCKED.value
        assert lock.expires_at == intent.expires_at
        assert intent.locked_quantity == 2

        level = orchestrator.stock_level("V-RED-M")
        assert level.locked_quantity == 2
        assert level.available == 8

    def test_pricing_is_computed_and_stored(self, orchestrator, standard_stock, intent_request):
        intent = orchestrator.create_intent(intent_request()).intent

        assert intent.subtotal == Decimal("2000.00")
        assert intent.discount_amount == Decimal("0.00")
        assert intent.tax_amount == Decimal("360.00")
        assert intent.shipping_charge == Decimal("50.00")
        assert intent.total_amount == Decimal("2410.00")

    def test_snapshot_carries_catalog_details(self, orchestrator, standard_stock, intent_request):
        intent = orchestrator.create_intent(
            intent_request(lines=(("V-MUG", 1), ("V-RED-M", 1), ("V-MUG", 2)))
        ).intent

        assert [(line.variant_id, line.quantity) for line in intent.lines] == [
            ("V-MUG", 3),
            ("V-RED-M", 1),
        ]
        mug, shirt = intent.lines
        assert mug.unit_price == Decimal("250.50")
        assert mug.line_total == Decimal("751.50")
        assert shirt.product_name == "Classic T-Shirt"
        assert dict(shirt.attributes) == {"color": "red", "size": "M"}
        assert {lock.variant_id: lock.quantity_locked for lock in intent.locks} == {
            "V-MUG": 3,
            "V-RED-M": 1,
        }

    def test_discount_code_is_normalized(self, orchestrator, standard_stock, intent_request):
        intent = orchestrator.create_intent(intent_request(discount_code=" save10 ")).intent

        assert intent.discount_code == "SAVE10"
        assert intent.discount_amount == Decimal("200.00")
        assert intent.total_amount == Decimal("2174.00")

    def test_billing_defaults_to_shipping(self, orchestrator, standard_stock, intent_request):
        intent = orchestrator.create_intent(intent_request()).intent
        assert intent.billing_address_id == intent.shipping_address_id == "addr-ship-1"

    def test_insufficient_stock_holds_nothing(self, orchestrator, stock, intent_request):
        stock("V-RED-M", 10)
        stock("V-MUG", 1)

        with pytest.raises(InsufficientStockError) as exc_info:
            orchestrator.create_intent(intent_request(lines=(("V-RED-M", 2), ("V-MUG", 5))))

        assert exc_info.value.variant_id == "V-MUG"
        assert exc_info.value.available == 1
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 0
        assert orchestrator.stock_level("V-MUG").locked_quantity == 0
        assert _intent_count(orchestrator.session) == 0

    def test_last_units_can_be_held(self, orchestrator, stock, intent_request):
        stock("V-RED-M", 2)
        orchestrator.create_intent(intent_request())

        assert orchestrator.stock_level("V-RED-M").available == 0
        with pytest.raises(InsufficientStockError):
            orchestrator.create_intent(intent_request(user_id="user-2"))

    def test_checkout_disabled(self, make_orchestrator, standard_stock, intent_request):
        orchestrator = make_orchestrator(policy=IntentPolicy(checkout_enabled=False))
        with pytest.raises(CheckoutDisabledError):
            orchestrator.create_intent(intent_request())
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 0

    def test_custom_hold_duration(self, make_orchestrator, standard_stock, intent_request, clock):
        orchestrator = make_orchestrator(
            policy=IntentPolicy(hold_duration=timedelta(minutes=5))
        )
        intent = orchestrator.create_intent(intent_request()).intent
        assert intent.expires_at == clock.now() + timedelta(minutes=5)


# ============================================================================
# One active intent per cart
# ============================================================================


class TestActiveIntentPerCart:
    def test_same_cart_reuses_live_intent(self, orchestrator, standard_stock, intent_request):
        first = orchestrator.create_intent(intent_request())
        second = orchestrator.create_intent(intent_request())

        assert second.reused is True
        assert second.intent.intent_id == first.intent.intent_id
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 2
        assert _intent_count(orchestrator.session) == 1

    def test_line_order_does_not_matter(self, orchestrator, standard_stock, intent_request):
        first = orchestrator.create_intent(intent_request(lines=(("V-RED-M", 1), ("V-MUG", 1))))
        second = orchestrator.create_intent(intent_request(lines=(("V-MUG", 1), ("V-RED-M", 1))))
        assert second.intent.intent_id == first.intent.intent_id

    def test_different_details_conflict(self, orchestrator, standard_stock, intent_request):
        first = orchestrator.create_intent(intent_request())

        with pytest.raises(IntentAlreadyActiveError) as exc_info:
            orchestrator.create_intent(intent_request(discount_code="SAVE10"))
        assert exc_info.value.intent_id == str(first.intent.intent_id)

    def test_reuse_disabled_conflicts(self, make_orchestrator, standard_stock, intent_request):
        orchestrator = make_orchestrator(policy=IntentPolicy(reuse_active_intent=False))
        orchestrator.create_intent(intent_request())

        with pytest.raises(IntentAlreadyActiveError):
            orchestrator.create_intent(intent_request())
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 2

    def test_different_carts_hold_independently(self, orchestrator, standard_stock, intent_request):
        orchestrator.create_intent(intent_request(lines=(("V-RED-M", 2),)))
        orchestrator.create_intent(intent_request(lines=(("V-RED-M", 3),)))

        assert orchestrator.stock_level("V-RED-M").locked_quantity == 5
        assert len(orchestrator.list_intents("user-1")) == 2

    def test_other_users_do_not_collide(self, orchestrator, standard_stock, intent_request):
        a = orchestrator.create_intent(intent_request(user_id="user-1"))
        b = orchestrator.create_intent(intent_request(user_id="user-2"))
        assert a.intent.intent_id != b.intent.intent_id

    def test_timed_out_holder_is_superseded(self, orchestrator, standard_stock, intent_request, clock):
        old = orchestrator.create_intent(intent_request()).intent
        clock.advance(minutes=31)

        new = orchestrator.create_intent(intent_request())

        assert new.reused is False
        assert new.intent.intent_id != old.intent_id
        assert orchestrator.get_intent(old.intent_id).status == IntentStatus.EXPIRED.value
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 2

    def test_cancelled_cart_can_be_checked_out_again(self, orchestrator, standard_stock, intent_request):
        old = orchestrator.create_intent(intent_request()).intent
        orchestrator.cancel_intent(old.intent_id, actor_id="user-1")

        new = orchestrator.create_intent(intent_request())
        assert new.reused is False
        assert new.intent.intent_id != old.intent_id


# ============================================================================
# Validation
# ============================================================================


class TestValidation:
    @pytest.mark.parametrize(
        "overrides,error",
        [
            ({"lines": ()}, EmptyCartError),
            ({"lines": (("V-RED-M", 0),)}, InvalidQuantityError),
            ({"lines": (("V-NOPE", 1),)}, VariantNotFoundError),
            ({"lines": (("V-RETIRED", 1),)}, VariantInactiveError),
            ({"shipping_address_id": None}, InvalidAddressError),
            ({"discount_code": "BOGUS"}, InvalidDiscountCodeError),
        ],
    )
    def test_rejected_before_any_stock_is_held(
        self, orchestrator, standard_stock, intent_request, overrides, error
    ):
        with pytest.raises(error):
            orchestrator.create_intent(intent_request(**overrides))

        assert _intent_count(orchestrator.session) == 0
        for variant_id in ("V-RED-M", "V-BLUE-L", "V-MUG"):
            assert orchestrator.stock_level(variant_id).locked_quantity == 0

    def test_catalog_variant_without_stock_row(self, orchestrator, stock, intent_request):
        stock("V-RED-M", 10)
        with pytest.raises(VariantNotFoundError):
            orchestrator.create_intent(intent_request(lines=(("V-RED-M", 1), ("V-MUG", 1))))
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 0

    def test_address_must_belong_to_user(self, make_orchestrator, standard_stock, intent_request):
        orchestrator = make_orchestrator(
            address_validator=InMemoryAddressBook({"user-1": ["addr-ship-1"]})
        )

        with pytest.raises(InvalidAddressError) as exc_info:
            orchestrator.create_intent(intent_request(billing_address_id="addr-of-someone"))
        assert exc_info.value.role == "billing"

        with pytest.raises(InvalidAddressError):
            orchestrator.create_intent(intent_request(user_id="user-2"))

        assert orchestrator.create_intent(intent_request()).intent.status == "INTENT_CREATED"

    def test_discount_code_without_validator(self, make_orchestrator, standard_stock, intent_request):
        orchestrator = make_orchestrator(discount_validator=None)
        with pytest.raises(InvalidDiscountCodeError):
            orchestrator.create_intent(intent_request(discount_code="SAVE10"))

    def test_minimum_subtotal_for_discount(self, orchestrator, standard_stock, intent_request):
        with pytest.raises(InvalidDiscountCodeError) as exc_info:
            orchestrator.create_intent(
                intent_request(lines=(("V-MUG", 1),), discount_code="FLAT100")
            )
        assert exc_info.value.reason == "minimum order value not met"


# ============================================================================
# Reads
# ============================================================================


class TestGetIntent:
    def test_pricing_frozen_after_catalog_change(
        self, orchestrator, standard_stock, intent_request, catalog
    ):
        created = orchestrator.create_intent(intent_request()).intent
        catalog.set_price("V-RED-M", Decimal("1.00"))

        intent = orchestrator.get_intent(created.intent_id)
        assert intent.lines[0].unit_price == Decimal("1000.00")
        assert intent.total_amount == Decimal("2410.00")

    def test_still_live_at_exact_expiry(self, orchestrator, standard_stock, intent_request, clock):
        created = orchestrator.create_intent(intent_request()).intent
        clock.advance(minutes=30)

        intent = orchestrator.get_intent(created.intent_id)
        assert intent.status == IntentStatus.INTENT_CREATED.value

    def test_lazy_expiry_on_read(self, orchestrator, standard_stock, intent_request, clock):
        created = orchestrator.create_intent(intent_request()).intent
        clock.advance(minutes=31)

        intent = orchestrator.get_intent(created.intent_id, user_id="user-1")

        assert intent.status == IntentStatus.EXPIRED.value
        assert intent.locked_quantity == 0
        assert {lock.status for lock in intent.locks} == {LockStatus.EXPIRED.value}
        assert orchestrator.stock_level("V-RED-M").available == 10

        # Stock is returned once only
        orchestrator.get_intent(created.intent_id)
        assert orchestrator.stock_level("V-RED-M").available == 10

    def test_other_users_intent_is_not_found(self, orchestrator, standard_stock, intent_request):
        created = orchestrator.create_intent(intent_request()).intent
        with pytest.raises(IntentNotFoundError):
            orchestrator.get_intent(created.intent_id, user_id="user-2")

    def test_unknown_intent(self, orchestrator):
        with pytest.raises(IntentNotFoundError):
            orchestrator.get_intent(uuid4())

    def test_list_newest_first_with_status_filter(
        self, orchestrator, standard_stock, intent_request, clock
    ):
        first = orchestrator.create_intent(intent_request(lines=(("V-RED-M", 1),))).intent
        clock.advance(seconds=5)
        second = orchestrator.create_intent(intent_request(lines=(("V-MUG", 1),))).intent
        orchestrator.cancel_intent(first.intent_id, actor_id="user-1")

        listed = orchestrator.list_intents("user-1")
        assert [i.intent_id for i in listed] == [second.intent_id, first.intent_id]

        cancelled = orchestrator.list_intents("user-1", status=IntentStatus.CANCELLED)
        assert [i.intent_id for i in cancelled] == [first.intent_id]
        assert orchestrator.list_intents("user-2") == []


# ============================================================================
# Cancellation
# ============================================================================


class TestCancelIntent:
    def test_owner_cancels_and_stock_returns(self, orchestrator, standard_stock, intent_request):
        created = orchestrator.create_intent(intent_request()).intent

        intent = orchestrator.cancel_intent(created.intent_id, actor_id="user-1")

        assert intent.status == IntentStatus.CANCELLED.value
        assert {lock.status for lock in intent.locks} == {LockStatus.RELEASED.value}
        assert orchestrator.stock_level("V-RED-M").available == 10

    def test_other_user_denied(self, orchestrator, standard_stock, intent_request):
        created = orchestrator.create_intent(intent_request()).intent

        with pytest.raises(IntentAccessDeniedError):
            orchestrator.cancel_intent(created.intent_id, actor_id="user-2")
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 2

    def test_admin_may_cancel(self, orchestrator, standard_stock, intent_request):
        created = orchestrator.create_intent(intent_request()).intent
        intent = orchestrator.cancel_intent(created.intent_id, actor_id="admin-1", is_admin=True)
        assert intent.status == IntentStatus.CANCELLED.value

    def test_second_cancel_is_invalid_transition(self, orchestrator, standard_stock, intent_request):
        created = orchestrator.create_intent(intent_request()).intent
        orchestrator.cancel_intent(created.intent_id, actor_id="user-1")

        with pytest.raises(InvalidTransitionError) as exc_info:
            orchestrator.cancel_intent(created.intent_id, actor_id="user-1")
        assert exc_info.value.current_status == IntentStatus.CANCELLED.value
        assert orchestrator.stock_level("V-RED-M").available == 10

    def test_cancel_after_conversion_refused(self, orchestrator, standard_stock, intent_request):
        created = orchestrator.create_intent(intent_request()).intent
        orchestrator.convert(created.intent_id)

        with pytest.raises(InvalidTransitionError):
            orchestrator.cancel_intent(created.intent_id, actor_id="user-1")
        assert orchestrator.stock_level("V-RED-M").total_stock == 8


# ============================================================================
# Audit
# ============================================================================


class TestAuditTrail:
    def test_lifecycle_is_audited(self, orchestrator, standard_stock, intent_request):
        created = orchestrator.create_intent(intent_request()).intent
        orchestrator.create_intent(intent_request())
        orchestrator.cancel_intent(created.intent_id, actor_id="user-1")

        history = orchestrator.audit.history("order_intent", created.intent_id)
        assert {entry.action for entry in history} == {
            "intent_created",
            "intent_reused",
            "intent_cancelled",
        }
        created_entry = next(e for e in history if e.action == "intent_created")
        assert created_entry.actor_id == "user-1"
        assert created_entry.new_values["status"] == "INTENT_CREATED"

    def test_creation_is_logged(self, orchestrator, standard_stock, intent_request, captured_logs):
        created = orchestrator.create_intent(intent_request()).intent

        records = [r for r in captured_logs() if r["message"] == "intent_created"]
        assert len(records) == 1
        assert records[0]["intent_id"] == str(created.intent_id)
        assert records[0]["user_id"] == "user-1"
