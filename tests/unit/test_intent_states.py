"""
Intent / lock status tables, identifiers and the deterministic clock.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from checkout_kernel.domain.clock import DeterministicClock
from checkout_kernel.models.inventory_lock import LockStatus, TERMINAL_LOCK_STATUSES
from checkout_kernel.models.order_intent import (
    INTENT_TRANSITIONS,
    TERMINAL_INTENT_STATUSES,
    IntentStatus,
    can_transition,
)
from checkout_kernel.utils.identifiers import generate_intent_number, generate_order_number

NOW = datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc)


class TestIntentTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (IntentStatus.DRAFT, IntentStatus.INTENT_CREATED),
            (IntentStatus.INTENT_CREATED, IntentStatus.EXPIRED),
            (IntentStatus.INTENT_CREATED, IntentStatus.CANCELLED),
            (IntentStatus.INTENT_CREATED, IntentStatus.CONVERTED),
        ],
    )
    def test_legal_edges(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (IntentStatus.DRAFT, IntentStatus.CONVERTED),
            (IntentStatus.EXPIRED, IntentStatus.INTENT_CREATED),
            (IntentStatus.CANCELLED, IntentStatus.CONVERTED),
            (IntentStatus.CONVERTED, IntentStatus.EXPIRED),
            (IntentStatus.CONVERTED, IntentStatus.CANCELLED),
        ],
    )
    def test_illegal_edges(self, current, target):
        assert not can_transition(current, target)

    def test_terminal_statuses_have_no_exits(self):
        assert TERMINAL_INTENT_STATUSES == {
            IntentStatus.EXPIRED,
            IntentStatus.CONVERTED,
            IntentStatus.CANCELLED,
        }
        for status in TERMINAL_INTENT_STATUSES:
            assert INTENT_TRANSITIONS[status] == frozenset()

    def test_every_status_has_an_entry(self):
        assert set(INTENT_TRANSITIONS) == set(IntentStatus)

    def test_lock_terminal_statuses(self):
        assert LockStatus.LOCKED not in TERMINAL_LOCK_STATUSES
        assert TERMINAL_LOCK_STATUSES == {
            LockStatus.RELEASED,
            LockStatus.CONVERTED,
            LockStatus.EXPIRED,
        }


class TestIdentifiers:
    def test_intent_number_format(self):
        number = generate_intent_number(NOW)
        millis = int(NOW.timestamp() * 1000)
        assert re.fullmatch(rf"INT-{millis}-[A-Z0-9]{{7}}", number)

    def test_order_number_format(self):
        assert re.fullmatch(r"ORD-20240305-[0-9A-F]{8}", generate_order_number(NOW))

    def test_numbers_are_not_sequential(self):
        numbers = {generate_intent_number(NOW) for _ in range(50)}
        assert len(numbers) == 50


class TestDeterministicClock:
    def test_advance_minutes(self):
        clock = DeterministicClock(NOW)
        clock.advance(minutes=31)
        assert clock.now() == NOW + timedelta(minutes=31)

    def test_set_time(self):
        clock = DeterministicClock()
        clock.set_time(NOW)
        assert clock.now() == NOW
        assert clock.now().tzinfo is not None
