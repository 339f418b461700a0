"""
True concurrency tests for inventory holds and conversion.

Each worker runs on its own thread with its own session, released together
by a Barrier.  On SQLite writers queue on BEGIN IMMEDIATE; on PostgreSQL
(DATABASE_URL=postgresql://...) they contend on row locks under READ
COMMITTED.  Either way the conditional updates must produce exactly one
winner per contended unit.

Expected Behavior:
- N buyers racing for the last unit: exactly one intent, N-1
  InsufficientStockError, nothing oversold
- Repeated conversion of one intent: one order, every caller sees it
- Cancel / reaper racing conversion: exactly one outcome, stock returned or
  sold exactly once
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import func, select

from checkout_batch import ExpiryReaper
from checkout_kernel.exceptions import (
    InsufficientStockError,
    IntentNoLongerValidError,
    InvalidTransitionError,
)
from checkout_kernel.models.order import Order
from checkout_kernel.models.order_intent import IntentStatus

pytestmark = pytest.mark.slow_locks

WORKERS = 8


def _race(tasks):
    """Run callables simultaneously; return ("ok", value) / ("error", exc) per task."""
    barrier = Barrier(len(tasks))

    def _run(task):
        barrier.wait(timeout=30)
        try:
            return ("ok", task())
        except Exception as exc:  # collected and asserted on by the caller
            return ("error", exc)

    with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
        return list(pool.map(_run, tasks))


def _order_count(session) -> int:
    return session.execute(select(func.count()).select_from(Order)).scalar_one()


class TestReservationRaces:
    def test_last_unit_has_exactly_one_winner(
        self, make_orchestrator, orchestrator, stock, intent_request
    ):
        stock("V-MUG", 1)
        workers = [make_orchestrator() for _ in range(WORKERS)]
        tasks = [
            (lambda o=o, i=i: o.create_intent(
                intent_request(lines=(("V-MUG", 1),), user_id=f"buyer-{i}")
            ))
            for i, o in enumerate(workers)
        ]

        results = _race(tasks)

        winners = [value for kind, value in results if kind == "ok"]
        losers = [value for kind, value in results if kind == "error"]
        assert len(winners) == 1
        assert len(losers) == WORKERS - 1
        assert all(isinstance(exc, InsufficientStockError) for exc in losers)

        level = orchestrator.stock_level("V-MUG")
        assert level.locked_quantity == 1
        assert level.available == 0

    def test_no_oversell_under_contention(
        self, make_orchestrator, orchestrator, stock, intent_request
    ):
        stock("V-RED-M", 5)
        workers = [make_orchestrator() for _ in range(WORKERS)]
        tasks = [
            (lambda o=o, i=i: o.create_intent(intent_request(user_id=f"buyer-{i}")))
            for i, o in enumerate(workers)
        ]

        results = _race(tasks)

        # Each buyer wants 2 of 5 units
        assert sum(1 for kind, _ in results if kind == "ok") == 2
        level = orchestrator.stock_level("V-RED-M")
        assert level.locked_quantity == 4
        assert level.available == 1

    def test_opposite_line_orders_do_not_deadlock(
        self, make_orchestrator, orchestrator, standard_stock, intent_request
    ):
        workers = [make_orchestrator() for _ in range(4)]
        carts = [
            (("V-RED-M", 1), ("V-MUG", 1)),
            (("V-MUG", 1), ("V-RED-M", 1)),
        ]
        tasks = [
            (lambda o=o, i=i: o.create_intent(
                intent_request(lines=carts[i % 2], user_id=f"buyer-{i}")
            ))
            for i, o in enumerate(workers)
        ]

        results = _race(tasks)

        assert all(kind == "ok" for kind, _ in results), results
        assert orchestrator.stock_level("V-RED-M").locked_quantity == 4
        assert orchestrator.stock_level("V-MUG").locked_quantity == 4


class TestConversionRaces:
    def test_concurrent_converts_create_one_order(
        self, make_orchestrator, orchestrator, standard_stock, intent_request
    ):
        intent = orchestrator.create_intent(intent_request()).intent
        workers = [make_orchestrator() for _ in range(WORKERS)]
        tasks = [(lambda o=o: o.convert(intent.intent_id)) for o in workers]

        results = _race(tasks)

        assert all(kind == "ok" for kind, _ in results), results
        refs = [value for _, value in results]
        assert len({ref.order_id for ref in refs}) == 1
        assert sum(1 for ref in refs if ref.created) == 1
        assert _order_count(orchestrator.session) == 1

        level = orchestrator.stock_level("V-RED-M")
        assert level.total_stock == 8
        assert level.locked_quantity == 0

    def test_cancel_races_convert(
        self, make_orchestrator, orchestrator, standard_stock, intent_request
    ):
        intent = orchestrator.create_intent(intent_request()).intent
        canceller, converter = make_orchestrator(), make_orchestrator()

        cancel_result, convert_result = _race([
            lambda: canceller.cancel_intent(intent.intent_id, actor_id="user-1"),
            lambda: converter.convert(intent.intent_id),
        ])

        final = orchestrator.get_intent(intent.intent_id)
        level = orchestrator.stock_level("V-RED-M")
        assert level.locked_quantity == 0

        if final.status == IntentStatus.CONVERTED.value:
            assert convert_result[0] == "ok"
            assert isinstance(cancel_result[1], InvalidTransitionError)
            assert level.total_stock == 8
            assert _order_count(orchestrator.session) == 1
        else:
            assert final.status == IntentStatus.CANCELLED.value
            assert cancel_result[0] == "ok"
            assert isinstance(convert_result[1], IntentNoLongerValidError)
            assert level.total_stock == 10
            assert _order_count(orchestrator.session) == 0

    def test_expired_hold_races_convert(
        self, make_orchestrator, orchestrator, session_factory, standard_stock,
        intent_request, clock,
    ):
        intent = orchestrator.create_intent(intent_request()).intent
        clock.advance(minutes=31)
        reaper = ExpiryReaper(session_factory, clock=clock)
        converter = make_orchestrator()

        reap_result, convert_result = _race([
            reaper.tick,
            lambda: converter.convert(intent.intent_id),
        ])

        assert reap_result[0] == "ok"
        assert isinstance(convert_result[1], IntentNoLongerValidError)
        assert orchestrator.get_intent(intent.intent_id).status == IntentStatus.EXPIRED.value

        level = orchestrator.stock_level("V-RED-M")
        assert level.total_stock == 10
        assert level.locked_quantity == 0
        assert _order_count(orchestrator.session) == 0


class TestExpiryRaces:
    def test_parallel_reapers_release_once(
        self, orchestrator, session_factory, standard_stock, intent_request, clock
    ):
        for quantity in range(1, 5):
            orchestrator.create_intent(intent_request(lines=(("V-RED-M", quantity),)))
        clock.advance(minutes=31)
        reapers = [ExpiryReaper(session_factory, clock=clock) for _ in range(4)]

        results = _race([r.tick for r in reapers])

        assert all(kind == "ok" for kind, _ in results), results
        assert sum(result.expired for _, result in results) == 4
        level = orchestrator.stock_level("V-RED-M")
        assert level.locked_quantity == 0
        assert level.available == 10

    def test_reaper_races_lazy_expiry_on_read(
        self, make_orchestrator, orchestrator, session_factory, standard_stock,
        intent_request, clock,
    ):
        intent = orchestrator.create_intent(intent_request()).intent
        clock.advance(minutes=31)
        reaper = ExpiryReaper(session_factory, clock=clock)
        reader = make_orchestrator()

        results = _race([reaper.tick, lambda: reader.get_intent(intent.intent_id)])

        assert all(kind == "ok" for kind, _ in results), results
        history = orchestrator.audit.history("order_intent", intent.intent_id)
        assert [e.action for e in history].count("intent_expired") == 1
        assert orchestrator.stock_level("V-RED-M").available == 10
