"""
Structured logging (checkout_kernel/logging_config.py).

Checkout events are asserted through the records real operations emit:
what a successful hold, a refused hold, an illegal cancel and a reaper pass
look like to whoever queries the log stream.
"""

import json
import logging
from io import StringIO

import pytest

from checkout_batch import REAPER_ACTOR_ID, ExpiryReaper
from checkout_kernel.exceptions import InsufficientStockError, InvalidTransitionError
from checkout_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


def _named(records, message):
    return [r for r in records if r["message"] == message]


# ---------------------------------------------------------------------------
# Records emitted by checkout operations
# ---------------------------------------------------------------------------


class TestCheckoutEvents:
    def test_intent_created(self, orchestrator, standard_stock, intent_request, captured_logs):
        intent = orchestrator.create_intent(intent_request()).intent

        [record] = _named(captured_logs(), "intent_created")
        assert record["level"] == "INFO"
        assert record["logger"] == "checkout_kernel.services.order_intent"
        assert record["intent_id"] == str(intent.intent_id)
        assert record["intent_number"] == intent.intent_number
        assert record["user_id"] == "user-1"
        assert record["total_amount"] == "2410.00"
        assert record["expires_at"] == intent.expires_at.isoformat()
        assert "correlation_id" in record

    def test_one_correlation_id_per_operation(
        self, orchestrator, standard_stock, intent_request, captured_logs
    ):
        orchestrator.create_intent(intent_request())
        orchestrator.create_intent(intent_request(user_id="user-2"))

        ids = [r["correlation_id"] for r in _named(captured_logs(), "intent_created")]
        assert len(ids) == 2
        assert ids[0] != ids[1]

    def test_refused_hold_carries_stock_figures(
        self, orchestrator, stock, intent_request, captured_logs
    ):
        stock("V-MUG", 1)
        with pytest.raises(InsufficientStockError):
            orchestrator.create_intent(intent_request(lines=(("V-MUG", 2),)))

        [record] = _named(captured_logs(), "create_intent_failed")
        assert record["level"] == "WARNING"
        assert record["error_code"] == "INSUFFICIENT_STOCK"
        assert record["error"] == "InsufficientStockError"
        assert record["variant_id"] == "V-MUG"
        assert record["requested"] == 2
        assert record["available"] == 1
        assert record["user_id"] == "user-1"
        # Business refusals are not faults
        assert "traceback" not in record

        [rollback] = _named(captured_logs(), "inventory_acquire_rolled_back")
        assert rollback["reason"] == "INSUFFICIENT_STOCK"
        assert rollback["reserved_before_failure"] == 0

    def test_illegal_cancel_carries_statuses(
        self, orchestrator, standard_stock, intent_request, captured_logs
    ):
        intent = orchestrator.create_intent(intent_request()).intent
        orchestrator.cancel_intent(intent.intent_id, actor_id="user-1")
        with pytest.raises(InvalidTransitionError):
            orchestrator.cancel_intent(intent.intent_id, actor_id="user-1")

        [record] = _named(captured_logs(), "cancel_intent_failed")
        assert record["error_code"] == "INVALID_TRANSITION"
        assert record["current_status"] == "CANCELLED"
        assert record["target_status"] == "CANCELLED"
        assert record["intent_id"] == str(intent.intent_id)
        assert record["actor_id"] == "user-1"

    def test_reaper_pass(
        self, orchestrator, session_factory, standard_stock, intent_request, clock,
        captured_logs,
    ):
        intent = orchestrator.create_intent(intent_request()).intent
        clock.advance(minutes=31)

        ExpiryReaper(session_factory, clock=clock).tick()

        [expired] = _named(captured_logs(), "intent_expired")
        assert expired["intent_id"] == str(intent.intent_id)
        assert expired["actor_id"] == REAPER_ACTOR_ID
        assert expired["trigger"] == "reaper"
        assert expired["released_locks"] == 1

        [summary] = _named(captured_logs(), "reaper_pass_completed")
        assert summary["candidates"] == 1
        assert summary["expired"] == 1
        assert summary["failed"] == 0

    def test_unexpected_error_keeps_traceback(self, captured_logs):
        try:
            raise KeyError("V-RED-M")
        except KeyError:
            get_logger("services.stock_ledger").error("ledger_fault", exc_info=True)

        [record] = _named(captured_logs(), "ledger_fault")
        assert record["error"] == "KeyError"
        assert "error_code" not in record
        assert "KeyError" in record["traceback"]


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_bind_nests_and_restores(self):
        LogContext.set(user_id="user-1")
        with LogContext.bind(intent_id="int-outer"):
            with LogContext.bind(intent_id="int-inner", actor_id="admin-1"):
                assert LogContext.get_all() == {
                    "user_id": "user-1",
                    "intent_id": "int-inner",
                    "actor_id": "admin-1",
                }
            assert LogContext.get_all() == {"user_id": "user-1", "intent_id": "int-outer"}
        assert LogContext.get_all() == {"user_id": "user-1"}

    def test_bind_restores_on_error(self):
        with pytest.raises(InsufficientStockError):
            with LogContext.bind(correlation_id="c-1"):
                raise InsufficientStockError("V-MUG", 1, 0)
        assert LogContext.get_all() == {}

    def test_none_values_skipped(self):
        with LogContext.bind(intent_id="int-1", user_id=None):
            assert LogContext.get_all() == {"intent_id": "int-1"}

    @pytest.mark.parametrize("call", [LogContext.set, LogContext.bind])
    def test_unknown_field_rejected(self, call):
        with pytest.raises(TypeError, match="order_id"):
            result = call(order_id="o-1")
            # bind() only validates when entered
            with result:
                pass

    def test_clear(self):
        LogContext.set(correlation_id="c", trace_id="t")
        LogContext.clear()
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging / reset_logging
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_logging():
    """Start without the suite's handler; put it back afterwards."""
    reset_logging()
    yield
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _json_handlers() -> list[logging.Handler]:
    # Only our formatter: pytest may attach its own capture handlers here.
    return [
        h for h in logging.getLogger("checkout_kernel").handlers
        if isinstance(h.formatter, StructuredFormatter)
    ]


@pytest.mark.usefixtures("isolated_logging")
class TestConfigureLogging:
    def test_idempotent(self):
        first, second = StringIO(), StringIO()
        configure_logging(stream=first)
        configure_logging(stream=second, level=logging.DEBUG)

        assert len(_json_handlers()) == 1
        get_logger("api").debug("hidden")
        get_logger("api").info("shown")
        assert [json.loads(line)["message"] for line in first.getvalue().splitlines()] == [
            "shown"
        ]
        assert second.getvalue() == ""

    def test_level_by_name(self):
        stream = StringIO()
        configure_logging(stream=stream, level="debug")
        get_logger("batch.reaper").debug("reaper_tick")
        assert json.loads(stream.getvalue())["logger"] == "checkout_kernel.batch.reaper"

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            configure_logging(level="LOUD")
        assert _json_handlers() == []

    def test_records_do_not_reach_root(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("checkout_kernel").propagate is False

    def test_reset_leaves_foreign_handlers(self):
        foreign = logging.NullHandler()
        root = logging.getLogger("checkout_kernel")
        root.addHandler(foreign)
        try:
            configure_logging(stream=StringIO())
            reset_logging()

            assert _json_handlers() == []
            assert foreign in root.handlers
        finally:
            root.removeHandler(foreign)
