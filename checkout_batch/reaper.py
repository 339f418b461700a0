"""
ExpiryReaper -- in-process polling worker that expires timed-out intents.

Contract:
    Every pass selects INTENT_CREATED intents whose hold ran out (and any
    EXPIRED / CANCELLED intent still owning LOCKED locks), then expires each
    one in its own transaction through IntentStateMachine.expire, which
    releases the intent's locks back to available stock.

Architecture: checkout_batch.  Uses checkout_kernel selectors for candidate
    selection and checkout_kernel services for the state change.  Nothing in
    checkout_kernel imports from checkout_batch.

Invariants enforced:
    - All timestamps from the injected Clock.
    - One transaction per intent: a failure on one intent is logged and
      rolled back without affecting the others in the pass.
    - Candidate lists are advisory.  The conditional INTENT_CREATED ->
      EXPIRED update decides, so a reaper racing a conversion, a cancel or
      another reaper never double-releases stock.
    - Graceful shutdown: the stop signal is checked between intents.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from checkout_kernel.domain.clock import Clock, SystemClock
from checkout_kernel.logging_config import LogContext, get_logger
from checkout_kernel.models.inventory_lock import LockStatus
from checkout_kernel.selectors.intent_selector import IntentSelector
from checkout_kernel.services.audit_service import AuditService
from checkout_kernel.services.intent_state_machine import IntentStateMachine
from checkout_kernel.services.inventory_lock_manager import InventoryLockManager
from checkout_kernel.services.stock_ledger import StockLedger

logger = get_logger("batch.reaper")

REAPER_ACTOR_ID = "system:expiry-reaper"


@dataclass(frozen=True)
class ReapResult:
    """Outcome of one reaper pass."""

    candidates: int = 0
    expired: int = 0
    stranded_released: int = 0
    skipped: int = 0
    failed: int = 0
    duration_ms: float = 0.0


class ExpiryReaper:
    """Expires intents whose hold has run out.

    Contract:
        - ``tick()`` runs one pass and returns a ReapResult.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler; several reapers may run side by side
          because every state change is a conditional update.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        interval_seconds: float = 30,
        batch_size: int = 100,
        actor_id: str = REAPER_ACTOR_ID,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._interval = interval_seconds
        self._batch_size = batch_size
        self._actor_id = actor_id
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> ReapResult:
        """Run one reaper pass (public for testing)."""
        t0 = time.monotonic()
        now = self._clock.now()

        try:
            expired_ids, stranded_ids = self._select_candidates(now)
        except Exception:
            logger.exception("reaper_selection_failed")
            return ReapResult(failed=1)

        expired = skipped = failed = stranded = 0

        for intent_id in expired_ids:
            if self._stop_event.is_set():
                break
            outcome = self._reap_one(intent_id, now)
            if outcome is None:
                failed += 1
            elif outcome:
                expired += 1
            else:
                skipped += 1

        for intent_id in stranded_ids:
            if self._stop_event.is_set():
                break
            released = self._release_stranded(intent_id)
            if released is None:
                failed += 1
            else:
                stranded += released

        result = ReapResult(
            candidates=len(expired_ids) + len(stranded_ids),
            expired=expired,
            stranded_released=stranded,
            skipped=skipped,
            failed=failed,
            duration_ms=round((time.monotonic() - t0) * 1000, 2),
        )
        logger.info(
            "reaper_pass_completed",
            extra={
                "candidates": result.candidates,
                "expired": result.expired,
                "stranded_released": result.stranded_released,
                "skipped": result.skipped,
                "failed": result.failed,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def start(self) -> None:
        """Start the reaper in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="expiry-reaper",
            daemon=True,
        )
        self._thread.start()
        logger.info("reaper_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current pass to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("reaper_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("reaper_tick_exception")
            self._stop_event.wait(timeout=self._interval)

    def _select_candidates(self, now: datetime) -> tuple[list[UUID], list[UUID]]:
        session = self._session_factory()
        try:
            selector = IntentSelector(session)
            expired_ids = selector.expired_intent_ids(now, limit=self._batch_size)
            stranded_ids = selector.stranded_lock_intent_ids(limit=self._batch_size)
            session.rollback()
            return expired_ids, stranded_ids
        finally:
            session.close()

    def _state_machine(self, session: Session) -> IntentStateMachine:
        audit = AuditService(session, self._clock)
        ledger = StockLedger(session, self._clock, audit)
        locks = InventoryLockManager(session, ledger, self._clock)
        return IntentStateMachine(session, locks, self._clock, audit)

    def _reap_one(self, intent_id: UUID, now: datetime) -> bool | None:
        """Expire one intent.  None on failure, else whether it was expired."""
        session = self._session_factory()
        with LogContext.bind(intent_id=str(intent_id), actor_id=self._actor_id):
            try:
                won = self._state_machine(session).expire(
                    intent_id, now=now, actor_id=self._actor_id, trigger="reaper"
                )
                session.commit()
                return won
            except Exception:
                session.rollback()
                logger.exception("reaper_expire_failed")
                return None
            finally:
                session.close()

    def _release_stranded(self, intent_id: UUID) -> int | None:
        """Return LOCKED locks of an already-terminal intent to stock."""
        session = self._session_factory()
        with LogContext.bind(intent_id=str(intent_id), actor_id=self._actor_id):
            try:
                released = self._state_machine(session).lock_manager.release_all(
                    intent_id, LockStatus.EXPIRED
                )
                session.commit()
                if released:
                    logger.warning(
                        "reaper_stranded_locks_released",
                        extra={"released": released},
                    )
                return released
            except Exception:
                session.rollback()
                logger.exception("reaper_release_failed")
                return None
            finally:
                session.close()
