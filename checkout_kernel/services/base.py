"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write service in the checkout kernel.  Services receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or rollback it themselves.  The caller
      (CheckoutOrchestrator, ExpiryReaper, or a test) owns commit/rollback.
      Services MAY open SAVEPOINTs (``session.begin_nested()``) to undo a
      failed step without abandoning the outer transaction.
    - Conditional updates: every status or counter change that races with
      other workers goes through ``_conditional_update``, whose row count is
      the compare-and-swap result.

Failure modes:
    - If a subclass calls ``session.commit()``, the all-or-nothing guarantee
      of intent creation and conversion is broken.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.sql.dml import Update

from checkout_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong in
          ``checkout_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _conditional_update(self, statement: Update) -> int:
        """
        Execute a guarded UPDATE and return the number of rows it changed.

        The statement is executed without synchronizing in-session objects;
        callers re-read rows with ``populate_existing`` when they need the
        new values.
        """
        result = self.session.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount
