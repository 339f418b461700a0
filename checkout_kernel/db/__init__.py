"""Database layer - engine, base classes, and column types."""

from checkout_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from checkout_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from checkout_kernel.db.types import Money, round_money, round_with_mode

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "Money",
    "round_money",
    "round_with_mode",
]
