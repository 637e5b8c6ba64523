"""Database layer - engine, base classes, types, immutability."""

from contract_kernel.db.base import Base, TrackedBase
from contract_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from contract_kernel.db.types import UTCDateTime

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
    "UTCDateTime",
]
