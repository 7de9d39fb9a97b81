"""Database layer - engine, base classes and session scope."""

from vitalcheck_kernel.db.base import Base, TrackedBase
from vitalcheck_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "build_engine",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
