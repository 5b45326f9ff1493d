"""Database layer: declarative bases and engine/session management."""

from gst_kernel.db.base import Base, Gstin, ReturnPeriod, TaxHeadColumns, TrackedBase, UUIDString
from gst_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "Gstin",
    "ReturnPeriod",
    "TaxHeadColumns",
    "build_engine",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
