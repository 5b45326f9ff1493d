"""
Module ORM Registry (``gst_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` holds its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``gst_kernel.db.engine.create_tables``; MUST NOT be imported at module
level by ``gst_kernel``.
"""


def import_all_orm_models() -> None:
    """Import every ``gst_modules.*.orm`` module.  Idempotent."""
    import gst_modules.rcm.orm  # noqa: F401
