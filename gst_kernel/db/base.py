"""
Declarative base for the GST persistence layer.

Every table gets a UUID primary key stored as ``String(36)`` so the same
schema runs on PostgreSQL in production and SQLite in tests. Amounts are
``Numeric(38, 9)``; nothing monetary is ever a float column.

Two column shapes recur across the RCM tables and are declared once here:

* ``Gstin`` / ``ReturnPeriod`` -- annotated string types for the 15-char
  registration number and the ``MM-YYYY`` period label.
* ``TaxHeadColumns`` -- the four tax heads (cgst, sgst, igst, cess) with a
  ``heads`` accessor that converts to and from ``TaxHeads``.

This module imports nothing from engines or modules.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from gst_kernel.domain.values import HEAD_NAMES, ZERO, TaxHeads

Gstin = Annotated[str, mapped_column(String(15), nullable=False)]
ReturnPeriod = Annotated[str, mapped_column(String(7), nullable=False)]


class UUIDString(TypeDecorator):
    """UUID persisted as its 36-char string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base recording when a row was written and by whom.

    ``created_by_id`` is mandatory: every transaction, ledger posting and
    filed period traces back to the actor that caused it.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


class TaxHeadColumns:
    """Mixin adding non-null cgst/sgst/igst/cess columns, defaulting to zero."""

    cgst: Mapped[Decimal] = mapped_column(default=ZERO)
    sgst: Mapped[Decimal] = mapped_column(default=ZERO)
    igst: Mapped[Decimal] = mapped_column(default=ZERO)
    cess: Mapped[Decimal] = mapped_column(default=ZERO)

    @property
    def heads(self) -> TaxHeads:
        return TaxHeads(**{name: getattr(self, name) for name in HEAD_NAMES})

    def set_heads(self, heads: TaxHeads) -> None:
        for name, value in heads.as_dict().items():
            setattr(self, name, value)
