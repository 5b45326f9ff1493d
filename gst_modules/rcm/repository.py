"""
RCMRepository -- session-bound persistence helpers for the RCM module.

Responsibility:
    Thin wrapper over a SQLAlchemy ``Session`` offering the three access
    patterns the service needs: ``save`` a new row, ``find`` rows by
    column equality, and ``upsert`` a row identified by a natural key.

Architecture position:
    Modules > RCM.  Used only by ``RCMService``.

Invariants enforced:
    - Every write is flushed before the method returns, so constraint
      violations surface at the call site.
    - The repository never commits; ``RCMService`` owns the transaction
      boundary.

Failure modes:
    - ``RecordNotFoundError`` from ``get_one`` when no row matches.
    - ``sqlalchemy.exc.IntegrityError`` propagates from ``save`` on a
      unique-constraint violation.
"""

from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from gst_kernel.db.base import TrackedBase
from gst_kernel.exceptions import RecordNotFoundError
from gst_kernel.logging_config import get_logger

logger = get_logger("modules.rcm.repository")

ModelT = TypeVar("ModelT", bound=TrackedBase)


class RCMRepository:
    """
    Repository over one session.

    Usage:
        repo = RCMRepository(session)
        repo.save(RCMTransactionModel.from_dto(txn, actor_id))
        rows = repo.find(CreditLedgerEntryModel, gstin=gstin)
    """

    def __init__(self, session: Session):
        self.session = session

    def save(self, record: ModelT) -> ModelT:
        self.session.add(record)
        self.session.flush()
        logger.debug("record_saved", extra={
            "table": record.__tablename__,
            "record_id": str(record.id),
        })
        return record

    def find(self, model: type[ModelT], *order_by: Any, **criteria: Any) -> list[ModelT]:
        """
        Rows of ``model`` whose columns equal ``criteria``.

        Args:
            model: ORM class to query.
            order_by: Optional column expressions to sort by.
            criteria: Column name to value.
        """
        stmt = select(model).filter_by(**criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        return list(self.session.execute(stmt).scalars().all())

    def find_one(self, model: type[ModelT], **criteria: Any) -> ModelT | None:
        stmt = select(model).filter_by(**criteria)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_one(self, model: type[ModelT], **criteria: Any) -> ModelT:
        """
        Like ``find_one`` but raises when nothing matches.

        Raises:
            RecordNotFoundError: No row matches ``criteria``.
        """
        record = self.find_one(model, **criteria)
        if record is None:
            key = ", ".join(f"{k}={v}" for k, v in sorted(criteria.items()))
            raise RecordNotFoundError(model.__name__, key)
        return record

    def upsert(
        self,
        model: type[ModelT],
        key: dict[str, Any],
        values: dict[str, Any],
        actor_id: UUID,
    ) -> ModelT:
        """
        Update the row identified by ``key`` or insert a new one.

        ``values`` never overrides the key columns.  Updates stamp
        ``updated_by_id``; inserts stamp ``created_by_id``.
        """
        record = self.find_one(model, **key)
        if record is None:
            record = model(**{**values, **key}, created_by_id=actor_id)
            self.session.add(record)
            action = "inserted"
        else:
            for column, value in values.items():
                if column not in key:
                    setattr(record, column, value)
            record.updated_by_id = actor_id
            action = "updated"
        self.session.flush()
        logger.debug("record_upserted", extra={
            "table": model.__tablename__,
            "action": action,
        })
        return record
