"""
Reverse-Charge ORM Persistence Models (``gst_modules.rcm.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the DTOs of ``gst_modules.rcm.models``
    and the engine value objects the module stores directly
    (``ComplianceRecord``, ``GSTR2BEntry``).  Each ORM class provides
    ``to_dto()`` / ``from_dto()`` conversion.

Architecture position:
    **Modules layer** -- persistence companions to the pure DTO models.
    Inherits from ``TrackedBase`` (kernel DB base) which provides:
    id (UUID PK, auto-generated), created_at, updated_at,
    created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(38,9)) -- NEVER float.
    - Tax heads are stored as four columns (cgst, sgst, igst, cess).
    - Enum fields stored as String(50) containing the enum .value string.
    - Credit-ledger rows are unique per (gstin, sequence); the head row in
      ``credit_ledger_heads`` is the per-GSTIN lock target and holds the
      last allocated sequence.

Audit relevance:
    Ledger postings are append-only; corrections are new REVERSAL or
    ADJUSTMENT rows.  TrackedBase audit columns record the actor behind
    every row.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gst_kernel.db.base import Base, Gstin, ReturnPeriod, TaxHeadColumns, TrackedBase
from gst_kernel.domain.values import ZERO, TaxHeads


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


def _heads_kwargs(heads: TaxHeads | None, prefix: str = "") -> dict:
    if heads is None:
        return {f"{prefix}{name}": None for name in ("cgst", "sgst", "igst", "cess")}
    return {f"{prefix}{name}": value for name, value in heads.as_dict().items()}


# ---------------------------------------------------------------------------
# RCMTransactionModel
# ---------------------------------------------------------------------------

class RCMTransactionModel(TaxHeadColumns, TrackedBase):
    """
    ORM model for ``RCMTransaction`` -- a detected and taxed inward supply.

    Guarantees:
        - ``(gstin, transaction_id)`` is unique (uq_rcm_txn_gstin_ref).
        - ``rcm_type`` / ``tax_type`` store enum .value strings.
    """

    __tablename__ = "rcm_transactions"

    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    gstin: Mapped[Gstin]
    transaction_date: Mapped[date]
    return_period: Mapped[ReturnPeriod]
    taxable_amount: Mapped[Decimal]
    rcm_type: Mapped[str] = mapped_column(String(50), nullable=False)
    tax_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    gst_rate: Mapped[Decimal]
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)
    hsn_sac_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    place_of_supply: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    rule_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    registry_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    self_invoice_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    __table_args__ = (
        UniqueConstraint("gstin", "transaction_id", name="uq_rcm_txn_gstin_ref"),
        Index("idx_rcm_txn_period", "gstin", "return_period"),
        Index("idx_rcm_txn_type", "rcm_type"),
    )

    def to_dto(self):
        from gst_engines.detection import RCMType
        from gst_engines.tax import TaxType
        from gst_modules.rcm.models import RCMTransaction
        return RCMTransaction(
            id=self.id,
            transaction_id=self.transaction_id,
            gstin=self.gstin,
            transaction_date=self.transaction_date,
            return_period=self.return_period,
            taxable_amount=self.taxable_amount,
            rcm_type=RCMType(self.rcm_type),
            tax_type=TaxType(self.tax_type) if self.tax_type else None,
            gst_rate=self.gst_rate,
            heads=self.heads,
            supplier_name=self.supplier_name,
            supplier_gstin=self.supplier_gstin,
            hsn_sac_code=self.hsn_sac_code,
            place_of_supply=self.place_of_supply,
            reason=self.reason,
            rule_id=self.rule_id,
            registry_version=self.registry_version,
            self_invoice_number=self.self_invoice_number,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "RCMTransactionModel":
        return cls(
            id=dto.id,
            transaction_id=dto.transaction_id,
            gstin=dto.gstin,
            transaction_date=dto.transaction_date,
            return_period=dto.return_period,
            taxable_amount=dto.taxable_amount,
            rcm_type=_enum_value(dto.rcm_type),
            tax_type=_enum_value(dto.tax_type) if dto.tax_type else None,
            gst_rate=dto.gst_rate,
            supplier_name=dto.supplier_name,
            supplier_gstin=dto.supplier_gstin,
            hsn_sac_code=dto.hsn_sac_code,
            place_of_supply=dto.place_of_supply,
            reason=dto.reason,
            rule_id=dto.rule_id,
            registry_version=dto.registry_version,
            self_invoice_number=dto.self_invoice_number,
            created_by_id=created_by_id,
            **_heads_kwargs(dto.heads),
        )

    def __repr__(self) -> str:
        return f"<RCMTransactionModel {self.gstin}/{self.transaction_id} {self.rcm_type}>"


# ---------------------------------------------------------------------------
# EligibilityResultModel
# ---------------------------------------------------------------------------

class EligibilityResultModel(TaxHeadColumns, TrackedBase):
    """
    ORM model for ``ITCEvaluation``.

    A transaction may be evaluated more than once (for instance after the
    180-day window lapses); each evaluation is a new row.
    """

    __tablename__ = "itc_eligibility_results"

    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    gstin: Mapped[Gstin]
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    evaluated_on: Mapped[date]
    is_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    total_itc: Mapped[Decimal]
    eligible_amount: Mapped[Decimal]
    blocked_amount: Mapped[Decimal]
    section: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ineligible_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reversal_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reversal_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    is_capital_good: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_itc_elig_txn", "gstin", "transaction_id"),
    )

    def to_dto(self):
        from gst_engines.eligibility import ExpenseCategory
        from gst_modules.rcm.models import ITCEvaluation
        return ITCEvaluation(
            id=self.id,
            transaction_id=self.transaction_id,
            gstin=self.gstin,
            category=ExpenseCategory(self.category),
            evaluated_on=self.evaluated_on,
            is_eligible=self.is_eligible,
            total_itc=self.total_itc,
            eligible_amount=self.eligible_amount,
            blocked_amount=self.blocked_amount,
            eligible_heads=self.heads,
            section=self.section,
            ineligible_reason=self.ineligible_reason,
            reversal_required=self.reversal_required,
            reversal_amount=self.reversal_amount,
            is_capital_good=self.is_capital_good,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "EligibilityResultModel":
        return cls(
            id=dto.id,
            transaction_id=dto.transaction_id,
            gstin=dto.gstin,
            category=_enum_value(dto.category),
            evaluated_on=dto.evaluated_on,
            is_eligible=dto.is_eligible,
            total_itc=dto.total_itc,
            eligible_amount=dto.eligible_amount,
            blocked_amount=dto.blocked_amount,
            section=dto.section,
            ineligible_reason=dto.ineligible_reason,
            reversal_required=dto.reversal_required,
            reversal_amount=dto.reversal_amount,
            is_capital_good=dto.is_capital_good,
            created_by_id=created_by_id,
            **_heads_kwargs(dto.eligible_heads),
        )

    def __repr__(self) -> str:
        return (
            f"<EligibilityResultModel {self.transaction_id} "
            f"eligible={self.is_eligible} amount={self.eligible_amount}>"
        )


# ---------------------------------------------------------------------------
# CreditLedgerHeadModel
# ---------------------------------------------------------------------------

class CreditLedgerHeadModel(TaxHeadColumns, TrackedBase):
    """
    Per-GSTIN ledger head: the row locked with ``SELECT ... FOR UPDATE``
    before an entry is appended.

    Contract:
        ``last_sequence`` is the sequence of the newest posting; the cached
        balance equals the replay of postings 1..last_sequence.
    """

    __tablename__ = "credit_ledger_heads"

    gstin: Mapped[str] = mapped_column(String(15), nullable=False, unique=True)
    last_sequence: Mapped[int] = mapped_column(default=0, nullable=False)

    @property
    def balance(self) -> TaxHeads:
        return self.heads

    def set_balance(self, balance: TaxHeads) -> None:
        self.set_heads(balance)

    def __repr__(self) -> str:
        return f"<CreditLedgerHeadModel {self.gstin} seq={self.last_sequence}>"


# ---------------------------------------------------------------------------
# CreditLedgerEntryModel
# ---------------------------------------------------------------------------

class CreditLedgerEntryModel(TaxHeadColumns, TrackedBase):
    """
    ORM model for ``LedgerPosting`` -- one append-only credit-ledger row.

    Guarantees:
        - ``(gstin, sequence)`` is unique (uq_credit_ledger_gstin_seq).
        - Heads are unsigned; ``entry_type`` carries the direction.
    """

    __tablename__ = "credit_ledger_entries"

    gstin: Mapped[Gstin]
    sequence: Mapped[int] = mapped_column(nullable=False)
    entry_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entry_date: Mapped[date]
    balance_cgst: Mapped[Decimal] = mapped_column(default=ZERO)
    balance_sgst: Mapped[Decimal] = mapped_column(default=ZERO)
    balance_igst: Mapped[Decimal] = mapped_column(default=ZERO)
    balance_cess: Mapped[Decimal] = mapped_column(default=ZERO)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reversal_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    return_period: Mapped[str | None] = mapped_column(String(7), nullable=True)

    __table_args__ = (
        UniqueConstraint("gstin", "sequence", name="uq_credit_ledger_gstin_seq"),
        Index("idx_credit_ledger_period", "gstin", "return_period"),
    )

    def to_dto(self):
        from gst_engines.ledger import LedgerEntryType
        from gst_modules.rcm.models import LedgerPosting
        return LedgerPosting(
            id=self.id,
            gstin=self.gstin,
            sequence=self.sequence,
            entry_type=LedgerEntryType(self.entry_type),
            entry_date=self.entry_date,
            heads=self.heads,
            running_balance=TaxHeads(
                cgst=self.balance_cgst,
                sgst=self.balance_sgst,
                igst=self.balance_igst,
                cess=self.balance_cess,
            ),
            reference=self.reference,
            description=self.description,
            reversal_reason=self.reversal_reason,
            return_period=self.return_period,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "CreditLedgerEntryModel":
        return cls(
            id=dto.id,
            gstin=dto.gstin,
            sequence=dto.sequence,
            entry_type=_enum_value(dto.entry_type),
            entry_date=dto.entry_date,
            reference=dto.reference,
            description=dto.description,
            reversal_reason=dto.reversal_reason,
            return_period=dto.return_period,
            created_by_id=created_by_id,
            **_heads_kwargs(dto.heads),
            **_heads_kwargs(dto.running_balance, prefix="balance_"),
        )

    def __repr__(self) -> str:
        return f"<CreditLedgerEntryModel {self.gstin}#{self.sequence} {self.entry_type}>"


# ---------------------------------------------------------------------------
# RCMPaymentModel
# ---------------------------------------------------------------------------

class RCMPaymentModel(TrackedBase):
    """ORM model for ``PaymentRecord``; challan numbers are unique."""

    __tablename__ = "rcm_payments"

    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    gstin: Mapped[Gstin]
    payment_date: Mapped[date]
    amount: Mapped[Decimal]
    payment_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    challan_number: Mapped[str] = mapped_column(String(30), nullable=False)
    return_period: Mapped[str | None] = mapped_column(String(7), nullable=True)

    __table_args__ = (
        UniqueConstraint("challan_number", name="uq_rcm_payment_challan"),
        Index("idx_rcm_payment_txn", "gstin", "transaction_id"),
    )

    def to_dto(self):
        from gst_modules.rcm.models import PaymentRecord
        return PaymentRecord(
            id=self.id,
            transaction_id=self.transaction_id,
            gstin=self.gstin,
            payment_date=self.payment_date,
            amount=self.amount,
            payment_mode=self.payment_mode,
            challan_number=self.challan_number,
            return_period=self.return_period,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "RCMPaymentModel":
        return cls(
            id=dto.id,
            transaction_id=dto.transaction_id,
            gstin=dto.gstin,
            payment_date=dto.payment_date,
            amount=dto.amount,
            payment_mode=dto.payment_mode,
            challan_number=dto.challan_number,
            return_period=dto.return_period,
            created_by_id=created_by_id,
        )

    def to_engine_payment(self):
        from gst_engines.compliance import RCMPayment
        return RCMPayment(
            transaction_id=self.transaction_id,
            payment_date=self.payment_date,
            amount=self.amount,
            payment_mode=self.payment_mode,
            challan_number=self.challan_number,
            return_period=self.return_period,
        )

    def __repr__(self) -> str:
        return f"<RCMPaymentModel {self.challan_number} {self.amount}>"


# ---------------------------------------------------------------------------
# GSTR2BEntryModel
# ---------------------------------------------------------------------------

class GSTR2BEntryModel(TaxHeadColumns, TrackedBase):
    """
    ORM model for an imported GSTR-2B line (engine ``GSTR2BEntry``).

    ``gstin`` is the recipient; ``supplier_gstin`` is the counterparty
    that reported the invoice.
    """

    __tablename__ = "gstr2b_entries"

    gstin: Mapped[Gstin]
    return_period: Mapped[ReturnPeriod]
    supplier_gstin: Mapped[Gstin]
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_date: Mapped[date]
    invoice_value: Mapped[Decimal] = mapped_column(default=ZERO)
    eligible_cgst: Mapped[Decimal | None] = mapped_column(nullable=True)
    eligible_sgst: Mapped[Decimal | None] = mapped_column(nullable=True)
    eligible_igst: Mapped[Decimal | None] = mapped_column(nullable=True)
    eligible_cess: Mapped[Decimal | None] = mapped_column(nullable=True)
    blocked_cgst: Mapped[Decimal | None] = mapped_column(nullable=True)
    blocked_sgst: Mapped[Decimal | None] = mapped_column(nullable=True)
    blocked_igst: Mapped[Decimal | None] = mapped_column(nullable=True)
    blocked_cess: Mapped[Decimal | None] = mapped_column(nullable=True)
    trade_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_amendment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    original_invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    original_invoice_date: Mapped[date | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "gstin", "return_period", "supplier_gstin", "invoice_number",
            name="uq_gstr2b_entry",
        ),
        Index("idx_gstr2b_period", "gstin", "return_period"),
    )

    def _split(self, prefix: str) -> TaxHeads | None:
        values = [getattr(self, f"{prefix}{name}") for name in ("cgst", "sgst", "igst", "cess")]
        if all(v is None for v in values):
            return None
        return TaxHeads(*(v if v is not None else ZERO for v in values))

    def to_dto(self):
        from gst_engines.reconciliation import GSTR2BEntry
        return GSTR2BEntry(
            gstin=self.supplier_gstin,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            heads=self.heads,
            invoice_value=self.invoice_value,
            eligible=self._split("eligible_"),
            blocked=self._split("blocked_"),
            trade_name=self.trade_name,
            is_amendment=self.is_amendment,
            original_invoice_number=self.original_invoice_number,
            original_invoice_date=self.original_invoice_date,
        )

    @classmethod
    def from_dto(
        cls,
        dto,
        gstin: str,
        return_period: str,
        created_by_id: UUID,
    ) -> "GSTR2BEntryModel":
        return cls(
            gstin=gstin,
            return_period=return_period,
            supplier_gstin=dto.gstin,
            invoice_number=dto.invoice_number,
            invoice_date=dto.invoice_date,
            invoice_value=dto.invoice_value,
            trade_name=dto.trade_name,
            is_amendment=dto.is_amendment,
            original_invoice_number=dto.original_invoice_number,
            original_invoice_date=dto.original_invoice_date,
            created_by_id=created_by_id,
            **_heads_kwargs(dto.heads),
            **_heads_kwargs(dto.eligible, prefix="eligible_"),
            **_heads_kwargs(dto.blocked, prefix="blocked_"),
        )

    def __repr__(self) -> str:
        return f"<GSTR2BEntryModel {self.supplier_gstin}/{self.invoice_number}>"


# ---------------------------------------------------------------------------
# ComplianceRecordModel
# ---------------------------------------------------------------------------

class ComplianceRecordModel(TrackedBase):
    """
    ORM model for the engine ``ComplianceRecord``: due date, payment state
    and interest of one transaction's reverse-charge liability.

    Guarantees:
        - One record per ``(gstin, transaction_id)``; refreshed in place.
    """

    __tablename__ = "rcm_compliance_records"

    gstin: Mapped[Gstin]
    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    return_period: Mapped[ReturnPeriod]
    due_date: Mapped[date]
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    tax_amount: Mapped[Decimal]
    paid_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    outstanding_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    payment_date: Mapped[date | None] = mapped_column(nullable=True)
    challan_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    days_past_due: Mapped[int] = mapped_column(default=0)
    overdue_category: Mapped[str] = mapped_column(String(30), nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    gstr3b_table: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        UniqueConstraint("gstin", "transaction_id", name="uq_rcm_compliance_txn"),
        Index("idx_rcm_compliance_status", "gstin", "status"),
    )

    def to_dto(self):
        from gst_engines.compliance import ComplianceRecord, OverdueCategory, PaymentStatus
        return ComplianceRecord(
            transaction_id=self.transaction_id,
            return_period=self.return_period,
            due_date=self.due_date,
            status=PaymentStatus(self.status),
            tax_amount=self.tax_amount,
            paid_amount=self.paid_amount,
            outstanding_amount=self.outstanding_amount,
            payment_date=self.payment_date,
            challan_number=self.challan_number,
            days_past_due=self.days_past_due,
            overdue_category=OverdueCategory(self.overdue_category),
            interest_amount=self.interest_amount,
            gstr3b_table=self.gstr3b_table,
        )

    @classmethod
    def from_dto(cls, dto, gstin: str, created_by_id: UUID) -> "ComplianceRecordModel":
        return cls(
            gstin=gstin,
            created_by_id=created_by_id,
            **cls.values_from(dto),
        )

    @staticmethod
    def values_from(dto) -> dict:
        """Column values for ``dto``; used for both insert and refresh."""
        return {
            "transaction_id": dto.transaction_id,
            "return_period": dto.return_period,
            "due_date": dto.due_date,
            "status": _enum_value(dto.status),
            "tax_amount": dto.tax_amount,
            "paid_amount": dto.paid_amount,
            "outstanding_amount": dto.outstanding_amount,
            "payment_date": dto.payment_date,
            "challan_number": dto.challan_number,
            "days_past_due": dto.days_past_due,
            "overdue_category": _enum_value(dto.overdue_category),
            "interest_amount": dto.interest_amount,
            "gstr3b_table": dto.gstr3b_table,
        }

    def __repr__(self) -> str:
        return f"<ComplianceRecordModel {self.gstin}/{self.transaction_id} {self.status}>"


# ---------------------------------------------------------------------------
# ReconciliationRunModel
# ---------------------------------------------------------------------------

class ReconciliationRunModel(TrackedBase):
    """ORM model for ``ReconciliationRun``."""

    __tablename__ = "rcm_reconciliation_runs"

    gstin: Mapped[Gstin]
    return_period: Mapped[ReturnPeriod]
    run_date: Mapped[date]
    matched_count: Mapped[int] = mapped_column(default=0)
    unmatched_count: Mapped[int] = mapped_column(default=0)
    mismatch_count: Mapped[int] = mapped_column(default=0)
    manual_entry_count: Mapped[int] = mapped_column(default=0)
    violation_count: Mapped[int] = mapped_column(default=0)
    match_percentage: Mapped[Decimal] = mapped_column(default=ZERO)
    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False)

    __table_args__ = (
        Index("idx_rcm_recon_period", "gstin", "return_period"),
    )

    def to_dto(self):
        from gst_modules.rcm.models import ReconciliationRun
        return ReconciliationRun(
            id=self.id,
            gstin=self.gstin,
            return_period=self.return_period,
            run_date=self.run_date,
            matched_count=self.matched_count,
            unmatched_count=self.unmatched_count,
            mismatch_count=self.mismatch_count,
            manual_entry_count=self.manual_entry_count,
            violation_count=self.violation_count,
            match_percentage=self.match_percentage,
            is_reconciled=self.is_reconciled,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ReconciliationRunModel":
        return cls(
            id=dto.id,
            gstin=dto.gstin,
            return_period=dto.return_period,
            run_date=dto.run_date,
            matched_count=dto.matched_count,
            unmatched_count=dto.unmatched_count,
            mismatch_count=dto.mismatch_count,
            manual_entry_count=dto.manual_entry_count,
            violation_count=dto.violation_count,
            match_percentage=dto.match_percentage,
            is_reconciled=dto.is_reconciled,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<ReconciliationRunModel {self.gstin} {self.return_period} "
            f"reconciled={self.is_reconciled}>"
        )


# ---------------------------------------------------------------------------
# FiledPeriodModel
# ---------------------------------------------------------------------------

class FiledPeriodModel(TrackedBase):
    """ORM model for ``FiledPeriod``; one row per filed (gstin, period)."""

    __tablename__ = "rcm_filed_periods"

    gstin: Mapped[Gstin]
    return_period: Mapped[ReturnPeriod]
    filed_on: Mapped[date]

    __table_args__ = (
        UniqueConstraint("gstin", "return_period", name="uq_rcm_filed_period"),
    )

    def to_dto(self):
        from gst_modules.rcm.models import FiledPeriod
        return FiledPeriod(
            id=self.id,
            gstin=self.gstin,
            return_period=self.return_period,
            filed_on=self.filed_on,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "FiledPeriodModel":
        return cls(
            id=dto.id,
            gstin=dto.gstin,
            return_period=dto.return_period,
            filed_on=dto.filed_on,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<FiledPeriodModel {self.gstin} {self.return_period}>"


# ---------------------------------------------------------------------------
# SelfInvoiceCounterModel
# ---------------------------------------------------------------------------

class SelfInvoiceCounterModel(Base):
    """
    Self-invoice number counter, one row per (gstin, financial year).

    Row-level locking on this row keeps numbering gap-free and unique under
    concurrency.  Numbers restart at 1 each financial year.
    """

    __tablename__ = "rcm_self_invoice_counters"

    gstin: Mapped[Gstin]
    fy_start_year: Mapped[int] = mapped_column(nullable=False)
    current_value: Mapped[int] = mapped_column(default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("gstin", "fy_start_year", name="uq_self_invoice_counter"),
    )

    def __repr__(self) -> str:
        return f"<SelfInvoiceCounterModel {self.gstin} FY{self.fy_start_year}={self.current_value}>"
