"""
Reverse-Charge Domain Models.

Responsibility:
    Frozen dataclass DTOs for the persisted nouns of the reverse-charge
    module: recorded inward supplies, eligibility decisions, credit-ledger
    postings, RCM tax payments, reconciliation runs and filed periods.

Architecture:
    gst_modules -- orchestration layer.
    These models are pure data containers with no I/O and no ORM coupling.
    Engine value objects (``TaxHeads``, ``ComplianceRecord``,
    ``GSTR2BEntry``) are reused as-is rather than mirrored here.

Invariants:
    - All models are ``frozen=True`` (immutable after construction).
    - All monetary fields use ``Decimal`` -- NEVER ``float``.
    - ``transaction_id`` is the business key chosen by the caller; ``id``
      is the storage key.

Audit relevance:
    - ``RCMTransaction.registry_version`` and ``rule_id`` pin the rule
      table that produced a classification.
    - ``LedgerPosting.sequence`` orders the credit ledger; the balance is
      always the replay of postings in sequence order.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from gst_engines.detection import RCMType
from gst_engines.eligibility import ExpenseCategory
from gst_engines.ledger import CreditLedgerEntry, LedgerEntryType
from gst_engines.tax import TaxType
from gst_kernel.domain.values import ZERO, TaxHeads
from gst_kernel.logging_config import get_logger

logger = get_logger("modules.rcm.models")


@dataclass(frozen=True)
class RCMTransaction:
    """An inward supply after detection and tax computation."""
    transaction_id: str
    gstin: str
    transaction_date: date
    taxable_amount: Decimal
    rcm_type: RCMType
    gst_rate: Decimal
    heads: TaxHeads
    return_period: str
    id: UUID = field(default_factory=uuid4)
    tax_type: TaxType | None = None
    supplier_name: str | None = None
    supplier_gstin: str | None = None
    hsn_sac_code: str | None = None
    place_of_supply: str | None = None
    reason: str | None = None
    rule_id: str | None = None
    registry_version: str | None = None
    self_invoice_number: str | None = None

    @property
    def is_rcm_applicable(self) -> bool:
        return self.rcm_type != RCMType.NONE

    @property
    def total_tax(self) -> Decimal:
        return self.heads.total


@dataclass(frozen=True)
class ITCEvaluation:
    """Stored outcome of an eligibility check for one transaction."""
    transaction_id: str
    gstin: str
    category: ExpenseCategory
    evaluated_on: date
    is_eligible: bool
    total_itc: Decimal
    eligible_amount: Decimal
    blocked_amount: Decimal
    eligible_heads: TaxHeads
    id: UUID = field(default_factory=uuid4)
    section: str | None = None
    ineligible_reason: str | None = None
    reversal_required: bool = False
    reversal_amount: Decimal = ZERO
    is_capital_good: bool = False


@dataclass(frozen=True)
class LedgerPosting:
    """
    One row of a GSTIN's electronic credit ledger.

    ``heads`` holds the unsigned amounts; the sign comes from
    ``entry_type``.
    """
    gstin: str
    sequence: int
    entry_type: LedgerEntryType
    entry_date: date
    heads: TaxHeads
    running_balance: TaxHeads
    id: UUID = field(default_factory=uuid4)
    reference: str | None = None
    description: str | None = None
    reversal_reason: str | None = None
    return_period: str | None = None

    def to_entry(self) -> CreditLedgerEntry:
        return CreditLedgerEntry(
            entry_type=self.entry_type,
            entry_date=self.entry_date,
            heads=self.heads,
            reference=self.reference,
            description=self.description,
            reversal_reason=self.reversal_reason,
            return_period=self.return_period,
            running_balance=self.running_balance,
        )


@dataclass(frozen=True)
class PaymentRecord:
    """A validated cash/online payment of reverse-charge tax."""
    transaction_id: str
    gstin: str
    payment_date: date
    amount: Decimal
    payment_mode: str
    challan_number: str
    id: UUID = field(default_factory=uuid4)
    return_period: str | None = None


@dataclass(frozen=True)
class ReconciliationRun:
    """Summary of one period's 2B matching and payment reconciliation."""
    gstin: str
    return_period: str
    run_date: date
    matched_count: int
    unmatched_count: int
    mismatch_count: int
    manual_entry_count: int
    violation_count: int
    match_percentage: Decimal
    is_reconciled: bool
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class FiledPeriod:
    """A return period marked as filed; it no longer accepts writes."""
    gstin: str
    return_period: str
    filed_on: date
    id: UUID = field(default_factory=uuid4)
