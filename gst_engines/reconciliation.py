"""
gst_engines.reconciliation -- GSTR-2B matching and RCM payment reconciliation.

Responsibility:
    Compare claimed input tax credit with what suppliers reported in
    GSTR-2B, and with the reverse-charge tax actually paid.  Also runs the
    monthly ITC roll-up that splits credit by source and removes
    time-barred claims.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Called by
    ``RCMService.reconcile_period`` which persists the run.

Invariants enforced:
    - Matched, mismatched and unmatched claims are disjoint; each claim
      lands in exactly one of them.
    - A claim pairs on supplier GSTIN, invoice number and an invoice date
      within the date tolerance (inclusive).  Each 2B entry pairs once.
    - Violations are collected for the whole batch, never raised; any
      violation makes the run unreconciled.
    - Self-invoiced RCM credit never appears in 2B and is listed for manual
      entry instead of being reported as unmatched.
    - Time-barred claims use ``itc_claim_deadline``, the same rule as
      eligibility.

Audit relevance:
    Every violation carries the transaction or invoice it concerns and the
    amount at stake, so a reconciliation run can be reviewed line by line.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from gst_engines.compliance import RCMPayment
from gst_engines.eligibility import itc_claim_deadline
from gst_engines.tracer import traced_engine
from gst_kernel.domain.values import ZERO, TaxHeads, round_paise
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

DEFAULT_AMOUNT_TOLERANCE = Decimal("1")
DEFAULT_DATE_TOLERANCE_DAYS = 1
MANUAL_ENTRY_NOTE = "RCM transactions require manual entry in GSTR-3B"


class ViolationKind(str, Enum):
    CLAIMED_BLOCKED_ITC = "CLAIMED_BLOCKED_ITC"
    ITC_CLAIMED_BEFORE_PAYMENT = "ITC_CLAIMED_BEFORE_PAYMENT"
    RCM_NOT_PAID_IN_CASH = "RCM_NOT_PAID_IN_CASH"
    NO_PAYMENT_FOUND = "NO_PAYMENT_FOUND"


class CorrectionAction(str, Enum):
    REVERSE_AND_RECLAIM = "REVERSE_AND_RECLAIM"


class ITCSource(str, Enum):
    B2B = "B2B"
    RCM = "RCM"
    IMPORT = "IMPORT"


@dataclass(frozen=True)
class GSTR2BEntry:
    """One supplier-reported invoice from the GSTR-2B statement."""

    gstin: str
    invoice_number: str
    invoice_date: date
    heads: TaxHeads
    invoice_value: Decimal = ZERO
    eligible: TaxHeads | None = None
    blocked: TaxHeads | None = None
    trade_name: str | None = None
    is_amendment: bool = False
    original_invoice_number: str | None = None
    original_invoice_date: date | None = None

    @property
    def has_eligibility_split(self) -> bool:
        return self.eligible is not None or self.blocked is not None

    @property
    def eligible_amount(self) -> Decimal:
        """GST the supplier reported as eligible (cess excluded)."""
        if self.eligible is not None:
            return self.eligible.gst_total
        if self.blocked is not None:
            return self.heads.gst_total - self.blocked.gst_total
        return self.heads.gst_total


@dataclass(frozen=True)
class ITCClaim:
    """Credit the recipient claims for one invoice."""

    gstin: str
    invoice_number: str
    invoice_date: date
    heads: TaxHeads
    transaction_id: str | None = None
    claim_date: date | None = None
    is_rcm: bool = False
    self_invoiced: bool = False

    @property
    def requires_manual_entry(self) -> bool:
        return self.is_rcm and self.self_invoiced


@dataclass(frozen=True)
class ComplianceViolation:
    """A compliance breach recorded on a result.  Never raised."""

    kind: ViolationKind
    message: str
    transaction_id: str | None = None
    invoice_number: str | None = None
    amount: Decimal = ZERO


@dataclass(frozen=True)
class MismatchEntry:
    invoice_number: str
    gstin: str
    third_party_amount: Decimal
    claimed_amount: Decimal

    @property
    def difference(self) -> Decimal:
        return self.claimed_amount - self.third_party_amount


@dataclass(frozen=True)
class AmendmentEntry:
    invoice_number: str
    original_invoice_number: str | None
    adjustment_period: str | None
    requires_adjustment: bool = True


@dataclass(frozen=True)
class GSTR2BMatchResult:
    matched: tuple[ITCClaim, ...] = ()
    unmatched: tuple[ITCClaim, ...] = ()
    mismatches: tuple[MismatchEntry, ...] = ()
    violations: tuple[ComplianceViolation, ...] = ()
    amendments: tuple[AmendmentEntry, ...] = ()
    manual_entries: tuple[ITCClaim, ...] = ()
    match_percentage: Decimal = ZERO

    @property
    def requires_manual_entry(self) -> bool:
        return bool(self.manual_entries)

    @property
    def note(self) -> str | None:
        return MANUAL_ENTRY_NOTE if self.manual_entries else None


@dataclass(frozen=True)
class ManualEntryCheck:
    transactions: tuple[ITCClaim, ...] = ()

    @property
    def requires_manual_entry(self) -> bool:
        return bool(self.transactions)

    @property
    def note(self) -> str | None:
        return MANUAL_ENTRY_NOTE if self.transactions else None


@dataclass(frozen=True)
class UnreconciledEntry:
    transaction_id: str | None
    reason: ViolationKind
    amount: Decimal


@dataclass(frozen=True)
class CorrectionEntry:
    transaction_id: str | None
    action: CorrectionAction
    description: str
    amount: Decimal = ZERO


@dataclass(frozen=True)
class ITCReconciliationResult:
    period: str
    is_reconciled: bool
    total_payments: Decimal
    total_itc_claimed: Decimal
    unreconciled: tuple[UnreconciledEntry, ...] = ()
    violations: tuple[ComplianceViolation, ...] = ()
    corrections: tuple[CorrectionEntry, ...] = ()

    @property
    def compliance_violation(self) -> bool:
        return any(v.kind == ViolationKind.RCM_NOT_PAID_IN_CASH for v in self.violations)


# ---------------------------------------------------------------------------
# GSTR-2B matching
# ---------------------------------------------------------------------------


def _pairs(entry: GSTR2BEntry, claim: ITCClaim, date_tolerance_days: int) -> bool:
    return (
        entry.gstin == claim.gstin
        and entry.invoice_number == claim.invoice_number
        and abs((entry.invoice_date - claim.invoice_date).days) <= date_tolerance_days
    )


def identify_amendments(
    entries: Iterable[GSTR2BEntry],
    adjustment_period: str | None = None,
) -> tuple[AmendmentEntry, ...]:
    """Amended 2B entries; each needs an adjustment in ``adjustment_period``."""
    return tuple(
        AmendmentEntry(
            invoice_number=e.invoice_number,
            original_invoice_number=e.original_invoice_number,
            adjustment_period=adjustment_period,
        )
        for e in entries
        if e.is_amendment
    )


def validate_gstr2b_matching(claims: Iterable[ITCClaim]) -> ManualEntryCheck:
    """Self-invoiced RCM claims, which have to be entered in GSTR-3B by hand."""
    return ManualEntryCheck(
        transactions=tuple(c for c in claims if c.requires_manual_entry)
    )


@traced_engine("gstr2b_match", "1.0", fingerprint_fields=("entries", "claims"))
def match_with_third_party_data(
    entries: Iterable[GSTR2BEntry],
    claims: Iterable[ITCClaim],
    *,
    amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE,
    date_tolerance_days: int = DEFAULT_DATE_TOLERANCE_DAYS,
    adjustment_period: str | None = None,
) -> GSTR2BMatchResult:
    """
    Pair claims with GSTR-2B entries.

    Amounts are compared on CGST + SGST + IGST.  A difference strictly
    greater than ``amount_tolerance`` is a MISMATCH.  ``match_percentage``
    is matched over the claims that take part in matching (manual-entry RCM
    claims excluded), and 0 when there are none.
    """
    t0 = time.monotonic()
    entries = list(entries)
    claims = list(claims)
    available = list(entries)

    manual = tuple(c for c in claims if c.requires_manual_entry)
    to_match = [c for c in claims if not c.requires_manual_entry]

    matched: list[ITCClaim] = []
    unmatched: list[ITCClaim] = []
    mismatches: list[MismatchEntry] = []
    violations: list[ComplianceViolation] = []

    for claim in to_match:
        entry = next((e for e in available if _pairs(e, claim, date_tolerance_days)), None)
        if entry is None:
            unmatched.append(claim)
            continue
        available.remove(entry)

        reported = entry.heads.gst_total
        claimed = claim.heads.gst_total
        if abs(reported - claimed) > amount_tolerance:
            mismatches.append(MismatchEntry(
                invoice_number=claim.invoice_number,
                gstin=claim.gstin,
                third_party_amount=reported,
                claimed_amount=claimed,
            ))
        else:
            matched.append(claim)

        if entry.has_eligibility_split and claimed > entry.eligible_amount:
            excess = claimed - entry.eligible_amount
            violations.append(ComplianceViolation(
                kind=ViolationKind.CLAIMED_BLOCKED_ITC,
                message=f"Claim exceeds eligible ITC reported in GSTR-2B by {excess}",
                transaction_id=claim.transaction_id,
                invoice_number=claim.invoice_number,
                amount=excess,
            ))

    percentage = (
        round_paise(Decimal(len(matched)) / Decimal(len(to_match)) * 100)
        if to_match else ZERO
    )
    result = GSTR2BMatchResult(
        matched=tuple(matched),
        unmatched=tuple(unmatched),
        mismatches=tuple(mismatches),
        violations=tuple(violations),
        amendments=identify_amendments(entries, adjustment_period),
        manual_entries=manual,
        match_percentage=percentage,
    )

    logger.info("gstr2b_match_completed", extra={
        "claim_count": len(claims),
        "matched_count": len(matched),
        "unmatched_count": len(unmatched),
        "mismatch_count": len(mismatches),
        "violation_count": len(violations),
        "manual_entry_count": len(manual),
        "match_percentage": str(percentage),
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return result


# ---------------------------------------------------------------------------
# Payment reconciliation
# ---------------------------------------------------------------------------


@traced_engine("itc_payment_reconciliation", "1.0", fingerprint_fields=("period", "payments", "claims"))
def reconcile_itc_with_payments(
    period: str,
    payments: Iterable[RCMPayment],
    claims: Iterable[ITCClaim],
) -> ITCReconciliationResult:
    """
    Check each RCM credit claim against the payment of the underlying tax.

    Claims are paired with payments by transaction id.  Credit may only be
    taken once the tax has been paid in cash.
    """
    payments = list(payments)
    claims = list(claims)
    by_txn: dict[str | None, RCMPayment] = {}
    for payment in payments:
        by_txn.setdefault(payment.transaction_id, payment)

    unreconciled: list[UnreconciledEntry] = []
    violations: list[ComplianceViolation] = []
    corrections: list[CorrectionEntry] = []

    for claim in claims:
        amount = claim.heads.total
        payment = by_txn.get(claim.transaction_id)
        if payment is None:
            unreconciled.append(UnreconciledEntry(
                transaction_id=claim.transaction_id,
                reason=ViolationKind.NO_PAYMENT_FOUND,
                amount=amount,
            ))
            continue

        if claim.claim_date is not None and claim.claim_date < payment.payment_date:
            violations.append(ComplianceViolation(
                kind=ViolationKind.ITC_CLAIMED_BEFORE_PAYMENT,
                message="ITC claimed before payment of RCM tax",
                transaction_id=claim.transaction_id,
                invoice_number=claim.invoice_number,
                amount=amount,
            ))
            corrections.append(CorrectionEntry(
                transaction_id=claim.transaction_id,
                action=CorrectionAction.REVERSE_AND_RECLAIM,
                description="ITC claimed before payment - reverse and reclaim after payment",
                amount=amount,
            ))

        if not payment.is_cash:
            violations.append(ComplianceViolation(
                kind=ViolationKind.RCM_NOT_PAID_IN_CASH,
                message=f"RCM tax paid by {payment.payment_mode}; cash payment required",
                transaction_id=claim.transaction_id,
                invoice_number=claim.invoice_number,
                amount=payment.amount,
            ))

    result = ITCReconciliationResult(
        period=period,
        is_reconciled=not unreconciled and not violations,
        total_payments=sum((p.amount for p in payments), ZERO),
        total_itc_claimed=sum((c.heads.total for c in claims), ZERO),
        unreconciled=tuple(unreconciled),
        violations=tuple(violations),
        corrections=tuple(corrections),
    )
    if not result.is_reconciled:
        logger.warning("itc_payment_reconciliation_failed", extra={
            "return_period": period,
            "unreconciled_count": len(unreconciled),
            "violation_kinds": sorted({v.kind.value for v in violations}),
        })
    return result


# ---------------------------------------------------------------------------
# Monthly processing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonthlyITCItem:
    transaction_id: str
    source: ITCSource
    invoice_date: date
    heads: TaxHeads
    gstin: str | None = None
    invoice_number: str | None = None


@dataclass(frozen=True)
class MonthlyITCSummary:
    period: str
    total_itc: Decimal
    b2b_itc: Decimal
    rcm_itc: Decimal
    import_itc: Decimal
    time_barred_amount: Decimal
    time_barred_ids: tuple[str, ...]
    manual_entries: int
    match_result: GSTR2BMatchResult

    @property
    def allowed_itc(self) -> Decimal:
        return self.total_itc - self.time_barred_amount


def process_monthly_itc(
    period: str,
    items: Iterable[MonthlyITCItem],
    entries_2b: Iterable[GSTR2BEntry],
    as_of: date,
) -> MonthlyITCSummary:
    """
    Month-end ITC roll-up.

    B2B credit is matched against 2B.  RCM and import credit is
    self-assessed and counted as manual entries.  Anything past its
    ``itc_claim_deadline`` on ``as_of`` is time-barred and excluded from
    the allowed total.
    """
    t0 = time.monotonic()
    items = list(items)
    logger.info("monthly_itc_started", extra={"return_period": period, "item_count": len(items)})

    totals = {source: ZERO for source in ITCSource}
    barred_ids: list[str] = []
    barred = ZERO
    manual = 0
    b2b_claims: list[ITCClaim] = []

    for item in items:
        amount = item.heads.total
        totals[item.source] += amount
        if as_of > itc_claim_deadline(item.invoice_date):
            barred_ids.append(item.transaction_id)
            barred += amount
        if item.source in (ITCSource.RCM, ITCSource.IMPORT):
            manual += 1
        elif item.gstin and item.invoice_number:
            b2b_claims.append(ITCClaim(
                gstin=item.gstin,
                invoice_number=item.invoice_number,
                invoice_date=item.invoice_date,
                heads=item.heads,
                transaction_id=item.transaction_id,
            ))

    match = match_with_third_party_data(entries_2b, b2b_claims, adjustment_period=period)
    summary = MonthlyITCSummary(
        period=period,
        total_itc=sum(totals.values(), ZERO),
        b2b_itc=totals[ITCSource.B2B],
        rcm_itc=totals[ITCSource.RCM],
        import_itc=totals[ITCSource.IMPORT],
        time_barred_amount=barred,
        time_barred_ids=tuple(barred_ids),
        manual_entries=manual,
        match_result=match,
    )

    logger.info("monthly_itc_completed", extra={
        "return_period": period,
        "total_itc": str(summary.total_itc),
        "allowed_itc": str(summary.allowed_itc),
        "time_barred_count": len(barred_ids),
        "manual_entries": manual,
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return summary
