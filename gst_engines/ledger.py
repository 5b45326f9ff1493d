"""
gst_engines.ledger -- Electronic credit ledger replay and utilization.

Responsibility:
    Maintain the per-GSTIN input tax credit ledger as an append-only list of
    entries whose balance is always re-derived by replay, and apply the
    statutory set-off order when credit is used against output liability.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Persistence and
    per-GSTIN serialization live in ``gst_modules.rcm`` (service + locks);
    this module only decides what a given history of entries means.

Invariants enforced:
    - CREDIT and ADJUSTMENT add; DEBIT and REVERSAL subtract.
    - Every head is floored at zero after each entry, and the running
      balance is stamped on the entry.
    - A DEBIT that would take any head below zero is rejected before it is
      applied; the ledger is never partially updated.
    - CGST and SGST credit never offset each other.  Surplus IGST may
      offset a CGST shortfall and then an SGST shortfall, in that order.

Failure modes:
    - InsufficientBalanceError on an overdrawing DEBIT.
    - ValidationError for negative amounts on CREDIT, DEBIT or REVERSAL,
      and for negative inputs to ``track_utilization``.

Audit relevance:
    Because the balance is a pure replay, a stored ledger can be re-verified
    entry by entry; ``replay`` returns the same running balances the service
    persisted at write time.

Usage:
    ledger = CreditLedger().append(CreditLedgerEntry(
        entry_type=LedgerEntryType.CREDIT,
        entry_date=date(2024, 5, 10),
        heads=TaxHeads(igst=Decimal("1800")),
    ))
    ledger.balance.igst  # Decimal("1800")
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum

from gst_engines.tracer import traced_engine
from gst_kernel.domain.values import HEAD_NAMES, ZERO, TaxHeads
from gst_kernel.exceptions import InsufficientBalanceError, ValidationError
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


class LedgerEntryType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    REVERSAL = "REVERSAL"
    ADJUSTMENT = "ADJUSTMENT"


_ADDITIVE = frozenset({LedgerEntryType.CREDIT, LedgerEntryType.ADJUSTMENT})


@dataclass(frozen=True)
class CreditLedgerEntry:
    """
    One movement on the credit ledger.

    ``heads`` holds unsigned amounts; the entry type gives the direction.
    ADJUSTMENT is the only type that may carry signed heads.
    """

    entry_type: LedgerEntryType
    entry_date: date
    heads: TaxHeads
    reference: str | None = None
    description: str | None = None
    reversal_reason: str | None = None
    return_period: str | None = None
    running_balance: TaxHeads | None = None

    def __post_init__(self) -> None:
        if self.entry_type not in _ADDITIVE and self.heads.negative_heads():
            raise ValidationError(
                f"{self.entry_type.value} amounts cannot be negative",
                field="heads",
                value=self.heads,
            )

    @property
    def delta(self) -> TaxHeads:
        """Signed effect of the entry on the balance."""
        return self.heads if self.entry_type in _ADDITIVE else -self.heads

    def with_running_balance(self, balance: TaxHeads) -> CreditLedgerEntry:
        return replace(self, running_balance=balance)


def apply_entry(balance: TaxHeads, entry: CreditLedgerEntry) -> TaxHeads:
    """Apply one entry and floor the result at zero per head."""
    return (balance + entry.delta).floored()


def calculate_itc_balance(entries: Iterable[CreditLedgerEntry]) -> TaxHeads:
    """Replay ``entries`` in order and return the closing balance."""
    balance = TaxHeads()
    for entry in entries:
        balance = apply_entry(balance, entry)
    return balance


def replay(entries: Iterable[CreditLedgerEntry]) -> tuple[CreditLedgerEntry, ...]:
    """Return ``entries`` with each running balance recomputed."""
    balance = TaxHeads()
    stamped = []
    for entry in entries:
        balance = apply_entry(balance, entry)
        stamped.append(entry.with_running_balance(balance))
    return tuple(stamped)


def check_sufficient_balance(balance: TaxHeads, debit: TaxHeads) -> None:
    """Raise InsufficientBalanceError for the first head ``debit`` overdraws."""
    for name in HEAD_NAMES:
        available = getattr(balance, name)
        requested = getattr(debit, name)
        if requested > available:
            raise InsufficientBalanceError(name, available, requested)


@dataclass(frozen=True)
class CreditLedger:
    """
    Immutable credit ledger.

    ``append`` returns a new ledger; the receiver is never changed.
    """

    entries: tuple[CreditLedgerEntry, ...] = ()

    @classmethod
    def from_entries(cls, entries: Iterable[CreditLedgerEntry]) -> CreditLedger:
        return cls(entries=replay(entries))

    @property
    def balance(self) -> TaxHeads:
        if not self.entries:
            return TaxHeads()
        last = self.entries[-1].running_balance
        if last is None:
            return calculate_itc_balance(self.entries)
        return last

    def __len__(self) -> int:
        return len(self.entries)

    def append(self, entry: CreditLedgerEntry) -> CreditLedger:
        balance = self.balance
        if entry.entry_type == LedgerEntryType.DEBIT:
            try:
                check_sufficient_balance(balance, entry.heads)
            except InsufficientBalanceError as e:
                logger.warning("ledger_debit_rejected", extra={
                    "head": e.head,
                    "available": str(e.available),
                    "requested": str(e.requested),
                    "reference": entry.reference,
                })
                raise

        new_balance = apply_entry(balance, entry)
        logger.debug("ledger_entry_applied", extra={
            "entry_type": entry.entry_type.value,
            "reference": entry.reference,
            "balance_total": str(new_balance.total),
        })
        return CreditLedger(entries=self.entries + (entry.with_running_balance(new_balance),))


# ---------------------------------------------------------------------------
# Utilization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UtilizationResult:
    """
    Outcome of setting available credit off against liability.

    ``igst_used`` includes the IGST spilled over to CGST and SGST; the
    spillover amounts are also reported on their own.
    """

    igst_used: Decimal
    cgst_used: Decimal
    sgst_used: Decimal
    cess_used: Decimal
    igst_for_cgst: Decimal
    igst_for_sgst: Decimal
    remaining: TaxHeads
    shortfall: TaxHeads

    @property
    def cash_required(self) -> Decimal:
        return self.shortfall.total

    @property
    def credit_used(self) -> TaxHeads:
        """Credit consumed per ledger head, in the form of a DEBIT."""
        return TaxHeads(
            cgst=self.cgst_used,
            sgst=self.sgst_used,
            igst=self.igst_used,
            cess=self.cess_used,
        )


@traced_engine("itc_utilization", "1.0", fingerprint_fields=("available", "liability"))
def track_utilization(available: TaxHeads, liability: TaxHeads) -> UtilizationResult:
    """
    Set credit off against liability in the statutory order.

    1. IGST credit against IGST liability.
    2. CGST credit against CGST liability.
    3. SGST credit against SGST liability.
    4. Leftover IGST against the CGST shortfall.
    5. Leftover IGST against the SGST shortfall.
    6. Cess credit against cess liability.
    """
    for label, heads in (("available", available), ("liability", liability)):
        negative = heads.negative_heads()
        if negative:
            raise ValidationError(
                f"{label.capitalize()} amounts cannot be negative: {', '.join(negative)}",
                field=label,
                value=heads,
            )

    t0 = time.monotonic()

    igst_for_igst = min(available.igst, liability.igst)
    igst_left = available.igst - igst_for_igst

    cgst_used = min(available.cgst, liability.cgst)
    cgst_short = liability.cgst - cgst_used

    sgst_used = min(available.sgst, liability.sgst)
    sgst_short = liability.sgst - sgst_used

    igst_for_cgst = min(igst_left, cgst_short)
    igst_left -= igst_for_cgst
    cgst_short -= igst_for_cgst

    igst_for_sgst = min(igst_left, sgst_short)
    igst_left -= igst_for_sgst
    sgst_short -= igst_for_sgst

    cess_used = min(available.cess, liability.cess)

    result = UtilizationResult(
        igst_used=igst_for_igst + igst_for_cgst + igst_for_sgst,
        cgst_used=cgst_used,
        sgst_used=sgst_used,
        cess_used=cess_used,
        igst_for_cgst=igst_for_cgst,
        igst_for_sgst=igst_for_sgst,
        remaining=TaxHeads(
            cgst=available.cgst - cgst_used,
            sgst=available.sgst - sgst_used,
            igst=igst_left,
            cess=available.cess - cess_used,
        ),
        shortfall=TaxHeads(
            cgst=cgst_short,
            sgst=sgst_short,
            igst=liability.igst - igst_for_igst,
            cess=liability.cess - cess_used,
        ),
    )

    logger.info("itc_utilization_completed", extra={
        "igst_used": str(result.igst_used),
        "cgst_used": str(result.cgst_used),
        "sgst_used": str(result.sgst_used),
        "cess_used": str(result.cess_used),
        "cash_required": str(result.cash_required),
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return result


def utilization_ratio(used: Decimal, available: Decimal) -> Decimal:
    """Share of available credit consumed, 0-100.  Zero when nothing was available."""
    if available <= ZERO:
        return ZERO
    return used / available * Decimal("100")
