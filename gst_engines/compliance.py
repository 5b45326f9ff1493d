"""
gst_engines.compliance -- RCM payment due dates, overdue tracking and interest.

Responsibility:
    Everything about paying reverse-charge tax on time: due dates for
    monthly and quarterly filers, overdue categorisation, Section 50
    interest, challan numbers, payment validation, late fees, partial
    payment reconciliation and self-invoice timing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The reference date is
    always passed in; ``gst_modules.rcm.service`` supplies it from a Clock.

Invariants enforced:
    - The due date itself is compliant; day one past it is MINOR.
    - Interest is simple interest rounded half-up to whole rupees.
    - Challan numbers are deterministic; the caller supplies the sequence.
    - Payment validation collects every problem instead of stopping at
      the first.

Failure modes:
    - ValidationError for negative principal, negative days, non-positive
      rate, unknown state, out-of-range challan sequence.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum

from gst_engines.detection import RCMType
from gst_engines.eligibility import (  # noqa: F401  re-exported deadline helpers
    ITCDeadlineStatus,
    WarningLevel,
    itc_claim_deadline,
    itc_deadline_status,
)
from gst_engines.periods import add_months, financial_year_start, month_end, return_period_label
from gst_kernel.domain.values import ZERO, round_paise, round_rupee, to_decimal
from gst_kernel.exceptions import ValidationError
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.compliance")

DEFAULT_INTEREST_RATE = Decimal("18")
MONTHLY_DUE_DAY = 20
QUARTERLY_DUE_DAY = 24
SELF_INVOICE_WINDOW_DAYS = 30
RCM_LIABILITY_TABLE = "3.1(d)"

CHALLAN_PATTERN = re.compile(r"^CHAL(?P<state>\d{2})-(?P<date>\d{8})-\d{6}$")

STATE_CODES: dict[str, str] = {
    "ANDHRA_PRADESH": "28",
    "ARUNACHAL_PRADESH": "12",
    "ASSAM": "18",
    "BIHAR": "10",
    "CHHATTISGARH": "22",
    "DELHI": "07",
    "GOA": "30",
    "GUJARAT": "24",
    "HARYANA": "06",
    "HIMACHAL_PRADESH": "02",
    "JAMMU_KASHMIR": "01",
    "JHARKHAND": "20",
    "KARNATAKA": "29",
    "KERALA": "32",
    "LADAKH": "38",
    "MADHYA_PRADESH": "23",
    "MAHARASHTRA": "27",
    "MANIPUR": "14",
    "MEGHALAYA": "17",
    "MIZORAM": "15",
    "NAGALAND": "13",
    "ODISHA": "21",
    "PUNJAB": "03",
    "RAJASTHAN": "08",
    "SIKKIM": "11",
    "TAMIL_NADU": "33",
    "TELANGANA": "36",
    "TRIPURA": "16",
    "UTTAR_PRADESH": "09",
    "UTTARAKHAND": "05",
    "WEST_BENGAL": "19",
}


class FilingFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"


class OverdueCategory(str, Enum):
    NOT_OVERDUE = "NOT_OVERDUE"
    MINOR = "MINOR"
    MAJOR = "MAJOR"
    CRITICAL = "CRITICAL"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class PaymentMode(str, Enum):
    ONLINE = "ONLINE"
    NEFT = "NEFT"
    RTGS = "RTGS"
    CHEQUE = "CHEQUE"
    CASH = "CASH"


VALID_PAYMENT_MODES = frozenset(m.value for m in PaymentMode)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RCMLiability:
    """Reverse-charge tax owed on one transaction."""

    transaction_id: str
    transaction_date: date
    taxable_amount: Decimal
    tax_amount: Decimal
    rcm_type: RCMType = RCMType.UNREGISTERED


@dataclass(frozen=True)
class RCMPayment:
    """A cash payment of reverse-charge tax.  ``payment_mode`` is kept raw for validation."""

    transaction_id: str
    payment_date: date
    amount: Decimal
    payment_mode: str
    challan_number: str | None = None
    return_period: str | None = None

    @property
    def is_cash(self) -> bool:
        return _mode_value(self.payment_mode) == PaymentMode.CASH.value


@dataclass(frozen=True)
class PaymentDueDate:
    due_date: date
    frequency: FilingFrequency
    quarter: int | None = None


@dataclass(frozen=True)
class OverdueStatus:
    is_overdue: bool
    days_past_due: int
    category: OverdueCategory


@dataclass(frozen=True)
class PaymentValidation:
    is_valid: bool
    status: PaymentStatus
    messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class ComplianceRecord:
    """Payment compliance of one RCM transaction as of a date."""

    transaction_id: str
    return_period: str
    due_date: date
    status: PaymentStatus
    tax_amount: Decimal
    paid_amount: Decimal = ZERO
    outstanding_amount: Decimal = ZERO
    payment_date: date | None = None
    challan_number: str | None = None
    days_past_due: int = 0
    overdue_category: OverdueCategory = OverdueCategory.NOT_OVERDUE
    interest_amount: Decimal = ZERO
    gstr3b_table: str = RCM_LIABILITY_TABLE


@dataclass(frozen=True)
class LateFee:
    days_late: int
    amount: Decimal
    cgst: Decimal
    sgst: Decimal


@dataclass(frozen=True)
class PaymentReconciliation:
    total_liability: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    overpayment_amount: Decimal
    payment_count: int
    last_payment_date: date | None
    payment_percentage: Decimal

    @property
    def is_fully_paid(self) -> bool:
        return self.total_paid >= self.total_liability

    @property
    def has_overpayment(self) -> bool:
        return self.overpayment_amount > ZERO


@dataclass(frozen=True)
class SelfInvoiceDueStatus:
    days_elapsed: int
    days_remaining: int
    is_overdue: bool
    days_delayed: int = 0
    warning_level: WarningLevel | None = None


@dataclass(frozen=True)
class GSTR3BMapping:
    table: str
    description: str
    taxable_value: Decimal
    tax_liability: Decimal


@dataclass(frozen=True)
class TypeTotals:
    count: int = 0
    taxable_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO


@dataclass(frozen=True)
class QuarterlySummary:
    quarter: int
    year: int
    transaction_count: int
    taxable_total: Decimal
    tax_total: Decimal
    by_type: dict[RCMType, TypeTotals] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Due dates and overdue status
# ---------------------------------------------------------------------------


def determine_payment_due_date(
    transaction_date: date,
    frequency: FilingFrequency = FilingFrequency.MONTHLY,
) -> PaymentDueDate:
    """
    Monthly filers pay by the 20th of the next month; quarterly filers by
    the 24th of the month after the calendar quarter ends.
    """
    if frequency == FilingFrequency.MONTHLY:
        year, month = add_months(transaction_date.year, transaction_date.month, 1)
        return PaymentDueDate(date(year, month, MONTHLY_DUE_DAY), frequency)

    quarter = (transaction_date.month - 1) // 3 + 1
    year, month = add_months(transaction_date.year, quarter * 3, 1)
    return PaymentDueDate(date(year, month, QUARTERLY_DUE_DAY), frequency, quarter)


def get_rcm_due_date(transaction_date: date) -> date:
    """20th of the month after ``transaction_date``."""
    return determine_payment_due_date(transaction_date).due_date


def check_overdue_status(due_date: date, as_of: date) -> OverdueStatus:
    days = max(0, (as_of - due_date).days)
    if days == 0:
        category = OverdueCategory.NOT_OVERDUE
    elif days <= 30:
        category = OverdueCategory.MINOR
    elif days <= 90:
        category = OverdueCategory.MAJOR
    else:
        category = OverdueCategory.CRITICAL
    return OverdueStatus(is_overdue=days > 0, days_past_due=days, category=category)


def calculate_interest(
    principal: Decimal,
    days_overdue: int,
    annual_rate: Decimal = DEFAULT_INTEREST_RATE,
) -> Decimal:
    """
    Simple interest ``P x r x d / 36500`` rounded half-up to whole rupees.

    Raises:
        ValidationError: negative principal or days, or non-positive rate.
    """
    principal = to_decimal(principal)
    annual_rate = to_decimal(annual_rate)
    if principal < ZERO:
        raise ValidationError("Principal amount cannot be negative", field="principal", value=principal)
    if days_overdue < 0:
        raise ValidationError("Days overdue cannot be negative", field="days_overdue", value=days_overdue)
    if annual_rate <= ZERO:
        raise ValidationError("Interest rate must be positive", field="annual_rate", value=annual_rate)
    if days_overdue == 0:
        return ZERO
    return round_rupee(principal * annual_rate * days_overdue / Decimal("36500"))


# ---------------------------------------------------------------------------
# Challans and payments
# ---------------------------------------------------------------------------


def state_code(state: str) -> str:
    """Two-digit code for a state name (any case, spaces or underscores) or code."""
    key = (state or "").strip().upper().replace(" ", "_").replace("&", "").replace("__", "_")
    if key.isdigit() and len(key) == 2 and key in STATE_CODES.values():
        return key
    code = STATE_CODES.get(key)
    if code is None:
        raise ValidationError("Invalid state code", field="state", value=state)
    return code


def generate_challan_number(state: str, payment_date: date, sequence: int) -> str:
    if not 0 <= sequence <= 999999:
        raise ValidationError(
            "Challan sequence must be between 0 and 999999", field="sequence", value=sequence
        )
    return f"CHAL{state_code(state)}-{payment_date:%Y%m%d}-{sequence:06d}"


def validate_challan_number(challan_number: str | None) -> bool:
    """Shape check plus a known state code and a real calendar date."""
    match = CHALLAN_PATTERN.match(challan_number or "")
    if match is None or match.group("state") not in STATE_CODES.values():
        return False
    try:
        datetime.strptime(match.group("date"), "%Y%m%d")
    except ValueError:
        return False
    return True


def _mode_value(mode: object) -> str:
    return str(getattr(mode, "value", mode) or "").upper()


def validate_rcm_payment(payment: RCMPayment, as_of: date) -> PaymentValidation:
    """Check a payment and report every problem found."""
    messages: list[str] = []

    challan = (payment.challan_number or "").strip()
    if not challan:
        messages.append("Challan number is required")
    elif not validate_challan_number(challan):
        messages.append("Invalid challan number format")

    if to_decimal(payment.amount) <= ZERO:
        messages.append("Payment amount must be greater than 0")

    if payment.payment_date > as_of:
        messages.append("Payment date cannot be in the future")

    if _mode_value(payment.payment_mode) not in VALID_PAYMENT_MODES:
        messages.append("Invalid payment method")

    is_valid = not messages
    if not is_valid:
        logger.info("rcm_payment_rejected", extra={
            "transaction_id": payment.transaction_id,
            "problems": messages,
        })
    return PaymentValidation(
        is_valid=is_valid,
        status=PaymentStatus.PAID if is_valid else PaymentStatus.PENDING,
        messages=tuple(messages),
    )


def track_payment_status(
    liability: RCMLiability,
    payments: Iterable[RCMPayment],
    as_of: date,
    *,
    annual_rate: Decimal = DEFAULT_INTEREST_RATE,
    frequency: FilingFrequency = FilingFrequency.MONTHLY,
) -> ComplianceRecord:
    """
    Compliance record for one liability.

    Fully paid liabilities are PAID, with interest for the days the last
    payment came after the due date.  Otherwise the liability is OVERDUE
    once the due date has passed, with interest on the outstanding amount,
    and PENDING before that.
    """
    due = determine_payment_due_date(liability.transaction_date, frequency).due_date
    relevant = sorted(
        (p for p in payments if p.transaction_id == liability.transaction_id),
        key=lambda p: p.payment_date,
    )
    tax = to_decimal(liability.tax_amount)
    paid = sum((to_decimal(p.amount) for p in relevant), ZERO)
    outstanding = max(tax - paid, ZERO)
    last = relevant[-1] if relevant else None

    if relevant and outstanding == ZERO:
        late = check_overdue_status(due, last.payment_date)
        status = PaymentStatus.PAID
        interest = calculate_interest(tax, late.days_past_due, annual_rate)
    else:
        late = check_overdue_status(due, as_of)
        status = PaymentStatus.OVERDUE if late.is_overdue else PaymentStatus.PENDING
        interest = calculate_interest(outstanding, late.days_past_due, annual_rate)

    return ComplianceRecord(
        transaction_id=liability.transaction_id,
        return_period=return_period_label(liability.transaction_date),
        due_date=due,
        status=status,
        tax_amount=tax,
        paid_amount=paid,
        outstanding_amount=outstanding,
        payment_date=last.payment_date if last else None,
        challan_number=last.challan_number if last else None,
        days_past_due=late.days_past_due,
        overdue_category=late.category,
        interest_amount=interest,
    )


def calculate_late_fee(due_date: date, filed_date: date, is_nil_return: bool = False) -> LateFee:
    """Rs 50/day capped at Rs 10,000 (nil returns: Rs 20/day capped at Rs 5,000), half CGST, half SGST."""
    days = max(0, (filed_date - due_date).days)
    daily, cap = (Decimal("20"), Decimal("5000")) if is_nil_return else (Decimal("50"), Decimal("10000"))
    amount = min(daily * days, cap)
    half = amount / 2
    return LateFee(days_late=days, amount=amount, cgst=half, sgst=half)


def reconcile_payments(total_liability: Decimal, payments: Iterable[RCMPayment]) -> PaymentReconciliation:
    payments = list(payments)
    liability = to_decimal(total_liability)
    paid = sum((to_decimal(p.amount) for p in payments), ZERO)
    return PaymentReconciliation(
        total_liability=liability,
        total_paid=paid,
        remaining_balance=max(liability - paid, ZERO),
        overpayment_amount=max(paid - liability, ZERO),
        payment_count=len(payments),
        last_payment_date=max((p.payment_date for p in payments), default=None),
        payment_percentage=round_paise(paid / liability * 100) if liability else ZERO,
    )


# ---------------------------------------------------------------------------
# Self-invoices
# ---------------------------------------------------------------------------


def self_invoice_number(fy_start_year: int, sequence: int) -> str:
    """``SI-FY24-25/001`` for the first self-invoice of FY 2024-25."""
    if sequence < 1:
        raise ValidationError("Self-invoice sequence must be positive", field="sequence", value=sequence)
    start = fy_start_year % 100
    return f"SI-FY{start:02d}-{(start + 1) % 100:02d}/{sequence:03d}"


def self_invoice_number_for(invoice_date: date, sequence: int) -> str:
    return self_invoice_number(financial_year_start(invoice_date), sequence)


_SELF_INVOICE_BANDS: tuple[tuple[int, WarningLevel], ...] = (
    (28, WarningLevel.CRITICAL),
    (25, WarningLevel.HIGH),
    (20, WarningLevel.MEDIUM),
    (15, WarningLevel.LOW),
)


def check_self_invoice_due(receipt_date: date, as_of: date) -> SelfInvoiceDueStatus:
    """A self-invoice is due within 30 days of receipt; day 30 is still on time."""
    elapsed = max(0, (as_of - receipt_date).days)
    overdue = elapsed > SELF_INVOICE_WINDOW_DAYS
    level = None
    if not overdue:
        level = next((lvl for floor, lvl in _SELF_INVOICE_BANDS if elapsed >= floor), None)
    return SelfInvoiceDueStatus(
        days_elapsed=elapsed,
        days_remaining=max(0, SELF_INVOICE_WINDOW_DAYS - elapsed),
        is_overdue=overdue,
        days_delayed=elapsed - SELF_INVOICE_WINDOW_DAYS if overdue else 0,
        warning_level=level,
    )


def self_invoice_deadline(receipt_date: date) -> date:
    return receipt_date + timedelta(days=SELF_INVOICE_WINDOW_DAYS)


# ---------------------------------------------------------------------------
# Reporting helpers
# ---------------------------------------------------------------------------

_TABLE_DESCRIPTIONS = {
    RCMType.UNREGISTERED: "Inward supplies liable to reverse charge from unregistered persons",
    RCMType.IMPORT_SERVICE: "Import of services",
    RCMType.NOTIFIED_SERVICE: "Inward supplies of notified services liable to reverse charge",
    RCMType.NOTIFIED_GOODS: "Inward supplies of notified goods liable to reverse charge",
}


def gstr3b_table_mapping(rcm_type: RCMType, taxable_amount: Decimal, tax_amount: Decimal) -> GSTR3BMapping:
    return GSTR3BMapping(
        table=RCM_LIABILITY_TABLE,
        description=_TABLE_DESCRIPTIONS.get(
            rcm_type, "Other inward supplies liable to reverse charge"
        ),
        taxable_value=to_decimal(taxable_amount),
        tax_liability=to_decimal(tax_amount),
    )


def quarterly_summary(
    liabilities: Iterable[RCMLiability],
    quarter: int,
    year: int,
) -> QuarterlySummary:
    """Totals by RCM type for a calendar quarter (Q1 = January to March)."""
    if quarter not in (1, 2, 3, 4):
        raise ValidationError("Quarter must be 1-4", field="quarter", value=quarter)
    first = (quarter - 1) * 3 + 1
    start, end = date(year, first, 1), month_end(year, first + 2)

    count = 0
    taxable_total = ZERO
    tax_total = ZERO
    by_type: dict[RCMType, TypeTotals] = {}
    for item in liabilities:
        if not start <= item.transaction_date <= end:
            continue
        taxable = to_decimal(item.taxable_amount)
        tax = to_decimal(item.tax_amount)
        count += 1
        taxable_total += taxable
        tax_total += tax
        prev = by_type.get(item.rcm_type, TypeTotals())
        by_type[item.rcm_type] = TypeTotals(
            count=prev.count + 1,
            taxable_amount=prev.taxable_amount + taxable,
            tax_amount=prev.tax_amount + tax,
        )

    return QuarterlySummary(
        quarter=quarter,
        year=year,
        transaction_count=count,
        taxable_total=taxable_total,
        tax_total=tax_total,
        by_type=by_type,
    )
