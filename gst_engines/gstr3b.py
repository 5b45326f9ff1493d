"""
gst_engines.gstr3b -- GSTR-3B reverse-charge tables, validation and filing JSON.

Responsibility:
    Aggregate a period's reverse-charge inward supplies into table 3.1(d)
    and the related credit into table 4(B), cross-check the return against
    cash payments and the books, and serialize it to the filing JSON.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``RCMService.build_return``
    feeds it persisted transactions and eligibility results.

Invariants enforced:
    - Table totals are plain sums of the per-item heads; no re-derivation
      at a different rate.
    - Ineligible credit is reported separately and never counted in 4(B).
    - The filing JSON is deterministic: fixed key order, every amount
      rounded half-up to two decimals.  ``report_from_filing_json`` rebuilds
      an equal report, import flag and supplier-class breakdown included.

Failure modes:
    - ValidationError when filing JSON lacks the mandatory sections.
    - Validation findings (PAYMENT_MISMATCH, EXCESS_CLAIM) are returned,
      not raised.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from gst_engines.compliance import (
    MONTHLY_DUE_DAY,
    QUARTERLY_DUE_DAY,
    FilingFrequency,
    RCMPayment,
)
from gst_engines.detection import RCMType
from gst_engines.periods import add_months, calendar_quarter, month_end, return_period_label
from gst_engines.tracer import traced_engine
from gst_kernel.domain.values import ZERO, TaxHeads, round_paise, to_decimal
from gst_kernel.exceptions import ValidationError
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.gstr3b")

TABLE_3_1_D_DESCRIPTION = "Inward supplies liable to reverse charge"


class ITCClass(str, Enum):
    INPUTS = "INPUTS"
    INPUT_SERVICES = "INPUT_SERVICES"
    CAPITAL_GOODS = "CAPITAL_GOODS"


# Filing JSON ``itc_rev`` type codes, in emission order.
ITC_REV_CODES: dict[ITCClass, str] = {
    ITCClass.INPUTS: "IMPG",
    ITCClass.INPUT_SERVICES: "IMPS",
    ITCClass.CAPITAL_GOODS: "IMPCG",
}


class IssueKind(str, Enum):
    PAYMENT_MISMATCH = "PAYMENT_MISMATCH"
    EXCESS_CLAIM = "EXCESS_CLAIM"


@dataclass(frozen=True)
class RCMSupply:
    """A reverse-charge inward supply to report in 3.1(d)."""

    rcm_type: RCMType
    taxable_amount: Decimal
    heads: TaxHeads
    transaction_id: str | None = None


@dataclass(frozen=True)
class ITCItem:
    itc_class: ITCClass
    heads: TaxHeads
    eligible: bool = True
    ineligible_reason: str | None = None
    transaction_id: str | None = None


@dataclass(frozen=True)
class Table31d:
    taxable_value: Decimal = ZERO
    heads: TaxHeads = field(default_factory=TaxHeads)
    includes_import_of_services: bool = False
    description: str = TABLE_3_1_D_DESCRIPTION

    @property
    def total_tax(self) -> Decimal:
        return self.heads.total


@dataclass(frozen=True)
class Table4B:
    inputs: TaxHeads = field(default_factory=TaxHeads)
    input_services: TaxHeads = field(default_factory=TaxHeads)
    capital_goods: TaxHeads = field(default_factory=TaxHeads)
    ineligible_itc: Decimal = ZERO

    def for_class(self, itc_class: ITCClass) -> TaxHeads:
        return {
            ITCClass.INPUTS: self.inputs,
            ITCClass.INPUT_SERVICES: self.input_services,
            ITCClass.CAPITAL_GOODS: self.capital_goods,
        }[itc_class]

    @property
    def total_itc(self) -> Decimal:
        return self.inputs.total + self.input_services.total + self.capital_goods.total


@dataclass(frozen=True)
class CategoryBreakdown:
    count: int = 0
    taxable_value: Decimal = ZERO
    tax: Decimal = ZERO


_BREAKDOWN_TYPES = (
    RCMType.UNREGISTERED,
    RCMType.IMPORT_SERVICE,
    RCMType.NOTIFIED_SERVICE,
    RCMType.NOTIFIED_GOODS,
)


@dataclass(frozen=True)
class GSTR3BReport:
    gstin: str
    return_period: str
    table_3_1_d: Table31d
    table_4_b: Table4B
    rcm_breakdown: dict[RCMType, CategoryBreakdown] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    message: str
    amount: Decimal


@dataclass(frozen=True)
class GSTR3BValidation:
    issues: tuple[ValidationIssue, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def rcm_payment_matches(self) -> bool:
        return all(i.kind != IssueKind.PAYMENT_MISMATCH for i in self.issues)

    @property
    def itc_rcm_balanced(self) -> bool:
        return all(i.kind != IssueKind.EXCESS_CLAIM for i in self.issues)


@dataclass(frozen=True)
class BookTotals:
    """Reverse-charge purchases and tax as recorded in the books."""

    rcm_purchases: Decimal
    rcm_tax_paid: Decimal


@dataclass(frozen=True)
class AdjustmentSuggestion:
    description: str
    amount: Decimal


@dataclass(frozen=True)
class BooksReconciliation:
    taxable_value_difference: Decimal
    tax_difference: Decimal
    suggested_adjustments: tuple[AdjustmentSuggestion, ...] = ()

    @property
    def matches(self) -> bool:
        return self.taxable_value_difference == ZERO and self.tax_difference == ZERO


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


def calculate_table_3_1_d(supplies: Iterable[RCMSupply]) -> Table31d:
    taxable = ZERO
    heads = TaxHeads()
    includes_import = False
    for supply in supplies:
        taxable += to_decimal(supply.taxable_amount)
        heads = heads + supply.heads
        if supply.rcm_type == RCMType.IMPORT_SERVICE:
            includes_import = True
    return Table31d(taxable_value=taxable, heads=heads, includes_import_of_services=includes_import)


def calculate_table_4_b(items: Iterable[ITCItem]) -> Table4B:
    totals = {cls: TaxHeads() for cls in ITCClass}
    ineligible = ZERO
    for item in items:
        if item.eligible:
            totals[item.itc_class] = totals[item.itc_class] + item.heads
        else:
            ineligible += item.heads.total
    return Table4B(
        inputs=totals[ITCClass.INPUTS],
        input_services=totals[ITCClass.INPUT_SERVICES],
        capital_goods=totals[ITCClass.CAPITAL_GOODS],
        ineligible_itc=ineligible,
    )


def rcm_breakdown(supplies: Iterable[RCMSupply]) -> dict[RCMType, CategoryBreakdown]:
    """Count, taxable value and tax per supplier class."""
    breakdown = {t: CategoryBreakdown() for t in _BREAKDOWN_TYPES}
    for supply in supplies:
        current = breakdown.get(supply.rcm_type)
        if current is None:
            continue
        breakdown[supply.rcm_type] = CategoryBreakdown(
            count=current.count + 1,
            taxable_value=current.taxable_value + to_decimal(supply.taxable_amount),
            tax=current.tax + supply.heads.total,
        )
    return breakdown


@traced_engine("gstr3b", "1.0", fingerprint_fields=("gstin", "period", "supplies", "itc_items"))
def build_gstr3b_report(
    gstin: str,
    period: str,
    supplies: Iterable[RCMSupply],
    itc_items: Iterable[ITCItem],
) -> GSTR3BReport:
    t0 = time.monotonic()
    supplies = list(supplies)
    itc_items = list(itc_items)

    report = GSTR3BReport(
        gstin=gstin,
        return_period=period,
        table_3_1_d=calculate_table_3_1_d(supplies),
        table_4_b=calculate_table_4_b(itc_items),
        rcm_breakdown=rcm_breakdown(supplies),
    )

    logger.info("gstr3b_report_built", extra={
        "gstin": gstin,
        "return_period": period,
        "supply_count": len(supplies),
        "itc_item_count": len(itc_items),
        "rcm_tax": str(report.table_3_1_d.total_tax),
        "total_itc": str(report.table_4_b.total_itc),
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return report


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_gstr3b(
    report: GSTR3BReport,
    payments: Iterable[RCMPayment],
    unpaid_liabilities: Iterable[object] = (),
) -> GSTR3BValidation:
    """
    Cross-check declared reverse-charge tax against cash payments.

    Non-cash payments do not count as paid.  Open liabilities are a
    warning, not an issue.
    """
    declared = report.table_3_1_d.total_tax
    paid = sum((to_decimal(p.amount) for p in payments if p.is_cash), ZERO)

    issues: list[ValidationIssue] = []
    if declared != paid:
        issues.append(ValidationIssue(
            kind=IssueKind.PAYMENT_MISMATCH,
            message="RCM payment mismatch",
            amount=declared - paid,
        ))
    claimed = report.table_4_b.total_itc
    if claimed > paid:
        issues.append(ValidationIssue(
            kind=IssueKind.EXCESS_CLAIM,
            message="ITC claimed exceeds RCM paid",
            amount=claimed - paid,
        ))

    warnings = ("Unpaid RCM liabilities exist",) if any(True for _ in unpaid_liabilities) else ()
    if issues:
        logger.warning("gstr3b_validation_failed", extra={
            "gstin": report.gstin,
            "return_period": report.return_period,
            "issue_kinds": [i.kind.value for i in issues],
        })
    return GSTR3BValidation(issues=tuple(issues), warnings=warnings)


def reconcile_with_books(report: GSTR3BReport, books: BookTotals) -> BooksReconciliation:
    taxable_diff = report.table_3_1_d.taxable_value - to_decimal(books.rcm_purchases)
    tax_diff = report.table_3_1_d.total_tax - to_decimal(books.rcm_tax_paid)

    suggestions: list[AdjustmentSuggestion] = []
    if taxable_diff > ZERO:
        suggestions.append(AdjustmentSuggestion("Possible missing transaction in books", taxable_diff))
    elif taxable_diff < ZERO:
        suggestions.append(AdjustmentSuggestion("Possible missing transaction in GSTR-3B", -taxable_diff))
    if tax_diff > ZERO:
        suggestions.append(AdjustmentSuggestion("Tax payment not recorded in books", tax_diff))
    elif tax_diff < ZERO:
        suggestions.append(AdjustmentSuggestion("Excess tax recorded in books", -tax_diff))

    return BooksReconciliation(
        taxable_value_difference=taxable_diff,
        tax_difference=tax_diff,
        suggested_adjustments=tuple(suggestions),
    )


# ---------------------------------------------------------------------------
# Filing JSON
# ---------------------------------------------------------------------------


def _num(value: Decimal) -> float:
    return float(round_paise(value))


def _heads_json(heads: TaxHeads) -> dict[str, float]:
    return {
        "iamt": _num(heads.igst),
        "camt": _num(heads.cgst),
        "samt": _num(heads.sgst),
        "csamt": _num(heads.cess),
    }


def _amount(raw: Any) -> Decimal:
    if raw is None:
        return ZERO
    return round_paise(Decimal(str(raw)))


def _heads_from_json(data: dict[str, Any]) -> TaxHeads:
    return TaxHeads(
        igst=_amount(data.get("iamt")),
        cgst=_amount(data.get("camt")),
        sgst=_amount(data.get("samt")),
        cess=_amount(data.get("csamt")),
    )


def to_filing_json(report: GSTR3BReport) -> dict[str, Any]:
    """
    GSTR-3B filing payload for the reverse-charge sections.

    ``itc_rev`` lists only the classes with non-zero credit.  ``rcm_details``
    carries the import-of-services flag and the per-supplier-class breakdown
    so the report can be rebuilt from the payload.
    """
    table = report.table_3_1_d
    itc_rev = []
    for itc_class, code in ITC_REV_CODES.items():
        heads = report.table_4_b.for_class(itc_class)
        if heads.is_zero:
            continue
        itc_rev.append({"ty": code, **_heads_json(heads)})

    return {
        "gstin": report.gstin,
        "ret_period": report.return_period,
        "sup_details": {
            "isup_rev": {"txval": _num(table.taxable_value), **_heads_json(table.heads)},
        },
        "itc_elg": {
            "itc_rev": itc_rev,
            "itc_inelg": {"amt": _num(report.table_4_b.ineligible_itc)},
        },
        "rcm_details": {
            "imp_flag": "Y" if table.includes_import_of_services else "N",
            "breakdown": [
                {
                    "ty": rcm_type.value,
                    "cnt": entry.count,
                    "txval": _num(entry.taxable_value),
                    "tax": _num(entry.tax),
                }
                for rcm_type, entry in report.rcm_breakdown.items()
            ],
        },
    }


def to_filing_json_string(report: GSTR3BReport) -> str:
    return json.dumps(to_filing_json(report), sort_keys=True)


def report_from_filing_json(payload: dict[str, Any]) -> GSTR3BReport:
    """Rebuild the report tables from a filing payload."""
    try:
        isup_rev = payload["sup_details"]["isup_rev"]
        itc_elg = payload["itc_elg"]
    except (KeyError, TypeError) as e:
        raise ValidationError(
            "Filing JSON must contain sup_details.isup_rev and itc_elg", field="payload"
        ) from e

    by_code = {row.get("ty"): _heads_from_json(row) for row in itc_elg.get("itc_rev", [])}
    classes = {cls: by_code.get(code, TaxHeads()) for cls, code in ITC_REV_CODES.items()}
    rcm_details = payload.get("rcm_details") or {}
    try:
        breakdown = {
            RCMType(row["ty"]): CategoryBreakdown(
                count=int(row.get("cnt", 0)),
                taxable_value=_amount(row.get("txval")),
                tax=_amount(row.get("tax")),
            )
            for row in rcm_details.get("breakdown", [])
        }
    except (KeyError, ValueError) as e:
        raise ValidationError(
            "rcm_details.breakdown rows need a known supplier class in \"ty\"",
            field="rcm_details",
        ) from e

    return GSTR3BReport(
        gstin=payload.get("gstin", ""),
        return_period=payload.get("ret_period", ""),
        table_3_1_d=Table31d(
            taxable_value=_amount(isup_rev.get("txval")),
            heads=_heads_from_json(isup_rev),
            includes_import_of_services=rcm_details.get("imp_flag") == "Y",
        ),
        table_4_b=Table4B(
            inputs=classes[ITCClass.INPUTS],
            input_services=classes[ITCClass.INPUT_SERVICES],
            capital_goods=classes[ITCClass.CAPITAL_GOODS],
            ineligible_itc=_amount((itc_elg.get("itc_inelg") or {}).get("amt")),
        ),
        rcm_breakdown=breakdown,
    )


# ---------------------------------------------------------------------------
# Return periods
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReturnPeriod:
    label: str
    frequency: FilingFrequency
    start_date: date
    end_date: date
    due_date: date
    quarter: int | None = None


def get_return_period(d: date, frequency: FilingFrequency = FilingFrequency.MONTHLY) -> ReturnPeriod:
    """
    Return period containing ``d``.

    Labels use the same ``MM-YYYY`` form as the ledger and filed periods.
    Monthly: the month itself, due on the 20th of the next month.
    Quarterly: calendar quarters labelled by their last month, due on the
    24th of the month after the quarter.
    """
    if frequency == FilingFrequency.MONTHLY:
        due_year, due_month = add_months(d.year, d.month, 1)
        return ReturnPeriod(
            label=return_period_label(d),
            frequency=frequency,
            start_date=date(d.year, d.month, 1),
            end_date=month_end(d.year, d.month),
            due_date=date(due_year, due_month, MONTHLY_DUE_DAY),
        )

    quarter = calendar_quarter(d)
    first = (quarter - 1) * 3 + 1
    due_year, due_month = add_months(d.year, first + 2, 1)
    return ReturnPeriod(
        label=return_period_label(date(d.year, first + 2, 1)),
        frequency=frequency,
        start_date=date(d.year, first, 1),
        end_date=month_end(d.year, first + 2),
        due_date=date(due_year, due_month, QUARTERLY_DUE_DAY),
        quarter=quarter,
    )
