"""
Tax Engine - Reverse-charge GST computation.

Computes CGST/SGST (intra-state) or IGST (inter-state and imports) plus
optional compensation cess for a reverse-charge supply, with conversion of
foreign-currency invoices at the supplied exchange rate.

Rounding follows the return: each head is rounded half-up to the whole
rupee on its own, and totals are the sum of the already-rounded heads.
Never re-derive a head from a rounded total.

Usage:
    from decimal import Decimal
    from gst_engines.tax import TaxInput, TaxType, calculate_tax

    result = calculate_tax(TaxInput(
        taxable_amount=Decimal("100000"),
        gst_rate=Decimal("18"),
        tax_type=TaxType.CGST_SGST,
    ))
    result.heads.cgst     # Decimal("9000")
    result.total_amount   # Decimal("118000")
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from gst_engines.tracer import traced_engine
from gst_kernel.domain.values import ZERO, TaxHeads, round_rupee, to_decimal
from gst_kernel.exceptions import (
    InvalidExchangeRateError,
    InvalidGSTRateError,
    ValidationError,
)
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

VALID_GST_RATES: tuple[Decimal, ...] = tuple(Decimal(r) for r in ("0", "5", "12", "18", "28"))
HUNDRED = Decimal("100")
TWO = Decimal("2")


class TaxType(str, Enum):
    """Which GST heads a supply is taxed under."""

    CGST_SGST = "CGST_SGST"  # intra-state
    IGST = "IGST"  # inter-state and imports


@dataclass(frozen=True)
class ForeignCurrencyTrace:
    """How a foreign invoice amount became the rupee taxable value."""

    currency: str | None
    foreign_amount: Decimal
    exchange_rate: Decimal


@dataclass(frozen=True)
class TaxInput:
    """
    Inputs to a single reverse-charge tax computation.

    When ``foreign_amount`` is set, ``taxable_amount`` is ignored and
    recomputed as ``round(foreign_amount * exchange_rate)``.
    """

    gst_rate: Decimal
    tax_type: TaxType
    taxable_amount: Decimal = ZERO
    cess_rate: Decimal = ZERO
    foreign_amount: Decimal | None = None
    exchange_rate: Decimal | None = None
    foreign_currency: str | None = None


@dataclass(frozen=True)
class TaxResult:
    """Per-head reverse-charge tax.  Derived; never persisted on its own."""

    taxable_amount: Decimal
    tax_type: TaxType
    gst_rate: Decimal
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cess_rate: Decimal
    heads: TaxHeads
    foreign_currency_trace: ForeignCurrencyTrace | None = None

    @property
    def cgst_amount(self) -> Decimal:
        return self.heads.cgst

    @property
    def sgst_amount(self) -> Decimal:
        return self.heads.sgst

    @property
    def igst_amount(self) -> Decimal:
        return self.heads.igst

    @property
    def cess_amount(self) -> Decimal:
        return self.heads.cess

    @property
    def total_tax(self) -> Decimal:
        return self.heads.total

    @property
    def total_amount(self) -> Decimal:
        return self.taxable_amount + self.heads.total


@dataclass(frozen=True)
class LineItem:
    """One invoice line; carries its own GST and cess rate."""

    description: str
    amount: Decimal
    gst_rate: Decimal
    cess_rate: Decimal = ZERO


@dataclass(frozen=True)
class LineItemTaxResult:
    """Batch result.  Totals are sums of the per-item results."""

    items: tuple[TaxResult, ...]
    taxable_amount: Decimal
    heads: TaxHeads
    tax_type: TaxType
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cess_rate: Decimal
    has_mixed_rates: bool = False

    @property
    def total_tax(self) -> Decimal:
        return self.heads.total

    @property
    def total_amount(self) -> Decimal:
        return self.taxable_amount + self.heads.total


def _validate(tax_input: TaxInput) -> None:
    if to_decimal(tax_input.gst_rate) not in VALID_GST_RATES:
        raise InvalidGSTRateError(tax_input.gst_rate, tuple(int(r) for r in VALID_GST_RATES))
    if to_decimal(tax_input.cess_rate) < ZERO:
        raise ValidationError(
            "Cess rate cannot be negative", field="cess_rate", value=tax_input.cess_rate
        )
    if tax_input.foreign_amount is not None:
        if to_decimal(tax_input.foreign_amount) < ZERO:
            raise ValidationError(
                "Foreign amount cannot be negative",
                field="foreign_amount",
                value=tax_input.foreign_amount,
            )
        if tax_input.exchange_rate is None or to_decimal(tax_input.exchange_rate) <= ZERO:
            raise InvalidExchangeRateError(tax_input.exchange_rate)
    elif to_decimal(tax_input.taxable_amount) < ZERO:
        raise ValidationError(
            "Taxable amount cannot be negative",
            field="taxable_amount",
            value=tax_input.taxable_amount,
        )


def _head_amount(taxable: Decimal, rate: Decimal) -> Decimal:
    return round_rupee(taxable * rate / HUNDRED)


@traced_engine("tax", "1.0", fingerprint_fields=("tax_input",))
def calculate_tax(tax_input: TaxInput) -> TaxResult:
    """
    Compute reverse-charge GST for one supply.

    Raises:
        ValidationError: Negative taxable/foreign amount or cess rate.
        InvalidGSTRateError: Rate outside {0, 5, 12, 18, 28}.
        InvalidExchangeRateError: Foreign amount without a positive rate.
    """
    _validate(tax_input)

    gst_rate = to_decimal(tax_input.gst_rate)
    cess_rate = to_decimal(tax_input.cess_rate)
    trace = None
    if tax_input.foreign_amount is not None:
        foreign_amount = to_decimal(tax_input.foreign_amount)
        exchange_rate = to_decimal(tax_input.exchange_rate)
        taxable = round_rupee(foreign_amount * exchange_rate)
        trace = ForeignCurrencyTrace(
            currency=tax_input.foreign_currency,
            foreign_amount=foreign_amount,
            exchange_rate=exchange_rate,
        )
    else:
        taxable = to_decimal(tax_input.taxable_amount)

    cess = _head_amount(taxable, cess_rate) if cess_rate > ZERO else ZERO

    if tax_input.tax_type == TaxType.CGST_SGST:
        half_rate = gst_rate / TWO
        cgst_rate, sgst_rate, igst_rate = half_rate, half_rate, ZERO
        # same expression for both heads so CGST == SGST after rounding
        half = _head_amount(taxable, half_rate)
        heads = TaxHeads(cgst=half, sgst=half, cess=cess)
    else:
        cgst_rate, sgst_rate, igst_rate = ZERO, ZERO, gst_rate
        heads = TaxHeads(igst=_head_amount(taxable, gst_rate), cess=cess)

    return TaxResult(
        taxable_amount=taxable,
        tax_type=tax_input.tax_type,
        gst_rate=gst_rate,
        cgst_rate=cgst_rate,
        sgst_rate=sgst_rate,
        igst_rate=igst_rate,
        cess_rate=cess_rate,
        heads=heads,
        foreign_currency_trace=trace,
    )


def calculate_tax_for_line_items(
    items: Sequence[LineItem],
    template: TaxInput,
) -> LineItemTaxResult:
    """
    Tax a multi-line invoice by summing the single-item computation.

    ``template`` supplies the tax type and currency fields; each line
    supplies its own amount, GST rate and cess rate.  Reported rates are the
    first line's; ``has_mixed_rates`` says whether later lines differ.

    Raises:
        ValidationError: No line items, or any line fails ``calculate_tax``.
    """
    if not items:
        raise ValidationError("At least one line item is required", field="items")

    t0 = time.monotonic()
    logger.info("line_item_tax_started", extra={
        "item_count": len(items),
        "tax_type": template.tax_type.value,
    })

    results: list[TaxResult] = []
    for item in items:
        item_input = replace(
            template,
            taxable_amount=to_decimal(item.amount),
            gst_rate=to_decimal(item.gst_rate),
            cess_rate=to_decimal(item.cess_rate),
            foreign_amount=None,
            exchange_rate=None,
            foreign_currency=None,
        )
        results.append(calculate_tax(item_input))

    heads = TaxHeads()
    taxable = ZERO
    for result in results:
        heads = heads + result.heads
        taxable += result.taxable_amount

    first = results[0]
    mixed = any(
        r.gst_rate != first.gst_rate or r.cess_rate != first.cess_rate for r in results[1:]
    )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("line_item_tax_completed", extra={
        "item_count": len(results),
        "taxable_amount": str(taxable),
        "total_tax": str(heads.total),
        "has_mixed_rates": mixed,
        "duration_ms": duration_ms,
    })

    return LineItemTaxResult(
        items=tuple(results),
        taxable_amount=taxable,
        heads=heads,
        tax_type=template.tax_type,
        cgst_rate=first.cgst_rate,
        sgst_rate=first.sgst_rate,
        igst_rate=first.igst_rate,
        cess_rate=first.cess_rate,
        has_mixed_rates=mixed,
    )
