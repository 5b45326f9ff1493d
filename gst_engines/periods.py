"""Fiscal-year and return-period date helpers (Indian FY: April to March)."""

from __future__ import annotations

import calendar
import re
from datetime import date

_PERIOD = re.compile(r"^(0[1-9]|1[0-2])-(\d{4})$")


def financial_year_start(d: date) -> int:
    """Calendar year in which the financial year containing ``d`` began."""
    return d.year if d.month >= 4 else d.year - 1


def financial_year_label(d: date) -> str:
    """``"2024-25"`` for any date from 1 April 2024 to 31 March 2025."""
    start = financial_year_start(d)
    return f"{start}-{str(start + 1)[-2:]}"


def return_period_label(d: date) -> str:
    """Monthly return period tag, ``MM-YYYY``."""
    return f"{d.month:02d}-{d.year}"


def parse_return_period(period: str) -> tuple[int, int]:
    """Split ``MM-YYYY`` into (month, year).  Raises ValueError when malformed."""
    match = _PERIOD.match(period or "")
    if not match:
        raise ValueError(f"Return period must be MM-YYYY, got {period!r}")
    return int(match.group(1)), int(match.group(2))


def period_bounds(period: str) -> tuple[date, date]:
    """First and last day of a ``MM-YYYY`` return period."""
    month, year = parse_return_period(period)
    return date(year, month, 1), month_end(year, month)


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def add_months(year: int, month: int, n: int) -> tuple[int, int]:
    """Shift (year, month) by ``n`` months."""
    index = year * 12 + (month - 1) + n
    return index // 12, index % 12 + 1


def calendar_quarter(d: date) -> int:
    """Calendar quarter 1-4 (Q1 = January to March)."""
    return (d.month - 1) // 3 + 1


def quarter_months(quarter: int) -> tuple[int, int, int]:
    if quarter not in (1, 2, 3, 4):
        raise ValueError(f"Quarter must be 1-4, got {quarter}")
    first = (quarter - 1) * 3 + 1
    return first, first + 1, first + 2
