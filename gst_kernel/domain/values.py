"""
Values -- Immutable tax-head value objects and rounding helpers.

Responsibility:
    Provides ``TaxHeads``, the four-way split of a GST amount into CGST,
    SGST, IGST and cess, together with the two rounding rules used by the
    engines: whole-rupee half-up (tax heads, interest) and two-decimal
    half-up (proportionate capital-goods credit, filing JSON).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine that handles tax amounts.

Invariants enforced:
    - Amounts are always ``Decimal`` (never float); conversion goes through
      ``str`` so binary float noise never enters a tax head.
    - Arithmetic is per head; heads never mix.

Failure modes:
    - ValueError when a value cannot be converted to Decimal, or when a
      float is passed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
RUPEE = Decimal("1")
PAISE = Decimal("0.01")

HEAD_NAMES: tuple[str, ...] = ("cgst", "sgst", "igst", "cess")


def to_decimal(value: Any) -> Decimal:
    """Convert ``value`` to Decimal, rejecting floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValueError(f"Float amounts are not accepted: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def round_rupee(value: Decimal) -> Decimal:
    """Round half-up to the nearest whole rupee."""
    return to_decimal(value).quantize(RUPEE, rounding=ROUND_HALF_UP)


def round_paise(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(PAISE, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class TaxHeads:
    """
    Per-head GST amounts.

    Guarantees:
        - Immutable and hashable.
        - ``total`` is the plain sum of the four heads (never re-rounded).
        - ``+`` and ``-`` are applied head by head; signed results are
          allowed so ledger deltas can be expressed.
    """

    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO
    cess: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in HEAD_NAMES:
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))

    @classmethod
    def zero(cls) -> TaxHeads:
        return cls()

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> TaxHeads:
        """Build from a mapping; missing heads default to zero."""
        data = data or {}
        return cls(**{name: to_decimal(data.get(name, ZERO) or ZERO) for name in HEAD_NAMES})

    @property
    def total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst + self.cess

    @property
    def gst_total(self) -> Decimal:
        """Total excluding cess."""
        return self.cgst + self.sgst + self.igst

    @property
    def is_zero(self) -> bool:
        return all(getattr(self, name) == ZERO for name in HEAD_NAMES)

    def negative_heads(self) -> tuple[str, ...]:
        """Names of heads that are below zero."""
        return tuple(name for name in HEAD_NAMES if getattr(self, name) < ZERO)

    def floored(self) -> TaxHeads:
        """Clip every head to a floor of zero."""
        return TaxHeads(**{name: max(getattr(self, name), ZERO) for name in HEAD_NAMES})

    def scaled(self, factor: Decimal, *, places: Decimal | None = None) -> TaxHeads:
        """
        Multiply every head by ``factor``.

        Args:
            factor: Ratio to apply (e.g. eligible / total).
            places: Optional quantum; each head is rounded half-up to it.
        """
        factor = to_decimal(factor)
        values = {}
        for name in HEAD_NAMES:
            value = getattr(self, name) * factor
            if places is not None:
                value = value.quantize(places, rounding=ROUND_HALF_UP)
            values[name] = value
        return TaxHeads(**values)

    def rounded(self, places: Decimal = RUPEE) -> TaxHeads:
        return TaxHeads(
            **{
                name: getattr(self, name).quantize(places, rounding=ROUND_HALF_UP)
                for name in HEAD_NAMES
            }
        )

    def apportioned(self, amount: Decimal, places: Decimal = PAISE) -> TaxHeads:
        """
        Split ``amount`` across the heads in proportion to this split.

        Each head is rounded to ``places``; the rounding remainder goes to
        the largest head so the result totals exactly ``amount``.
        """
        amount = to_decimal(amount)
        total = self.total
        if total == ZERO:
            return TaxHeads()
        values = self.scaled(amount / total, places=places).as_dict()
        remainder = amount - sum(values.values(), ZERO)
        if remainder:
            largest = max(HEAD_NAMES, key=lambda name: getattr(self, name))
            values[largest] += remainder
        return TaxHeads(**values)

    def as_dict(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in HEAD_NAMES}

    def __add__(self, other: TaxHeads) -> TaxHeads:
        if not isinstance(other, TaxHeads):
            return NotImplemented
        return TaxHeads(**{n: getattr(self, n) + getattr(other, n) for n in HEAD_NAMES})

    def __sub__(self, other: TaxHeads) -> TaxHeads:
        if not isinstance(other, TaxHeads):
            return NotImplemented
        return TaxHeads(**{n: getattr(self, n) - getattr(other, n) for n in HEAD_NAMES})

    def __neg__(self) -> TaxHeads:
        return TaxHeads(**{n: -getattr(self, n) for n in HEAD_NAMES})

    def __repr__(self) -> str:
        return (
            f"TaxHeads(cgst={self.cgst}, sgst={self.sgst}, "
            f"igst={self.igst}, cess={self.cess})"
        )
