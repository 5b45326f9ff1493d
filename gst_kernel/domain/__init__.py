"""Pure domain primitives shared by the GST engines: clocks and tax-head values."""

from gst_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from gst_kernel.domain.values import (
    ZERO,
    TaxHeads,
    round_paise,
    round_rupee,
    to_decimal,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "TaxHeads",
    "ZERO",
    "round_paise",
    "round_rupee",
    "to_decimal",
]
