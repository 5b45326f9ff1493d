"""
Reverse-Charge Configuration Schema (``gst_modules.rcm.config``).

Responsibility
--------------
Declarative settings for the RCM module: interest rate, reconciliation
tolerances, the reversal window for unpaid invoices, filing frequency,
credit-utilization warning thresholds and the foreign-supplier lookup
confidence.  Defaults follow the CGST Act and Rules.

Architecture position
---------------------
**Modules layer** -- configuration schema only.  Loaded with
``gst_config.load_rcm_config()``; engines receive the individual values
as parameters and never see this object.

Invariants enforced
-------------------
* All monetary values and rates are ``Decimal`` (never ``float``).
* ``__post_init__`` validates ranges and ordering.

Failure modes
-------------
* ``ValueError`` at construction if any constraint is violated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from gst_engines.compliance import FilingFrequency
from gst_kernel.logging_config import get_logger

logger = get_logger("modules.rcm.config")


@dataclass
class RCMConfig:
    """
    Configuration schema for the reverse-charge module.

    Override at instantiation with registration-specific values:

        config = RCMConfig(filing_frequency=FilingFrequency.QUARTERLY)
    """

    # Section 50 interest
    interest_rate: Decimal = Decimal("18")

    # GSTR-2B matching
    mismatch_tolerance: Decimal = Decimal("1")
    date_tolerance_days: int = 1

    # Rule 37: unpaid invoices reverse after this many days
    reversal_days: int = 180

    filing_frequency: FilingFrequency = FilingFrequency.MONTHLY

    # Percent of available credit consumed that triggers a warning log
    utilization_warning_thresholds: tuple[Decimal, ...] = field(
        default_factory=lambda: (Decimal("80"), Decimal("95"))
    )

    # Foreign supplier lookup
    supplier_min_confidence: float = 0.7
    supplier_review_threshold: float = 0.8

    def __post_init__(self):
        self.interest_rate = Decimal(str(self.interest_rate))
        self.mismatch_tolerance = Decimal(str(self.mismatch_tolerance))
        self.utilization_warning_thresholds = tuple(
            Decimal(str(t)) for t in self.utilization_warning_thresholds
        )
        if not isinstance(self.filing_frequency, FilingFrequency):
            self.filing_frequency = FilingFrequency(str(self.filing_frequency).upper())

        if self.interest_rate <= 0:
            raise ValueError("interest_rate must be positive")
        if self.mismatch_tolerance < 0:
            raise ValueError("mismatch_tolerance cannot be negative")
        if self.date_tolerance_days < 0:
            raise ValueError("date_tolerance_days cannot be negative")
        if self.reversal_days <= 0:
            raise ValueError("reversal_days must be positive")

        thresholds = list(self.utilization_warning_thresholds)
        if thresholds != sorted(thresholds):
            raise ValueError("utilization_warning_thresholds must be sorted ascending")
        if any(t <= 0 or t > Decimal("100") for t in thresholds):
            raise ValueError("utilization_warning_thresholds must be within (0, 100]")

        if not 0 < self.supplier_min_confidence <= 1:
            raise ValueError("supplier_min_confidence must be within (0, 1]")
        if self.supplier_review_threshold < self.supplier_min_confidence:
            raise ValueError(
                f"supplier_review_threshold ({self.supplier_review_threshold}) "
                f"cannot be below supplier_min_confidence ({self.supplier_min_confidence})"
            )

        logger.info(
            "rcm_config_initialized",
            extra={
                "interest_rate": str(self.interest_rate),
                "mismatch_tolerance": str(self.mismatch_tolerance),
                "date_tolerance_days": self.date_tolerance_days,
                "reversal_days": self.reversal_days,
                "filing_frequency": self.filing_frequency.value,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with statutory defaults."""
        logger.info("rcm_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g. a parsed YAML document).

        Raises:
            ValueError: if validation fails in ``__post_init__``.
            TypeError: on unknown keys.
        """
        logger.info(
            "rcm_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "utilization_warning_thresholds" in data:
            data["utilization_warning_thresholds"] = tuple(data["utilization_warning_thresholds"])
        return cls(**data)
