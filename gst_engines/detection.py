"""
Module: gst_engines.detection
Responsibility:
    Decide whether reverse charge applies to an inward supply and, if so,
    under which head: notified service/goods, import of services, or supply
    from an unregistered (or composition) supplier.

Architecture position:
    Engines -- pure calculation layer.  Reads the injected
    ``NotifiedRuleRegistry``; never touches the clock or storage.

Invariants enforced:
    - Exactly one classification per input.  Priority is fixed:
      NOTIFIED beats IMPORT_SERVICE beats UNREGISTERED beats NONE.
    - Imports are always IGST.  Otherwise the tax type comes from comparing
      place of supply with the recipient state (same state => CGST_SGST).
    - Known-foreign-supplier enrichment never fails detection.

Failure modes:
    - ValidationError: recipient GSTIN missing, place of supply missing, or
      taxable amount not positive.

Usage:
    result = detect_rcm(DetectionInput(...), registry, as_of=date(2024, 6, 1))
    if result.is_rcm_applicable:
        tax = calculate_tax(TaxInput(gst_rate=result.gst_rate, tax_type=result.tax_type, ...))
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from gst_engines.foreign_suppliers import (
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_REVIEW_THRESHOLD,
    SupplierMatch,
    detect_known_supplier,
)
from gst_engines.registry import NotifiedRule, NotifiedRuleRegistry, RuleKind
from gst_engines.tax import TaxType
from gst_engines.tracer import traced_engine
from gst_kernel.domain.values import ZERO, to_decimal
from gst_kernel.exceptions import ValidationError
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.detection")

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
OUTSIDE_INDIA = "OUTSIDE_INDIA"
DOMESTIC_COUNTRY = "INDIA"
DEFAULT_GST_RATE = Decimal("18")


class RCMType(str, Enum):
    """Reverse-charge classification of an inward supply."""

    NOTIFIED_SERVICE = "NOTIFIED_SERVICE"
    NOTIFIED_GOODS = "NOTIFIED_GOODS"
    IMPORT_SERVICE = "IMPORT_SERVICE"
    UNREGISTERED = "UNREGISTERED"
    NONE = "NONE"


@dataclass(frozen=True)
class DetectionInput:
    recipient_gstin: str | None
    recipient_state: str
    place_of_supply: str | None
    taxable_amount: Decimal
    supplier_gstin: str | None = None
    supplier_name: str | None = None
    supplier_country: str = DOMESTIC_COUNTRY
    supplier_domain: str | None = None
    service_type: str = ""
    hsn_sac_code: str | None = None
    is_composition_supplier: bool = False


@dataclass(frozen=True)
class DetectionResult:
    rcm_type: RCMType
    tax_type: TaxType | None
    gst_rate: Decimal
    reason: str
    matched_rule: NotifiedRule | None = None
    registry_version: str | None = None
    supplier_match: SupplierMatch | None = None

    @property
    def is_rcm_applicable(self) -> bool:
        return self.rcm_type != RCMType.NONE

    @property
    def is_known_supplier(self) -> bool:
        return self.supplier_match is not None and self.supplier_match.is_known_supplier

    @property
    def supplier_code(self) -> str | None:
        return self.supplier_match.supplier_code if self.is_known_supplier else None

    @property
    def default_hsn(self) -> str | None:
        return self.supplier_match.default_hsn if self.is_known_supplier else None


def is_valid_gstin(gstin: str | None) -> bool:
    """Structural GSTIN check: state code, PAN, entity digit, 'Z', check char."""
    if not gstin or not gstin.strip():
        return False
    return bool(GSTIN_PATTERN.match(gstin.strip()))


def determine_tax_type(place_of_supply: str, recipient_state: str) -> TaxType:
    """IGST for imports and inter-state supplies; CGST_SGST within a state."""
    pos = place_of_supply.upper().strip()
    if pos == OUTSIDE_INDIA:
        return TaxType.IGST
    return TaxType.CGST_SGST if pos == (recipient_state or "").upper().strip() else TaxType.IGST


def _lookup_foreign_supplier(
    detection_input: DetectionInput,
    min_confidence: float,
    review_threshold: float,
) -> SupplierMatch | None:
    if not detection_input.supplier_name:
        return None
    try:
        return detect_known_supplier(
            detection_input.supplier_name,
            detection_input.supplier_country,
            detection_input.supplier_domain,
            min_confidence=min_confidence,
            review_threshold=review_threshold,
        )
    except Exception as exc:
        logger.warning("foreign_supplier_lookup_failed", extra={
            "supplier_name": detection_input.supplier_name,
            "supplier_country": detection_input.supplier_country,
            "error": str(exc),
        }, exc_info=True)
        return None


def _unregistered_reason(detection_input: DetectionInput, has_valid_gstin: bool) -> str:
    if not has_valid_gstin and detection_input.supplier_gstin:
        return "RCM applicable for unregistered vendor (invalid GSTIN format)"
    if detection_input.is_composition_supplier:
        return "RCM applicable for composition scheme vendor"
    return "RCM applicable for unregistered vendor (no GSTIN)"


@traced_engine("rcm_detection", "1.0", fingerprint_fields=("detection_input", "as_of"))
def detect_rcm(
    detection_input: DetectionInput,
    registry: NotifiedRuleRegistry,
    as_of: date,
    *,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
) -> DetectionResult:
    """
    Classify an inward supply for reverse charge.

    Args:
        detection_input: Supplier, recipient and supply details.
        registry: Notified-rule table to match HSN/SAC codes against.
        as_of: Reference date for rule effectiveness.
        min_confidence: Lowest foreign-supplier match score accepted.
        review_threshold: Matches scoring below this are flagged for review.

    Raises:
        ValidationError: Missing recipient GSTIN or place of supply, or a
            taxable amount that is not positive.
    """
    if not detection_input.recipient_gstin:
        raise ValidationError("Recipient GSTIN is required", field="recipient_gstin")
    if not detection_input.place_of_supply:
        raise ValidationError("Place of supply is required", field="place_of_supply")
    taxable = to_decimal(detection_input.taxable_amount)
    if taxable <= ZERO:
        raise ValidationError(
            "Taxable amount must be greater than 0",
            field="taxable_amount",
            value=detection_input.taxable_amount,
        )

    t0 = time.monotonic()
    result = _classify(detection_input, registry, as_of, min_confidence, review_threshold)
    duration_ms = round((time.monotonic() - t0) * 1000, 2)

    logger.info("rcm_detection_completed", extra={
        "rcm_type": result.rcm_type.value,
        "tax_type": result.tax_type.value if result.tax_type else None,
        "gst_rate": str(result.gst_rate),
        "rule_id": result.matched_rule.rule_id if result.matched_rule else None,
        "registry_version": registry.version,
        "duration_ms": duration_ms,
    })
    return result


def _classify(
    detection_input: DetectionInput,
    registry: NotifiedRuleRegistry,
    as_of: date,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
) -> DetectionResult:
    place_of_supply = detection_input.place_of_supply or ""

    if detection_input.hsn_sac_code:
        rule = registry.match_rule(detection_input.hsn_sac_code, as_of)
        if rule is not None:
            is_service = rule.kind == RuleKind.SERVICE
            label = "service" if is_service else "goods"
            return DetectionResult(
                rcm_type=RCMType.NOTIFIED_SERVICE if is_service else RCMType.NOTIFIED_GOODS,
                tax_type=determine_tax_type(place_of_supply, detection_input.recipient_state),
                gst_rate=rule.gst_rate,
                reason=f"RCM applicable for notified {label}: {rule.description}",
                matched_rule=rule,
                registry_version=registry.version,
            )

    country = (detection_input.supplier_country or DOMESTIC_COUNTRY).upper().strip()
    if country != DOMESTIC_COUNTRY or place_of_supply.upper().strip() == OUTSIDE_INDIA:
        return DetectionResult(
            rcm_type=RCMType.IMPORT_SERVICE,
            tax_type=TaxType.IGST,
            gst_rate=DEFAULT_GST_RATE,
            reason="RCM applicable for import of services from foreign vendor",
            registry_version=registry.version,
            supplier_match=_lookup_foreign_supplier(detection_input, min_confidence, review_threshold),
        )

    has_valid_gstin = is_valid_gstin(detection_input.supplier_gstin)
    if not has_valid_gstin or detection_input.is_composition_supplier:
        return DetectionResult(
            rcm_type=RCMType.UNREGISTERED,
            tax_type=determine_tax_type(place_of_supply, detection_input.recipient_state),
            gst_rate=DEFAULT_GST_RATE,
            reason=_unregistered_reason(detection_input, has_valid_gstin),
            registry_version=registry.version,
        )

    return DetectionResult(
        rcm_type=RCMType.NONE,
        tax_type=None,
        gst_rate=DEFAULT_GST_RATE,
        reason="No RCM applicable for registered vendor with valid GSTIN",
        registry_version=registry.version,
    )
