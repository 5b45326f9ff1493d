"""
Known foreign supplier lookup.

Recognises the large overseas SaaS and cloud vendors whose invoices make up
most import-of-services reverse charge, and supplies a default SAC, service
category and billing currency for them.  Matching is fuzzy on the supplier
name (``difflib.SequenceMatcher``) and exact on the billing domain.

Lookup is best-effort enrichment.  ``detect_known_supplier`` raises
``ValidationError`` for an empty name or an unrecognised country; the
detection engine catches and logs that and carries on without enrichment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum

from gst_kernel.exceptions import ValidationError

DEFAULT_MIN_CONFIDENCE = 0.7
DEFAULT_REVIEW_THRESHOLD = 0.8

UNKNOWN_SUPPLIER_HSN = "998319"

VALID_COUNTRIES = frozenset({
    "USA", "UK", "CANADA", "IRELAND", "SINGAPORE", "AUSTRALIA",
    "GERMANY", "FRANCE", "NETHERLANDS", "SWEDEN", "NORWAY",
    "JAPAN", "SOUTH_KOREA", "CHINA", "INDIA", "BRAZIL", "LUXEMBOURG",
})

_SUBSIDIARY_MARKERS = ("ireland", "singapore", "emea", "asia pacific")


class EntityType(str, Enum):
    PARENT = "PARENT"
    SUBSIDIARY = "SUBSIDIARY"


@dataclass(frozen=True)
class KnownSupplier:
    code: str
    patterns: tuple[str, ...]
    domains: tuple[str, ...]
    default_hsn: str
    service_category: str
    description: str
    supported_services: tuple[str, ...] = ()
    default_currency: str = "USD"
    supported_currencies: tuple[str, ...] = ("USD",)
    billing_country: str = "USA"
    default_gst_rate: int = 18


KNOWN_SUPPLIERS: tuple[KnownSupplier, ...] = (
    KnownSupplier(
        code="ADOBE",
        patterns=("adobe inc", "adobe systems", "adobe corporation", "adobe systems incorporated"),
        domains=("adobe.com",),
        default_hsn="998314",
        service_category="SOFTWARE",
        description="Creative and document software services",
        supported_services=("Creative Cloud", "Document Cloud", "Experience Cloud"),
        supported_currencies=("USD", "EUR"),
    ),
    KnownSupplier(
        code="MICROSOFT",
        patterns=("microsoft corporation", "microsoft ireland operations", "microsoft"),
        domains=("microsoft.com", "office.com", "outlook.com"),
        default_hsn="998314",
        service_category="SOFTWARE",
        description="Enterprise software and cloud services",
        supported_services=("Office 365", "Azure", "Teams", "Windows"),
        supported_currencies=("USD", "EUR", "GBP"),
    ),
    KnownSupplier(
        code="AWS",
        patterns=(
            "amazon web services, inc",
            "amazon web services singapore private limited",
            "aws emea sarl",
            "amazon web services ireland limited",
            "amazon web services",
        ),
        domains=("aws.amazon.com",),
        default_hsn="998313",
        service_category="CLOUD",
        description="Cloud computing and web services",
        supported_services=("EC2", "S3", "Lambda", "RDS"),
        supported_currencies=("USD", "EUR", "GBP"),
    ),
    KnownSupplier(
        code="GOOGLE",
        patterns=(
            "google llc",
            "google ireland limited",
            "google cloud india private limited",
            "google asia pacific",
        ),
        domains=("google.com", "gmail.com", "googlecloud.com"),
        default_hsn="998314",
        service_category="SOFTWARE",
        description="Search, advertising and cloud services",
        supported_services=("Google Workspace", "Google Cloud", "Google Ads"),
        supported_currencies=("USD", "EUR", "GBP", "SGD"),
    ),
    KnownSupplier(
        code="ZOOM",
        patterns=("zoom video communications",),
        domains=("zoom.us",),
        default_hsn="998314",
        service_category="SOFTWARE",
        description="Video conferencing and communication services",
        supported_services=("Zoom Pro", "Zoom Business", "Zoom Enterprise"),
    ),
    KnownSupplier(
        code="SALESFORCE",
        patterns=("salesforce.com, inc", "salesforce"),
        domains=("salesforce.com",),
        default_hsn="998314",
        service_category="SOFTWARE",
        description="CRM and customer engagement platform",
        supported_services=("Sales Cloud", "Service Cloud", "Marketing Cloud"),
        supported_currencies=("USD", "EUR", "GBP"),
    ),
    KnownSupplier(
        code="SLACK",
        patterns=("slack technologies",),
        domains=("slack.com",),
        default_hsn="998314",
        service_category="SOFTWARE",
        description="Business communication and collaboration platform",
        supported_services=("Slack Pro", "Slack Business+"),
        supported_currencies=("USD", "EUR"),
    ),
)

_BY_CODE = {s.code: s for s in KNOWN_SUPPLIERS}

# service-type hint -> (category, SAC, description) for unknown suppliers
_HINT_DEFAULTS = {
    "SOFTWARE": ("SOFTWARE", "998314", "Software services"),
    "CLOUD": ("CLOUD", "998313", "Cloud computing services"),
    "CONSULTING": ("CONSULTING", "998311", "Professional consulting services"),
    "PROFESSIONAL": ("CONSULTING", "998311", "Professional consulting services"),
}


@dataclass(frozen=True)
class SupplierMatch:
    """Outcome of a known-supplier lookup."""

    is_known_supplier: bool
    supplier_code: str | None = None
    match_confidence: float = 0.0
    matched_fields: tuple[str, ...] = ()
    requires_manual_review: bool = False
    entity_type: EntityType | None = None
    default_hsn: str | None = None
    service_category: str | None = None


@dataclass(frozen=True)
class SupplierDefaults:
    default_hsn: str
    default_gst_rate: int
    service_category: str
    description: str
    default_currency: str
    billing_country: str
    supported_currencies: tuple[str, ...] = ("USD",)
    supported_services: tuple[str, ...] = field(default_factory=tuple)
    requires_manual_review: bool = False


_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_supplier_name(name: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    cleaned = _PUNCTUATION.sub("", name.lower().strip())
    return _WHITESPACE.sub(" ", cleaned)


def name_similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1] between two normalized names."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


def detect_known_supplier(
    name: str,
    country: str,
    domain: str | None = None,
    *,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
) -> SupplierMatch:
    """
    Look ``name`` up among the known foreign suppliers.

    A supplier is reported only when its confidence exceeds
    ``min_confidence``; below ``review_threshold`` the match is flagged for
    manual review.  An exact pattern or a matching billing domain scores 1.0.

    Raises:
        ValidationError: Empty name or unrecognised country.
    """
    if not name or not name.strip():
        raise ValidationError("Supplier name is required", field="supplier_name", value=name)
    if not country or country.upper() not in VALID_COUNTRIES:
        raise ValidationError("Invalid country code", field="supplier_country", value=country)

    normalized = normalize_supplier_name(name)
    normalized_domain = domain.lower().strip() if domain else None
    entity_type = (
        EntityType.SUBSIDIARY
        if any(marker in normalized for marker in _SUBSIDIARY_MARKERS)
        else None
    )

    best: SupplierMatch | None = None
    for supplier in KNOWN_SUPPLIERS:
        patterns = [normalize_supplier_name(p) for p in supplier.patterns]
        confidence = max(name_similarity(normalized, p) for p in patterns)
        fields = ["name"] if confidence > 0 else []

        if normalized_domain and any(d in normalized_domain for d in supplier.domains):
            confidence = 1.0
            fields.append("domain")
        if normalized in patterns:
            confidence = 1.0

        if confidence > min_confidence and (best is None or confidence > best.match_confidence):
            best = SupplierMatch(
                is_known_supplier=True,
                supplier_code=supplier.code,
                match_confidence=round(confidence, 4),
                matched_fields=tuple(fields),
                requires_manual_review=confidence < review_threshold,
                entity_type=entity_type,
                default_hsn=supplier.default_hsn,
                service_category=supplier.service_category,
            )

    return best or SupplierMatch(is_known_supplier=False)


def get_foreign_supplier_defaults(
    supplier_code: str | None,
    entity_country: str | None = None,
    service_type_hint: str | None = None,
) -> SupplierDefaults:
    """
    Default SAC, currency and billing country for a supplier.

    Irish and Luxembourg entities bill in EUR; Singapore entities keep USD
    but bill from Singapore.  Unknown suppliers fall back to "other
    professional services" (998319) unless a service-type hint says better,
    and are always flagged for manual review.
    """
    supplier = _BY_CODE.get(supplier_code or "")
    if supplier is not None:
        currency = supplier.default_currency
        billing_country = supplier.billing_country
        country = (entity_country or "").upper()
        if country in ("IRELAND", "LUXEMBOURG"):
            currency, billing_country = "EUR", country
        elif country == "SINGAPORE":
            billing_country = country
        return SupplierDefaults(
            default_hsn=supplier.default_hsn,
            default_gst_rate=supplier.default_gst_rate,
            service_category=supplier.service_category,
            description=supplier.description,
            default_currency=currency,
            billing_country=billing_country,
            supported_currencies=supplier.supported_currencies,
            supported_services=supplier.supported_services,
        )

    category, hsn, description = _HINT_DEFAULTS.get(
        (service_type_hint or "").upper(),
        ("OTHER", UNKNOWN_SUPPLIER_HSN, "Other professional/technical services"),
    )
    return SupplierDefaults(
        default_hsn=hsn,
        default_gst_rate=18,
        service_category=category,
        description=description,
        default_currency="USD",
        billing_country="UNKNOWN",
        requires_manual_review=True,
    )
