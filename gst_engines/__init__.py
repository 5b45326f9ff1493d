"""
Module: gst_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    reverse-charge and input-tax-credit engines.  This is the import
    surface for ``gst_modules``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import gst_kernel (domain values, exceptions, logging) and
    sibling engine modules.  MUST NOT import gst_modules or gst_kernel.db.

Invariants enforced:
    - Purity: engines never read the system clock.  Every reference date
      (``as_of``) is an explicit parameter supplied by the caller.
    - Decimal-only arithmetic; floats are rejected at the boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` and emit
    GST_ENGINE_TRACE records carrying an input fingerprint.

Usage:
    from gst_engines import detect_rcm, calculate_tax, determine_eligibility
    from gst_engines import CreditLedger, track_utilization
"""

from gst_kernel.logging_config import get_logger

logger = get_logger("engines")

from gst_engines.codes import (
    CodeType,
    codes_overlap,
    get_code_type,
    match_code_pattern,
    normalize_code,
    validate_hsn_code,
    validate_sac_code,
)
from gst_engines.compliance import (
    ComplianceRecord,
    FilingFrequency,
    OverdueCategory,
    PaymentMode,
    PaymentStatus,
    RCMLiability,
    RCMPayment,
    calculate_interest,
    calculate_late_fee,
    check_overdue_status,
    check_self_invoice_due,
    determine_payment_due_date,
    generate_challan_number,
    get_rcm_due_date,
    gstr3b_table_mapping,
    quarterly_summary,
    reconcile_payments,
    self_invoice_number,
    track_payment_status,
    validate_challan_number,
    validate_rcm_payment,
)
from gst_engines.detection import (
    DetectionInput,
    DetectionResult,
    RCMType,
    detect_rcm,
    determine_tax_type,
    is_valid_gstin,
)
from gst_engines.eligibility import (
    EligibilityRequest,
    EligibilityResult,
    ExpenseCategory,
    ITCDeadlineStatus,
    Usage,
    check_blocked_categories,
    determine_eligibility,
    itc_claim_deadline,
    itc_deadline_status,
)
from gst_engines.foreign_suppliers import (
    SupplierMatch,
    detect_known_supplier,
    get_foreign_supplier_defaults,
)
from gst_engines.gstr3b import (
    GSTR3BReport,
    ITCClass,
    ITCItem,
    RCMSupply,
    build_gstr3b_report,
    get_return_period,
    reconcile_with_books,
    report_from_filing_json,
    to_filing_json,
    validate_gstr3b,
)
from gst_engines.ledger import (
    CreditLedger,
    CreditLedgerEntry,
    LedgerEntryType,
    UtilizationResult,
    calculate_itc_balance,
    track_utilization,
)
from gst_engines.reconciliation import (
    ComplianceViolation,
    GSTR2BEntry,
    GSTR2BMatchResult,
    ITCClaim,
    ITCReconciliationResult,
    ViolationKind,
    match_with_third_party_data,
    process_monthly_itc,
    reconcile_itc_with_payments,
)
from gst_engines.registry import NotifiedRule, NotifiedRuleRegistry, RuleKind, match_rule
from gst_engines.tax import TaxInput, TaxResult, TaxType, calculate_tax, calculate_tax_for_line_items
from gst_engines.tracer import traced_engine

__all__ = [
    "CodeType",
    "ComplianceRecord",
    "ComplianceViolation",
    "CreditLedger",
    "CreditLedgerEntry",
    "DetectionInput",
    "DetectionResult",
    "EligibilityRequest",
    "EligibilityResult",
    "ExpenseCategory",
    "FilingFrequency",
    "GSTR2BEntry",
    "GSTR2BMatchResult",
    "GSTR3BReport",
    "ITCClaim",
    "ITCClass",
    "ITCDeadlineStatus",
    "ITCItem",
    "ITCReconciliationResult",
    "LedgerEntryType",
    "NotifiedRule",
    "NotifiedRuleRegistry",
    "OverdueCategory",
    "PaymentMode",
    "PaymentStatus",
    "RCMLiability",
    "RCMPayment",
    "RCMSupply",
    "RCMType",
    "RuleKind",
    "SupplierMatch",
    "TaxInput",
    "TaxResult",
    "TaxType",
    "Usage",
    "UtilizationResult",
    "ViolationKind",
    "build_gstr3b_report",
    "calculate_interest",
    "calculate_itc_balance",
    "calculate_late_fee",
    "calculate_tax",
    "calculate_tax_for_line_items",
    "check_blocked_categories",
    "check_overdue_status",
    "check_self_invoice_due",
    "codes_overlap",
    "detect_known_supplier",
    "detect_rcm",
    "determine_eligibility",
    "determine_payment_due_date",
    "determine_tax_type",
    "generate_challan_number",
    "get_code_type",
    "get_foreign_supplier_defaults",
    "get_rcm_due_date",
    "get_return_period",
    "gstr3b_table_mapping",
    "is_valid_gstin",
    "itc_claim_deadline",
    "itc_deadline_status",
    "match_code_pattern",
    "match_rule",
    "match_with_third_party_data",
    "normalize_code",
    "process_monthly_itc",
    "quarterly_summary",
    "reconcile_itc_with_payments",
    "reconcile_payments",
    "reconcile_with_books",
    "report_from_filing_json",
    "self_invoice_number",
    "to_filing_json",
    "track_payment_status",
    "track_utilization",
    "traced_engine",
    "validate_challan_number",
    "validate_gstr3b",
    "validate_hsn_code",
    "validate_rcm_payment",
    "validate_sac_code",
]
