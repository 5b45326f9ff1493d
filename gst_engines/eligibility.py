"""
Module: gst_engines.eligibility
Responsibility:
    Decide how much input tax credit a taxed inward supply yields.  Runs the
    fixed pipeline of Section 17(5) blocked categories, business purpose,
    the Section 16(4) time limit, reverse-charge conditions, reversal
    triggers, reclaim and proportionate (Rule 42/43) apportionment.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumes a ``TaxHeads``
    split produced by ``gst_engines.tax``; its result drives ledger CREDIT
    and REVERSAL entries posted by ``gst_modules.rcm``.

Invariants enforced:
    - The pipeline order is fixed and stops at the first disqualification.
    - A disqualified result has eligible amount 0 and the whole credit as
      blocked, with the reason recorded.  Nothing is raised.
    - Reverse-charge liability is still reported (table 3.1(d)) when the
      credit itself is blocked.
    - ``itc_claim_deadline`` is the single time-limit rule; every caller
      (eligibility, deadline status, monthly processing) goes through it.
    - The eligible split is proportional to the original head split.

Failure modes:
    - None for business outcomes.  ValueError only for malformed inputs
      such as a negative business-use percentage.

Audit relevance:
    Each result carries the statutory section, disqualifying reason and the
    claim deadline it was judged against, so a claim can be defended (or
    re-run) from the stored result alone.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from gst_engines.detection import RCMType
from gst_engines.periods import financial_year_label, financial_year_start, return_period_label
from gst_engines.tracer import traced_engine
from gst_kernel.domain.values import ZERO, TaxHeads, round_paise, to_decimal
from gst_kernel.logging_config import get_logger

logger = get_logger("engines.eligibility")

HUNDRED = Decimal("100")
NON_PAYMENT_REVERSAL_DAYS = 180
ITC_DEADLINE_MONTH = 11
ITC_DEADLINE_DAY = 30

RCM_ITC_TABLE = "4(A)(3)"
OTHER_ITC_TABLE = "4(A)(5)"
RCM_LIABILITY_TABLE = "3.1(d)"


class ExpenseCategory(str, Enum):
    MOTOR_VEHICLE = "MOTOR_VEHICLE"
    FOOD_BEVERAGES = "FOOD_BEVERAGES"
    MEMBERSHIP = "MEMBERSHIP"
    CONSTRUCTION = "CONSTRUCTION"
    GENERAL_GOODS = "GENERAL_GOODS"
    CSR_EXPENSE = "CSR_EXPENSE"
    INSURANCE = "INSURANCE"
    COMMON_CREDIT = "COMMON_CREDIT"
    SERVICES = "SERVICES"
    OTHER = "OTHER"


class Usage(str, Enum):
    BUSINESS = "BUSINESS"
    PERSONAL = "PERSONAL"
    MIXED = "MIXED"
    CSR_ACTIVITY = "CSR_ACTIVITY"
    TAXI_SERVICE = "TAXI_SERVICE"
    PASSENGER_TRANSPORT = "PASSENGER_TRANSPORT"
    GOODS_TRANSPORT = "GOODS_TRANSPORT"
    TRAINING_SCHOOL = "TRAINING_SCHOOL"
    LEGAL_REQUIREMENT = "LEGAL_REQUIREMENT"
    OUTWARD_SUPPLY = "OUTWARD_SUPPLY"
    RENTAL_BUSINESS = "RENTAL_BUSINESS"


class MembershipType(str, Enum):
    CLUB = "CLUB"
    HEALTH_CLUB = "HEALTH_CLUB"
    FITNESS_CENTER = "FITNESS_CENTER"
    PROFESSIONAL_BODY = "PROFESSIONAL_BODY"


class ConstructionType(str, Enum):
    IMMOVABLE_PROPERTY = "IMMOVABLE_PROPERTY"
    REPAIRS = "REPAIRS"


class GoodsStatus(str, Enum):
    IN_USE = "IN_USE"
    LOST = "LOST"
    STOLEN = "STOLEN"
    DESTROYED = "DESTROYED"
    WRITTEN_OFF = "WRITTEN_OFF"


class InsuranceType(str, Enum):
    HEALTH = "HEALTH"
    LIFE = "LIFE"
    GENERAL = "GENERAL"


class InvoicePaymentStatus(str, Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"


class SupplierStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class ReversalReason(str, Enum):
    NON_PAYMENT_180_DAYS = "NON_PAYMENT_180_DAYS"
    SUPPLIER_REGISTRATION_CANCELLED = "SUPPLIER_REGISTRATION_CANCELLED"


class ProportionateRule(str, Enum):
    PROPORTIONATE = "PROPORTIONATE"
    RULE_42 = "RULE_42"
    RULE_43 = "RULE_43"


_TRANSPORT_USAGES = frozenset({
    Usage.TAXI_SERVICE,
    Usage.PASSENGER_TRANSPORT,
    Usage.GOODS_TRANSPORT,
    Usage.TRAINING_SCHOOL,
})
_BLOCKED_MEMBERSHIPS = frozenset({
    MembershipType.CLUB,
    MembershipType.HEALTH_CLUB,
    MembershipType.FITNESS_CENTER,
})
_WRITTEN_OFF_STATUSES = frozenset({
    GoodsStatus.LOST,
    GoodsStatus.STOLEN,
    GoodsStatus.DESTROYED,
    GoodsStatus.WRITTEN_OFF,
})
_NON_BUSINESS_USAGES = frozenset({Usage.PERSONAL, Usage.CSR_ACTIVITY})


@dataclass(frozen=True)
class PriorReversal:
    """A reversal already posted for this credit."""

    reason: ReversalReason
    amount: Decimal
    reversal_date: date


@dataclass(frozen=True)
class EligibilityRequest:
    """Everything the pipeline needs to judge one credit."""

    category: ExpenseCategory
    tax: TaxHeads
    usage: Usage = Usage.BUSINESS
    transaction_id: str | None = None
    business_use_percentage: Decimal | None = None

    # category details
    seating_capacity: int | None = None
    membership_type: MembershipType | None = None
    construction_type: ConstructionType | None = None
    is_plant_or_machinery: bool = False
    is_capital_good: bool = False
    goods_status: GoodsStatus = GoodsStatus.IN_USE
    insurance_type: InsuranceType | None = None
    is_statutory_insurance: bool = False
    legal_mandate_reference: str | None = None

    # reverse charge
    is_rcm: bool = False
    rcm_type: RCMType | None = None
    liability_paid_in_cash: bool = True
    gta_without_itc: bool = False

    # dates and payment
    invoice_date: date | None = None
    self_invoice_date: date | None = None
    payment_status: InvoicePaymentStatus | None = None
    payment_date: date | None = None
    days_since_invoice: int | None = None
    supplier_status: SupplierStatus = SupplierStatus.ACTIVE
    previous_reversal: PriorReversal | None = None

    # Rule 42/43
    taxable_supplies: Decimal | None = None
    total_supplies: Decimal | None = None

    @property
    def total_itc(self) -> Decimal:
        return self.tax.total

    @property
    def claim_basis_date(self) -> date | None:
        """Self-invoice date when present, else the supplier invoice date."""
        return self.self_invoice_date or self.invoice_date


@dataclass(frozen=True)
class BlockedCategoryCheck:
    is_blocked: bool
    section: str | None = None
    reason: str | None = None
    exception_reason: str | None = None


@dataclass(frozen=True)
class TimeLimitCheck:
    is_within_time_limit: bool
    deadline: date | None = None
    days_remaining: int | None = None
    financial_year: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ProportionateResult:
    eligible_amount: Decimal
    blocked_amount: Decimal
    eligible_heads: TaxHeads
    rule: ProportionateRule | None = None


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of one eligibility evaluation.  Superseded, never mutated."""

    is_eligible: bool
    total_itc: Decimal
    eligible_amount: Decimal
    blocked_amount: Decimal
    eligible_heads: TaxHeads
    eligibility_percentage: Decimal
    blocked_category: ExpenseCategory | None = None
    section: str | None = None
    ineligible_reason: str | None = None
    exception_reason: str | None = None
    reversal_required: bool = False
    reversal_reason: ReversalReason | None = None
    reversal_amount: Decimal = ZERO
    reclaim_eligible: bool = False
    reclaim_amount: Decimal = ZERO
    reclaim_period: str | None = None
    proportionate_rule: ProportionateRule | None = None
    gstr3b_table: str | None = None
    liability_table: str | None = None
    claim_deadline: date | None = None
    compliance_requirements: tuple[str, ...] = ()
    compliance_notes: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Time limit
# ---------------------------------------------------------------------------


def itc_claim_deadline(basis_date: date) -> date:
    """
    Last day to claim credit for a document dated ``basis_date``.

    30 November of the calendar year after the start year of the document's
    financial year.  The deadline itself is still within time.
    """
    return date(financial_year_start(basis_date) + 1, ITC_DEADLINE_MONTH, ITC_DEADLINE_DAY)


def check_time_limit(request: EligibilityRequest, as_of: date) -> TimeLimitCheck:
    basis = request.claim_basis_date
    if basis is None:
        return TimeLimitCheck(is_within_time_limit=True)

    deadline = itc_claim_deadline(basis)
    within = as_of <= deadline
    return TimeLimitCheck(
        is_within_time_limit=within,
        deadline=deadline,
        days_remaining=(deadline - as_of).days if within else 0,
        financial_year=financial_year_label(basis),
        reason=None if within else "Time limit expired under Section 16(4)",
    )


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


def check_blocked_categories(request: EligibilityRequest) -> BlockedCategoryCheck:
    """Section 17(5) blocked credits, with the statutory exceptions."""
    category = request.category

    if category == ExpenseCategory.MOTOR_VEHICLE:
        if request.seating_capacity is not None and request.seating_capacity <= 13:
            if request.usage in _TRANSPORT_USAGES:
                return BlockedCategoryCheck(
                    is_blocked=False,
                    exception_reason="Used for taxable supply of transport or training",
                )
            return BlockedCategoryCheck(
                is_blocked=True,
                section="Section 17(5)(a)",
                reason="Motor vehicle with seating <= 13 - Section 17(5)(a)",
            )

    elif category == ExpenseCategory.FOOD_BEVERAGES:
        if request.usage == Usage.LEGAL_REQUIREMENT and request.legal_mandate_reference:
            return BlockedCategoryCheck(
                is_blocked=False,
                exception_reason=f"Legally required under {request.legal_mandate_reference}",
            )
        if request.usage == Usage.OUTWARD_SUPPLY:
            return BlockedCategoryCheck(
                is_blocked=False,
                exception_reason="Used for making outward taxable supply",
            )
        return BlockedCategoryCheck(
            is_blocked=True,
            section="Section 17(5)(b)",
            reason="Food and beverages - Section 17(5)(b)",
        )

    elif category == ExpenseCategory.MEMBERSHIP:
        if request.membership_type in _BLOCKED_MEMBERSHIPS:
            return BlockedCategoryCheck(
                is_blocked=True,
                section="Section 17(5)(c)",
                reason="Club/health membership - Section 17(5)(c)",
            )

    elif category == ExpenseCategory.CONSTRUCTION:
        if request.construction_type == ConstructionType.IMMOVABLE_PROPERTY:
            if request.is_plant_or_machinery or request.usage == Usage.RENTAL_BUSINESS:
                return BlockedCategoryCheck(
                    is_blocked=False,
                    exception_reason="Qualifies as plant and machinery for business",
                )
            return BlockedCategoryCheck(
                is_blocked=True,
                section="Section 17(5)(d)",
                reason="Construction of immovable property - Section 17(5)(d)",
            )

    elif category == ExpenseCategory.GENERAL_GOODS:
        if request.goods_status in _WRITTEN_OFF_STATUSES:
            return BlockedCategoryCheck(
                is_blocked=True,
                section="Section 17(5)(f)",
                reason="Lost/stolen/destroyed goods - Section 17(5)(f)",
            )
        if request.usage == Usage.PERSONAL or _is_zero_business_use(request):
            return BlockedCategoryCheck(
                is_blocked=True,
                section="Section 17(5)(e)",
                reason="Personal use - Section 17(5)(e)",
            )

    elif category == ExpenseCategory.CSR_EXPENSE:
        return BlockedCategoryCheck(
            is_blocked=True,
            section="Section 17(5)",
            reason="CSR activities - Blocked under GST",
        )

    elif category == ExpenseCategory.INSURANCE:
        if request.insurance_type in (InsuranceType.HEALTH, InsuranceType.LIFE):
            if request.is_statutory_insurance:
                return BlockedCategoryCheck(
                    is_blocked=False,
                    exception_reason="Insurance obligatory under a statute",
                )
            kind = request.insurance_type.value.lower()
            return BlockedCategoryCheck(
                is_blocked=True,
                section="Section 17(5)(b)",
                reason=f"{kind.capitalize()} insurance - Section 17(5)(b)",
            )

    return BlockedCategoryCheck(is_blocked=False)


def _is_zero_business_use(request: EligibilityRequest) -> bool:
    pct = request.business_use_percentage
    return pct is not None and to_decimal(pct) == ZERO


def validate_business_purpose(request: EligibilityRequest) -> bool:
    """False for personal or CSR usage, or a 0% business-use share."""
    if request.usage in _NON_BUSINESS_USAGES:
        return False
    return not _is_zero_business_use(request)


def _supply_ratio(request: EligibilityRequest) -> Decimal | None:
    if not request.taxable_supplies or not request.total_supplies:
        return None
    total_supplies = to_decimal(request.total_supplies)
    if total_supplies <= ZERO:
        return None
    return to_decimal(request.taxable_supplies) / total_supplies


def apply_proportionate_rule(request: EligibilityRequest) -> ProportionateResult:
    """
    Apportion the credit between business and non-business use.

    MIXED usage applies the business-use percentage.  Rule 42 (common
    credit) and Rule 43 (capital goods) apply taxable / total supplies;
    Rule 43 rounds the eligible and reversed amounts to two decimals on
    their own.  With no rule applicable the full credit is eligible.
    """
    total = request.total_itc
    pct = request.business_use_percentage

    if request.usage == Usage.MIXED and pct:
        pct = to_decimal(pct)
        if pct < ZERO or pct > HUNDRED:
            raise ValueError(f"Business use percentage must be within 0-100, got {pct}")
        heads = request.tax.scaled(pct / HUNDRED)
        return ProportionateResult(
            eligible_amount=heads.total,
            blocked_amount=total - heads.total,
            eligible_heads=heads,
            rule=ProportionateRule.PROPORTIONATE,
        )

    ratio = _supply_ratio(request)
    if ratio is not None and request.category == ExpenseCategory.COMMON_CREDIT:
        heads = request.tax.scaled(ratio)
        return ProportionateResult(
            eligible_amount=heads.total,
            blocked_amount=total - heads.total,
            eligible_heads=heads,
            rule=ProportionateRule.RULE_42,
        )

    if ratio is not None and request.is_capital_good:
        eligible = round_paise(total * ratio)
        reversed_amount = round_paise(total - eligible)
        heads = request.tax.apportioned(eligible)
        return ProportionateResult(
            eligible_amount=eligible,
            blocked_amount=reversed_amount,
            eligible_heads=heads,
            rule=ProportionateRule.RULE_43,
        )

    return ProportionateResult(
        eligible_amount=total,
        blocked_amount=ZERO,
        eligible_heads=request.tax,
    )


def _days_since_invoice(request: EligibilityRequest, as_of: date) -> int | None:
    if request.days_since_invoice is not None:
        return request.days_since_invoice
    if request.invoice_date is not None:
        return (as_of - request.invoice_date).days
    return None


def _reversal_trigger(
    request: EligibilityRequest,
    as_of: date,
    reversal_days: int = NON_PAYMENT_REVERSAL_DAYS,
) -> ReversalReason | None:
    if request.supplier_status == SupplierStatus.CANCELLED:
        return ReversalReason.SUPPLIER_REGISTRATION_CANCELLED
    days = _days_since_invoice(request, as_of)
    if (
        request.payment_status == InvoicePaymentStatus.UNPAID
        and days is not None
        and days > reversal_days
    ):
        return ReversalReason.NON_PAYMENT_180_DAYS
    return None


def _rcm_notes(request: EligibilityRequest) -> tuple[str, ...]:
    if request.rcm_type in (RCMType.NOTIFIED_SERVICE, RCMType.NOTIFIED_GOODS):
        return ("Self-invoice required for notified supply",)
    if request.rcm_type == RCMType.IMPORT_SERVICE:
        return ("Import of services under RCM",)
    if request.rcm_type == RCMType.UNREGISTERED:
        return ("Supply from unregistered person under RCM",)
    return ()


def _disqualified(
    request: EligibilityRequest,
    reason: str,
    *,
    blocked: BlockedCategoryCheck | None = None,
    deadline: date | None = None,
) -> EligibilityResult:
    total = request.total_itc
    return EligibilityResult(
        is_eligible=False,
        total_itc=total,
        eligible_amount=ZERO,
        blocked_amount=total,
        eligible_heads=TaxHeads(),
        eligibility_percentage=ZERO,
        blocked_category=request.category if blocked else None,
        section=blocked.section if blocked else None,
        ineligible_reason=reason,
        liability_table=RCM_LIABILITY_TABLE if request.is_rcm else None,
        claim_deadline=deadline,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


@traced_engine("itc_eligibility", "1.0", fingerprint_fields=("request", "as_of"))
def determine_eligibility(
    request: EligibilityRequest,
    as_of: date,
    *,
    reversal_days: int = NON_PAYMENT_REVERSAL_DAYS,
) -> EligibilityResult:
    """
    Run the eligibility pipeline for one credit.

    Args:
        request: Taxed supply plus usage and payment facts.
        as_of: Reference date for the time limit and the 180-day test.
        reversal_days: Days an invoice may stay unpaid before its credit
            must be reversed (Rule 37).

    Returns:
        EligibilityResult; disqualification is reported, never raised.
    """
    t0 = time.monotonic()
    result = _evaluate(request, as_of, reversal_days)
    duration_ms = round((time.monotonic() - t0) * 1000, 2)

    logger.info("itc_eligibility_determined", extra={
        "transaction_id": request.transaction_id,
        "category": request.category.value,
        "is_eligible": result.is_eligible,
        "eligible_amount": str(result.eligible_amount),
        "blocked_amount": str(result.blocked_amount),
        "ineligible_reason": result.ineligible_reason,
        "reversal_required": result.reversal_required,
        "duration_ms": duration_ms,
    })
    return result


def _evaluate(
    request: EligibilityRequest,
    as_of: date,
    reversal_days: int = NON_PAYMENT_REVERSAL_DAYS,
) -> EligibilityResult:
    # 1. Section 17(5)
    blocked = check_blocked_categories(request)
    if blocked.is_blocked:
        return _disqualified(request, blocked.reason or "Blocked credit", blocked=blocked)

    # 2. business purpose
    if not validate_business_purpose(request):
        return _disqualified(request, "Used for non-business purpose")

    # 3. Section 16(4)
    time_limit = check_time_limit(request, as_of)
    if not time_limit.is_within_time_limit:
        return _disqualified(
            request, time_limit.reason or "Time barred", deadline=time_limit.deadline
        )

    # 4. reverse-charge conditions
    requirements: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()
    table = OTHER_ITC_TABLE
    if request.is_rcm:
        if request.gta_without_itc:
            return _disqualified(
                request, "GTA service without ITC option", deadline=time_limit.deadline
            )
        if not request.liability_paid_in_cash:
            return _disqualified(
                request,
                "RCM liability must be paid in cash, not through the credit ledger",
                deadline=time_limit.deadline,
            )
        requirements = ("Self-invoice required", "Payment in cash only")
        notes = _rcm_notes(request)
        table = RCM_ITC_TABLE

    # 7. apportionment, computed first so reversal and reclaim can use it
    proportionate = apply_proportionate_rule(request)

    # 5. reversal triggers
    reversal_reason = _reversal_trigger(request, as_of, reversal_days)

    # 6. reclaim
    reclaim_eligible = (
        request.previous_reversal is not None
        and request.payment_status == InvoicePaymentStatus.PAID
    )
    reclaim_amount = request.previous_reversal.amount if reclaim_eligible else ZERO
    reclaim_period = (
        return_period_label(request.payment_date)
        if reclaim_eligible and request.payment_date
        else None
    )

    total = request.total_itc
    eligible = proportionate.eligible_amount
    percentage = round_paise(eligible / total * HUNDRED) if total else ZERO

    return EligibilityResult(
        is_eligible=eligible > ZERO,
        total_itc=total,
        eligible_amount=eligible,
        blocked_amount=proportionate.blocked_amount,
        eligible_heads=proportionate.eligible_heads,
        eligibility_percentage=percentage,
        exception_reason=blocked.exception_reason,
        reversal_required=reversal_reason is not None,
        reversal_reason=reversal_reason,
        reversal_amount=eligible if reversal_reason is not None else ZERO,
        reclaim_eligible=reclaim_eligible,
        reclaim_amount=reclaim_amount,
        reclaim_period=reclaim_period,
        proportionate_rule=proportionate.rule,
        gstr3b_table=table,
        liability_table=RCM_LIABILITY_TABLE if request.is_rcm else None,
        claim_deadline=time_limit.deadline,
        compliance_requirements=requirements,
        compliance_notes=notes,
    )


# ---------------------------------------------------------------------------
# Deadline tracking
# ---------------------------------------------------------------------------


class DeadlineStatus(str, Enum):
    ACTIVE = "ACTIVE"
    WARNING = "WARNING"
    EXPIRED = "EXPIRED"


class WarningLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class ITCDeadlineStatus:
    financial_year: str
    deadline: date
    days_remaining: int
    is_expired: bool
    status: DeadlineStatus
    warning_level: WarningLevel | None = None


# (max days remaining, level, escalates to WARNING)
_WARNING_BANDS: tuple[tuple[int, WarningLevel, bool], ...] = (
    (30, WarningLevel.CRITICAL, True),
    (60, WarningLevel.HIGH, True),
    (90, WarningLevel.MEDIUM, True),
    (180, WarningLevel.LOW, False),
)


def itc_deadline_status(self_invoice_date: date, as_of: date) -> ITCDeadlineStatus:
    """
    How close a self-invoiced credit is to its Section 16(4) deadline.

    Claims inside 90 days are WARNING (CRITICAL/HIGH/MEDIUM); 91 to 180
    days stays ACTIVE with a LOW flag.  The deadline day is not expired.
    """
    deadline = itc_claim_deadline(self_invoice_date)
    fy = financial_year_label(self_invoice_date)
    if as_of > deadline:
        return ITCDeadlineStatus(
            financial_year=fy,
            deadline=deadline,
            days_remaining=0,
            is_expired=True,
            status=DeadlineStatus.EXPIRED,
        )

    days = (deadline - as_of).days
    for limit, level, escalates in _WARNING_BANDS:
        if days <= limit:
            return ITCDeadlineStatus(
                financial_year=fy,
                deadline=deadline,
                days_remaining=days,
                is_expired=False,
                status=DeadlineStatus.WARNING if escalates else DeadlineStatus.ACTIVE,
                warning_level=level,
            )
    return ITCDeadlineStatus(
        financial_year=fy,
        deadline=deadline,
        days_remaining=days,
        is_expired=False,
        status=DeadlineStatus.ACTIVE,
    )


@dataclass(frozen=True)
class ExpiringClaims:
    claim_ids: tuple[str, ...] = ()
    total_amount: Decimal = ZERO
    urgency: WarningLevel = WarningLevel.LOW
    statuses: dict[str, ITCDeadlineStatus] = field(default_factory=dict)


def find_expiring_claims(
    claims: list[tuple[str, date, Decimal]],
    as_of: date,
    within_days: int,
) -> ExpiringClaims:
    """
    Credits whose deadline falls within ``within_days`` of ``as_of``.

    ``claims`` is a list of (claim id, self-invoice date, amount).  Expired
    claims are excluded.
    """
    selected: list[str] = []
    total = ZERO
    statuses: dict[str, ITCDeadlineStatus] = {}
    for claim_id, basis, amount in claims:
        status = itc_deadline_status(basis, as_of)
        if status.is_expired or status.days_remaining > within_days:
            continue
        selected.append(claim_id)
        total += to_decimal(amount)
        statuses[claim_id] = status

    urgency = WarningLevel.LOW
    for limit, level, _ in _WARNING_BANDS[:3]:
        if within_days <= limit:
            urgency = level
            break

    return ExpiringClaims(
        claim_ids=tuple(selected),
        total_amount=total,
        urgency=urgency,
        statuses=statuses,
    )
