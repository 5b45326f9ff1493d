"""
Tests for the ITC eligibility pipeline.

Covers:
- Section 17(5) blocked categories and their exceptions
- Business-purpose check
- Section 16(4) time limit, including the 30 November boundary
- Reverse-charge conditions and GSTR-3B tables
- Reversal triggers and reclaim
- Proportionate apportionment (mixed use, Rule 42, Rule 43)
- Deadline tracking
"""

from datetime import date
from decimal import Decimal

import pytest

from gst_engines.detection import RCMType
from gst_engines.eligibility import (
    ConstructionType,
    DeadlineStatus,
    EligibilityRequest,
    ExpenseCategory,
    GoodsStatus,
    InsuranceType,
    InvoicePaymentStatus,
    MembershipType,
    PriorReversal,
    ProportionateRule,
    ReversalReason,
    SupplierStatus,
    Usage,
    WarningLevel,
    check_blocked_categories,
    determine_eligibility,
    find_expiring_claims,
    itc_claim_deadline,
    itc_deadline_status,
    validate_business_purpose,
)
from gst_kernel.domain.values import ZERO, TaxHeads

INTRA = TaxHeads(cgst=Decimal("900"), sgst=Decimal("900"))
INTER = TaxHeads(igst=Decimal("18000"))
AS_OF = date(2024, 6, 15)


def _request(category=ExpenseCategory.SERVICES, tax=INTRA, **kwargs) -> EligibilityRequest:
    return EligibilityRequest(category=category, tax=tax, **kwargs)


class TestBlockedCategories:

    def test_personal_motor_vehicle_is_blocked(self):
        result = determine_eligibility(
            _request(ExpenseCategory.MOTOR_VEHICLE, seating_capacity=7, usage=Usage.PERSONAL),
            AS_OF,
        )

        assert not result.is_eligible
        assert result.section == "Section 17(5)(a)"
        assert result.eligible_amount == ZERO
        assert result.blocked_amount == Decimal("1800")
        assert result.blocked_category == ExpenseCategory.MOTOR_VEHICLE
        assert result.eligible_heads.is_zero

    def test_motor_vehicle_used_as_taxi(self):
        check = check_blocked_categories(
            _request(ExpenseCategory.MOTOR_VEHICLE, seating_capacity=7, usage=Usage.TAXI_SERVICE)
        )

        assert not check.is_blocked
        assert check.exception_reason == "Used for taxable supply of transport or training"

    def test_large_vehicle_not_blocked(self):
        check = check_blocked_categories(_request(ExpenseCategory.MOTOR_VEHICLE, seating_capacity=20))

        assert not check.is_blocked

    def test_food_blocked_unless_legally_required(self):
        blocked = check_blocked_categories(_request(ExpenseCategory.FOOD_BEVERAGES))
        allowed = check_blocked_categories(_request(
            ExpenseCategory.FOOD_BEVERAGES,
            usage=Usage.LEGAL_REQUIREMENT,
            legal_mandate_reference="Factories Act s.46",
        ))

        assert blocked.section == "Section 17(5)(b)"
        assert not allowed.is_blocked
        assert "Factories Act" in allowed.exception_reason

    @pytest.mark.parametrize(
        "membership,blocked",
        [(MembershipType.CLUB, True), (MembershipType.FITNESS_CENTER, True),
         (MembershipType.PROFESSIONAL_BODY, False)],
    )
    def test_memberships(self, membership, blocked):
        check = check_blocked_categories(_request(ExpenseCategory.MEMBERSHIP, membership_type=membership))

        assert check.is_blocked is blocked

    def test_construction(self):
        blocked = check_blocked_categories(_request(
            ExpenseCategory.CONSTRUCTION, construction_type=ConstructionType.IMMOVABLE_PROPERTY,
        ))
        machinery = check_blocked_categories(_request(
            ExpenseCategory.CONSTRUCTION,
            construction_type=ConstructionType.IMMOVABLE_PROPERTY,
            is_plant_or_machinery=True,
        ))

        assert blocked.section == "Section 17(5)(d)"
        assert not machinery.is_blocked

    def test_stolen_goods(self):
        check = check_blocked_categories(
            _request(ExpenseCategory.GENERAL_GOODS, goods_status=GoodsStatus.STOLEN)
        )

        assert check.section == "Section 17(5)(f)"

    def test_goods_with_zero_business_use(self):
        check = check_blocked_categories(
            _request(ExpenseCategory.GENERAL_GOODS, business_use_percentage=Decimal("0"))
        )

        assert check.section == "Section 17(5)(e)"

    def test_csr_always_blocked(self):
        assert check_blocked_categories(_request(ExpenseCategory.CSR_EXPENSE)).is_blocked

    def test_insurance(self):
        health = check_blocked_categories(
            _request(ExpenseCategory.INSURANCE, insurance_type=InsuranceType.HEALTH)
        )
        statutory = check_blocked_categories(_request(
            ExpenseCategory.INSURANCE, insurance_type=InsuranceType.LIFE, is_statutory_insurance=True,
        ))
        general = check_blocked_categories(
            _request(ExpenseCategory.INSURANCE, insurance_type=InsuranceType.GENERAL)
        )

        assert health.reason == "Health insurance - Section 17(5)(b)"
        assert not statutory.is_blocked
        assert not general.is_blocked


class TestBusinessPurpose:

    def test_personal_services(self):
        result = determine_eligibility(_request(usage=Usage.PERSONAL), AS_OF)

        assert result.ineligible_reason == "Used for non-business purpose"
        assert result.section is None

    def test_business_use(self):
        assert validate_business_purpose(_request())
        assert not validate_business_purpose(_request(usage=Usage.CSR_ACTIVITY))


class TestTimeLimit:

    def test_deadline_is_november_after_financial_year(self):
        assert itc_claim_deadline(date(2024, 3, 31)) == date(2024, 11, 30)
        assert itc_claim_deadline(date(2024, 4, 1)) == date(2025, 11, 30)

    def test_last_day_is_within_time(self):
        result = determine_eligibility(_request(invoice_date=date(2024, 3, 31)), date(2024, 11, 30))

        assert result.is_eligible
        assert result.claim_deadline == date(2024, 11, 30)

    def test_day_after_is_time_barred(self):
        result = determine_eligibility(_request(invoice_date=date(2024, 3, 31)), date(2024, 12, 1))

        assert not result.is_eligible
        assert result.ineligible_reason == "Time limit expired under Section 16(4)"
        assert result.blocked_amount == Decimal("1800")

    def test_self_invoice_date_takes_precedence(self):
        result = determine_eligibility(
            _request(invoice_date=date(2024, 3, 20), self_invoice_date=date(2024, 4, 2)),
            date(2024, 12, 1),
        )

        assert result.is_eligible
        assert result.claim_deadline == date(2025, 11, 30)


class TestReverseCharge:

    def test_rcm_credit_reported_in_rcm_tables(self):
        result = determine_eligibility(
            _request(tax=INTER, is_rcm=True, rcm_type=RCMType.NOTIFIED_SERVICE), AS_OF
        )

        assert result.is_eligible
        assert result.eligible_amount == Decimal("18000")
        assert result.gstr3b_table == "4(A)(3)"
        assert result.liability_table == "3.1(d)"
        assert "Payment in cash only" in result.compliance_requirements
        assert result.compliance_notes == ("Self-invoice required for notified supply",)

    def test_non_cash_payment_disqualifies(self):
        result = determine_eligibility(
            _request(is_rcm=True, rcm_type=RCMType.UNREGISTERED, liability_paid_in_cash=False), AS_OF
        )

        assert not result.is_eligible
        assert "paid in cash" in result.ineligible_reason
        assert result.liability_table == "3.1(d)"

    def test_gta_without_itc_option(self):
        result = determine_eligibility(_request(is_rcm=True, gta_without_itc=True), AS_OF)

        assert result.ineligible_reason == "GTA service without ITC option"

    def test_blocked_rcm_still_reports_liability(self):
        result = determine_eligibility(
            _request(ExpenseCategory.CSR_EXPENSE, is_rcm=True, rcm_type=RCMType.IMPORT_SERVICE), AS_OF
        )

        assert not result.is_eligible
        assert result.liability_table == "3.1(d)"
        assert result.gstr3b_table is None

    def test_forward_charge_table(self):
        result = determine_eligibility(_request(), AS_OF)

        assert result.gstr3b_table == "4(A)(5)"
        assert result.liability_table is None
        assert result.eligibility_percentage == Decimal("100.00")


class TestReversal:

    def test_unpaid_beyond_180_days(self):
        result = determine_eligibility(
            _request(payment_status=InvoicePaymentStatus.UNPAID, days_since_invoice=181), AS_OF
        )

        assert result.is_eligible
        assert result.reversal_required
        assert result.reversal_reason == ReversalReason.NON_PAYMENT_180_DAYS
        assert result.reversal_amount == Decimal("1800")

    def test_exactly_180_days_is_not_reversed(self):
        result = determine_eligibility(
            _request(payment_status=InvoicePaymentStatus.UNPAID, days_since_invoice=180), AS_OF
        )

        assert not result.reversal_required
        assert result.reversal_amount == ZERO

    def test_days_derived_from_invoice_date(self):
        result = determine_eligibility(
            _request(payment_status=InvoicePaymentStatus.UNPAID, invoice_date=date(2024, 1, 1)),
            date(2024, 7, 1),
        )

        assert result.reversal_required

    def test_reversal_window_is_configurable(self):
        result = determine_eligibility(
            _request(payment_status=InvoicePaymentStatus.UNPAID, days_since_invoice=31),
            AS_OF,
            reversal_days=30,
        )

        assert result.reversal_required

    def test_cancelled_supplier(self):
        result = determine_eligibility(_request(supplier_status=SupplierStatus.CANCELLED), AS_OF)

        assert result.reversal_reason == ReversalReason.SUPPLIER_REGISTRATION_CANCELLED

    def test_reclaim_after_payment(self):
        result = determine_eligibility(
            _request(
                payment_status=InvoicePaymentStatus.PAID,
                payment_date=date(2024, 8, 10),
                previous_reversal=PriorReversal(
                    reason=ReversalReason.NON_PAYMENT_180_DAYS,
                    amount=Decimal("1800"),
                    reversal_date=date(2024, 7, 1),
                ),
            ),
            AS_OF,
        )

        assert result.reclaim_eligible
        assert result.reclaim_amount == Decimal("1800")
        assert result.reclaim_period == "08-2024"


class TestProportionate:

    def test_mixed_use_percentage(self):
        result = determine_eligibility(
            _request(usage=Usage.MIXED, business_use_percentage=Decimal("60")), AS_OF
        )

        assert result.eligible_amount == Decimal("1080")
        assert result.blocked_amount == Decimal("720")
        assert result.eligible_heads.cgst == result.eligible_heads.sgst
        assert result.proportionate_rule == ProportionateRule.PROPORTIONATE
        assert result.eligibility_percentage == Decimal("60.00")

    def test_invalid_percentage(self):
        with pytest.raises(ValueError, match="0-100"):
            determine_eligibility(
                _request(usage=Usage.MIXED, business_use_percentage=Decimal("120")), AS_OF
            )

    def test_rule_42_common_credit(self):
        result = determine_eligibility(
            _request(
                ExpenseCategory.COMMON_CREDIT,
                tax=INTER,
                taxable_supplies=Decimal("800000"),
                total_supplies=Decimal("1000000"),
            ),
            AS_OF,
        )

        assert result.eligible_amount == Decimal("14400")
        assert result.blocked_amount == Decimal("3600")
        assert result.proportionate_rule == ProportionateRule.RULE_42

    def test_rule_43_capital_goods_rounds_to_paise(self):
        result = determine_eligibility(
            _request(
                tax=TaxHeads(igst=Decimal("1000")),
                is_capital_good=True,
                taxable_supplies=Decimal("1"),
                total_supplies=Decimal("3"),
            ),
            AS_OF,
        )

        assert result.eligible_amount == Decimal("333.33")
        assert result.blocked_amount == Decimal("666.67")
        assert result.eligible_heads.igst == Decimal("333.33")
        assert result.proportionate_rule == ProportionateRule.RULE_43

    def test_rule_43_heads_add_up_to_eligible_amount(self):
        result = determine_eligibility(
            _request(
                tax=TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000")),
                is_capital_good=True,
                taxable_supplies=Decimal("1"),
                total_supplies=Decimal("7"),
            ),
            AS_OF,
        )

        assert result.eligible_amount == Decimal("2571.43")
        assert result.eligible_heads.total == result.eligible_amount
        assert abs(result.eligible_heads.cgst - result.eligible_heads.sgst) == Decimal("0.01")
        assert result.blocked_amount == Decimal("15428.57")

    def test_no_rule_gives_full_credit(self):
        result = determine_eligibility(_request(), AS_OF)

        assert result.eligible_heads == INTRA
        assert result.proportionate_rule is None


class TestDeadlineStatus:

    @pytest.mark.parametrize(
        "as_of,status,level",
        [
            (date(2025, 11, 30), DeadlineStatus.WARNING, WarningLevel.CRITICAL),
            (date(2025, 10, 16), DeadlineStatus.WARNING, WarningLevel.HIGH),
            (date(2025, 9, 16), DeadlineStatus.WARNING, WarningLevel.MEDIUM),
            (date(2025, 8, 1), DeadlineStatus.ACTIVE, WarningLevel.LOW),
            (date(2025, 1, 1), DeadlineStatus.ACTIVE, None),
        ],
    )
    def test_bands(self, as_of, status, level):
        result = itc_deadline_status(date(2024, 4, 10), as_of)

        assert result.status == status
        assert result.warning_level == level
        assert result.financial_year == "2024-25"

    def test_expired(self):
        result = itc_deadline_status(date(2024, 4, 10), date(2025, 12, 1))

        assert result.is_expired
        assert result.status == DeadlineStatus.EXPIRED
        assert result.days_remaining == 0

    def test_find_expiring_claims(self):
        claims = [
            ("soon", date(2024, 4, 10), Decimal("1000")),
            ("later", date(2025, 5, 1), Decimal("500")),
            ("gone", date(2023, 5, 1), Decimal("700")),
        ]

        result = find_expiring_claims(claims, date(2025, 11, 1), within_days=30)

        assert result.claim_ids == ("soon",)
        assert result.total_amount == Decimal("1000")
        assert result.urgency == WarningLevel.CRITICAL
        assert result.statuses["soon"].days_remaining == 29

    def test_wide_window_has_low_urgency(self):
        result = find_expiring_claims([], date(2025, 11, 1), within_days=120)

        assert result.urgency == WarningLevel.LOW
        assert result.claim_ids == ()
