"""
Tests for RCM payment compliance.

Covers:
- Due dates for monthly and quarterly filers
- Overdue categories and Section 50 interest
- Challan numbers and payment validation
- Payment status tracking with partial and late payments
- Late fees, payment reconciliation
- Self-invoice numbering and timing
- GSTR-3B mapping and quarterly summaries
"""

from datetime import date
from decimal import Decimal

import pytest

from gst_engines.compliance import (
    FilingFrequency,
    OverdueCategory,
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
    self_invoice_deadline,
    self_invoice_number,
    self_invoice_number_for,
    state_code,
    track_payment_status,
    validate_challan_number,
    validate_rcm_payment,
)
from gst_engines.detection import RCMType
from gst_engines.eligibility import WarningLevel
from gst_kernel.domain.values import ZERO
from gst_kernel.exceptions import ValidationError

CHALLAN = "CHAL29-20240610-000001"


def _payment(amount="18000", payment_date=date(2024, 6, 10), mode="CASH", **kwargs) -> RCMPayment:
    return RCMPayment(
        transaction_id=kwargs.pop("transaction_id", "TX-1"),
        payment_date=payment_date,
        amount=Decimal(amount),
        payment_mode=mode,
        challan_number=kwargs.pop("challan_number", CHALLAN),
        **kwargs,
    )


LIABILITY = RCMLiability(
    transaction_id="TX-1",
    transaction_date=date(2024, 5, 15),
    taxable_amount=Decimal("100000"),
    tax_amount=Decimal("18000"),
)


class TestDueDates:

    def test_monthly(self):
        assert get_rcm_due_date(date(2024, 5, 15)) == date(2024, 6, 20)

    def test_monthly_december_rolls_year(self):
        assert get_rcm_due_date(date(2024, 12, 31)) == date(2025, 1, 20)

    def test_quarterly(self):
        due = determine_payment_due_date(date(2024, 5, 15), FilingFrequency.QUARTERLY)

        assert due.due_date == date(2024, 7, 24)
        assert due.quarter == 2

    def test_quarterly_last_quarter(self):
        due = determine_payment_due_date(date(2024, 11, 2), FilingFrequency.QUARTERLY)

        assert due.due_date == date(2025, 1, 24)


class TestOverdue:

    @pytest.mark.parametrize(
        "as_of,days,category",
        [
            (date(2024, 6, 20), 0, OverdueCategory.NOT_OVERDUE),
            (date(2024, 6, 10), 0, OverdueCategory.NOT_OVERDUE),
            (date(2024, 6, 21), 1, OverdueCategory.MINOR),
            (date(2024, 7, 20), 30, OverdueCategory.MINOR),
            (date(2024, 7, 21), 31, OverdueCategory.MAJOR),
            (date(2024, 9, 18), 90, OverdueCategory.MAJOR),
            (date(2024, 9, 19), 91, OverdueCategory.CRITICAL),
        ],
    )
    def test_categories(self, as_of, days, category):
        status = check_overdue_status(date(2024, 6, 20), as_of)

        assert status.days_past_due == days
        assert status.category == category
        assert status.is_overdue is (days > 0)


class TestInterest:

    def test_forty_days_at_statutory_rate(self):
        assert calculate_interest(Decimal("10000"), 40) == Decimal("197")

    def test_zero_days(self):
        assert calculate_interest(Decimal("10000"), 0) == ZERO

    def test_custom_rate(self):
        assert calculate_interest(Decimal("36500"), 10, Decimal("24")) == Decimal("240")

    @pytest.mark.parametrize(
        "principal,days,rate,match",
        [
            (Decimal("-1"), 1, Decimal("18"), "Principal"),
            (Decimal("1"), -1, Decimal("18"), "Days overdue"),
            (Decimal("1"), 1, Decimal("0"), "Interest rate"),
        ],
    )
    def test_invalid_inputs(self, principal, days, rate, match):
        with pytest.raises(ValidationError, match=match):
            calculate_interest(principal, days, rate)


class TestChallan:

    def test_generate(self):
        assert generate_challan_number("Karnataka", date(2024, 6, 10), 1) == CHALLAN

    def test_generate_accepts_numeric_code(self):
        assert generate_challan_number("27", date(2024, 6, 10), 42).startswith("CHAL27-")

    def test_state_name_variants(self):
        assert state_code("tamil nadu") == "33"
        assert state_code("Jammu & Kashmir") == "01"

    def test_unknown_state(self):
        with pytest.raises(ValidationError, match="Invalid state code"):
            state_code("Atlantis")

    def test_sequence_range(self):
        with pytest.raises(ValidationError):
            generate_challan_number("KARNATAKA", date(2024, 6, 10), 1_000_000)

    @pytest.mark.parametrize(
        "challan,valid",
        [
            (CHALLAN, True),
            ("CHAL29-2024061-000001", False),
            ("CHAL99-20240610-000001", False),
            ("CHAL29-20241399-000001", False),
            ("CHAL29-20230229-000001", False),
            ("", False),
            (None, False),
        ],
    )
    def test_validate(self, challan, valid):
        assert validate_challan_number(challan) is valid


class TestPaymentValidation:

    def test_valid_payment(self):
        result = validate_rcm_payment(_payment(), date(2024, 6, 10))

        assert result.is_valid
        assert result.status == PaymentStatus.PAID
        assert result.messages == ()

    def test_reports_every_problem(self):
        result = validate_rcm_payment(
            _payment(amount="0", payment_date=date(2024, 7, 1), mode="BARTER", challan_number="X"),
            date(2024, 6, 10),
        )

        assert not result.is_valid
        assert result.status == PaymentStatus.PENDING
        assert result.messages == (
            "Invalid challan number format",
            "Payment amount must be greater than 0",
            "Payment date cannot be in the future",
            "Invalid payment method",
        )

    def test_missing_challan(self):
        result = validate_rcm_payment(_payment(challan_number=None), date(2024, 6, 10))

        assert result.messages == ("Challan number is required",)

    def test_challan_with_unknown_state_is_rejected(self):
        result = validate_rcm_payment(
            _payment(challan_number="CHAL99-20240610-000001"), date(2024, 6, 10)
        )

        assert result.messages == ("Invalid challan number format",)

    def test_mode_is_case_insensitive(self):
        assert validate_rcm_payment(_payment(mode="neft"), date(2024, 6, 10)).is_valid
        assert _payment(mode="cash").is_cash
        assert not _payment(mode="NEFT").is_cash


class TestTrackPaymentStatus:

    def test_paid_on_time(self):
        record = track_payment_status(LIABILITY, [_payment()], date(2024, 8, 1))

        assert record.status == PaymentStatus.PAID
        assert record.interest_amount == ZERO
        assert record.outstanding_amount == ZERO
        assert record.challan_number == CHALLAN
        assert record.return_period == "05-2024"
        assert record.gstr3b_table == "3.1(d)"

    def test_paid_late_accrues_interest_on_full_tax(self):
        record = track_payment_status(
            LIABILITY, [_payment(payment_date=date(2024, 7, 30))], date(2024, 8, 1)
        )

        assert record.status == PaymentStatus.PAID
        assert record.days_past_due == 40
        # 18000 * 18 * 40 / 36500 = 355.07
        assert record.interest_amount == Decimal("355")

    def test_partial_payment_overdue_on_outstanding(self):
        record = track_payment_status(
            LIABILITY, [_payment(amount="8000")], date(2024, 7, 30)
        )

        assert record.status == PaymentStatus.OVERDUE
        assert record.outstanding_amount == Decimal("10000")
        assert record.interest_amount == Decimal("197")
        assert record.overdue_category == OverdueCategory.MAJOR

    def test_pending_before_due_date(self):
        record = track_payment_status(LIABILITY, [], date(2024, 6, 1))

        assert record.status == PaymentStatus.PENDING
        assert record.payment_date is None

    def test_ignores_other_transactions(self):
        record = track_payment_status(
            LIABILITY, [_payment(transaction_id="TX-OTHER")], date(2024, 6, 25)
        )

        assert record.status == PaymentStatus.OVERDUE
        assert record.paid_amount == ZERO

    def test_quarterly_filer_due_later(self):
        record = track_payment_status(
            LIABILITY, [], date(2024, 7, 1), frequency=FilingFrequency.QUARTERLY
        )

        assert record.status == PaymentStatus.PENDING
        assert record.due_date == date(2024, 7, 24)


class TestLateFeeAndReconciliation:

    def test_late_fee_capped(self):
        fee = calculate_late_fee(date(2024, 6, 20), date(2025, 6, 20))

        assert fee.amount == Decimal("10000")
        assert fee.cgst == fee.sgst == Decimal("5000")

    def test_nil_return_late_fee(self):
        fee = calculate_late_fee(date(2024, 6, 20), date(2024, 6, 30), is_nil_return=True)

        assert fee.days_late == 10
        assert fee.amount == Decimal("200")

    def test_on_time_filing(self):
        assert calculate_late_fee(date(2024, 6, 20), date(2024, 6, 19)).amount == ZERO

    def test_reconcile_overpayment(self):
        result = reconcile_payments(Decimal("1000"), [
            _payment(amount="600", payment_date=date(2024, 6, 1)),
            _payment(amount="500", payment_date=date(2024, 6, 5)),
        ])

        assert result.is_fully_paid
        assert result.has_overpayment
        assert result.overpayment_amount == Decimal("100")
        assert result.last_payment_date == date(2024, 6, 5)
        assert result.payment_percentage == Decimal("110.00")

    def test_reconcile_nothing_owed(self):
        result = reconcile_payments(ZERO, [])

        assert result.payment_percentage == ZERO
        assert result.last_payment_date is None


class TestSelfInvoice:

    def test_numbering(self):
        assert self_invoice_number(2024, 1) == "SI-FY24-25/001"
        assert self_invoice_number(2099, 12) == "SI-FY99-00/012"

    def test_numbering_by_date(self):
        assert self_invoice_number_for(date(2025, 3, 31), 7) == "SI-FY24-25/007"
        assert self_invoice_number_for(date(2025, 4, 1), 7) == "SI-FY25-26/007"

    def test_sequence_must_be_positive(self):
        with pytest.raises(ValidationError):
            self_invoice_number(2024, 0)

    def test_day_thirty_is_on_time(self):
        status = check_self_invoice_due(date(2024, 6, 1), date(2024, 7, 1))

        assert not status.is_overdue
        assert status.days_remaining == 0
        assert status.warning_level == WarningLevel.CRITICAL

    def test_overdue(self):
        status = check_self_invoice_due(date(2024, 6, 1), date(2024, 7, 5))

        assert status.is_overdue
        assert status.days_delayed == 4
        assert status.warning_level is None

    def test_early_has_no_warning(self):
        status = check_self_invoice_due(date(2024, 6, 1), date(2024, 6, 10))

        assert status.warning_level is None
        assert status.days_remaining == 21

    def test_deadline(self):
        assert self_invoice_deadline(date(2024, 6, 1)) == date(2024, 7, 1)


class TestReporting:

    def test_table_mapping(self):
        mapping = gstr3b_table_mapping(RCMType.IMPORT_SERVICE, Decimal("83500"), Decimal("15030"))

        assert mapping.table == "3.1(d)"
        assert mapping.description == "Import of services"

    def test_quarterly_summary(self):
        liabilities = [
            LIABILITY,
            RCMLiability("TX-2", date(2024, 4, 1), Decimal("1000"), Decimal("180"), RCMType.IMPORT_SERVICE),
            RCMLiability("TX-3", date(2024, 7, 1), Decimal("5000"), Decimal("900")),
        ]

        summary = quarterly_summary(liabilities, 2, 2024)

        assert summary.transaction_count == 2
        assert summary.tax_total == Decimal("18180")
        assert summary.by_type[RCMType.IMPORT_SERVICE].count == 1
        assert summary.by_type[RCMType.UNREGISTERED].taxable_amount == Decimal("100000")

    def test_quarterly_summary_rejects_bad_quarter(self):
        with pytest.raises(ValidationError):
            quarterly_summary([], 0, 2024)
