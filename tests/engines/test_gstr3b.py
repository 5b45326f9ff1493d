"""
Tests for GSTR-3B reverse-charge reporting.

Covers:
- Table 3.1(d) and 4(B) aggregation
- Breakdown by supplier class
- Validation against cash payments
- Reconciliation with the books
- Filing JSON shape and read-back
- Return-period labels and due dates
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from gst_engines.compliance import FilingFrequency, RCMPayment
from gst_engines.detection import RCMType
from gst_engines.gstr3b import (
    BookTotals,
    IssueKind,
    ITCClass,
    ITCItem,
    RCMSupply,
    build_gstr3b_report,
    calculate_table_3_1_d,
    calculate_table_4_b,
    get_return_period,
    reconcile_with_books,
    report_from_filing_json,
    to_filing_json,
    to_filing_json_string,
    validate_gstr3b,
)
from gst_engines.periods import parse_return_period, return_period_label
from gst_kernel.domain.values import ZERO, TaxHeads
from gst_kernel.exceptions import ValidationError

GSTIN = "29ABCDE1234F1Z5"

SUPPLIES = [
    RCMSupply(RCMType.NOTIFIED_SERVICE, Decimal("100000"),
              TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000")), "TX-1"),
    RCMSupply(RCMType.IMPORT_SERVICE, Decimal("83500"), TaxHeads(igst=Decimal("15030")), "TX-2"),
]

ITC_ITEMS = [
    ITCItem(ITCClass.INPUT_SERVICES, TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000"))),
    ITCItem(ITCClass.INPUT_SERVICES, TaxHeads(igst=Decimal("15030"))),
    ITCItem(ITCClass.CAPITAL_GOODS, TaxHeads(igst=Decimal("500")), eligible=False,
            ineligible_reason="Section 17(5)(d)"),
]


def _payment(amount, mode="CASH") -> RCMPayment:
    return RCMPayment(
        transaction_id="TX",
        payment_date=date(2024, 7, 15),
        amount=Decimal(amount),
        payment_mode=mode,
        challan_number="CHAL29-20240715-000001",
    )


@pytest.fixture
def report():
    return build_gstr3b_report(GSTIN, "06-2024", SUPPLIES, ITC_ITEMS)


class TestTables:

    def test_table_3_1_d(self):
        table = calculate_table_3_1_d(SUPPLIES)

        assert table.taxable_value == Decimal("183500")
        assert table.heads == TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000"), igst=Decimal("15030"))
        assert table.total_tax == Decimal("33030")
        assert table.includes_import_of_services

    def test_empty_table(self):
        table = calculate_table_3_1_d([])

        assert table.total_tax == ZERO
        assert not table.includes_import_of_services

    def test_table_4_b_excludes_ineligible(self):
        table = calculate_table_4_b(ITC_ITEMS)

        assert table.input_services.total == Decimal("33030")
        assert table.capital_goods.is_zero
        assert table.ineligible_itc == Decimal("500")
        assert table.total_itc == Decimal("33030")

    def test_breakdown(self, report):
        breakdown = report.rcm_breakdown

        assert breakdown[RCMType.NOTIFIED_SERVICE].count == 1
        assert breakdown[RCMType.IMPORT_SERVICE].tax == Decimal("15030")
        assert breakdown[RCMType.UNREGISTERED].count == 0


class TestValidation:

    def test_fully_paid_in_cash(self, report):
        result = validate_gstr3b(report, [_payment("18000"), _payment("15030")])

        assert result.is_valid
        assert result.rcm_payment_matches
        assert result.itc_rcm_balanced
        assert result.warnings == ()

    def test_non_cash_payment_is_not_counted(self, report):
        result = validate_gstr3b(report, [_payment("18000"), _payment("15030", mode="NEFT")])

        kinds = [i.kind for i in result.issues]
        assert kinds == [IssueKind.PAYMENT_MISMATCH, IssueKind.EXCESS_CLAIM]
        assert result.issues[0].amount == Decimal("15030")
        assert not result.rcm_payment_matches
        assert not result.itc_rcm_balanced

    def test_unpaid_liabilities_warn(self, report):
        result = validate_gstr3b(report, [_payment("33030")], unpaid_liabilities=["TX-3"])

        assert result.is_valid
        assert result.warnings == ("Unpaid RCM liabilities exist",)


class TestBooks:

    def test_matching_books(self, report):
        result = reconcile_with_books(report, BookTotals(Decimal("183500"), Decimal("33030")))

        assert result.matches
        assert result.suggested_adjustments == ()

    def test_books_short(self, report):
        result = reconcile_with_books(report, BookTotals(Decimal("100000"), Decimal("34000")))

        assert result.taxable_value_difference == Decimal("83500")
        assert result.tax_difference == Decimal("-970")
        descriptions = [s.description for s in result.suggested_adjustments]
        assert descriptions == [
            "Possible missing transaction in books",
            "Excess tax recorded in books",
        ]
        assert result.suggested_adjustments[1].amount == Decimal("970")


class TestFilingJson:

    def test_shape(self, report):
        payload = to_filing_json(report)

        assert payload["gstin"] == GSTIN
        assert payload["ret_period"] == "06-2024"
        assert payload["sup_details"]["isup_rev"] == {
            "txval": 183500.0, "iamt": 15030.0, "camt": 9000.0, "samt": 9000.0, "csamt": 0.0,
        }
        assert [row["ty"] for row in payload["itc_elg"]["itc_rev"]] == ["IMPS"]
        assert payload["itc_elg"]["itc_inelg"] == {"amt": 500.0}
        assert payload["rcm_details"]["imp_flag"] == "Y"
        assert {row["ty"]: row["cnt"] for row in payload["rcm_details"]["breakdown"]} == {
            "UNREGISTERED": 0, "IMPORT_SERVICE": 1, "NOTIFIED_SERVICE": 1, "NOTIFIED_GOODS": 0,
        }

    def test_read_back_reserializes_identically(self, report):
        text = to_filing_json_string(report)

        again = to_filing_json_string(report_from_filing_json(json.loads(text)))

        assert again == text

    def test_read_back_gives_equal_report(self, report):
        back = report_from_filing_json(json.loads(to_filing_json_string(report)))

        assert back == report
        assert back.table_3_1_d.includes_import_of_services
        assert back.rcm_breakdown[RCMType.IMPORT_SERVICE].taxable_value == Decimal("83500")

    def test_domestic_only_report_keeps_flag_off(self):
        domestic = build_gstr3b_report(GSTIN, "06-2024", SUPPLIES[:1], ITC_ITEMS[:1])

        back = report_from_filing_json(to_filing_json(domestic))

        assert not back.table_3_1_d.includes_import_of_services
        assert back.rcm_breakdown == domestic.rcm_breakdown

    def test_unknown_supplier_class_in_breakdown(self, report):
        payload = to_filing_json(report)
        payload["rcm_details"]["breakdown"].append({"ty": "BOGUS", "cnt": 1})

        with pytest.raises(ValidationError, match="supplier class"):
            report_from_filing_json(payload)

    def test_missing_sections(self):
        with pytest.raises(ValidationError, match="sup_details.isup_rev"):
            report_from_filing_json({"gstin": GSTIN})


class TestReturnPeriod:

    def test_monthly(self):
        period = get_return_period(date(2024, 12, 15))

        assert period.label == "12-2024"
        assert period.end_date == date(2024, 12, 31)
        assert period.due_date == date(2025, 1, 20)

    def test_quarterly(self):
        period = get_return_period(date(2024, 8, 1), FilingFrequency.QUARTERLY)

        assert period.label == "09-2024"
        assert period.start_date == date(2024, 7, 1)
        assert period.end_date == date(2024, 9, 30)
        assert period.due_date == date(2024, 10, 24)
        assert period.quarter == 3

    def test_labels_use_ledger_period_format(self):
        d = date(2024, 6, 30)

        assert get_return_period(d).label == return_period_label(d)
        assert parse_return_period(get_return_period(d, FilingFrequency.QUARTERLY).label) == (6, 2024)
