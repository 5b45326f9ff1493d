"""
Integration tests for RCMService.

Exercises the reverse-charge cycle end to end against the test database:
record -> pay -> evaluate ITC -> ledger -> utilize -> reconcile -> return
-> close.
"""

from datetime import date
from decimal import Decimal

import pytest

from gst_engines.compliance import PaymentStatus, RCMPayment
from gst_engines.detection import DetectionInput, RCMType
from gst_engines.eligibility import ExpenseCategory, InvoicePaymentStatus
from gst_engines.gstr3b import IssueKind
from gst_engines.ledger import CreditLedgerEntry, LedgerEntryType
from gst_engines.reconciliation import GSTR2BEntry, ITCClaim
from gst_kernel.domain.values import ZERO, TaxHeads
from gst_kernel.exceptions import (
    InsufficientBalanceError,
    OptimisticLockError,
    PaymentValidationError,
    RecordNotFoundError,
    ReturnPeriodClosedError,
)
from gst_modules.rcm.models import LedgerPosting
from gst_modules.rcm.orm import CreditLedgerEntryModel, RCMPaymentModel
from gst_modules.rcm.service import RCMService

GSTIN = "29ABCDE1234F1Z5"
SUPPLIER_GSTIN = "27AAPFU0939F1ZV"
PERIOD = "06-2024"
INVOICE_DATE = date(2024, 6, 10)


def _legal_supply(**overrides) -> DetectionInput:
    values = dict(
        recipient_gstin=GSTIN,
        recipient_state="KARNATAKA",
        place_of_supply="KARNATAKA",
        taxable_amount=Decimal("100000"),
        supplier_gstin=SUPPLIER_GSTIN,
        supplier_name="Advocate Chambers",
        hsn_sac_code="998211",
    )
    values.update(overrides)
    return DetectionInput(**values)


def _unregistered_supply(amount="10000") -> DetectionInput:
    return _legal_supply(
        supplier_gstin=None,
        supplier_name="Local Cab Operator",
        hsn_sac_code=None,
        taxable_amount=Decimal(amount),
    )


def _cash(transaction_id, amount="18000", seq=1, mode="CASH") -> RCMPayment:
    return RCMPayment(
        transaction_id=transaction_id,
        payment_date=date(2024, 6, 20),
        amount=Decimal(amount),
        payment_mode=mode,
        challan_number=f"CHAL29-20240620-{seq:06d}",
    )


@pytest.fixture
def clock(deterministic_clock):
    deterministic_clock.set_date(date(2024, 6, 25))
    return deterministic_clock


@pytest.fixture
def service(session, clock, config, registry):
    return RCMService(session, clock=clock, config=config, registry=registry)


@pytest.fixture
def paid_legal(service, test_actor_id):
    """Legal service recorded, paid in cash and credited."""
    service.record_transaction("TX-LEGAL", _legal_supply(), INVOICE_DATE, test_actor_id)
    service.record_payment(GSTIN, _cash("TX-LEGAL"), test_actor_id)
    service.evaluate_itc(GSTIN, "TX-LEGAL", ExpenseCategory.SERVICES, test_actor_id)
    return "TX-LEGAL"


class TestRecordTransaction:

    def test_notified_service(self, service, test_actor_id, captured_logs):
        txn = service.record_transaction("TX-LEGAL", _legal_supply(), INVOICE_DATE, test_actor_id)

        assert txn.rcm_type == RCMType.NOTIFIED_SERVICE
        assert txn.heads == TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000"))
        assert txn.return_period == PERIOD
        assert txn.rule_id == "notified-legal-services"
        assert txn.self_invoice_number is None
        assert service.get_transaction(GSTIN, "TX-LEGAL") == txn

        recorded = next(r for r in captured_logs() if r["message"] == "rcm_transaction_recorded")
        assert recorded["gstin"] == GSTIN
        assert recorded["transaction_id"] == "TX-LEGAL"

    def test_opens_compliance_record(self, service, test_actor_id):
        service.record_transaction("TX-LEGAL", _legal_supply(), INVOICE_DATE, test_actor_id)

        status = service.compliance_status(GSTIN, "TX-LEGAL")

        assert status.status == PaymentStatus.PENDING
        assert status.due_date == date(2024, 7, 20)
        assert [r.transaction_id for r in service.outstanding_liabilities(GSTIN)] == ["TX-LEGAL"]

    def test_self_invoice_numbers_are_sequential(self, service, test_actor_id):
        first = service.record_transaction("TX-U1", _unregistered_supply(), INVOICE_DATE, test_actor_id)
        second = service.record_transaction("TX-U2", _unregistered_supply(), INVOICE_DATE, test_actor_id)

        assert first.rcm_type == RCMType.UNREGISTERED
        assert first.self_invoice_number == "SI-FY24-25/001"
        assert second.self_invoice_number == "SI-FY24-25/002"

    def test_registered_vendor_has_no_liability(self, service, test_actor_id):
        txn = service.record_transaction(
            "TX-B2B", _legal_supply(hsn_sac_code=None), INVOICE_DATE, test_actor_id,
        )

        assert txn.rcm_type == RCMType.NONE
        assert txn.heads.is_zero
        assert service.outstanding_liabilities(GSTIN) == []

    def test_unknown_transaction(self, service):
        with pytest.raises(RecordNotFoundError):
            service.get_transaction(GSTIN, "TX-MISSING")


class TestRecordPayment:

    def test_cash_payment_settles_liability(self, service, test_actor_id):
        service.record_transaction("TX-LEGAL", _legal_supply(), INVOICE_DATE, test_actor_id)

        record, compliance = service.record_payment(GSTIN, _cash("TX-LEGAL"), test_actor_id)

        assert record.payment_mode == "CASH"
        assert compliance.status == PaymentStatus.PAID
        assert compliance.outstanding_amount == ZERO
        assert service.outstanding_liabilities(GSTIN) == []

    def test_invalid_payment_is_not_stored(self, service, session, test_actor_id):
        service.record_transaction("TX-LEGAL", _legal_supply(), INVOICE_DATE, test_actor_id)
        bad = RCMPayment("TX-LEGAL", date(2024, 6, 20), Decimal("0"), "CASH", "NOT-A-CHALLAN")

        with pytest.raises(PaymentValidationError) as exc_info:
            service.record_payment(GSTIN, bad, test_actor_id)

        assert exc_info.value.messages == (
            "Invalid challan number format",
            "Payment amount must be greater than 0",
        )
        assert session.query(RCMPaymentModel).count() == 0

    def test_payment_for_unknown_transaction(self, service, test_actor_id):
        with pytest.raises(RecordNotFoundError):
            service.record_payment(GSTIN, _cash("TX-MISSING"), test_actor_id)


class TestEvaluateITC:

    def test_eligible_credit_is_posted_once(self, service, paid_legal, test_actor_id):
        result, posting = service.evaluate_itc(
            GSTIN, paid_legal, ExpenseCategory.SERVICES, test_actor_id,
        )

        assert result.is_eligible
        assert posting is None
        entries = service.ledger_entries(GSTIN)
        assert [(e.sequence, e.entry_type) for e in entries] == [(1, LedgerEntryType.CREDIT)]
        assert service.ledger_balance(GSTIN) == TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000"))

    def test_non_cash_payment_blocks_credit(self, service, test_actor_id):
        service.record_transaction("TX-LEGAL", _legal_supply(), INVOICE_DATE, test_actor_id)
        service.record_payment(GSTIN, _cash("TX-LEGAL", mode="NEFT"), test_actor_id)

        result, posting = service.evaluate_itc(
            GSTIN, "TX-LEGAL", ExpenseCategory.SERVICES, test_actor_id,
        )

        assert not result.is_eligible
        assert posting is None
        assert service.ledger_balance(GSTIN).is_zero

    def test_blocked_motor_vehicle(self, service, test_actor_id):
        service.record_transaction("TX-CAR", _unregistered_supply(), INVOICE_DATE, test_actor_id)

        result, posting = service.evaluate_itc(
            GSTIN, "TX-CAR", ExpenseCategory.MOTOR_VEHICLE, test_actor_id, seating_capacity=5,
        )

        assert result.blocked_amount == Decimal("1800")
        assert posting is None

    def test_reversal_after_credit(self, service, paid_legal, test_actor_id):
        result, posting = service.evaluate_itc(
            GSTIN, paid_legal, ExpenseCategory.SERVICES, test_actor_id,
            payment_status=InvoicePaymentStatus.UNPAID, days_since_invoice=200,
        )

        assert result.reversal_required
        assert posting.entry_type == LedgerEntryType.REVERSAL
        assert posting.sequence == 2
        assert posting.reversal_reason == "NON_PAYMENT_180_DAYS"
        assert service.ledger_balance(GSTIN).is_zero

        _, again = service.evaluate_itc(
            GSTIN, paid_legal, ExpenseCategory.SERVICES, test_actor_id,
            payment_status=InvoicePaymentStatus.UNPAID, days_since_invoice=201,
        )
        assert again is None

    def _reverse_for_non_payment(self, service, transaction_id, actor_id):
        service.evaluate_itc(
            GSTIN, transaction_id, ExpenseCategory.SERVICES, actor_id,
            payment_status=InvoicePaymentStatus.UNPAID, days_since_invoice=200,
        )

    def test_reversed_credit_is_reclaimed_once_supplier_is_paid(
        self, service, paid_legal, clock, test_actor_id,
    ):
        self._reverse_for_non_payment(service, paid_legal, test_actor_id)
        clock.set_date(date(2024, 8, 5))

        result, posting = service.evaluate_itc(
            GSTIN, paid_legal, ExpenseCategory.SERVICES, test_actor_id,
            payment_status=InvoicePaymentStatus.PAID, payment_date=date(2024, 7, 30),
        )

        assert result.reclaim_eligible
        assert result.reclaim_amount == Decimal("18000")
        assert result.reclaim_period == "07-2024"
        assert posting.entry_type == LedgerEntryType.CREDIT
        assert posting.sequence == 3
        assert posting.reference == "TX-LEGAL:RECLAIM"
        assert posting.return_period == "07-2024"
        assert service.ledger_balance(GSTIN) == TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000"))

        _, again = service.evaluate_itc(
            GSTIN, paid_legal, ExpenseCategory.SERVICES, test_actor_id,
            payment_status=InvoicePaymentStatus.PAID, payment_date=date(2024, 7, 30),
        )
        assert again is None
        assert service.ledger_balance(GSTIN).total == Decimal("18000")

    def test_reclaim_for_filed_payment_period_lands_in_current_period(
        self, service, paid_legal, clock, test_actor_id,
    ):
        self._reverse_for_non_payment(service, paid_legal, test_actor_id)
        clock.set_date(date(2024, 8, 5))
        service.close_period(GSTIN, "07-2024", test_actor_id)

        _, posting = service.evaluate_itc(
            GSTIN, paid_legal, ExpenseCategory.SERVICES, test_actor_id,
            payment_status=InvoicePaymentStatus.PAID, payment_date=date(2024, 7, 30),
        )

        assert posting.return_period == "08-2024"

    def test_paid_without_prior_reversal_posts_nothing(self, service, paid_legal, test_actor_id):
        result, posting = service.evaluate_itc(
            GSTIN, paid_legal, ExpenseCategory.SERVICES, test_actor_id,
            payment_status=InvoicePaymentStatus.PAID, payment_date=date(2024, 6, 24),
        )

        assert not result.reclaim_eligible
        assert posting is None


class TestLedger:

    def _entry(self, entry_type, period=None, **heads):
        return CreditLedgerEntry(
            entry_type=entry_type,
            entry_date=date(2024, 6, 25),
            heads=TaxHeads(**{k: Decimal(v) for k, v in heads.items()}),
            reference="MANUAL",
            return_period=period,
        )

    def test_overdraw_writes_nothing(self, service, test_actor_id):
        service.append_ledger_entry(GSTIN, self._entry(LedgerEntryType.CREDIT, igst="100"), test_actor_id)

        with pytest.raises(InsufficientBalanceError):
            service.append_ledger_entry(GSTIN, self._entry(LedgerEntryType.DEBIT, igst="101"), test_actor_id)

        assert len(service.ledger_entries(GSTIN)) == 1
        assert service.ledger_balance(GSTIN).igst == Decimal("100")

    def test_running_balances(self, service, test_actor_id):
        service.append_ledger_entry(GSTIN, self._entry(LedgerEntryType.CREDIT, igst="100"), test_actor_id)
        posting = service.append_ledger_entry(
            GSTIN, self._entry(LedgerEntryType.DEBIT, igst="60"), test_actor_id,
        )

        assert posting.sequence == 2
        assert posting.running_balance == TaxHeads(igst=Decimal("40"))

    def test_rows_written_around_the_head_are_detected(self, service, session, test_actor_id):
        session.add(CreditLedgerEntryModel.from_dto(LedgerPosting(
            gstin=GSTIN, sequence=1, entry_type=LedgerEntryType.CREDIT,
            entry_date=date(2024, 6, 1), heads=TaxHeads(igst=Decimal("10")),
            running_balance=TaxHeads(igst=Decimal("10")),
        ), test_actor_id))
        session.flush()

        with pytest.raises(OptimisticLockError):
            service.append_ledger_entry(GSTIN, self._entry(LedgerEntryType.CREDIT, igst="5"), test_actor_id)


class TestUtilizeCredit:

    def test_debits_credit_used(self, service, paid_legal, test_actor_id):
        result = service.utilize_credit(
            GSTIN, TaxHeads(cgst=Decimal("9000"), sgst=Decimal("5000")), test_actor_id,
        )

        assert result.cash_required == ZERO
        last = service.ledger_entries(GSTIN)[-1]
        assert last.entry_type == LedgerEntryType.DEBIT
        assert last.reference == "UTIL-06-2024"
        assert service.ledger_balance(GSTIN) == TaxHeads(sgst=Decimal("4000"))

    def test_threshold_warning(self, service, paid_legal, test_actor_id, captured_logs):
        result = service.utilize_credit(
            GSTIN, TaxHeads(cgst=Decimal("9000"), sgst=Decimal("10000")), test_actor_id,
        )

        assert result.cash_required == Decimal("1000")
        warning = next(
            r for r in captured_logs() if r["message"] == "itc_utilization_threshold_reached"
        )
        assert warning["threshold"] == "95"

    def test_nothing_to_use(self, service, test_actor_id):
        result = service.utilize_credit(GSTIN, TaxHeads(igst=Decimal("500")), test_actor_id)

        assert result.cash_required == Decimal("500")
        assert service.ledger_entries(GSTIN) == []


class TestReconcilePeriod:

    def test_rcm_claims_are_manual_and_b2b_claims_match(self, service, paid_legal, test_actor_id):
        entry = GSTR2BEntry(
            gstin="33AAACT2727Q1ZW",
            invoice_number="B2B-9",
            invoice_date=date(2024, 6, 3),
            heads=TaxHeads(igst=Decimal("1800")),
        )
        assert service.import_gstr2b(GSTIN, PERIOD, [entry], test_actor_id) == 1
        assert service.import_gstr2b(GSTIN, PERIOD, [entry], test_actor_id) == 1

        b2b = ITCClaim(
            gstin="33AAACT2727Q1ZW",
            invoice_number="B2B-9",
            invoice_date=date(2024, 6, 3),
            heads=TaxHeads(igst=Decimal("1800")),
        )
        outcome = service.reconcile_period(GSTIN, PERIOD, test_actor_id, claims=[b2b])

        assert outcome.run.matched_count == 1
        assert outcome.run.manual_entry_count == 1
        assert outcome.run.match_percentage == Decimal("100.00")
        assert outcome.payment_result.is_reconciled
        assert outcome.run.is_reconciled

    def test_unpaid_rcm_claim(self, service, test_actor_id):
        service.record_transaction("TX-LEGAL", _legal_supply(), INVOICE_DATE, test_actor_id)
        service.evaluate_itc(
            GSTIN, "TX-LEGAL", ExpenseCategory.SERVICES, test_actor_id,
            liability_paid_in_cash=True,
        )

        outcome = service.reconcile_period(GSTIN, PERIOD, test_actor_id)

        assert not outcome.run.is_reconciled
        assert outcome.payment_result.unreconciled[0].transaction_id == "TX-LEGAL"


class TestReturn:

    def test_build_and_validate(self, service, paid_legal):
        report = service.build_return(GSTIN, PERIOD)

        assert report.table_3_1_d.total_tax == Decimal("18000")
        assert report.table_4_b.input_services.total == Decimal("18000")
        assert service.validate_return(GSTIN, PERIOD).is_valid

    def test_unpaid_blocked_supply(self, service, paid_legal, test_actor_id):
        service.record_transaction("TX-CAR", _unregistered_supply(), INVOICE_DATE, test_actor_id)
        service.evaluate_itc(
            GSTIN, "TX-CAR", ExpenseCategory.MOTOR_VEHICLE, test_actor_id, seating_capacity=5,
        )

        report = service.build_return(GSTIN, PERIOD)
        validation = service.validate_return(GSTIN, PERIOD)

        assert report.table_3_1_d.total_tax == Decimal("19800")
        assert report.table_4_b.ineligible_itc == Decimal("1800")
        assert [i.kind for i in validation.issues] == [IssueKind.PAYMENT_MISMATCH]
        assert validation.warnings == ("Unpaid RCM liabilities exist",)


class TestClosePeriod:

    def test_filed_period_rejects_writes(self, service, test_actor_id):
        filed = service.close_period(GSTIN, PERIOD, test_actor_id)

        assert filed.filed_on == date(2024, 6, 25)
        assert service.is_period_closed(GSTIN, PERIOD)
        with pytest.raises(ReturnPeriodClosedError):
            service.close_period(GSTIN, PERIOD, test_actor_id)
        with pytest.raises(ReturnPeriodClosedError):
            service.record_transaction("TX-LATE", _legal_supply(), INVOICE_DATE, test_actor_id)
        with pytest.raises(ReturnPeriodClosedError):
            service.utilize_credit(GSTIN, TaxHeads(igst=Decimal("1")), test_actor_id)

    def test_other_periods_stay_open(self, service, test_actor_id):
        service.close_period(GSTIN, "05-2024", test_actor_id)

        txn = service.record_transaction("TX-JUNE", _legal_supply(), INVOICE_DATE, test_actor_id)

        assert txn.return_period == PERIOD
        assert not service.is_period_closed(GSTIN, PERIOD)
