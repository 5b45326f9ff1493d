"""
ORM round-trip tests for the RCM module.

Verifies: from_dto -> persist -> reload -> to_dto equality, and the unique
constraints that guard business keys.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from gst_engines.compliance import ComplianceRecord, OverdueCategory, PaymentStatus
from gst_engines.detection import RCMType
from gst_engines.eligibility import ExpenseCategory
from gst_engines.ledger import LedgerEntryType
from gst_engines.reconciliation import GSTR2BEntry
from gst_engines.tax import TaxType
from gst_kernel.domain.values import TaxHeads
from gst_modules.rcm.models import (
    FiledPeriod,
    ITCEvaluation,
    LedgerPosting,
    PaymentRecord,
    RCMTransaction,
    ReconciliationRun,
)
from gst_modules.rcm.orm import (
    ComplianceRecordModel,
    CreditLedgerEntryModel,
    CreditLedgerHeadModel,
    EligibilityResultModel,
    FiledPeriodModel,
    GSTR2BEntryModel,
    RCMPaymentModel,
    RCMTransactionModel,
    ReconciliationRunModel,
)

GSTIN = "29ABCDE1234F1Z5"
HEADS = TaxHeads(cgst=Decimal("9000"), sgst=Decimal("9000"))


def _reload(session, model, record_id):
    session.flush()
    session.expunge_all()
    return session.get(model, record_id)


def _transaction(**overrides) -> RCMTransaction:
    values = dict(
        transaction_id="TX-1",
        gstin=GSTIN,
        transaction_date=date(2024, 6, 10),
        taxable_amount=Decimal("100000"),
        rcm_type=RCMType.NOTIFIED_SERVICE,
        gst_rate=Decimal("18"),
        heads=HEADS,
        return_period="06-2024",
        tax_type=TaxType.CGST_SGST,
        hsn_sac_code="9982",
        rule_id="notified-legal-services",
        registry_version="abcdef0123456789",
    )
    values.update(overrides)
    return RCMTransaction(**values)


class TestRCMTransactionModelORM:

    def test_round_trip(self, session, test_actor_id):
        dto = _transaction()
        session.add(RCMTransactionModel.from_dto(dto, test_actor_id))

        loaded = _reload(session, RCMTransactionModel, dto.id)

        assert loaded.created_by_id == test_actor_id
        assert loaded.to_dto() == dto

    def test_import_without_tax_type(self, session, test_actor_id):
        dto = _transaction(
            rcm_type=RCMType.NONE, tax_type=None, heads=TaxHeads(), rule_id=None,
        )
        session.add(RCMTransactionModel.from_dto(dto, test_actor_id))

        assert _reload(session, RCMTransactionModel, dto.id).to_dto().tax_type is None

    def test_business_key_is_unique(self, session, test_actor_id):
        session.add(RCMTransactionModel.from_dto(_transaction(), test_actor_id))
        session.flush()
        session.add(RCMTransactionModel.from_dto(_transaction(), test_actor_id))

        with pytest.raises(IntegrityError):
            session.flush()


class TestEligibilityResultModelORM:

    def test_round_trip(self, session, test_actor_id):
        dto = ITCEvaluation(
            transaction_id="TX-1",
            gstin=GSTIN,
            category=ExpenseCategory.MOTOR_VEHICLE,
            evaluated_on=date(2024, 6, 30),
            is_eligible=False,
            total_itc=Decimal("18000"),
            eligible_amount=Decimal("0"),
            blocked_amount=Decimal("18000"),
            eligible_heads=TaxHeads(),
            section="Section 17(5)(a)",
            ineligible_reason="Motor vehicle for personal use",
        )
        session.add(EligibilityResultModel.from_dto(dto, test_actor_id))

        assert _reload(session, EligibilityResultModel, dto.id).to_dto() == dto


class TestCreditLedgerModelsORM:

    def test_entry_round_trip(self, session, test_actor_id):
        dto = LedgerPosting(
            gstin=GSTIN,
            sequence=1,
            entry_type=LedgerEntryType.CREDIT,
            entry_date=date(2024, 6, 30),
            heads=HEADS,
            running_balance=HEADS,
            reference="TX-1",
            return_period="06-2024",
        )
        session.add(CreditLedgerEntryModel.from_dto(dto, test_actor_id))

        loaded = _reload(session, CreditLedgerEntryModel, dto.id).to_dto()

        assert loaded == dto
        assert loaded.to_entry().delta == HEADS

    def test_sequence_is_unique_per_gstin(self, session, test_actor_id):
        for _ in range(2):
            session.add(CreditLedgerEntryModel.from_dto(LedgerPosting(
                gstin=GSTIN, sequence=1, entry_type=LedgerEntryType.CREDIT,
                entry_date=date(2024, 6, 30), heads=HEADS, running_balance=HEADS,
            ), test_actor_id))

        with pytest.raises(IntegrityError):
            session.flush()

    def test_head_balance(self, session, test_actor_id):
        head = CreditLedgerHeadModel(gstin=GSTIN, created_by_id=test_actor_id)
        head.set_balance(TaxHeads(igst=Decimal("400"), sgst=Decimal("100")))
        session.add(head)
        session.flush()

        loaded = _reload(session, CreditLedgerHeadModel, head.id)

        assert loaded.last_sequence == 0
        assert loaded.balance == TaxHeads(igst=Decimal("400"), sgst=Decimal("100"))


class TestRCMPaymentModelORM:

    def test_round_trip(self, session, test_actor_id):
        dto = PaymentRecord(
            transaction_id="TX-1",
            gstin=GSTIN,
            payment_date=date(2024, 7, 15),
            amount=Decimal("18000"),
            payment_mode="CASH",
            challan_number="CHAL29-20240715-000001",
            return_period="06-2024",
        )
        session.add(RCMPaymentModel.from_dto(dto, test_actor_id))

        loaded = _reload(session, RCMPaymentModel, dto.id)

        assert loaded.to_dto() == dto
        assert loaded.to_engine_payment().is_cash


class TestGSTR2BEntryModelORM:

    def test_round_trip_with_splits(self, session, test_actor_id):
        entry = GSTR2BEntry(
            gstin="27AAPFU0939F1ZV",
            invoice_number="INV-1",
            invoice_date=date(2024, 6, 5),
            heads=TaxHeads(igst=Decimal("1800")),
            invoice_value=Decimal("11800"),
            eligible=TaxHeads(igst=Decimal("1500")),
            blocked=TaxHeads(igst=Decimal("300")),
        )
        model = GSTR2BEntryModel.from_dto(entry, GSTIN, "06-2024", test_actor_id)
        session.add(model)
        session.flush()

        loaded = _reload(session, GSTR2BEntryModel, model.id)

        assert loaded.gstin == GSTIN
        assert loaded.to_dto() == entry

    def test_missing_splits_stay_none(self, session, test_actor_id):
        entry = GSTR2BEntry(
            gstin="27AAPFU0939F1ZV",
            invoice_number="INV-2",
            invoice_date=date(2024, 6, 5),
            heads=TaxHeads(igst=Decimal("1800")),
        )
        model = GSTR2BEntryModel.from_dto(entry, GSTIN, "06-2024", test_actor_id)
        session.add(model)
        session.flush()

        loaded = _reload(session, GSTR2BEntryModel, model.id).to_dto()

        assert loaded.eligible is None
        assert loaded.blocked is None


class TestComplianceRecordModelORM:

    def test_round_trip(self, session, test_actor_id):
        record = ComplianceRecord(
            transaction_id="TX-1",
            return_period="05-2024",
            due_date=date(2024, 6, 20),
            status=PaymentStatus.OVERDUE,
            tax_amount=Decimal("18000"),
            paid_amount=Decimal("8000"),
            outstanding_amount=Decimal("10000"),
            payment_date=date(2024, 6, 10),
            challan_number="CHAL29-20240610-000001",
            days_past_due=40,
            overdue_category=OverdueCategory.MAJOR,
            interest_amount=Decimal("197"),
            gstr3b_table="3.1(d)",
        )
        model = ComplianceRecordModel.from_dto(record, GSTIN, test_actor_id)
        session.add(model)
        session.flush()

        assert _reload(session, ComplianceRecordModel, model.id).to_dto() == record


class TestRunAndFiledPeriodORM:

    def test_reconciliation_run(self, session, test_actor_id):
        dto = ReconciliationRun(
            gstin=GSTIN,
            return_period="06-2024",
            run_date=date(2024, 7, 1),
            matched_count=3,
            unmatched_count=1,
            mismatch_count=0,
            manual_entry_count=2,
            violation_count=0,
            match_percentage=Decimal("75.00"),
            is_reconciled=False,
        )
        session.add(ReconciliationRunModel.from_dto(dto, test_actor_id))

        assert _reload(session, ReconciliationRunModel, dto.id).to_dto() == dto

    def test_filed_period_is_unique(self, session, test_actor_id):
        first = FiledPeriod(gstin=GSTIN, return_period="06-2024", filed_on=date(2024, 7, 20))
        session.add(FiledPeriodModel.from_dto(first, test_actor_id))
        session.flush()
        session.add(FiledPeriodModel.from_dto(
            FiledPeriod(gstin=GSTIN, return_period="06-2024", filed_on=date(2024, 7, 21)),
            test_actor_id,
        ))

        with pytest.raises(IntegrityError):
            session.flush()
