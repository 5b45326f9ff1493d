"""
Reverse-Charge Module Service (``gst_modules.rcm.service``).

Responsibility
--------------
Orchestrates the reverse-charge cycle for a registered recipient: record an
inward supply (detect, tax, persist, open a compliance record), record the
cash payment of the tax, decide input-tax-credit eligibility and post it to
the electronic credit ledger, set credit off against liability, reconcile a
period against GSTR-2B and payments, build the GSTR-3B return and close the
period.  All computation is delegated to ``gst_engines``.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``RCMService`` is the sole public entry
point for RCM operations.  It composes the pure engines, the
``RCMRepository`` and the per-GSTIN ``EntityLockRegistry``.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on success,
  ``rollback`` and re-raise on any exception).
* Credit-ledger appends for one GSTIN are serialized twice: by the
  in-process entity lock, then by ``SELECT ... FOR UPDATE`` on the GSTIN's
  ``credit_ledger_heads`` row.  The lock is held until commit.
* An append re-reads and replays the full history before a DEBIT is
  checked; the balance is never taken from a cache.
* Writes tagged with a filed return period are rejected.
* Engines receive the reference date from the injected clock.

Failure modes
-------------
* ``InsufficientBalanceError``  -> DEBIT would overdraw a head; nothing
  is written.
* ``ReturnPeriodClosedError``  -> write into a filed period.
* ``PaymentValidationError``  -> payment rejected; carries every message.
* ``RecordNotFoundError``  -> unknown transaction id.
* ``OptimisticLockError``  -> ledger rows and head row disagree (a writer
  bypassed the head lock).
* Any other exception  -> session rolled back, exception re-raised.

Audit relevance
---------------
Structured log events at start and commit/rollback of every public method,
bound to ``gstin`` / ``transaction_id`` / ``return_period`` through
``LogContext``.  Ledger rows are append-only and carry their running
balance.

Usage::

    service = RCMService(session, clock=clock, config=config, registry=registry)
    txn = service.record_transaction(
        "INV-001", detection_input, date(2024, 6, 10), actor_id=actor_id,
    )
    service.record_payment(txn.gstin, payment, actor_id=actor_id)
    result, posting = service.evaluate_itc(
        txn.gstin, "INV-001", ExpenseCategory.SERVICES, actor_id=actor_id,
    )
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gst_config import load_default_registry
from gst_engines.compliance import (
    ComplianceRecord,
    PaymentStatus,
    RCMLiability,
    RCMPayment,
    self_invoice_number_for,
    track_payment_status,
    validate_rcm_payment,
)
from gst_engines.detection import DetectionInput, RCMType, detect_rcm
from gst_engines.eligibility import (
    EligibilityRequest,
    EligibilityResult,
    ExpenseCategory,
    PriorReversal,
    ReversalReason,
    determine_eligibility,
)
from gst_engines.gstr3b import (
    GSTR3BReport,
    GSTR3BValidation,
    ITCClass,
    ITCItem,
    RCMSupply,
    build_gstr3b_report,
    validate_gstr3b,
)
from gst_engines.ledger import (
    CreditLedger,
    CreditLedgerEntry,
    LedgerEntryType,
    UtilizationResult,
    track_utilization,
    utilization_ratio,
)
from gst_engines.periods import financial_year_start, return_period_label
from gst_engines.reconciliation import (
    GSTR2BEntry,
    GSTR2BMatchResult,
    ITCClaim,
    ITCReconciliationResult,
    match_with_third_party_data,
    reconcile_itc_with_payments,
)
from gst_engines.registry import NotifiedRuleRegistry
from gst_engines.tax import TaxInput, calculate_tax
from gst_kernel.domain.clock import Clock, SystemClock
from gst_kernel.domain.values import ZERO, TaxHeads
from gst_kernel.exceptions import (
    OptimisticLockError,
    PaymentValidationError,
    ReturnPeriodClosedError,
)
from gst_kernel.logging_config import LogContext, get_logger
from gst_modules.rcm.config import RCMConfig
from gst_modules.rcm.locks import EntityLockRegistry
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
    SelfInvoiceCounterModel,
)
from gst_modules.rcm.repository import RCMRepository

logger = get_logger("modules.rcm.service")

# Supplier classes for which the recipient must raise a self-invoice.
_SELF_INVOICED_TYPES = frozenset({RCMType.UNREGISTERED, RCMType.IMPORT_SERVICE})


@dataclass(frozen=True)
class PeriodReconciliation:
    """Outcome of ``RCMService.reconcile_period``."""

    run: ReconciliationRun
    match_result: GSTR2BMatchResult
    payment_result: ITCReconciliationResult


class RCMService:
    """
    Orchestrates reverse-charge operations through engines and storage.

    Contract
    --------
    * Posting methods return DTOs from ``gst_modules.rcm.models`` or engine
      results; read methods (``ledger_balance``, ``build_return``) never
      write.
    * ``actor_id`` is recorded on every row a method creates or touches.

    Guarantees
    ----------
    * Session is committed only when the whole operation succeeds.
    * Clock, config, registry and lock registry are injectable.  Share one
      ``EntityLockRegistry`` between services that write the same ledgers.

    Non-goals
    ---------
    * Does NOT file returns with the GST network; ``close_period`` only
      records that a period was filed.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: RCMConfig | None = None,
        registry: NotifiedRuleRegistry | None = None,
        locks: EntityLockRegistry | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or RCMConfig.with_defaults()
        self._registry = registry if registry is not None else load_default_registry()
        self._locks = locks if locks is not None else EntityLockRegistry()
        self._repo = RCMRepository(session)

    # -------------------------------------------------------------------------
    # Transactions and payments
    # -------------------------------------------------------------------------

    def record_transaction(
        self,
        transaction_id: str,
        detection_input: DetectionInput,
        transaction_date: date,
        actor_id: UUID,
        *,
        cess_rate: Decimal = ZERO,
        foreign_amount: Decimal | None = None,
        exchange_rate: Decimal | None = None,
        foreign_currency: str | None = None,
    ) -> RCMTransaction:
        """
        Detect reverse charge on an inward supply, compute the tax and
        persist it with a compliance record.

        Rules are matched as of ``transaction_date``.  Unregistered and
        import supplies get the next self-invoice number of their
        financial year.

        Raises:
            ValidationError: from detection or the tax calculator.
            ReturnPeriodClosedError: the supply falls in a filed period.
        """
        gstin = detection_input.recipient_gstin or ""
        period = return_period_label(transaction_date)
        t0 = time.monotonic()
        with LogContext.bind(gstin=gstin, transaction_id=transaction_id, return_period=period):
            logger.info("rcm_transaction_started")
            try:
                self._ensure_open(gstin, period)
                detection = detect_rcm(
                    detection_input,
                    self._registry,
                    transaction_date,
                    min_confidence=self._config.supplier_min_confidence,
                    review_threshold=self._config.supplier_review_threshold,
                )

                taxable = detection_input.taxable_amount
                heads = TaxHeads()
                if detection.is_rcm_applicable:
                    tax = calculate_tax(TaxInput(
                        gst_rate=detection.gst_rate,
                        tax_type=detection.tax_type,
                        taxable_amount=detection_input.taxable_amount,
                        cess_rate=cess_rate,
                        foreign_amount=foreign_amount,
                        exchange_rate=exchange_rate,
                        foreign_currency=foreign_currency,
                    ))
                    taxable = tax.taxable_amount
                    heads = tax.heads

                self_invoice = None
                if detection.rcm_type in _SELF_INVOICED_TYPES:
                    self_invoice = self_invoice_number_for(
                        transaction_date,
                        self._next_self_invoice_sequence(gstin, transaction_date, actor_id),
                    )

                txn = RCMTransaction(
                    transaction_id=transaction_id,
                    gstin=gstin,
                    transaction_date=transaction_date,
                    taxable_amount=taxable,
                    rcm_type=detection.rcm_type,
                    gst_rate=detection.gst_rate,
                    heads=heads,
                    return_period=period,
                    tax_type=detection.tax_type,
                    supplier_name=detection_input.supplier_name,
                    supplier_gstin=detection_input.supplier_gstin,
                    hsn_sac_code=detection_input.hsn_sac_code,
                    place_of_supply=detection_input.place_of_supply,
                    reason=detection.reason,
                    rule_id=detection.matched_rule.rule_id if detection.matched_rule else None,
                    registry_version=detection.registry_version,
                    self_invoice_number=self_invoice,
                )
                self._repo.save(RCMTransactionModel.from_dto(txn, actor_id))

                if txn.is_rcm_applicable:
                    self._refresh_compliance(txn, actor_id)

                self._session.commit()
            except Exception:
                self._session.rollback()
                logger.warning("rcm_transaction_rolled_back", exc_info=True)
                raise

            logger.info("rcm_transaction_recorded", extra={
                "rcm_type": txn.rcm_type.value,
                "total_tax": str(txn.total_tax),
                "self_invoice_number": self_invoice,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })
            return txn

    def get_transaction(self, gstin: str, transaction_id: str) -> RCMTransaction:
        """
        Raises:
            RecordNotFoundError: no such transaction for ``gstin``.
        """
        return self._repo.get_one(
            RCMTransactionModel, gstin=gstin, transaction_id=transaction_id,
        ).to_dto()

    def record_payment(
        self,
        gstin: str,
        payment: RCMPayment,
        actor_id: UUID,
    ) -> tuple[PaymentRecord, ComplianceRecord]:
        """
        Validate and store a payment of reverse-charge tax, then refresh the
        transaction's compliance record.

        Raises:
            PaymentValidationError: with every validation message.
            RecordNotFoundError: the transaction was never recorded.
            ReturnPeriodClosedError: the payment is tagged with a filed period.
        """
        with LogContext.bind(gstin=gstin, transaction_id=payment.transaction_id):
            logger.info("rcm_payment_started", extra={"amount": str(payment.amount)})
            try:
                validation = validate_rcm_payment(payment, self._clock.today())
                if not validation.is_valid:
                    raise PaymentValidationError(validation.messages)
                if payment.return_period:
                    self._ensure_open(gstin, payment.return_period)

                txn = self.get_transaction(gstin, payment.transaction_id)
                record = PaymentRecord(
                    transaction_id=payment.transaction_id,
                    gstin=gstin,
                    payment_date=payment.payment_date,
                    amount=payment.amount,
                    payment_mode=str(getattr(payment.payment_mode, "value", payment.payment_mode)).upper(),
                    challan_number=payment.challan_number or "",
                    return_period=payment.return_period,
                )
                self._repo.save(RCMPaymentModel.from_dto(record, actor_id))
                compliance = self._refresh_compliance(txn, actor_id)
                self._session.commit()
            except Exception:
                self._session.rollback()
                logger.warning("rcm_payment_rolled_back", exc_info=True)
                raise

            logger.info("rcm_payment_recorded", extra={
                "challan_number": record.challan_number,
                "payment_status": compliance.status.value,
                "outstanding_amount": str(compliance.outstanding_amount),
            })
            return record, compliance

    def compliance_status(self, gstin: str, transaction_id: str) -> ComplianceRecord:
        """Recompute the compliance record as of today's clock (read only)."""
        txn = self.get_transaction(gstin, transaction_id)
        return self._compliance_for(txn)

    def outstanding_liabilities(self, gstin: str) -> list[ComplianceRecord]:
        """Stored compliance records that are not yet fully paid."""
        rows = self._repo.find(ComplianceRecordModel, ComplianceRecordModel.due_date, gstin=gstin)
        return [r.to_dto() for r in rows if r.status != PaymentStatus.PAID.value]

    # -------------------------------------------------------------------------
    # Eligibility and the credit ledger
    # -------------------------------------------------------------------------

    def evaluate_itc(
        self,
        gstin: str,
        transaction_id: str,
        category: ExpenseCategory,
        actor_id: UUID,
        **details: Any,
    ) -> tuple[EligibilityResult, LedgerPosting | None]:
        """
        Decide eligibility of the credit on a recorded transaction and post
        the outcome to the credit ledger.

        ``details`` are extra ``EligibilityRequest`` fields (usage,
        seating capacity, supplier payment status and so on).  Whether the
        reverse-charge tax was paid in cash is taken from the stored
        payments unless given explicitly.

        A stored REVERSAL for the transaction is passed to the engine as
        the prior reversal, so confirming supplier payment makes it
        reclaimable.

        Posting:
            * eligible, not yet credited  -> CREDIT of the eligible heads;
            * reversal required after an earlier CREDIT  -> REVERSAL;
            * reclaimable reversal, not yet reclaimed  -> CREDIT of the
              reversed heads, tagged with the payment's return period (or
              the current one when that period is already filed);
            * otherwise nothing is posted.
        """
        as_of = self._clock.today()
        period = return_period_label(as_of)
        with LogContext.bind(gstin=gstin, transaction_id=transaction_id, return_period=period):
            logger.info("itc_evaluation_started", extra={"category": category.value})
            with self._locks.hold(gstin):
                try:
                    txn = self.get_transaction(gstin, transaction_id)
                    payments = self._payments_for(gstin, transaction_id)
                    fields: dict[str, Any] = {
                        "category": category,
                        "tax": txn.heads,
                        "transaction_id": transaction_id,
                        "is_rcm": txn.is_rcm_applicable,
                        "rcm_type": txn.rcm_type if txn.is_rcm_applicable else None,
                        "invoice_date": txn.transaction_date,
                    }
                    if payments:
                        fields["liability_paid_in_cash"] = all(p.is_cash for p in payments)
                    reversal = self._find_entry(gstin, transaction_id, LedgerEntryType.REVERSAL)
                    if reversal is not None:
                        fields["previous_reversal"] = PriorReversal(
                            reason=ReversalReason(reversal.reversal_reason),
                            amount=reversal.heads.total,
                            reversal_date=reversal.entry_date,
                        )
                    fields.update(details)
                    request = EligibilityRequest(**fields)

                    result = determine_eligibility(
                        request, as_of, reversal_days=self._config.reversal_days,
                    )
                    evaluation = ITCEvaluation(
                        transaction_id=transaction_id,
                        gstin=gstin,
                        category=category,
                        evaluated_on=as_of,
                        is_eligible=result.is_eligible,
                        total_itc=result.total_itc,
                        eligible_amount=result.eligible_amount,
                        blocked_amount=result.blocked_amount,
                        eligible_heads=result.eligible_heads,
                        section=result.section,
                        ineligible_reason=result.ineligible_reason,
                        reversal_required=result.reversal_required,
                        reversal_amount=result.reversal_amount,
                        is_capital_good=request.is_capital_good,
                    )
                    self._repo.save(EligibilityResultModel.from_dto(evaluation, actor_id))

                    posting = None
                    credited = self._has_entry(gstin, transaction_id, LedgerEntryType.CREDIT)
                    reclaim_ref = f"{transaction_id}:RECLAIM"
                    if result.reversal_required:
                        if credited and not self._has_entry(gstin, transaction_id, LedgerEntryType.REVERSAL):
                            posting = self._append(gstin, CreditLedgerEntry(
                                entry_type=LedgerEntryType.REVERSAL,
                                entry_date=as_of,
                                heads=result.eligible_heads,
                                reference=transaction_id,
                                description=f"ITC reversal for {transaction_id}",
                                reversal_reason=result.reversal_reason.value,
                                return_period=period,
                            ), actor_id)
                    elif (
                        result.reclaim_eligible
                        and reversal is not None
                        and not self._has_entry(gstin, reclaim_ref, LedgerEntryType.CREDIT)
                    ):
                        posting = self._append(gstin, CreditLedgerEntry(
                            entry_type=LedgerEntryType.CREDIT,
                            entry_date=as_of,
                            heads=reversal.heads,
                            reference=reclaim_ref,
                            description=f"ITC reclaimed on {transaction_id}",
                            return_period=self._reclaim_period(gstin, result.reclaim_period, period),
                        ), actor_id)
                    elif result.is_eligible and not credited:
                        posting = self._append(gstin, CreditLedgerEntry(
                            entry_type=LedgerEntryType.CREDIT,
                            entry_date=as_of,
                            heads=result.eligible_heads,
                            reference=transaction_id,
                            description=f"ITC on {transaction_id}",
                            return_period=period,
                        ), actor_id)

                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    logger.warning("itc_evaluation_rolled_back", exc_info=True)
                    raise

            logger.info("itc_evaluation_recorded", extra={
                "is_eligible": result.is_eligible,
                "eligible_amount": str(result.eligible_amount),
                "ledger_entry_type": posting.entry_type.value if posting else None,
            })
            return result, posting

    def append_ledger_entry(
        self,
        gstin: str,
        entry: CreditLedgerEntry,
        actor_id: UUID,
    ) -> LedgerPosting:
        """
        Append one entry to the GSTIN's credit ledger.

        Raises:
            InsufficientBalanceError: DEBIT larger than the replayed balance.
            ReturnPeriodClosedError: entry tagged with a filed period.
        """
        with LogContext.bind(gstin=gstin, return_period=entry.return_period):
            with self._locks.hold(gstin):
                try:
                    posting = self._append(gstin, entry, actor_id)
                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    logger.warning("ledger_append_rolled_back", exc_info=True)
                    raise
            return posting

    def ledger_entries(self, gstin: str) -> list[LedgerPosting]:
        rows = self._repo.find(CreditLedgerEntryModel, CreditLedgerEntryModel.sequence, gstin=gstin)
        return [row.to_dto() for row in rows]

    def ledger_balance(self, gstin: str) -> TaxHeads:
        """Balance replayed from every stored ledger row."""
        return self._replayed_ledger(gstin).balance

    def utilize_credit(
        self,
        gstin: str,
        liability: TaxHeads,
        actor_id: UUID,
        *,
        return_period: str | None = None,
    ) -> UtilizationResult:
        """
        Set available credit off against ``liability`` and DEBIT what was
        used.  The remainder of the liability is payable in cash.

        A warning is logged when the share of credit consumed reaches a
        configured utilization threshold.
        """
        period = return_period or return_period_label(self._clock.today())
        with LogContext.bind(gstin=gstin, return_period=period):
            with self._locks.hold(gstin):
                try:
                    self._ensure_open(gstin, period)
                    available = self._replayed_ledger(gstin).balance
                    result = track_utilization(available, liability)
                    used = result.credit_used
                    if not used.is_zero:
                        self._append(gstin, CreditLedgerEntry(
                            entry_type=LedgerEntryType.DEBIT,
                            entry_date=self._clock.today(),
                            heads=used,
                            reference=f"UTIL-{period}",
                            description=f"Credit utilized against liability for {period}",
                            return_period=period,
                        ), actor_id)
                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    logger.warning("credit_utilization_rolled_back", exc_info=True)
                    raise

            ratio = utilization_ratio(used.total, available.total)
            crossed = [t for t in self._config.utilization_warning_thresholds if ratio >= t]
            if crossed:
                logger.warning("itc_utilization_threshold_reached", extra={
                    "utilization_percent": str(ratio),
                    "threshold": str(crossed[-1]),
                    "remaining_total": str(result.remaining.total),
                })
            return result

    # -------------------------------------------------------------------------
    # Period operations
    # -------------------------------------------------------------------------

    def import_gstr2b(
        self,
        gstin: str,
        period: str,
        entries: Iterable[GSTR2BEntry],
        actor_id: UUID,
    ) -> int:
        """Store the GSTR-2B lines of ``period``; re-imports replace lines by invoice."""
        count = 0
        try:
            for entry in entries:
                incoming = GSTR2BEntryModel.from_dto(entry, gstin, period, actor_id)
                key = {
                    "gstin": gstin,
                    "return_period": period,
                    "supplier_gstin": entry.gstin,
                    "invoice_number": entry.invoice_number,
                }
                values = {
                    column.key: getattr(incoming, column.key)
                    for column in GSTR2BEntryModel.__table__.columns
                    if column.key not in ("id", "created_at", "updated_at", "created_by_id", "updated_by_id")
                }
                self._repo.upsert(GSTR2BEntryModel, key, values, actor_id)
                count += 1
            self._session.commit()
        except Exception:
            self._session.rollback()
            logger.warning("gstr2b_import_rolled_back", exc_info=True)
            raise
        logger.info("gstr2b_imported", extra={
            "gstin": gstin, "return_period": period, "entry_count": count,
        })
        return count

    def reconcile_period(
        self,
        gstin: str,
        period: str,
        actor_id: UUID,
        *,
        claims: Iterable[ITCClaim] = (),
    ) -> PeriodReconciliation:
        """
        Match the period's credit claims against stored GSTR-2B lines and
        check reverse-charge claims against the tax payments.

        Claims are built from the latest eligible evaluation of each of the
        period's transactions; ``claims`` adds ordinary B2B claims kept
        outside this module.
        """
        t0 = time.monotonic()
        with LogContext.bind(gstin=gstin, return_period=period):
            logger.info("period_reconciliation_started")
            try:
                own_claims = self._claims_for_period(gstin, period)
                entries = [
                    row.to_dto()
                    for row in self._repo.find(GSTR2BEntryModel, gstin=gstin, return_period=period)
                ]
                match = match_with_third_party_data(
                    entries,
                    [*own_claims, *claims],
                    amount_tolerance=self._config.mismatch_tolerance,
                    date_tolerance_days=self._config.date_tolerance_days,
                    adjustment_period=period,
                )

                rcm_claims = [c for c in own_claims if c.is_rcm]
                payments = [
                    row.to_engine_payment()
                    for row in self._repo.find(RCMPaymentModel, gstin=gstin)
                    if row.transaction_id in {c.transaction_id for c in rcm_claims}
                ]
                payment_result = reconcile_itc_with_payments(period, payments, rcm_claims)

                run = ReconciliationRun(
                    gstin=gstin,
                    return_period=period,
                    run_date=self._clock.today(),
                    matched_count=len(match.matched),
                    unmatched_count=len(match.unmatched),
                    mismatch_count=len(match.mismatches),
                    manual_entry_count=len(match.manual_entries),
                    violation_count=len(match.violations) + len(payment_result.violations),
                    match_percentage=match.match_percentage,
                    is_reconciled=payment_result.is_reconciled and not match.violations,
                )
                self._repo.save(ReconciliationRunModel.from_dto(run, actor_id))
                self._session.commit()
            except Exception:
                self._session.rollback()
                logger.warning("period_reconciliation_rolled_back", exc_info=True)
                raise

            logger.info("period_reconciliation_completed", extra={
                "matched_count": run.matched_count,
                "unmatched_count": run.unmatched_count,
                "violation_count": run.violation_count,
                "is_reconciled": run.is_reconciled,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })
            return PeriodReconciliation(run=run, match_result=match, payment_result=payment_result)

    def build_return(self, gstin: str, period: str) -> GSTR3BReport:
        """GSTR-3B tables 3.1(d) and 4(B) for ``period`` (read only)."""
        transactions = self._transactions_for_period(gstin, period)
        supplies = [
            RCMSupply(
                rcm_type=txn.rcm_type,
                taxable_amount=txn.taxable_amount,
                heads=txn.heads,
                transaction_id=txn.transaction_id,
            )
            for txn in transactions
            if txn.is_rcm_applicable
        ]
        latest = self._latest_evaluations(gstin)
        items: list[ITCItem] = []
        for txn in transactions:
            evaluation = latest.get(txn.transaction_id)
            if evaluation is None:
                continue
            itc_class = _itc_class(txn, evaluation)
            if not evaluation.eligible_heads.is_zero:
                items.append(ITCItem(
                    itc_class=itc_class,
                    heads=evaluation.eligible_heads,
                    transaction_id=txn.transaction_id,
                ))
            if evaluation.blocked_amount > ZERO:
                items.append(ITCItem(
                    itc_class=itc_class,
                    heads=(txn.heads - evaluation.eligible_heads).floored(),
                    eligible=False,
                    ineligible_reason=evaluation.ineligible_reason,
                    transaction_id=txn.transaction_id,
                ))
        return build_gstr3b_report(gstin, period, supplies, items)

    def validate_return(self, gstin: str, period: str) -> GSTR3BValidation:
        """Cross-check the built return against the period's stored payments."""
        report = self.build_return(gstin, period)
        txn_ids = {t.transaction_id for t in self._transactions_for_period(gstin, period)}
        payments = [
            row.to_engine_payment()
            for row in self._repo.find(RCMPaymentModel, gstin=gstin)
            if row.transaction_id in txn_ids
        ]
        unpaid = [
            record for record in self.outstanding_liabilities(gstin)
            if record.transaction_id in txn_ids
        ]
        return validate_gstr3b(report, payments, unpaid)

    def close_period(self, gstin: str, period: str, actor_id: UUID) -> FiledPeriod:
        """
        Mark ``period`` as filed.

        Raises:
            ReturnPeriodClosedError: the period is already filed.
        """
        try:
            self._ensure_open(gstin, period)
            filed = FiledPeriod(gstin=gstin, return_period=period, filed_on=self._clock.today())
            self._repo.save(FiledPeriodModel.from_dto(filed, actor_id))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info("return_period_closed", extra={"gstin": gstin, "return_period": period})
        return filed

    def is_period_closed(self, gstin: str, period: str) -> bool:
        return self._repo.find_one(FiledPeriodModel, gstin=gstin, return_period=period) is not None

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ensure_open(self, gstin: str, period: str) -> None:
        if self.is_period_closed(gstin, period):
            logger.warning("return_period_write_rejected", extra={
                "gstin": gstin, "return_period": period,
            })
            raise ReturnPeriodClosedError(gstin, period)

    def _lock_head(self, gstin: str, actor_id: UUID) -> CreditLedgerHeadModel:
        """Lock (creating on first use) the GSTIN's ledger head row."""
        stmt = (
            select(CreditLedgerHeadModel)
            .where(CreditLedgerHeadModel.gstin == gstin)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        head = self._session.execute(stmt).scalar_one_or_none()
        if head is not None:
            return head

        savepoint = self._session.begin_nested()
        try:
            head = CreditLedgerHeadModel(gstin=gstin, last_sequence=0, created_by_id=actor_id)
            self._session.add(head)
            self._session.flush()
            savepoint.commit()
            return head
        except IntegrityError:
            logger.debug("ledger_head_race_retry", extra={"gstin": gstin})
            savepoint.rollback()
            return self._session.execute(stmt).scalar_one()

    def _replayed_ledger(self, gstin: str) -> CreditLedger:
        rows = self._repo.find(CreditLedgerEntryModel, CreditLedgerEntryModel.sequence, gstin=gstin)
        return CreditLedger.from_entries(row.to_dto().to_entry() for row in rows)

    def _append(self, gstin: str, entry: CreditLedgerEntry, actor_id: UUID) -> LedgerPosting:
        if entry.return_period:
            self._ensure_open(gstin, entry.return_period)

        head = self._lock_head(gstin, actor_id)
        ledger = self._replayed_ledger(gstin)
        if len(ledger) != head.last_sequence:
            raise OptimisticLockError("credit_ledger", gstin)

        ledger = ledger.append(entry)
        stamped = ledger.entries[-1]
        posting = LedgerPosting(
            gstin=gstin,
            sequence=head.last_sequence + 1,
            entry_type=stamped.entry_type,
            entry_date=stamped.entry_date,
            heads=stamped.heads,
            running_balance=stamped.running_balance,
            reference=stamped.reference,
            description=stamped.description,
            reversal_reason=stamped.reversal_reason,
            return_period=stamped.return_period,
        )
        self._repo.save(CreditLedgerEntryModel.from_dto(posting, actor_id))
        head.last_sequence = posting.sequence
        head.set_balance(ledger.balance)
        head.updated_by_id = actor_id
        self._session.flush()

        logger.info("ledger_entry_posted", extra={
            "gstin": gstin,
            "sequence": posting.sequence,
            "entry_type": posting.entry_type.value,
            "amount": str(posting.heads.total),
            "balance_total": str(posting.running_balance.total),
        })
        return posting

    def _has_entry(self, gstin: str, reference: str, entry_type: LedgerEntryType) -> bool:
        return bool(self._repo.find(
            CreditLedgerEntryModel, gstin=gstin, reference=reference, entry_type=entry_type.value,
        ))

    def _find_entry(
        self, gstin: str, reference: str, entry_type: LedgerEntryType
    ) -> LedgerPosting | None:
        rows = self._repo.find(
            CreditLedgerEntryModel,
            CreditLedgerEntryModel.sequence,
            gstin=gstin,
            reference=reference,
            entry_type=entry_type.value,
        )
        return rows[0].to_dto() if rows else None

    def _reclaim_period(self, gstin: str, payment_period: str | None, current: str) -> str:
        """Payment's return period, moved to ``current`` once that period is filed."""
        if payment_period is None or payment_period == current:
            return current
        if self.is_period_closed(gstin, payment_period):
            logger.info("itc_reclaim_moved_to_open_period", extra={
                "payment_period": payment_period, "return_period": current,
            })
            return current
        return payment_period

    def _next_self_invoice_sequence(self, gstin: str, on: date, actor_id: UUID) -> int:
        """Next self-invoice number of the financial year containing ``on``."""
        fy = financial_year_start(on)
        stmt = (
            select(SelfInvoiceCounterModel)
            .where(
                SelfInvoiceCounterModel.gstin == gstin,
                SelfInvoiceCounterModel.fy_start_year == fy,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = self._session.execute(stmt).scalar_one_or_none()
        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SelfInvoiceCounterModel(gstin=gstin, fy_start_year=fy, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                return 1
            except IntegrityError:
                savepoint.rollback()
                counter = self._session.execute(stmt).scalar_one()

        counter.current_value += 1
        self._session.flush()
        return counter.current_value

    def _payments_for(self, gstin: str, transaction_id: str) -> list[RCMPayment]:
        rows = self._repo.find(
            RCMPaymentModel, RCMPaymentModel.payment_date,
            gstin=gstin, transaction_id=transaction_id,
        )
        return [row.to_engine_payment() for row in rows]

    def _compliance_for(self, txn: RCMTransaction) -> ComplianceRecord:
        liability = RCMLiability(
            transaction_id=txn.transaction_id,
            transaction_date=txn.transaction_date,
            taxable_amount=txn.taxable_amount,
            tax_amount=txn.total_tax,
            rcm_type=txn.rcm_type,
        )
        return track_payment_status(
            liability,
            self._payments_for(txn.gstin, txn.transaction_id),
            self._clock.today(),
            annual_rate=self._config.interest_rate,
            frequency=self._config.filing_frequency,
        )

    def _refresh_compliance(self, txn: RCMTransaction, actor_id: UUID) -> ComplianceRecord:
        record = self._compliance_for(txn)
        self._repo.upsert(
            ComplianceRecordModel,
            {"gstin": txn.gstin, "transaction_id": txn.transaction_id},
            ComplianceRecordModel.values_from(record),
            actor_id,
        )
        return record

    def _transactions_for_period(self, gstin: str, period: str) -> list[RCMTransaction]:
        rows = self._repo.find(
            RCMTransactionModel, RCMTransactionModel.transaction_date,
            gstin=gstin, return_period=period,
        )
        return [row.to_dto() for row in rows]

    def _latest_evaluations(self, gstin: str) -> dict[str, ITCEvaluation]:
        rows = self._repo.find(
            EligibilityResultModel, EligibilityResultModel.evaluated_on, EligibilityResultModel.created_at,
            gstin=gstin,
        )
        # Later rows overwrite earlier ones.
        return {row.transaction_id: row.to_dto() for row in rows}

    def _claims_for_period(self, gstin: str, period: str) -> list[ITCClaim]:
        latest = self._latest_evaluations(gstin)
        claims = []
        for txn in self._transactions_for_period(gstin, period):
            evaluation = latest.get(txn.transaction_id)
            if evaluation is None or not evaluation.is_eligible:
                continue
            claims.append(ITCClaim(
                gstin=txn.supplier_gstin or "",
                invoice_number=txn.self_invoice_number or txn.transaction_id,
                invoice_date=txn.transaction_date,
                heads=evaluation.eligible_heads,
                transaction_id=txn.transaction_id,
                claim_date=evaluation.evaluated_on,
                is_rcm=txn.is_rcm_applicable,
                self_invoiced=txn.is_rcm_applicable,
            ))
        return claims


def _itc_class(txn: RCMTransaction, evaluation: ITCEvaluation) -> ITCClass:
    if evaluation.is_capital_good:
        return ITCClass.CAPITAL_GOODS
    if txn.rcm_type == RCMType.NOTIFIED_GOODS:
        return ITCClass.INPUTS
    return ITCClass.INPUT_SERVICES
