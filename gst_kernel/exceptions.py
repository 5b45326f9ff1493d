"""
Typed Exception Hierarchy for the GST Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Tax computations feed statutory returns. Callers must be able to tell a
malformed input apart from an overdrawn credit ledger without parsing
message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way:
    try:
        ledger = ledger.append(debit)
    except InsufficientBalanceError as e:
        log.warning("ledger_debit_rejected", extra={"head": e.head})
        api_response(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from GstKernelError:

    GstKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidGSTRateError
    |   +-- InvalidExchangeRateError
    |   +-- PaymentValidationError
    |
    +-- LedgerError
    |   +-- InsufficientBalanceError
    |   +-- ReturnPeriodClosedError
    |
    +-- RegistryError
    |   +-- DuplicateRuleError
    |   +-- InvalidRuleError
    |
    +-- RecordNotFoundError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Missing/malformed required input
                | INVALID_GST_RATE            | Rate outside {0, 5, 12, 18, 28}
                | INVALID_EXCHANGE_RATE       | Foreign amount without positive rate
                | INVALID_PAYMENT             | Challan/amount/date/mode rejected
----------------|-----------------------------|-----------------------------------------
Ledger          | INSUFFICIENT_BALANCE        | DEBIT would drive a head negative
                | RETURN_PERIOD_CLOSED        | Writing into a filed return period
----------------|-----------------------------|-----------------------------------------
Registry        | DUPLICATE_RULE              | Rule id already published
                | INVALID_RULE                | Rule fails structural validation
----------------|-----------------------------|-----------------------------------------
Persistence     | RECORD_NOT_FOUND            | Lookup by key returned nothing
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Ledger head changed under the writer

===============================================================================
WHAT IS NOT AN EXCEPTION
===============================================================================

Compliance violations (non-cash RCM payment, ITC claimed before payment,
claim above the supplier-reported eligible amount) are recorded as
``ComplianceViolation`` values on reconciliation results so a batch run
reports every violation in one pass. Eligibility disqualifications are
likewise returned as reasons on ``EligibilityResult``.
"""


class GstKernelError(Exception):
    """
    Base exception for all GST kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "GST_KERNEL_ERROR"


# Validation exceptions


class ValidationError(GstKernelError):
    """Required input is missing or malformed."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: object = None):
        self.field = field
        self.value = value
        super().__init__(message)


class InvalidGSTRateError(ValidationError):
    """GST rate is not one of the notified slabs."""

    code: str = "INVALID_GST_RATE"

    def __init__(self, rate: object, valid_rates: tuple):
        self.valid_rates = valid_rates
        super().__init__(
            f"Invalid GST rate {rate}. Valid rates are: "
            + ", ".join(f"{r}%" for r in valid_rates),
            field="gst_rate",
            value=rate,
        )


class InvalidExchangeRateError(ValidationError):
    """Foreign-currency amount supplied without a usable exchange rate."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, exchange_rate: object):
        if exchange_rate is None:
            message = "Exchange rate is required for foreign currency transactions"
        else:
            message = "Exchange rate must be greater than 0"
        super().__init__(message, field="exchange_rate", value=exchange_rate)


class PaymentValidationError(ValidationError):
    """RCM payment details were rejected."""

    code: str = "INVALID_PAYMENT"

    def __init__(self, messages: list[str] | tuple[str, ...]):
        self.messages = tuple(messages)
        super().__init__("; ".join(self.messages), field="payment")


# Ledger exceptions


class LedgerError(GstKernelError):
    """Base exception for credit-ledger errors."""

    code: str = "LEDGER_ERROR"


class InsufficientBalanceError(LedgerError):
    """A DEBIT would drive a tax head below zero."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, head: str, available: object, requested: object):
        self.head = head
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient ITC balance for {head.upper()}: "
            f"available {available}, requested {requested}"
        )


class ReturnPeriodClosedError(LedgerError):
    """The return period has been filed and no longer accepts writes."""

    code: str = "RETURN_PERIOD_CLOSED"

    def __init__(self, gstin: str, return_period: str):
        self.gstin = gstin
        self.return_period = return_period
        super().__init__(
            f"Return period {return_period} for {gstin} is closed"
        )


# Registry exceptions


class RegistryError(GstKernelError):
    """Base exception for notified-rule registry errors."""

    code: str = "REGISTRY_ERROR"


class DuplicateRuleError(RegistryError):
    """A rule with this id has already been published."""

    code: str = "DUPLICATE_RULE"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Notified rule already published: {rule_id}")


class InvalidRuleError(RegistryError):
    """A notified rule failed structural validation."""

    code: str = "INVALID_RULE"

    def __init__(self, rule_id: str, problems: list[str] | tuple[str, ...]):
        self.rule_id = rule_id
        self.problems = tuple(problems)
        super().__init__(f"Invalid notified rule {rule_id}: {'; '.join(self.problems)}")


# Persistence exceptions


class RecordNotFoundError(GstKernelError):
    """A persisted record could not be found by key."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_type: str, key: str):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type} not found: {key}")


# Concurrency exceptions


class ConcurrencyError(GstKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
