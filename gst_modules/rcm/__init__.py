"""
Reverse-Charge Module (``gst_modules.rcm``).

Responsibility
--------------
Persistence and orchestration for reverse-charge supplies: recorded
transactions, tax payments and compliance records, eligibility decisions,
the per-GSTIN electronic credit ledger, GSTR-2B reconciliation runs and
filed return periods.

Architecture position
---------------------
**Modules layer** -- config schema, DTOs, ORM companions, a repository and
the ``RCMService`` facade.  All computation is delegated to
``gst_engines``.

Invariants enforced
-------------------
* Transaction boundary owned by ``RCMService``; commit/rollback is explicit
  per operation.
* Ledger appends for one GSTIN are serialized (entity lock + row lock).

Failure modes
-------------
* Typed ``gst_kernel.exceptions`` errors propagate after session rollback.

``RCMService`` is imported from ``gst_modules.rcm.service`` directly; it
depends on ``gst_config``, which itself loads ``RCMConfig`` from here.
"""

from gst_modules.rcm.config import RCMConfig
from gst_modules.rcm.models import (
    FiledPeriod,
    ITCEvaluation,
    LedgerPosting,
    PaymentRecord,
    RCMTransaction,
    ReconciliationRun,
)

__all__ = [
    "FiledPeriod",
    "ITCEvaluation",
    "LedgerPosting",
    "PaymentRecord",
    "RCMConfig",
    "RCMTransaction",
    "ReconciliationRun",
]
