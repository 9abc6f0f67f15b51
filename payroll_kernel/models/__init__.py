"""ORM models.  Importing this package registers every table on Base.metadata."""

from payroll_kernel.models.liquidation import Liquidation
from payroll_kernel.models.novelty import Novelty
from payroll_kernel.models.pending_adjustment import PendingAdjustment
from payroll_kernel.models.period import PayrollPeriod, PeriodAuditRecord

__all__ = [
    "Liquidation",
    "Novelty",
    "PayrollPeriod",
    "PendingAdjustment",
    "PeriodAuditRecord",
]
