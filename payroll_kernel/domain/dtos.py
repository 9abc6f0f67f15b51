"""
DTOs -- immutable data crossing the kernel boundary.

Responsibility:
    Frozen dataclasses returned by services and selectors: novelty records,
    pending adjustments, payroll periods, liquidations and audit entries.
    Services never hand ORM instances to callers.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Monetary values and hours are ``Decimal``; never ``float``.
    - ``NoveltyRecord.value`` is non-negative; the sign of its effect comes
      from the novelty category.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from payroll_kernel.domain.novelty_types import NoveltyType


class PeriodStatus(str, Enum):
    """
    Lifecycle status of a payroll period.

    Contract:
        borrador -> cerrado -> reabierto -> cerrado.  Never back to borrador.
    """

    BORRADOR = "borrador"
    CERRADO = "cerrado"
    REABIERTO = "reabierto"


class NoveltyStatus(str, Enum):
    REGISTRADA = "registrada"
    PENDIENTE = "pendiente"


class AdjustmentOperation(str, Enum):
    CREATE = "create"
    DELETE = "delete"


class AdjustmentStatus(str, Enum):
    """Queue entry state.  Only PENDING entries are drained."""

    PENDING = "pending"
    APPLIED = "applied"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) cannot be after end ({self.end})")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        """Inclusive calendar day count."""
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class NoveltyRecord:
    """A persisted novelty of one employee in one period."""

    id: UUID
    employee_id: UUID
    period_id: UUID
    novelty_type: NoveltyType
    value: Decimal
    subtype: str | None = None
    days: int | None = None
    hours: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    observation: str | None = None
    calculation_trace: str | None = None
    status: NoveltyStatus = NoveltyStatus.REGISTRADA
    created_at: datetime | None = None


@dataclass(frozen=True)
class PendingAdjustmentInfo:
    """A queued correction against a closed period."""

    id: UUID
    operation: AdjustmentOperation
    employee_id: UUID
    period_id: UUID
    payload: dict[str, Any]
    sequence: int
    status: AdjustmentStatus
    created_at: datetime
    applied_at: datetime | None = None
    discarded_at: datetime | None = None
    last_error: str | None = None

    @property
    def target_novelty_id(self) -> UUID | None:
        """Record referenced by a delete entry."""
        raw = self.payload.get("novelty_id")
        return UUID(raw) if raw else None


@dataclass(frozen=True)
class PayrollPeriodInfo:
    id: UUID
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None
    reopened_at: datetime | None = None
    reopened_by_id: UUID | None = None
    reopen_reason: str | None = None


@dataclass(frozen=True)
class LiquidationInfo:
    """Enrollment of one employee in a period, with base salary."""

    id: UUID
    employee_id: UUID
    period_id: UUID
    base_salary: Decimal
    liquidated_at: datetime | None = None

    @property
    def is_liquidated(self) -> bool:
        return self.liquidated_at is not None


@dataclass(frozen=True)
class PeriodAuditEntry:
    id: UUID
    period_id: UUID
    action: str
    actor_id: UUID
    previous_status: PeriodStatus
    new_status: PeriodStatus
    occurred_at: datetime
    notes: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
