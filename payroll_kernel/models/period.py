"""
Module: payroll_kernel.models.period
Responsibility: ORM persistence for payroll periods and their lifecycle audit
    trail.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - status is one of borrador / cerrado / reabierto.  Transitions are
      validated by PeriodService, not here.
    - A reabierto period always carries reopened_at, reopened_by_id and a
      non-empty reopen_reason.
    - PeriodAuditRecord rows are append-only.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, TrackedBase, UUIDString
from payroll_kernel.domain.dtos import PayrollPeriodInfo, PeriodAuditEntry, PeriodStatus


class PayrollPeriod(TrackedBase):
    """A payroll period and its close/reopen state."""

    __tablename__ = "payroll_periods"

    __table_args__ = (
        Index("idx_payroll_period_dates", "start_date", "end_date"),
        Index("idx_payroll_period_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Inclusive boundaries
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PeriodStatus.BORRADOR.value,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString())

    reopened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reopened_by_id: Mapped[UUID | None] = mapped_column(UUIDString())
    reopen_reason: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<PayrollPeriod {self.name}: {self.status}>"

    @property
    def period_status(self) -> PeriodStatus:
        return PeriodStatus(self.status)

    def to_dto(self) -> PayrollPeriodInfo:
        return PayrollPeriodInfo(
            id=self.id,
            name=self.name,
            start_date=self.start_date,
            end_date=self.end_date,
            status=self.period_status,
            closed_at=self.closed_at,
            closed_by_id=self.closed_by_id,
            reopened_at=self.reopened_at,
            reopened_by_id=self.reopened_by_id,
            reopen_reason=self.reopen_reason,
        )


class PeriodAuditRecord(Base):
    """One lifecycle action (close, reopen, close again) on a period."""

    __tablename__ = "payroll_period_audit"

    __table_args__ = (
        Index("idx_period_audit_period", "period_id", "occurred_at"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payroll_periods.id"), nullable=False
    )
    # cerrado / reabierto / cerrado_nuevamente
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    previous_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    def to_dto(self) -> PeriodAuditEntry:
        return PeriodAuditEntry(
            id=self.id,
            period_id=self.period_id,
            action=self.action,
            actor_id=self.actor_id,
            previous_status=PeriodStatus(self.previous_status),
            new_status=PeriodStatus(self.new_status),
            occurred_at=self.occurred_at,
            notes=self.notes,
            details=dict(self.details or {}),
        )
