"""
Module: payroll_kernel.models.pending_adjustment
Responsibility: ORM persistence for corrections queued against a closed
    payroll period.

Invariants enforced:
    - ``sequence`` is strictly increasing per period and fixes the FIFO
      order in which entries are applied.
    - ``applied_at`` is written in the same SAVEPOINT as the novelty
      mutation it stands for, so a retried drain never applies an entry
      twice and never loses one.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.domain.dtos import (
    AdjustmentOperation,
    AdjustmentStatus,
    PendingAdjustmentInfo,
)


class PendingAdjustment(TrackedBase):
    __tablename__ = "payroll_pending_adjustments"

    __table_args__ = (
        UniqueConstraint("period_id", "sequence", name="uq_pending_period_sequence"),
        Index("idx_pending_period_status", "period_id", "status"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payroll_periods.id"), nullable=False
    )
    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    operation: Mapped[str] = mapped_column(String(10), nullable=False)
    # create: full novelty draft; delete: {"novelty_id": ...}
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=AdjustmentStatus.PENDING.value, nullable=False
    )
    enqueued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    discarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    discard_reason: Mapped[str | None] = mapped_column(Text)
    last_error: Mapped[str | None] = mapped_column(Text)

    def to_dto(self) -> PendingAdjustmentInfo:
        return PendingAdjustmentInfo(
            id=self.id,
            operation=AdjustmentOperation(self.operation),
            employee_id=self.employee_id,
            period_id=self.period_id,
            payload=dict(self.payload),
            sequence=self.sequence,
            status=AdjustmentStatus(self.status),
            created_at=self.enqueued_at,
            applied_at=self.applied_at,
            discarded_at=self.discarded_at,
            last_error=self.last_error,
        )
