"""
Module: payroll_kernel.models.novelty
Responsibility: ORM persistence for novelty records.
Architecture position: Kernel > Models.

Invariants enforced:
    - value, days and hours are non-negative (CHECK constraints).
    - A novelty belongs to exactly one (employee, period) pair.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.domain.dtos import NoveltyRecord, NoveltyStatus
from payroll_kernel.domain.novelty_types import NoveltyType


class Novelty(TrackedBase):
    __tablename__ = "payroll_novelties"

    __table_args__ = (
        CheckConstraint("value >= 0", name="value_non_negative"),
        CheckConstraint("days IS NULL OR days >= 0", name="days_non_negative"),
        CheckConstraint("hours IS NULL OR hours >= 0", name="hours_non_negative"),
        Index("idx_novelty_employee_period", "period_id", "employee_id"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payroll_periods.id"), nullable=False
    )
    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    novelty_type: Mapped[str] = mapped_column(String(40), nullable=False)
    subtype: Mapped[str | None] = mapped_column(String(40))
    value: Mapped[Decimal] = mapped_column(nullable=False)
    days: Mapped[int | None] = mapped_column(Integer)
    hours: Mapped[Decimal | None] = mapped_column()
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    observation: Mapped[str | None] = mapped_column(Text)
    calculation_trace: Mapped[str | None] = mapped_column(Text)
    # Queue entry this record was materialized from, if any
    source_adjustment_id: Mapped[UUID | None] = mapped_column(UUIDString())

    def to_dto(self) -> NoveltyRecord:
        return NoveltyRecord(
            id=self.id,
            employee_id=self.employee_id,
            period_id=self.period_id,
            novelty_type=NoveltyType(self.novelty_type),
            value=self.value,
            subtype=self.subtype,
            days=self.days,
            hours=self.hours,
            start_date=self.start_date,
            end_date=self.end_date,
            observation=self.observation,
            calculation_trace=self.calculation_trace,
            status=NoveltyStatus.REGISTRADA,
            created_at=self.created_at,
        )
