"""
Module: payroll_kernel.models.liquidation
Responsibility: Enrollment of an employee in a payroll period together with
    the base salary used to value the employee's novelties, and the marker
    that the liquidation has been computed.

A period may only close from borrador once every enrolled employee has
``liquidated_at`` set.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.domain.dtos import LiquidationInfo


class Liquidation(TrackedBase):
    __tablename__ = "payroll_liquidations"

    __table_args__ = (
        UniqueConstraint("period_id", "employee_id", name="uq_liquidation_employee_period"),
        Index("idx_liquidation_period", "period_id"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payroll_periods.id"), nullable=False
    )
    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(nullable=False)
    liquidated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def to_dto(self) -> LiquidationInfo:
        return LiquidationInfo(
            id=self.id,
            employee_id=self.employee_id,
            period_id=self.period_id,
            base_salary=self.base_salary,
            liquidated_at=self.liquidated_at,
        )
