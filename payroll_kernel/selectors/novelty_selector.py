"""
Module: payroll_kernel.selectors.novelty_selector
Responsibility: Read-side views of an employee's novelties in a period:
    confirmed records, queued corrections shown as pending, and the totals
    of both.
Architecture position: Kernel > Selectors.  Read-only; totals are derived
    on demand with ``payroll_engines.totals`` and never stored.

Invariants enforced:
    - No writes.  The reconciler never adds, deletes or flushes.
    - Queued entries never change the confirmed totals of a closed period;
      their effect is reported separately as a pending delta and a
      projection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_engines.totals import (
    LiquidationTotals,
    PendingImpact,
    fold_records,
    pending_impact,
)
from payroll_kernel.domain.dtos import (
    AdjustmentOperation,
    AdjustmentStatus,
    NoveltyRecord,
    NoveltyStatus,
    PendingAdjustmentInfo,
)
from payroll_kernel.domain.novelty_types import (
    NoveltyType,
    NoveltyTypeRegistry,
    default_registry,
)
from payroll_kernel.models.liquidation import Liquidation
from payroll_kernel.models.novelty import Novelty
from payroll_kernel.models.pending_adjustment import PendingAdjustment
from payroll_kernel.selectors.base import BaseSelector


class NoveltySelector(BaseSelector[Novelty]):
    """Plain queries over novelty records and queue entries."""

    def list_records(
        self, period_id: UUID, employee_id: UUID | None = None
    ) -> list[NoveltyRecord]:
        stmt = select(Novelty).where(Novelty.period_id == period_id)
        if employee_id is not None:
            stmt = stmt.where(Novelty.employee_id == employee_id)
        rows = self.session.execute(stmt.order_by(Novelty.created_at, Novelty.id)).scalars()
        return [row.to_dto() for row in rows]

    def get_record(self, novelty_id: UUID) -> NoveltyRecord | None:
        row = self.session.get(Novelty, novelty_id)
        return row.to_dto() if row is not None else None

    def list_pending(
        self, period_id: UUID, employee_id: UUID | None = None
    ) -> list[PendingAdjustmentInfo]:
        stmt = select(PendingAdjustment).where(
            PendingAdjustment.period_id == period_id,
            PendingAdjustment.status == AdjustmentStatus.PENDING.value,
        )
        if employee_id is not None:
            stmt = stmt.where(PendingAdjustment.employee_id == employee_id)
        rows = self.session.execute(stmt.order_by(PendingAdjustment.sequence)).scalars()
        return [row.to_dto() for row in rows]

    def employee_ids(self, period_id: UUID) -> list[UUID]:
        """Employees enrolled in, or holding records for, the period."""
        enrolled = self.session.execute(
            select(Liquidation.employee_id).where(Liquidation.period_id == period_id)
        ).scalars()
        with_records = self.session.execute(
            select(Novelty.employee_id).where(Novelty.period_id == period_id).distinct()
        ).scalars()
        seen: dict[UUID, None] = {}
        for employee_id in list(enrolled) + list(with_records):
            seen.setdefault(employee_id, None)
        return list(seen)


@dataclass(frozen=True)
class PendingNoveltyView:
    """A queued entry as shown next to the confirmed records."""

    adjustment_id: UUID
    operation: AdjustmentOperation
    record: NoveltyRecord | None


@dataclass(frozen=True)
class NoveltyDisplay:
    confirmed: list[NoveltyRecord]
    pending: list[PendingNoveltyView]


@dataclass(frozen=True)
class ReconciledTotals:
    """Confirmed totals plus the effect of the queue."""

    confirmed: LiquidationTotals
    pending: LiquidationTotals
    pending_count: int

    @property
    def projected(self) -> LiquidationTotals:
        return self.confirmed + self.pending


def _pending_record(adj: PendingAdjustmentInfo) -> NoveltyRecord:
    payload = adj.payload
    return NoveltyRecord(
        id=adj.id,
        employee_id=adj.employee_id,
        period_id=adj.period_id,
        novelty_type=NoveltyType(payload["novelty_type"]),
        value=Decimal(str(payload.get("value") or "0")),
        subtype=payload.get("subtype"),
        days=payload.get("days"),
        hours=Decimal(payload["hours"]) if payload.get("hours") else None,
        start_date=date.fromisoformat(payload["start_date"]) if payload.get("start_date") else None,
        end_date=date.fromisoformat(payload["end_date"]) if payload.get("end_date") else None,
        observation=payload.get("observation"),
        calculation_trace=payload.get("calculation_trace"),
        status=NoveltyStatus.PENDIENTE,
        created_at=adj.created_at,
    )


class NoveltyReconciler(BaseSelector[Novelty]):
    """
    Merges confirmed records with queued corrections for display.

    Contract:
        ``list_for_display`` and ``totals`` read only.  Totals are folds
        over the records as they are now; nothing is cached.
    """

    def __init__(self, session: Session, registry: NoveltyTypeRegistry | None = None):
        super().__init__(session)
        self._registry = registry or default_registry()
        self._selector = NoveltySelector(session)

    def list_for_display(self, employee_id: UUID, period_id: UUID) -> NoveltyDisplay:
        confirmed = self._selector.list_records(period_id, employee_id)
        by_id = {r.id: r for r in confirmed}
        pending: list[PendingNoveltyView] = []
        for adj in self._selector.list_pending(period_id, employee_id):
            if adj.operation == AdjustmentOperation.CREATE:
                record = _pending_record(adj)
            else:
                record = by_id.get(adj.target_novelty_id)
            pending.append(PendingNoveltyView(adj.id, adj.operation, record))
        return NoveltyDisplay(confirmed=confirmed, pending=pending)

    def totals(self, employee_id: UUID, period_id: UUID) -> ReconciledTotals:
        impact = self.preview_impact(employee_id, period_id)
        return ReconciledTotals(
            confirmed=impact.original,
            pending=impact.delta,
            pending_count=impact.pending_count,
        )

    def preview_impact(self, employee_id: UUID, period_id: UUID) -> PendingImpact:
        """Original versus projected gross, deductions and net."""
        confirmed = self._selector.list_records(period_id, employee_id)
        queued = self._selector.list_pending(period_id, employee_id)
        return pending_impact(confirmed, queued, self._registry)

    def period_totals(self, period_id: UUID) -> dict[UUID, LiquidationTotals]:
        """Confirmed totals of every employee in the period."""
        records = self._selector.list_records(period_id)
        totals: dict[UUID, LiquidationTotals] = {
            employee_id: LiquidationTotals()
            for employee_id in self._selector.employee_ids(period_id)
        }
        for employee_id in totals:
            totals[employee_id] = fold_records(
                (r for r in records if r.employee_id == employee_id), self._registry
            )
        return totals
