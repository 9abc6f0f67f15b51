"""
Liquidation totals -- pure folds over novelty records.

    gross_pay  = sum of devengo values
    deductions = sum of deduccion values
    net_pay    = gross_pay - deductions

Stored values are never negative; which side a value lands on comes from
the novelty category.  Queued adjustments are folded separately so a
closed period's confirmed totals never move until the queue is drained.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from payroll_kernel.domain.dtos import (
    AdjustmentOperation,
    NoveltyRecord,
    PendingAdjustmentInfo,
)
from payroll_kernel.domain.novelty_types import (
    NoveltyCategory,
    NoveltyTypeRegistry,
    default_registry,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.totals")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class LiquidationTotals:
    gross_pay: Decimal = _ZERO
    deductions: Decimal = _ZERO

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.deductions

    def add(self, category: NoveltyCategory, value: Decimal) -> "LiquidationTotals":
        if category == NoveltyCategory.DEDUCCION:
            return LiquidationTotals(self.gross_pay, self.deductions + value)
        return LiquidationTotals(self.gross_pay + value, self.deductions)

    def __add__(self, other: "LiquidationTotals") -> "LiquidationTotals":
        return LiquidationTotals(
            self.gross_pay + other.gross_pay,
            self.deductions + other.deductions,
        )


@dataclass(frozen=True)
class PendingImpact:
    """Effect the queued adjustments would have once drained."""

    original: LiquidationTotals
    delta: LiquidationTotals
    pending_count: int

    @property
    def projected(self) -> LiquidationTotals:
        return self.original + self.delta

    @property
    def has_pending(self) -> bool:
        return self.pending_count > 0


def fold_records(
    records: Iterable[NoveltyRecord],
    registry: NoveltyTypeRegistry | None = None,
) -> LiquidationTotals:
    """Totals of confirmed records."""
    registry = registry or default_registry()
    totals = LiquidationTotals()
    for record in records:
        category = registry.describe(record.novelty_type).category
        totals = totals.add(category, record.value)
    return totals


def fold_pending(
    adjustments: Iterable[PendingAdjustmentInfo],
    confirmed: Iterable[NoveltyRecord],
    registry: NoveltyTypeRegistry | None = None,
) -> LiquidationTotals:
    """
    Signed delta of queued adjustments.

    A create adds its payload value on its category's side.  A delete
    subtracts the value of the confirmed record it references, once per
    record however many deletes name it; a delete whose target is already
    gone contributes nothing.
    """
    registry = registry or default_registry()
    by_id: dict[UUID, NoveltyRecord] = {r.id: r for r in confirmed}
    delta = LiquidationTotals()
    for adj in adjustments:
        if adj.operation == AdjustmentOperation.CREATE:
            category = registry.describe(adj.payload["novelty_type"]).category
            delta = delta.add(category, Decimal(str(adj.payload.get("value") or "0")))
        else:
            target = by_id.pop(adj.target_novelty_id, None) if adj.target_novelty_id else None
            if target is None:
                logger.debug(
                    "pending_delete_target_missing",
                    extra={"adjustment_id": str(adj.id)},
                )
                continue
            category = registry.describe(target.novelty_type).category
            delta = delta.add(category, -target.value)
    return delta


def pending_impact(
    confirmed: list[NoveltyRecord],
    adjustments: list[PendingAdjustmentInfo],
    registry: NoveltyTypeRegistry | None = None,
) -> PendingImpact:
    return PendingImpact(
        original=fold_records(confirmed, registry),
        delta=fold_pending(adjustments, confirmed, registry),
        pending_count=len(adjustments),
    )
