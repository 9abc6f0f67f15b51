"""
PendingAdjustmentQueue -- corrections captured while a period is closed.

Responsibility:
    While a period is cerrado, creates and deletes are not applied; they
    are stored here in arrival order.  When the period goes from reabierto
    back to cerrado, ``drain()`` applies them.

Architecture position:
    Kernel > Services.  Uses NoveltyService to materialize entries and,
    when an entry asks for it, the NoveltyCalculator to value it again.

Invariants enforced:
    - enqueue() is refused while the period accepts direct mutations.
    - Each entry is applied inside its own SAVEPOINT, and its applied
      marker is written inside that same SAVEPOINT.  A drain interrupted
      at any point can be re-run: applied entries are skipped, unapplied
      ones are never lost.
    - Entries of one employee are applied in enqueue order.  Once one of
      them fails, the employee's later entries are held back so that a
      delete never overtakes the create it depends on.
    - A delete whose target no longer exists is marked applied with a
      warning.

Failure modes:
    - DirectMutationAllowedError on enqueue against borrador/reabierto.
    - InvalidPeriodTransitionError on drain outside reabierto.
    - PendingAdjustmentNotFoundError on discard of an unknown entry.
    - Per-entry failures are collected in ``DrainResult``; they do not
      abort the drain.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_engines.novelty_calculator import NoveltyCalculator
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.drafts import (
    CreationDraft,
    DeletionDraft,
    draft_from_payload,
    draft_to_payload,
)
from payroll_kernel.domain.dtos import (
    AdjustmentOperation,
    AdjustmentStatus,
    PendingAdjustmentInfo,
    PeriodStatus,
)
from payroll_kernel.domain.novelty_types import NoveltyTypeRegistry, default_registry
from payroll_kernel.domain.period_rules import can_mutate_directly
from payroll_kernel.exceptions import (
    DirectMutationAllowedError,
    InvalidPeriodTransitionError,
    NoveltyNotFoundError,
    PendingAdjustmentNotFoundError,
    PeriodNotFoundError,
    ValidationError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.liquidation import Liquidation
from payroll_kernel.models.novelty import Novelty
from payroll_kernel.models.pending_adjustment import PendingAdjustment
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.base import BaseService
from payroll_kernel.services.novelty_service import NoveltyService

logger = get_logger("services.pending_queue")


@dataclass(frozen=True)
class DrainResult:
    """Outcome of one drain pass."""

    period_id: UUID
    applied_ids: tuple[UUID, ...] = ()
    skipped_ids: tuple[UUID, ...] = ()
    held_ids: tuple[UUID, ...] = ()
    failures: dict[UUID, str] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def failed_ids(self) -> tuple[UUID, ...]:
        return tuple(self.failures)

    @property
    def is_complete(self) -> bool:
        return not self.failures and not self.held_ids

    @property
    def unapplied_ids(self) -> tuple[UUID, ...]:
        return self.failed_ids + self.held_ids


class PendingAdjustmentQueue(BaseService[PendingAdjustment]):
    """
    FIFO queue of corrections against closed payroll periods.

    Contract:
        Flush-only like every kernel service.  ``drain()`` opens one
        SAVEPOINT per entry with ``session.begin_nested()``; the caller's
        transaction must be committed for the drain to become durable.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        calculator: NoveltyCalculator | None = None,
        registry: NoveltyTypeRegistry | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._calculator = calculator
        self._registry = registry or default_registry()
        self._novelties = NoveltyService(session, self._clock, self._registry)

    # ------------------------------------------------------------------
    # Enqueue / discard
    # ------------------------------------------------------------------

    def enqueue(
        self,
        operation: AdjustmentOperation,
        employee_id: UUID,
        period_id: UUID,
        payload: dict[str, Any],
        actor_id: UUID,
    ) -> UUID:
        """
        Queue one correction and return its id.

        Raises:
            PeriodNotFoundError, DirectMutationAllowedError, ValidationError.
        """
        self._require_queueable(period_id)

        operation = AdjustmentOperation(operation)
        if operation == AdjustmentOperation.CREATE:
            self._registry.describe(payload.get("novelty_type", ""))
        elif not payload.get("novelty_id"):
            raise ValidationError("delete adjustments need a novelty_id", field="novelty_id")

        next_sequence = (
            self.session.execute(
                select(func.max(PendingAdjustment.sequence)).where(
                    PendingAdjustment.period_id == period_id
                )
            ).scalar_one_or_none()
            or 0
        ) + 1

        adjustment = PendingAdjustment(
            period_id=period_id,
            employee_id=employee_id,
            operation=operation.value,
            payload=payload,
            sequence=next_sequence,
            status=AdjustmentStatus.PENDING.value,
            enqueued_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(adjustment)
        self.session.flush()

        logger.info(
            "pending_adjustment_enqueued",
            extra={
                "adjustment_id": str(adjustment.id),
                "operation": operation.value,
                "period_id": str(period_id),
                "employee_id": str(employee_id),
                "sequence": next_sequence,
            },
        )
        return adjustment.id

    def enqueue_creation(
        self,
        draft: CreationDraft,
        value: Decimal | None,
        actor_id: UUID,
        calculation_trace: str | None = None,
        recompute: bool = False,
    ) -> UUID:
        payload = draft_to_payload(draft, value, calculation_trace, recompute)
        return self.enqueue(
            AdjustmentOperation.CREATE, draft.employee_id, draft.period_id, payload, actor_id
        )

    def enqueue_deletion(self, draft: DeletionDraft, actor_id: UUID) -> UUID:
        """
        Queue the deletion of an existing record of the same employee.

        A record already queued for deletion is not queued again; the id of
        the existing pending entry is returned instead.

        Raises:
            NoveltyNotFoundError: The record does not exist in that
                employee's period.
        """
        novelty = self.session.get(Novelty, draft.novelty_id)
        if (
            novelty is None
            or novelty.period_id != draft.period_id
            or novelty.employee_id != draft.employee_id
        ):
            raise NoveltyNotFoundError(str(draft.novelty_id))
        self._require_queueable(draft.period_id)
        for queued in self._pending_rows(draft.period_id, draft.employee_id):
            if (
                queued.operation == AdjustmentOperation.DELETE.value
                and queued.payload.get("novelty_id") == str(draft.novelty_id)
            ):
                logger.info(
                    "pending_delete_already_queued",
                    extra={
                        "adjustment_id": str(queued.id),
                        "novelty_id": str(draft.novelty_id),
                    },
                )
                return queued.id
        payload = {
            "novelty_id": str(draft.novelty_id),
            "novelty_type": novelty.novelty_type,
            "value": str(novelty.value),
        }
        return self.enqueue(
            AdjustmentOperation.DELETE, draft.employee_id, draft.period_id, payload, actor_id
        )

    def discard(self, adjustment_id: UUID, actor_id: UUID, reason: str) -> PendingAdjustmentInfo:
        """Explicitly drop a pending entry; it will never be applied."""
        adjustment = self.session.get(PendingAdjustment, adjustment_id)
        if adjustment is None or adjustment.status != AdjustmentStatus.PENDING.value:
            raise PendingAdjustmentNotFoundError(str(adjustment_id))
        adjustment.status = AdjustmentStatus.DISCARDED.value
        adjustment.discarded_at = self._clock.now()
        adjustment.discard_reason = reason
        adjustment.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "pending_adjustment_discarded",
            extra={"adjustment_id": str(adjustment_id), "reason": reason},
        )
        return adjustment.to_dto()

    def list_pending(
        self, period_id: UUID, employee_id: UUID | None = None
    ) -> list[PendingAdjustmentInfo]:
        """Pending entries in application order."""
        return [row.to_dto() for row in self._pending_rows(period_id, employee_id)]

    def get(self, adjustment_id: UUID) -> PendingAdjustmentInfo:
        adjustment = self.session.get(PendingAdjustment, adjustment_id)
        if adjustment is None:
            raise PendingAdjustmentNotFoundError(str(adjustment_id))
        return adjustment.to_dto()

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    def drain(self, period_id: UUID, actor_id: UUID) -> DrainResult:
        """
        Apply every pending entry of a reabierto period.

        Raises:
            PeriodNotFoundError, InvalidPeriodTransitionError.
        """
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        if period.period_status != PeriodStatus.REABIERTO:
            raise InvalidPeriodTransitionError(
                str(period_id), period.status, PeriodStatus.CERRADO.value
            )

        t0 = time.monotonic()
        rows = self._pending_rows(period_id)
        logger.info(
            "pending_drain_started",
            extra={"period_id": str(period_id), "entry_count": len(rows)},
        )

        applied: list[UUID] = []
        skipped: list[UUID] = []
        held: list[UUID] = []
        failures: dict[UUID, str] = {}
        blocked_employees: set[UUID] = set()

        for adjustment in rows:
            if adjustment.employee_id in blocked_employees:
                held.append(adjustment.id)
                continue

            savepoint = self.session.begin_nested()
            try:
                outcome = self._apply(adjustment, period.start_date, actor_id)
                adjustment.status = AdjustmentStatus.APPLIED.value
                adjustment.applied_at = self._clock.now()
                adjustment.last_error = None
                adjustment.updated_by_id = actor_id
                self.session.flush()
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                blocked_employees.add(adjustment.employee_id)
                failures[adjustment.id] = f"{type(exc).__name__}: {exc}"
                adjustment.last_error = failures[adjustment.id][:2000]
                self.session.flush()
                logger.warning(
                    "pending_adjustment_failed",
                    extra={
                        "adjustment_id": str(adjustment.id),
                        "employee_id": str(adjustment.employee_id),
                        "error_code": getattr(exc, "code", type(exc).__name__),
                    },
                    exc_info=True,
                )
                continue

            if outcome == "skipped":
                skipped.append(adjustment.id)
            else:
                applied.append(adjustment.id)

        result = DrainResult(
            period_id=period_id,
            applied_ids=tuple(applied),
            skipped_ids=tuple(skipped),
            held_ids=tuple(held),
            failures=failures,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        logger.info(
            "pending_drain_completed",
            extra={
                "period_id": str(period_id),
                "applied": len(applied),
                "skipped": len(skipped),
                "held": len(held),
                "failed": len(failures),
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _apply(
        self, adjustment: PendingAdjustment, period_start: date, actor_id: UUID
    ) -> str:
        if adjustment.operation == AdjustmentOperation.CREATE.value:
            # A record already materialized from this entry means an
            # earlier drain got this far; do not create it twice.
            if self._novelties.find_by_source_adjustment(adjustment.id) is not None:
                return "skipped"
            draft = draft_from_payload(
                adjustment.payload,
                adjustment.employee_id,
                adjustment.period_id,
                self._registry,
            )
            value, trace = self._value_for(adjustment, draft, period_start)
            self._novelties.create(
                draft,
                value,
                actor_id,
                calculation_trace=trace,
                source_adjustment_id=adjustment.id,
            )
            return "applied"

        target_id = UUID(adjustment.payload["novelty_id"])
        if self.session.get(Novelty, target_id) is None:
            logger.warning(
                "pending_delete_target_missing",
                extra={"adjustment_id": str(adjustment.id), "novelty_id": str(target_id)},
            )
            return "skipped"
        self._novelties.delete(
            target_id,
            actor_id,
            employee_id=adjustment.employee_id,
            period_id=adjustment.period_id,
        )
        return "applied"

    def _value_for(
        self,
        adjustment: PendingAdjustment,
        draft: CreationDraft,
        period_start: date,
    ) -> tuple[Decimal, str | None]:
        payload = adjustment.payload
        stored_value = Decimal(payload["value"]) if payload.get("value") is not None else None
        stored_trace = payload.get("calculation_trace")

        wants_recompute = bool(payload.get("recompute"))
        if wants_recompute and self._calculator is not None and self._calculator.supports(
            draft.novelty_type
        ):
            salary = self.session.execute(
                select(Liquidation.base_salary).where(
                    Liquidation.period_id == adjustment.period_id,
                    Liquidation.employee_id == adjustment.employee_id,
                )
            ).scalar_one_or_none()
            if salary is None:
                raise ValidationError(
                    f"Employee {adjustment.employee_id} is not enrolled in the period",
                    field="employee_id",
                    novelty_type=draft.novelty_type.value,
                )
            result = self._calculator.compute(
                novelty_type=draft.novelty_type,
                subtype=draft.subtype,
                salary=salary,
                effective_date=draft.effective_date or draft.start_date or period_start,
                days=getattr(draft, "days", None),
                hours=getattr(draft, "hours", None),
            )
            return result.value, result.calculation_trace

        if stored_value is None:
            raise ValidationError(
                "queued creation has no value and cannot be recomputed",
                field="value",
                novelty_type=draft.novelty_type.value,
            )
        return stored_value, stored_trace

    def _require_queueable(self, period_id: UUID) -> None:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        if can_mutate_directly(period.period_status):
            raise DirectMutationAllowedError(str(period_id), period.status)

    def _pending_rows(
        self, period_id: UUID, employee_id: UUID | None = None
    ) -> list[PendingAdjustment]:
        stmt = select(PendingAdjustment).where(
            PendingAdjustment.period_id == period_id,
            PendingAdjustment.status == AdjustmentStatus.PENDING.value,
        )
        if employee_id is not None:
            stmt = stmt.where(PendingAdjustment.employee_id == employee_id)
        return list(self.session.execute(stmt.order_by(PendingAdjustment.sequence)).scalars())
