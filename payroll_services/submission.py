"""
NoveltySubmissionService -- the caller entry point for novelty edits.

Responsibility:
    Takes a draft (create or delete), decides whether the period accepts
    direct mutations, and either applies the edit through the store or
    queues it as a pending adjustment.  Either way the caller gets a
    ``SubmissionResult`` carrying the refreshed list and totals plus the
    events to show the user.

Invariants enforced:
    - The gate is ``can_mutate_directly(period)``.  For an open period
      the edit is applied directly and never queued; for a closed period
      it is queued and the direct path is never called.
    - A redirect to the pending queue is not an error:
      ``SubmissionResult.is_pending`` is True.
    - Computed types are valued immediately, without debounce.
    - After every successful edit the list and totals are fetched again
      from the store; nothing is patched locally.

Failure modes:
    - Any PayrollNoveltyError raised by validation, valuation or the
      store propagates from ``submit``.  ``submit_batch`` records it per
      entry and carries on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Sequence
from uuid import UUID

from payroll_engines.novelty_calculator import CalculationResult
from payroll_kernel.domain.drafts import CreationDraft, DeletionDraft, NoveltyDraft
from payroll_kernel.domain.dtos import AdjustmentOperation, PayrollPeriodInfo
from payroll_kernel.domain.novelty_types import NoveltyTypeRegistry, default_registry
from payroll_kernel.domain.period_rules import can_mutate_directly
from payroll_kernel.exceptions import ValidationError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.selectors.novelty_selector import NoveltyDisplay, ReconciledTotals
from payroll_services.store import NoveltyStore
from payroll_services.valuation import NoveltyValuator

logger = get_logger("services.submission")


class SubmissionEventKind(str, Enum):
    CREATED = "created"
    DELETED = "deleted"
    QUEUED = "queued"
    LOCAL_FALLBACK = "local_fallback"
    FAILED = "failed"


@dataclass(frozen=True)
class SubmissionEvent:
    """A user-facing notice produced by a submission."""

    kind: SubmissionEventKind
    message: str
    novelty_type: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class SubmissionResult:
    is_pending: bool
    operation: AdjustmentOperation
    employee_id: UUID
    period_id: UUID
    display: NoveltyDisplay
    totals: ReconciledTotals
    novelty_id: UUID | None = None
    adjustment_id: UUID | None = None
    value: Decimal | None = None
    calculation_trace: str | None = None
    events: tuple[SubmissionEvent, ...] = ()


@dataclass(frozen=True)
class BatchFailure:
    index: int
    draft: NoveltyDraft
    error_code: str
    message: str


@dataclass(frozen=True)
class BatchSubmissionResult:
    results: tuple[SubmissionResult, ...] = ()
    failures: tuple[BatchFailure, ...] = ()

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def events(self) -> tuple[SubmissionEvent, ...]:
        collected = [event for result in self.results for event in result.events]
        collected.extend(
            SubmissionEvent(
                kind=SubmissionEventKind.FAILED,
                message=failure.message,
                error_code=failure.error_code,
            )
            for failure in self.failures
        )
        return tuple(collected)


def effective_date_for(draft: CreationDraft, period: PayrollPeriodInfo) -> date:
    """The date whose rules value the draft: its own, its start, or the period's."""
    return draft.effective_date or draft.start_date or period.start_date


class NoveltySubmissionService:
    def __init__(
        self,
        store: NoveltyStore,
        valuator: NoveltyValuator,
        registry: NoveltyTypeRegistry | None = None,
    ):
        self._store = store
        self._valuator = valuator
        self._registry = registry or default_registry()

    async def submit(self, draft: NoveltyDraft, actor_id: UUID) -> SubmissionResult:
        """
        Apply or queue one edit.

        Raises:
            PayrollNoveltyError: Validation, valuation or persistence
                failure.  Nothing was written.
        """
        with LogContext.bind(
            actor_id=str(actor_id),
            period_id=str(draft.period_id),
            employee_id=str(draft.employee_id),
        ):
            period = await self._store.get_period(draft.period_id)
            direct = can_mutate_directly(period)
            if isinstance(draft, DeletionDraft):
                return await self._submit_deletion(draft, actor_id, direct)
            return await self._submit_creation(draft, period, actor_id, direct)

    async def submit_batch(
        self, drafts: Sequence[NoveltyDraft], actor_id: UUID
    ) -> BatchSubmissionResult:
        """
        Submit drafts one after another.

        Each entry is awaited before the next starts.  A failing entry is
        recorded and the rest still run.
        """
        results: list[SubmissionResult] = []
        failures: list[BatchFailure] = []
        for index, draft in enumerate(drafts):
            try:
                results.append(await self.submit(draft, actor_id))
            except Exception as exc:
                code = getattr(exc, "code", type(exc).__name__)
                failures.append(BatchFailure(index, draft, code, str(exc)))
                logger.warning(
                    "batch_entry_failed",
                    extra={"index": index, "error_code": code},
                    exc_info=True,
                )

        logger.info(
            "batch_submission_completed",
            extra={
                "actor_id": str(actor_id),
                "submitted": len(drafts),
                "succeeded": len(results),
                "failed": len(failures),
            },
        )
        return BatchSubmissionResult(results=tuple(results), failures=tuple(failures))

    # ------------------------------------------------------------------

    async def _submit_creation(
        self,
        draft: CreationDraft,
        period: PayrollPeriodInfo,
        actor_id: UUID,
        direct: bool,
    ) -> SubmissionResult:
        spec = self._registry.describe(draft.novelty_type)
        tag = spec.novelty_type.value

        salary: Decimal | None = None
        if not spec.is_manual:
            liquidation = await self._store.get_liquidation(draft.period_id, draft.employee_id)
            if liquidation is None:
                raise ValidationError(
                    f"Employee {draft.employee_id} is not enrolled in period {draft.period_id}",
                    field="employee_id",
                    novelty_type=tag,
                )
            salary = liquidation.base_salary

        valued: CalculationResult = await self._valuator.value(
            draft, salary, effective_date_for(draft, period)
        )
        events: list[SubmissionEvent] = []
        if valued.is_local_fallback:
            events.append(
                SubmissionEvent(
                    SubmissionEventKind.LOCAL_FALLBACK,
                    f"{spec.label}: calculation service unavailable, value computed locally",
                    novelty_type=tag,
                )
            )

        novelty_id: UUID | None = None
        adjustment_id: UUID | None = None
        if direct:
            novelty_id = await self._store.create_novelty(
                draft, valued.value, valued.calculation_trace, actor_id
            )
            events.append(
                SubmissionEvent(
                    SubmissionEventKind.CREATED,
                    f"{spec.label} registered for {valued.value}",
                    novelty_type=tag,
                )
            )
        else:
            adjustment_id = await self._store.enqueue_adjustment(
                draft,
                actor_id,
                value=valued.value,
                calculation_trace=valued.calculation_trace,
                recompute=valued.is_local_fallback,
            )
            events.append(
                SubmissionEvent(
                    SubmissionEventKind.QUEUED,
                    f"Period is {period.status.value}: {spec.label} queued as a pending adjustment",
                    novelty_type=tag,
                )
            )

        logger.info(
            "novelty_submitted",
            extra={
                "operation": AdjustmentOperation.CREATE.value,
                "novelty_type": tag,
                "is_pending": not direct,
                "value": str(valued.value),
                "local_fallback": valued.is_local_fallback,
            },
        )
        return await self._result(
            draft,
            AdjustmentOperation.CREATE,
            is_pending=not direct,
            novelty_id=novelty_id,
            adjustment_id=adjustment_id,
            value=valued.value,
            calculation_trace=valued.calculation_trace,
            events=events,
        )

    async def _submit_deletion(
        self, draft: DeletionDraft, actor_id: UUID, direct: bool
    ) -> SubmissionResult:
        adjustment_id: UUID | None = None
        if direct:
            await self._store.delete_novelty(
                draft.novelty_id,
                actor_id,
                employee_id=draft.employee_id,
                period_id=draft.period_id,
            )
            event = SubmissionEvent(SubmissionEventKind.DELETED, "Novelty deleted")
        else:
            adjustment_id = await self._store.enqueue_adjustment(draft, actor_id)
            event = SubmissionEvent(
                SubmissionEventKind.QUEUED,
                "Period is closed: deletion queued as a pending adjustment",
            )

        logger.info(
            "novelty_submitted",
            extra={
                "operation": AdjustmentOperation.DELETE.value,
                "novelty_id": str(draft.novelty_id),
                "is_pending": not direct,
            },
        )
        return await self._result(
            draft,
            AdjustmentOperation.DELETE,
            is_pending=not direct,
            novelty_id=draft.novelty_id,
            adjustment_id=adjustment_id,
            events=[event],
        )

    async def _result(
        self,
        draft: NoveltyDraft,
        operation: AdjustmentOperation,
        *,
        is_pending: bool,
        events: list[SubmissionEvent],
        novelty_id: UUID | None = None,
        adjustment_id: UUID | None = None,
        value: Decimal | None = None,
        calculation_trace: str | None = None,
    ) -> SubmissionResult:
        display = await self._store.list_for_display(draft.employee_id, draft.period_id)
        totals = await self._store.totals(draft.employee_id, draft.period_id)
        return SubmissionResult(
            is_pending=is_pending,
            operation=operation,
            employee_id=draft.employee_id,
            period_id=draft.period_id,
            display=display,
            totals=totals,
            novelty_id=novelty_id,
            adjustment_id=adjustment_id,
            value=value,
            calculation_trace=calculation_trace,
            events=tuple(events),
        )
