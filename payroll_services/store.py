"""
Persistence collaborator for the submission layer.

``NoveltyStore`` is the async seam the submission service talks to.
``SqlNoveltyStore`` implements it over the kernel services: every call
runs in its own ``session_scope`` (one transaction), in a worker thread
so the event loop is never blocked by database I/O.

Closing a reabierto period takes two transactions.  The first drains
the pending queue and commits whatever was applied, including the error
recorded on entries that failed.  The second closes the period, and only
runs when the drain left nothing behind.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from payroll_engines.novelty_calculator import NoveltyCalculator
from payroll_engines.totals import LiquidationTotals
from payroll_kernel.db.engine import session_scope
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.drafts import CreationDraft, DeletionDraft
from payroll_kernel.domain.dtos import (
    LiquidationInfo,
    NoveltyRecord,
    PayrollPeriodInfo,
    PendingAdjustmentInfo,
    PeriodStatus,
)
from payroll_kernel.domain.novelty_types import NoveltyTypeRegistry, default_registry
from payroll_kernel.domain.period_rules import PeriodRoleResolver
from payroll_kernel.exceptions import PendingDrainIncompleteError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.selectors.novelty_selector import (
    NoveltyDisplay,
    NoveltyReconciler,
    NoveltySelector,
    ReconciledTotals,
)
from payroll_kernel.services.novelty_service import NoveltyService
from payroll_kernel.services.pending_adjustment_queue import (
    DrainResult,
    PendingAdjustmentQueue,
)
from payroll_kernel.services.period_service import PeriodService

logger = get_logger("services.store")


@dataclass(frozen=True)
class PeriodCloseResult:
    """A closed period, the drain that preceded it and the final totals."""

    period: PayrollPeriodInfo
    drain: DrainResult | None = None
    totals: dict[UUID, LiquidationTotals] = field(default_factory=dict)


class NoveltyStore(Protocol):
    async def get_period(self, period_id: UUID) -> PayrollPeriodInfo: ...

    async def get_liquidation(
        self, period_id: UUID, employee_id: UUID
    ) -> LiquidationInfo | None: ...

    async def create_novelty(
        self,
        draft: CreationDraft,
        value: Decimal,
        calculation_trace: str | None,
        actor_id: UUID,
    ) -> UUID: ...

    async def delete_novelty(
        self,
        novelty_id: UUID,
        actor_id: UUID,
        *,
        employee_id: UUID | None = None,
        period_id: UUID | None = None,
    ) -> None: ...

    async def list_novelties(
        self, period_id: UUID, employee_id: UUID
    ) -> list[NoveltyRecord]: ...

    async def enqueue_adjustment(
        self,
        draft: CreationDraft | DeletionDraft,
        actor_id: UUID,
        value: Decimal | None = None,
        calculation_trace: str | None = None,
        recompute: bool = False,
    ) -> UUID: ...

    async def list_pending(
        self, period_id: UUID, employee_id: UUID | None = None
    ) -> list[PendingAdjustmentInfo]: ...

    async def list_for_display(
        self, employee_id: UUID, period_id: UUID
    ) -> NoveltyDisplay: ...

    async def totals(self, employee_id: UUID, period_id: UUID) -> ReconciledTotals: ...

    async def reopen_period(
        self, period_id: UUID, actor_id: UUID, reason: str
    ) -> PayrollPeriodInfo: ...

    async def close_period(self, period_id: UUID, actor_id: UUID) -> PeriodCloseResult: ...


class SqlNoveltyStore:
    """``NoveltyStore`` backed by the SQLAlchemy kernel services."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        role_resolver: PeriodRoleResolver | None = None,
        calculator: NoveltyCalculator | None = None,
        registry: NoveltyTypeRegistry | None = None,
    ):
        self._factory = session_factory
        self._clock = clock or SystemClock()
        self._roles = role_resolver
        self._calculator = calculator
        self._registry = registry or default_registry()

    # ------------------------------------------------------------------
    # Async surface
    # ------------------------------------------------------------------

    async def get_period(self, period_id: UUID) -> PayrollPeriodInfo:
        return await asyncio.to_thread(self._get_period, period_id)

    async def get_liquidation(
        self, period_id: UUID, employee_id: UUID
    ) -> LiquidationInfo | None:
        return await asyncio.to_thread(self._get_liquidation, period_id, employee_id)

    async def create_novelty(
        self,
        draft: CreationDraft,
        value: Decimal,
        calculation_trace: str | None,
        actor_id: UUID,
    ) -> UUID:
        return await asyncio.to_thread(
            self._create_novelty, draft, value, calculation_trace, actor_id
        )

    async def delete_novelty(
        self,
        novelty_id: UUID,
        actor_id: UUID,
        *,
        employee_id: UUID | None = None,
        period_id: UUID | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._delete_novelty, novelty_id, actor_id, employee_id, period_id
        )

    async def list_novelties(
        self, period_id: UUID, employee_id: UUID
    ) -> list[NoveltyRecord]:
        return await asyncio.to_thread(self._list_novelties, period_id, employee_id)

    async def enqueue_adjustment(
        self,
        draft: CreationDraft | DeletionDraft,
        actor_id: UUID,
        value: Decimal | None = None,
        calculation_trace: str | None = None,
        recompute: bool = False,
    ) -> UUID:
        return await asyncio.to_thread(
            self._enqueue_adjustment, draft, actor_id, value, calculation_trace, recompute
        )

    async def list_pending(
        self, period_id: UUID, employee_id: UUID | None = None
    ) -> list[PendingAdjustmentInfo]:
        return await asyncio.to_thread(self._list_pending, period_id, employee_id)

    async def list_for_display(
        self, employee_id: UUID, period_id: UUID
    ) -> NoveltyDisplay:
        return await asyncio.to_thread(self._list_for_display, employee_id, period_id)

    async def totals(self, employee_id: UUID, period_id: UUID) -> ReconciledTotals:
        return await asyncio.to_thread(self._totals, employee_id, period_id)

    async def reopen_period(
        self, period_id: UUID, actor_id: UUID, reason: str
    ) -> PayrollPeriodInfo:
        return await asyncio.to_thread(self._reopen_period, period_id, actor_id, reason)

    async def close_period(self, period_id: UUID, actor_id: UUID) -> PeriodCloseResult:
        return await asyncio.to_thread(self._close_period, period_id, actor_id)

    # ------------------------------------------------------------------
    # Synchronous bodies (one transaction each)
    # ------------------------------------------------------------------

    def _periods(self, session: Session) -> PeriodService:
        return PeriodService(session, self._clock, self._roles)

    def _queue(self, session: Session) -> PendingAdjustmentQueue:
        return PendingAdjustmentQueue(session, self._clock, self._calculator, self._registry)

    def _get_period(self, period_id: UUID) -> PayrollPeriodInfo:
        with session_scope(self._factory) as session:
            return self._periods(session).get_period(period_id)

    def _get_liquidation(
        self, period_id: UUID, employee_id: UUID
    ) -> LiquidationInfo | None:
        with session_scope(self._factory) as session:
            return self._periods(session).get_liquidation(period_id, employee_id)

    def _create_novelty(
        self,
        draft: CreationDraft,
        value: Decimal,
        calculation_trace: str | None,
        actor_id: UUID,
    ) -> UUID:
        with session_scope(self._factory) as session:
            record = NoveltyService(session, self._clock, self._registry).create(
                draft, value, actor_id, calculation_trace=calculation_trace
            )
            return record.id

    def _delete_novelty(
        self,
        novelty_id: UUID,
        actor_id: UUID,
        employee_id: UUID | None,
        period_id: UUID | None,
    ) -> None:
        with session_scope(self._factory) as session:
            NoveltyService(session, self._clock, self._registry).delete(
                novelty_id, actor_id, employee_id=employee_id, period_id=period_id
            )

    def _list_novelties(self, period_id: UUID, employee_id: UUID) -> list[NoveltyRecord]:
        with session_scope(self._factory) as session:
            return NoveltySelector(session).list_records(period_id, employee_id)

    def _enqueue_adjustment(
        self,
        draft: CreationDraft | DeletionDraft,
        actor_id: UUID,
        value: Decimal | None,
        calculation_trace: str | None,
        recompute: bool,
    ) -> UUID:
        with session_scope(self._factory) as session:
            queue = self._queue(session)
            if isinstance(draft, DeletionDraft):
                return queue.enqueue_deletion(draft, actor_id)
            return queue.enqueue_creation(
                draft, value, actor_id, calculation_trace=calculation_trace, recompute=recompute
            )

    def _list_pending(
        self, period_id: UUID, employee_id: UUID | None
    ) -> list[PendingAdjustmentInfo]:
        with session_scope(self._factory) as session:
            return self._queue(session).list_pending(period_id, employee_id)

    def _list_for_display(self, employee_id: UUID, period_id: UUID) -> NoveltyDisplay:
        with session_scope(self._factory) as session:
            return NoveltyReconciler(session, self._registry).list_for_display(
                employee_id, period_id
            )

    def _totals(self, employee_id: UUID, period_id: UUID) -> ReconciledTotals:
        with session_scope(self._factory) as session:
            return NoveltyReconciler(session, self._registry).totals(employee_id, period_id)

    def _reopen_period(
        self, period_id: UUID, actor_id: UUID, reason: str
    ) -> PayrollPeriodInfo:
        with session_scope(self._factory) as session:
            return self._periods(session).reopen(period_id, actor_id, reason)

    def _close_period(self, period_id: UUID, actor_id: UUID) -> PeriodCloseResult:
        drain: DrainResult | None = None
        with session_scope(self._factory) as session:
            period = self._periods(session).get_period(period_id)
            if period.status == PeriodStatus.REABIERTO:
                drain = self._queue(session).drain(period_id, actor_id)

        if drain is not None and not drain.is_complete:
            logger.warning(
                "period_close_blocked_by_drain",
                extra={
                    "period_id": str(period_id),
                    "failed": len(drain.failures),
                    "held": len(drain.held_ids),
                },
            )
            raise PendingDrainIncompleteError(
                str(period_id), [str(i) for i in drain.unapplied_ids]
            )

        with session_scope(self._factory) as session:
            closed = self._periods(session).close(period_id, actor_id)
            totals = NoveltyReconciler(session, self._registry).period_totals(period_id)
        return PeriodCloseResult(period=closed, drain=drain, totals=totals)

