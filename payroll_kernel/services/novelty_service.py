"""
NoveltyService -- direct creation and deletion of novelty records.

Only valid while the owning period accepts direct mutations (borrador or
reabierto).  Against a cerrado period the caller must queue a pending
adjustment instead; calling this service anyway raises PeriodClosedError.
The pending queue also uses this service to materialize its entries
during the reabierto -> cerrado drain.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.drafts import CreationDraft
from payroll_kernel.domain.dtos import NoveltyRecord
from payroll_kernel.domain.novelty_types import NoveltyTypeRegistry, default_registry
from payroll_kernel.domain.period_rules import can_mutate_directly
from payroll_kernel.exceptions import (
    NoveltyNotFoundError,
    PeriodClosedError,
    PeriodNotFoundError,
    ValidationError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.novelty import Novelty
from payroll_kernel.models.period import PayrollPeriod
from payroll_kernel.services.base import BaseService

logger = get_logger("services.novelty")


class NoveltyService(BaseService[Novelty]):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        registry: NoveltyTypeRegistry | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._registry = registry or default_registry()

    def create(
        self,
        draft: CreationDraft,
        value: Decimal,
        actor_id: UUID,
        calculation_trace: str | None = None,
        source_adjustment_id: UUID | None = None,
    ) -> NoveltyRecord:
        """
        Persist a valued novelty.

        Raises:
            PeriodNotFoundError, PeriodClosedError, ValidationError.
        """
        self._require_open(draft.period_id)
        spec = self._registry.describe(draft.novelty_type)
        if value is None or value < 0:
            raise ValidationError(
                f"value must be zero or more, got {value}",
                field="value",
                novelty_type=spec.novelty_type.value,
            )

        novelty = Novelty(
            period_id=draft.period_id,
            employee_id=draft.employee_id,
            novelty_type=spec.novelty_type.value,
            subtype=draft.subtype,
            value=value,
            days=getattr(draft, "days", None),
            hours=getattr(draft, "hours", None),
            start_date=draft.start_date,
            end_date=draft.end_date,
            observation=draft.observation,
            calculation_trace=calculation_trace,
            source_adjustment_id=source_adjustment_id,
            created_by_id=actor_id,
        )
        self.session.add(novelty)
        self.session.flush()

        logger.info(
            "novelty_created",
            extra={
                "novelty_id": str(novelty.id),
                "novelty_type": spec.novelty_type.value,
                "subtype": draft.subtype,
                "employee_id": str(draft.employee_id),
                "period_id": str(draft.period_id),
                "value": str(value),
                "category": spec.category.value,
            },
        )
        return novelty.to_dto()

    def delete(
        self,
        novelty_id: UUID,
        actor_id: UUID,
        *,
        employee_id: UUID | None = None,
        period_id: UUID | None = None,
    ) -> NoveltyRecord:
        """
        Delete a novelty and return what was removed.

        When ``employee_id`` or ``period_id`` is given, the record must
        belong to that employee or period; a record owned by someone else
        is reported as not found.

        Raises:
            NoveltyNotFoundError, PeriodClosedError.
        """
        novelty = self.session.get(Novelty, novelty_id)
        if (
            novelty is None
            or (employee_id is not None and novelty.employee_id != employee_id)
            or (period_id is not None and novelty.period_id != period_id)
        ):
            raise NoveltyNotFoundError(str(novelty_id))
        self._require_open(novelty.period_id)

        removed = novelty.to_dto()
        self.session.delete(novelty)
        self.session.flush()

        logger.info(
            "novelty_deleted",
            extra={
                "novelty_id": str(novelty_id),
                "period_id": str(removed.period_id),
                "employee_id": str(removed.employee_id),
                "actor_id": str(actor_id),
            },
        )
        return removed

    def find_by_source_adjustment(self, adjustment_id: UUID) -> NoveltyRecord | None:
        novelty = self.session.execute(
            select(Novelty).where(Novelty.source_adjustment_id == adjustment_id)
        ).scalar_one_or_none()
        return novelty.to_dto() if novelty is not None else None

    def _require_open(self, period_id: UUID) -> None:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        if not can_mutate_directly(period.period_status):
            raise PeriodClosedError(str(period_id), period.status)
