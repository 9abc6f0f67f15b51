"""
PeriodService -- payroll period lifecycle.

Responsibility:
    Creates payroll periods, enrolls employees with their base salary, and
    drives the borrador -> cerrado -> reabierto -> cerrado lifecycle.
    Every close and reopen is written to the period audit trail.

Architecture position:
    Kernel > Services -- imperative shell over ``domain.period_rules``.
    Called by the store adapter in ``payroll_services`` and by the pending
    adjustment queue to check whether a period may be mutated directly.

Invariants enforced:
    - Only the transitions in ``period_rules`` are accepted; anything else
      raises InvalidPeriodTransitionError.  Nothing returns to borrador.
    - borrador -> cerrado requires a computed liquidation for every
      enrolled employee.
    - cerrado -> reabierto requires administrator authority and a reason,
      and records who reopened the period and when.
    - reabierto -> cerrado requires an empty pending queue.  The drain
      itself is run by the caller, in its own transaction, before close.
    - Flush-only: never commits or rolls back.

Failure modes:
    - PeriodNotFoundError, InvalidPeriodTransitionError,
      LiquidationIncompleteError, PermissionDeniedError, ValidationError,
      PendingDrainIncompleteError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import (
    AdjustmentStatus,
    LiquidationInfo,
    PayrollPeriodInfo,
    PeriodAuditEntry,
    PeriodStatus,
)
from payroll_kernel.domain.period_rules import (
    REOPEN_ROLE,
    PeriodAction,
    PeriodRoleResolver,
    StaticRoleResolver,
    can_mutate_directly,
    next_status,
)
from payroll_kernel.exceptions import (
    InvalidPeriodTransitionError,
    InvalidSalaryError,
    LiquidationIncompleteError,
    PendingDrainIncompleteError,
    PeriodClosedError,
    PeriodNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.liquidation import Liquidation
from payroll_kernel.models.pending_adjustment import PendingAdjustment
from payroll_kernel.models.period import PayrollPeriod, PeriodAuditRecord
from payroll_kernel.services.base import BaseService

logger = get_logger("services.period")

AUDIT_CLOSED = "cerrado"
AUDIT_REOPENED = "reabierto"
AUDIT_CLOSED_AGAIN = "cerrado_nuevamente"


class PeriodService(BaseService[PayrollPeriod]):
    """
    Service for the payroll period lifecycle.

    Contract:
        Accepts period ids and returns frozen ``PayrollPeriodInfo`` DTOs.
        Lifecycle methods flush within the caller's transaction.

    Non-goals:
        - Does NOT drain the pending queue (PendingAdjustmentQueue does).
        - Does NOT compute novelty values.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        role_resolver: PeriodRoleResolver | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._roles = role_resolver or StaticRoleResolver()

    # ------------------------------------------------------------------
    # Creation and enrollment
    # ------------------------------------------------------------------

    def create_period(
        self,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> PayrollPeriodInfo:
        """
        Create a period in borrador.

        Raises:
            ValidationError: If start_date > end_date.
        """
        if start_date > end_date:
            raise ValidationError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})",
                field="end_date",
            )
        period = PayrollPeriod(
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.BORRADOR.value,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "payroll_period_created",
            extra={
                "period_id": str(period.id),
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return period.to_dto()

    def enroll_employee(
        self,
        period_id: UUID,
        employee_id: UUID,
        base_salary: Decimal,
        actor_id: UUID,
    ) -> LiquidationInfo:
        """
        Enroll an employee in a period with the salary used for valuation.

        Re-enrolling updates the salary and clears the liquidation marker.

        Raises:
            PeriodNotFoundError, PeriodClosedError, InvalidSalaryError.
        """
        period = self._get_period(period_id)
        if not can_mutate_directly(period.period_status):
            raise PeriodClosedError(str(period_id), period.status)
        if base_salary is None or base_salary <= 0:
            raise InvalidSalaryError(base_salary, employee_id=str(employee_id))

        liquidation = self._get_liquidation(period_id, employee_id)
        if liquidation is None:
            liquidation = Liquidation(
                period_id=period_id,
                employee_id=employee_id,
                base_salary=base_salary,
                created_by_id=actor_id,
            )
            self.session.add(liquidation)
        else:
            liquidation.base_salary = base_salary
            liquidation.liquidated_at = None
            liquidation.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "employee_enrolled",
            extra={"period_id": str(period_id), "employee_id": str(employee_id)},
        )
        return liquidation.to_dto()

    def mark_liquidated(
        self, period_id: UUID, employee_id: UUID, actor_id: UUID
    ) -> LiquidationInfo:
        """Record that the employee's liquidation has been computed."""
        liquidation = self._get_liquidation(period_id, employee_id)
        if liquidation is None:
            raise ValidationError(
                f"Employee {employee_id} is not enrolled in period {period_id}",
                field="employee_id",
            )
        liquidation.liquidated_at = self._clock.now()
        liquidation.updated_by_id = actor_id
        self.session.flush()
        return liquidation.to_dto()

    def get_liquidation(
        self, period_id: UUID, employee_id: UUID
    ) -> LiquidationInfo | None:
        liquidation = self._get_liquidation(period_id, employee_id)
        return liquidation.to_dto() if liquidation is not None else None

    def list_liquidations(self, period_id: UUID) -> list[LiquidationInfo]:
        rows = self.session.execute(
            select(Liquidation)
            .where(Liquidation.period_id == period_id)
            .order_by(Liquidation.created_at, Liquidation.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_period(self, period_id: UUID) -> PayrollPeriodInfo:
        return self._get_period(period_id).to_dto()

    def can_mutate_directly(self, period_id: UUID) -> bool:
        """True while the period is borrador or reabierto."""
        return can_mutate_directly(self._get_period(period_id).period_status)

    def can_reopen(self, period_id: UUID, actor_id: UUID) -> tuple[bool, str | None]:
        """Preflight for reopen: (allowed, reason when not allowed)."""
        period = self._get_period(period_id)
        if next_status(period.period_status, PeriodAction.REOPEN) is None:
            return False, f"period is {period.status}, only cerrado can be reopened"
        role = self._roles.resolve(actor_id)
        if not role.has_authority(REOPEN_ROLE):
            return False, f"role {role.value} cannot reopen periods"
        return True, None

    def audit_log(self, period_id: UUID) -> list[PeriodAuditEntry]:
        rows = self.session.execute(
            select(PeriodAuditRecord)
            .where(PeriodAuditRecord.period_id == period_id)
            .order_by(PeriodAuditRecord.occurred_at, PeriodAuditRecord.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def close(self, period_id: UUID, actor_id: UUID) -> PayrollPeriodInfo:
        """
        Close a borrador or reabierto period.

        From borrador every enrolled employee must be liquidated.  From
        reabierto the pending queue must be empty; liquidations are marked
        recomputed with the closing timestamp.

        Raises:
            PeriodNotFoundError, InvalidPeriodTransitionError,
            LiquidationIncompleteError, PendingDrainIncompleteError.
        """
        period = self._get_period_for_update(period_id)
        previous = period.period_status
        target = self._require_transition(period, PeriodAction.CLOSE)
        now = self._clock.now()

        if previous == PeriodStatus.BORRADOR:
            missing = self._unliquidated_employees(period_id)
            if missing:
                logger.warning(
                    "period_close_blocked_liquidations",
                    extra={"period_id": str(period_id), "missing_count": len(missing)},
                )
                raise LiquidationIncompleteError(str(period_id), missing)
            action = AUDIT_CLOSED
        else:
            remaining = self._pending_adjustment_ids(period_id)
            if remaining:
                raise PendingDrainIncompleteError(str(period_id), remaining)
            for liquidation in self._liquidations(period_id):
                liquidation.liquidated_at = now
                liquidation.updated_by_id = actor_id
            action = AUDIT_CLOSED_AGAIN

        period.status = target.value
        period.closed_at = now
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self._audit(period, action, actor_id, previous, target)
        self.session.flush()

        logger.info(
            "payroll_period_closed",
            extra={
                "period_id": str(period_id),
                "from_status": previous.value,
                "audit_action": action,
            },
        )
        return period.to_dto()

    def reopen(self, period_id: UUID, actor_id: UUID, reason: str) -> PayrollPeriodInfo:
        """
        Reopen a closed period for corrections.

        Raises:
            PeriodNotFoundError, InvalidPeriodTransitionError,
            PermissionDeniedError, ValidationError (empty reason).
        """
        period = self._get_period_for_update(period_id)
        previous = period.period_status
        target = self._require_transition(period, PeriodAction.REOPEN)

        role = self._roles.resolve(actor_id)
        if not role.has_authority(REOPEN_ROLE):
            logger.warning(
                "period_reopen_denied",
                extra={"period_id": str(period_id), "role": role.value},
            )
            raise PermissionDeniedError(str(actor_id), REOPEN_ROLE.value, role.value)
        if reason is None or not reason.strip():
            raise ValidationError("A reason is required to reopen a period", field="reason")

        now = self._clock.now()
        period.status = target.value
        period.reopened_at = now
        period.reopened_by_id = actor_id
        period.reopen_reason = reason.strip()
        period.updated_by_id = actor_id
        self._audit(period, AUDIT_REOPENED, actor_id, previous, target, notes=reason.strip())
        self.session.flush()

        logger.info(
            "payroll_period_reopened",
            extra={"period_id": str(period_id), "actor_id": str(actor_id)},
        )
        return period.to_dto()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_transition(
        self, period: PayrollPeriod, action: PeriodAction
    ) -> PeriodStatus:
        target = next_status(period.period_status, action)
        if target is None:
            attempted = (
                PeriodStatus.REABIERTO if action == PeriodAction.REOPEN else PeriodStatus.CERRADO
            )
            raise InvalidPeriodTransitionError(
                str(period.id), period.status, attempted.value
            )
        return target

    def _audit(
        self,
        period: PayrollPeriod,
        action: str,
        actor_id: UUID,
        previous: PeriodStatus,
        new: PeriodStatus,
        notes: str | None = None,
    ) -> None:
        self.session.add(
            PeriodAuditRecord(
                period_id=period.id,
                action=action,
                actor_id=actor_id,
                previous_status=previous.value,
                new_status=new.value,
                occurred_at=self._clock.now(),
                notes=notes,
                details={"period_name": period.name},
            )
        )

    def _get_period(self, period_id: UUID) -> PayrollPeriod:
        period = self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def _get_period_for_update(self, period_id: UUID) -> PayrollPeriod:
        period = self.session.execute(
            select(PayrollPeriod).where(PayrollPeriod.id == period_id).with_for_update()
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def _get_liquidation(self, period_id: UUID, employee_id: UUID) -> Liquidation | None:
        return self.session.execute(
            select(Liquidation).where(
                Liquidation.period_id == period_id,
                Liquidation.employee_id == employee_id,
            )
        ).scalar_one_or_none()

    def _liquidations(self, period_id: UUID) -> list[Liquidation]:
        return list(
            self.session.execute(
                select(Liquidation).where(Liquidation.period_id == period_id)
            ).scalars()
        )

    def _unliquidated_employees(self, period_id: UUID) -> list[str]:
        return [
            str(liq.employee_id)
            for liq in self._liquidations(period_id)
            if liq.liquidated_at is None
        ]

    def _pending_adjustment_ids(self, period_id: UUID) -> list[str]:
        rows = self.session.execute(
            select(PendingAdjustment.id).where(
                PendingAdjustment.period_id == period_id,
                PendingAdjustment.status == AdjustmentStatus.PENDING.value,
            )
        ).scalars()
        return [str(r) for r in rows]

    def count_pending(self, period_id: UUID) -> int:
        return self.session.execute(
            select(func.count(PendingAdjustment.id)).where(
                PendingAdjustment.period_id == period_id,
                PendingAdjustment.status == AdjustmentStatus.PENDING.value,
            )
        ).scalar_one()
