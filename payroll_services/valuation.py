"""
NoveltyValuator -- puts a value on a creation draft.

Decision table:

    manual type (bonus, loan, fine...)   -> the value typed in the draft
    computed type, no service configured -> local NoveltyCalculator
    computed type, service replies       -> the service's value and trace
    computed type, service fails:
        fallback LOCAL (surcharges, overtime, leave, absence)
                                         -> local NoveltyCalculator,
                                            trace marked as local fallback
        fallback NONE (disability, withholding, solidarity fund)
                                         -> CalculationUnavailableError

Structural checks (salary, quantities) run before any network call.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from payroll_engines.novelty_calculator import CalculationResult, NoveltyCalculator
from payroll_kernel.domain.drafts import AmountNoveltyDraft, CreationDraft
from payroll_kernel.domain.novelty_types import (
    FallbackPolicy,
    NoveltyTypeRegistry,
    default_registry,
)
from payroll_kernel.exceptions import (
    CalculationServiceError,
    CalculationUnavailableError,
    InvalidSalaryError,
)
from payroll_kernel.logging_config import get_logger
from payroll_services.calculation_client import (
    CalculationRequest,
    CalculationServiceClient,
)

logger = get_logger("services.valuation")

LOCAL_FALLBACK_MARK = "local_fallback"


class NoveltyValuator:
    def __init__(
        self,
        calculator: NoveltyCalculator,
        client: CalculationServiceClient | None = None,
        registry: NoveltyTypeRegistry | None = None,
    ):
        self._calculator = calculator
        self._client = client
        self._registry = registry or default_registry()

    @property
    def has_remote(self) -> bool:
        return self._client is not None

    async def value(
        self,
        draft: CreationDraft,
        salary: Decimal | None,
        effective_date: date,
    ) -> CalculationResult:
        """
        Value ``draft`` for an employee earning ``salary`` per month.

        Raises:
            InvalidSalaryError: Computed type and salary <= 0.
            ValidationError: Local formula rejected the quantities.
            CalculationUnavailableError: Service failed and the type has
                no local fallback, or no way to value the type at all.
            NoApplicableRuleError: No rule covers ``effective_date``.
        """
        spec = self._registry.describe(draft.novelty_type)
        tag = spec.novelty_type.value

        if spec.is_manual:
            amount = draft.value if isinstance(draft, AmountNoveltyDraft) else None
            return CalculationResult(
                value=amount if amount is not None else Decimal("0"),
                calculation_trace=f"{tag} manual value={amount}",
            )

        if salary is None or salary <= 0:
            raise InvalidSalaryError(salary, employee_id=str(draft.employee_id))

        if self._client is None:
            if not self._calculator.supports(spec.novelty_type):
                raise CalculationUnavailableError(
                    tag, draft.subtype, str(draft.employee_id),
                    "no calculation service configured and no local formula",
                )
            return self._local(draft, salary, effective_date)

        request = CalculationRequest(
            novelty_type=tag,
            subtype=draft.subtype,
            base_salary=salary,
            effective_date=effective_date,
            days=getattr(draft, "days", None),
            hours=getattr(draft, "hours", None),
            manual_value=draft.value if isinstance(draft, AmountNoveltyDraft) else None,
        )
        try:
            reply = await self._client.calculate(request)
        except CalculationServiceError as exc:
            if spec.fallback != FallbackPolicy.LOCAL or not self._calculator.supports(
                spec.novelty_type
            ):
                logger.error(
                    "calculation_unavailable",
                    extra={
                        "novelty_type": tag,
                        "subtype": draft.subtype,
                        "employee_id": str(draft.employee_id),
                        "reason": exc.reason,
                    },
                )
                raise CalculationUnavailableError(
                    tag, draft.subtype, str(draft.employee_id), exc.reason
                ) from exc

            logger.warning(
                "calculation_fallback_local",
                extra={
                    "novelty_type": tag,
                    "subtype": draft.subtype,
                    "employee_id": str(draft.employee_id),
                    "reason": exc.reason,
                },
            )
            local = self._local(draft, salary, effective_date)
            return CalculationResult(
                value=local.value,
                calculation_trace=f"{LOCAL_FALLBACK_MARK}({exc.reason}) {local.calculation_trace}",
                parameters=local.parameters,
                is_local_fallback=True,
            )

        return CalculationResult(value=reply.value, calculation_trace=reply.calculation_trace)

    def _local(
        self, draft: CreationDraft, salary: Decimal, effective_date: date
    ) -> CalculationResult:
        return self._calculator.compute(
            novelty_type=draft.novelty_type,
            subtype=draft.subtype,
            salary=salary,
            effective_date=effective_date,
            days=getattr(draft, "days", None),
            hours=getattr(draft, "hours", None),
        )
