"""
Novelty Calculator Engine.

Values hour- and day-based payroll novelties from a base salary, a
quantity and the legal parameters in force on the effective date.

Usage:
    from payroll_engines.novelty_calculator import NoveltyCalculator

    calculator = NoveltyCalculator(resolver)
    result = calculator.compute(
        novelty_type="incapacidad",
        subtype="general",
        salary=Decimal("3000000"),
        days=4,
        effective_date=date(2025, 8, 1),
    )
    result.value  # Decimal("66700")

Formulas (salary is monthly):
    daily_rate  = salary / 30
    hourly_rate = salary / monthly_hours            (resolved by date)
    hours       -> hourly_rate * hours * factor
    days        -> daily_rate * max(days - threshold_days, 0) * coverage

Rounding happens once, at the end, half-up to whole pesos.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from payroll_engines.rules import RuleParameters, TemporalRuleResolver
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.novelty_types import (
    NoveltyType,
    NoveltyTypeRegistry,
    default_registry,
)
from payroll_kernel.exceptions import InvalidSalaryError, ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.novelty_calculator")

DAYS_PER_MONTH = Decimal("30")
WHOLE_PESO = Decimal("1")


@dataclass(frozen=True)
class CalculationResult:
    """Computed value plus the trace explaining it."""

    value: Decimal
    calculation_trace: str
    parameters: RuleParameters | None = None
    is_local_fallback: bool = False


class NoveltyCalculator:
    """
    Pure novelty valuation.

    No I/O and no database access; the rule resolver and the registry are
    injected.  Manual types (bonuses, loans, fines) and types valued only by
    the remote service (withholding) are rejected with ValidationError;
    use ``supports()`` to ask first.
    """

    def __init__(
        self,
        resolver: TemporalRuleResolver,
        registry: NoveltyTypeRegistry | None = None,
        quantum: Decimal = WHOLE_PESO,
    ):
        self._resolver = resolver
        self._registry = registry or default_registry()
        self._quantum = quantum

    def supports(self, novelty_type: NoveltyType | str) -> bool:
        """True if the type has a local formula and rule tables."""
        spec = self._registry.describe(novelty_type)
        if not spec.is_auto_calculated:
            return False
        if not (spec.requires_hours or spec.requires_days):
            return False
        return self._resolver.has_rules_for(spec.novelty_type)

    @traced_engine(
        "novelty_calculator",
        "1.0",
        fingerprint_fields=("novelty_type", "subtype", "salary", "days", "hours", "effective_date"),
    )
    def compute(
        self,
        *,
        novelty_type: NoveltyType | str,
        subtype: str | None,
        salary: Decimal,
        effective_date: date,
        days: int | None = None,
        hours: Decimal | None = None,
    ) -> CalculationResult:
        """
        Compute the value of one novelty.

        Raises:
            UnknownTypeError: Unregistered type.
            InvalidSalaryError: salary <= 0.
            ValidationError: Missing or invalid quantity, or a type without
                a local formula.
            NoApplicableRuleError: No rule covers ``effective_date``.
        """
        spec = self._registry.describe(novelty_type)
        tag = spec.novelty_type.value

        if salary is None or salary <= 0:
            raise InvalidSalaryError(salary)
        if not self.supports(spec.novelty_type):
            raise ValidationError(
                f"{tag} has no local formula",
                field="novelty_type",
                novelty_type=tag,
            )

        t0 = time.monotonic()
        logger.info("novelty_calculation_started", extra={
            "novelty_type": tag,
            "subtype": subtype,
            "effective_date": effective_date.isoformat(),
        })

        params = self._resolver.resolve(spec.novelty_type, subtype, effective_date)
        resolved_subtype = subtype or self._resolver.default_subtype(spec.novelty_type)

        if spec.requires_hours:
            value, trace = self._by_hours(tag, resolved_subtype, salary, hours, params)
        else:
            value, trace = self._by_days(tag, resolved_subtype, salary, days, params)

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("novelty_calculation_completed", extra={
            "novelty_type": tag,
            "subtype": resolved_subtype,
            "rule_key": params.rule_key,
            "value": str(value),
            "duration_ms": duration_ms,
        })
        return CalculationResult(value=value, calculation_trace=trace, parameters=params)

    def _round(self, amount: Decimal) -> Decimal:
        return amount.quantize(self._quantum, rounding=ROUND_HALF_UP)

    def _by_hours(
        self,
        tag: str,
        subtype: str | None,
        salary: Decimal,
        hours: Decimal | None,
        params: RuleParameters,
    ) -> tuple[Decimal, str]:
        if hours is None or hours <= 0:
            raise ValidationError(
                f"{tag} requires hours greater than zero, got {hours}",
                field="hours",
                novelty_type=tag,
            )
        if params.factor is None or not params.monthly_hours:
            raise ValidationError(
                f"rule {params.rule_key} lacks a factor or monthly hours",
                novelty_type=tag,
            )
        hourly_rate = salary / params.monthly_hours
        value = self._round(hourly_rate * hours * params.factor)
        trace = _format_trace(
            tag,
            subtype,
            [
                ("salary", salary),
                ("hours", hours),
                ("monthly_hours", params.monthly_hours),
                ("factor", params.factor),
            ],
            params,
            f"salary/monthly_hours*hours*factor={value}",
        )
        return value, trace

    def _by_days(
        self,
        tag: str,
        subtype: str | None,
        salary: Decimal,
        days: int | None,
        params: RuleParameters,
    ) -> tuple[Decimal, str]:
        if days is None or days < 0:
            raise ValidationError(
                f"{tag} requires days of zero or more, got {days}",
                field="days",
                novelty_type=tag,
            )
        coverage = params.coverage if params.coverage is not None else Decimal("1")
        eligible_days = max(days - params.threshold_days, 0)
        daily_rate = salary / DAYS_PER_MONTH
        value = self._round(daily_rate * eligible_days * coverage)
        trace = _format_trace(
            tag,
            subtype,
            [
                ("salary", salary),
                ("days", days),
                ("threshold_days", params.threshold_days),
                ("eligible_days", eligible_days),
                ("coverage", coverage),
            ],
            params,
            f"salary/30*eligible_days*coverage={value}",
        )
        return value, trace


def _num(value: object) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def _format_trace(
    tag: str,
    subtype: str | None,
    inputs: list[tuple[str, object]],
    params: RuleParameters,
    formula: str,
) -> str:
    """Deterministic one-line explanation of a calculation."""
    head = f"{tag}/{subtype}" if subtype else tag
    fields = " ".join(f"{name}={_num(val)}" for name, val in inputs)
    ref = f" ref={params.legal_reference}" if params.legal_reference else ""
    return f"{head} {fields} rule={params.rule_key}{params.bounds}{ref} {formula}"
