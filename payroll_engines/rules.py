"""
Temporal rule resolver.

Legal payroll parameters change on fixed dates: the Sunday surcharge
steps from 75% to 100% between 2025 and 2027, and the statutory work week
shrinks from 48 to 42 hours between 2023 and 2026.  Each parameter lives
in a ``RuleTable``, an ordered run of half-open ``[from, to)`` intervals;
``TemporalRuleResolver`` picks the interval covering an effective date.

Usage:
    from payroll_engines.rules import TemporalRuleResolver

    params = resolver.resolve("recargo_dominical", "dominical", date(2025, 8, 1))
    params.factor          # Decimal("0.80")
    params.monthly_hours   # Decimal("220")

Tables are validated when the resolver is built: intervals must be
contiguous, must not overlap, and the last one must be unbounded, so a
date after the newest rule never falls through.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from payroll_kernel.domain.novelty_types import NoveltyType
from payroll_kernel.exceptions import NoApplicableRuleError, RuleTableIntegrityError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.rules")


@dataclass(frozen=True)
class RuleInterval:
    """
    Parameters in force over ``[effective_from, effective_to)``.

    ``None`` bounds are open: no ``effective_from`` reaches back
    indefinitely, no ``effective_to`` runs forever.
    """

    effective_from: date | None
    effective_to: date | None
    factor: Decimal | None = None
    coverage: Decimal | None = None
    threshold_days: int = 0
    monthly_hours: Decimal | None = None
    legal_reference: str = ""

    def contains(self, day: date) -> bool:
        if self.effective_from is not None and day < self.effective_from:
            return False
        if self.effective_to is not None and day >= self.effective_to:
            return False
        return True

    def describe_bounds(self) -> str:
        start = self.effective_from.isoformat() if self.effective_from else "-inf"
        end = self.effective_to.isoformat() if self.effective_to else "+inf"
        return f"[{start},{end})"


@dataclass(frozen=True)
class RuleTable:
    """Ordered intervals for one rule key (``type`` or ``type/subtype``)."""

    key: str
    intervals: tuple[RuleInterval, ...]
    divisor: str | None = None

    def validate(self) -> None:
        """
        Check ordering, contiguity and the unbounded tail.

        Raises:
            RuleTableIntegrityError: On an empty table, an inverted or empty
                interval, a gap, an overlap, or a bounded last interval.
        """
        if not self.intervals:
            raise RuleTableIntegrityError(self.key, "table has no intervals")

        for idx, interval in enumerate(self.intervals):
            if (
                interval.effective_from is not None
                and interval.effective_to is not None
                and interval.effective_from >= interval.effective_to
            ):
                raise RuleTableIntegrityError(
                    self.key, f"interval {interval.describe_bounds()} is empty"
                )
            if idx > 0 and interval.effective_from is None:
                raise RuleTableIntegrityError(
                    self.key, "only the first interval may have an open start"
                )

        for prev, curr in zip(self.intervals, self.intervals[1:]):
            if prev.effective_to is None:
                raise RuleTableIntegrityError(
                    self.key, f"interval {prev.describe_bounds()} is unbounded but not last"
                )
            if curr.effective_from < prev.effective_to:
                raise RuleTableIntegrityError(
                    self.key,
                    f"{curr.describe_bounds()} overlaps {prev.describe_bounds()}",
                )
            if curr.effective_from > prev.effective_to:
                raise RuleTableIntegrityError(
                    self.key,
                    f"gap between {prev.describe_bounds()} and {curr.describe_bounds()}",
                )

        if self.intervals[-1].effective_to is not None:
            raise RuleTableIntegrityError(
                self.key,
                f"last interval {self.intervals[-1].describe_bounds()} must be unbounded",
            )

    def lookup(self, effective_date: date) -> RuleInterval:
        for interval in self.intervals:
            if interval.contains(effective_date):
                return interval
        raise NoApplicableRuleError(self.key, effective_date)


@dataclass(frozen=True)
class RuleParameters:
    """Resolved parameters for one (type, subtype, date)."""

    rule_key: str
    factor: Decimal | None
    coverage: Decimal | None
    threshold_days: int
    monthly_hours: Decimal | None
    legal_reference: str
    effective_from: date | None
    effective_to: date | None

    @property
    def bounds(self) -> str:
        start = self.effective_from.isoformat() if self.effective_from else "-inf"
        end = self.effective_to.isoformat() if self.effective_to else "+inf"
        return f"[{start},{end})"


class TemporalRuleResolver:
    """
    Resolves date-sensitive legal parameters.

    Contract:
        ``tables`` maps rule keys to value tables; ``divisors`` maps divisor
        names to monthly-hour tables referenced by ``RuleTable.divisor``.
        ``default_subtypes`` fills in the subtype when a caller omits it.
        Every table is validated on construction.

    Guarantees:
        - Pure: same inputs, same output.  No I/O besides debug logging.
        - Exactly one interval is selected, or NoApplicableRuleError.
    """

    def __init__(
        self,
        tables: dict[str, RuleTable],
        divisors: dict[str, RuleTable] | None = None,
        default_subtypes: dict[str, str] | None = None,
        version: str = "",
    ):
        self._tables = dict(tables)
        self._divisors = dict(divisors or {})
        self._default_subtypes = dict(default_subtypes or {})
        self.version = version

        for table in list(self._tables.values()) + list(self._divisors.values()):
            table.validate()
        for table in self._tables.values():
            if table.divisor is not None and table.divisor not in self._divisors:
                raise RuleTableIntegrityError(
                    table.key, f"unknown divisor table {table.divisor!r}"
                )

    @property
    def rule_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._tables))

    def default_subtype(self, novelty_type: NoveltyType | str) -> str | None:
        return self._default_subtypes.get(NoveltyType(novelty_type).value)

    def has_rules_for(self, novelty_type: NoveltyType | str) -> bool:
        tag = NoveltyType(novelty_type).value
        return any(k == tag or k.startswith(tag + "/") for k in self._tables)

    def _table_for(self, tag: str, subtype: str | None) -> RuleTable | None:
        if subtype is not None and f"{tag}/{subtype}" in self._tables:
            return self._tables[f"{tag}/{subtype}"]
        return self._tables.get(tag)

    def resolve(
        self,
        novelty_type: NoveltyType | str,
        subtype: str | None,
        effective_date: date,
    ) -> RuleParameters:
        """
        Select the parameters in force on ``effective_date``.

        Start dates are inclusive and end dates exclusive, so a change
        effective 2025-07-01 applies to 2025-07-01 itself.

        Raises:
            NoApplicableRuleError: No table for the type/subtype, or no
                interval covering the date.
        """
        tag = NoveltyType(novelty_type).value
        subtype = subtype or self._default_subtypes.get(tag)
        table = self._table_for(tag, subtype)
        if table is None:
            raise NoApplicableRuleError(
                f"{tag}/{subtype}" if subtype else tag, effective_date
            )
        interval = table.lookup(effective_date)

        monthly_hours = interval.monthly_hours
        if table.divisor is not None:
            monthly_hours = self._divisors[table.divisor].lookup(effective_date).monthly_hours

        params = RuleParameters(
            rule_key=table.key,
            factor=interval.factor,
            coverage=interval.coverage,
            threshold_days=interval.threshold_days,
            monthly_hours=monthly_hours,
            legal_reference=interval.legal_reference,
            effective_from=interval.effective_from,
            effective_to=interval.effective_to,
        )
        logger.debug(
            "rule_resolved",
            extra={
                "rule_key": table.key,
                "effective_date": effective_date.isoformat(),
                "bounds": params.bounds,
            },
        )
        return params
