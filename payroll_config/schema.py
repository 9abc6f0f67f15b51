"""
Configuration schema.

``RuleSetDef`` is the human-authored source artifact (one YAML file per
jurisdiction) after parsing; ``PayrollSettings`` holds runtime knobs.
Both are frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from payroll_engines.rules import RuleTable


@dataclass(frozen=True)
class RuleSetDef:
    """A parsed rule-set file."""

    rule_set_id: str
    version: str
    jurisdiction: str
    currency: str
    tables: dict[str, RuleTable] = field(default_factory=dict)
    divisors: dict[str, RuleTable] = field(default_factory=dict)
    default_subtypes: dict[str, str] = field(default_factory=dict)
    checksum: str = ""


@dataclass(frozen=True)
class PayrollSettings:
    database_url: str = "sqlite:///payroll.db"
    calculation_service_url: str | None = None
    calculation_timeout_seconds: float = 10.0
    preview_debounce_seconds: float = 0.5
    rule_set: str = "colombia"
    rounding_quantum: Decimal = Decimal("1")

    @property
    def has_calculation_service(self) -> bool:
        return bool(self.calculation_service_url)
