"""
Pure calculation engines for payroll novelties.

No I/O and no database access.  Legal parameters come from an injected
``TemporalRuleResolver``; see ``payroll_config.get_active_rules()``.
"""

from payroll_engines.novelty_calculator import CalculationResult, NoveltyCalculator
from payroll_engines.rules import (
    RuleInterval,
    RuleParameters,
    RuleTable,
    TemporalRuleResolver,
)
from payroll_engines.totals import (
    LiquidationTotals,
    PendingImpact,
    fold_pending,
    fold_records,
    pending_impact,
)

__all__ = [
    "CalculationResult",
    "LiquidationTotals",
    "NoveltyCalculator",
    "PendingImpact",
    "RuleInterval",
    "RuleParameters",
    "RuleTable",
    "TemporalRuleResolver",
    "fold_pending",
    "fold_records",
    "pending_impact",
]
