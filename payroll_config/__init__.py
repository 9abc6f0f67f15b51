"""
payroll_config -- single public entrypoint for rule tables and settings.

Responsibility:
    ``get_active_rules()`` returns a validated ``TemporalRuleResolver``
    built from a YAML rule set; ``get_settings()`` returns runtime
    ``PayrollSettings``.  No other component reads configuration files or
    environment variables.

Failure modes:
    - ``FileNotFoundError`` -- no rule-set file with the requested name.
    - ``RuleTableIntegrityError`` -- a table has a gap, an overlap or a
      bounded tail.
    - ``ValueError`` / ``KeyError`` -- malformed YAML content.

Audit relevance:
    Every successful ``get_active_rules()`` call emits a
    ``PAYROLL_CONFIG_TRACE`` log entry with the rule set id, version and
    checksum, tying each computed novelty back to the exact legal
    parameters that produced it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from payroll_config.loader import load_rule_set, load_settings
from payroll_config.schema import PayrollSettings, RuleSetDef
from payroll_engines.rules import TemporalRuleResolver

_logger = logging.getLogger("payroll_kernel.config")

_DEFAULT_RULES_DIR = Path(__file__).parent / "rules"
_DEFAULT_SETTINGS_FILE = Path(__file__).parent / "settings.yaml"


def build_resolver(rule_set: RuleSetDef) -> TemporalRuleResolver:
    """Validate a parsed rule set and wrap it in a resolver."""
    return TemporalRuleResolver(
        tables=rule_set.tables,
        divisors=rule_set.divisors,
        default_subtypes=rule_set.default_subtypes,
        version=f"{rule_set.rule_set_id}@{rule_set.version}",
    )


def get_active_rules(
    rule_set: str | None = None,
    config_dir: Path | None = None,
) -> TemporalRuleResolver:
    """The public rule-table entrypoint.

    Args:
        rule_set: File stem under ``config_dir`` (default: the
            ``rule_set`` setting, normally ``colombia``).
        config_dir: Directory holding ``<rule_set>.yaml`` files.
    """
    name = rule_set or get_settings().rule_set
    path = (config_dir or _DEFAULT_RULES_DIR) / f"{name}.yaml"
    definition = load_rule_set(path)
    resolver = build_resolver(definition)

    _logger.info(
        "PAYROLL_CONFIG_TRACE",
        extra={
            "trace_type": "PAYROLL_CONFIG_TRACE",
            "rule_set_id": definition.rule_set_id,
            "version": definition.version,
            "checksum": definition.checksum,
            "table_count": len(definition.tables),
        },
    )
    return resolver


def get_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> PayrollSettings:
    """Runtime settings from ``settings.yaml`` plus ``PAYROLL_*`` overrides."""
    return load_settings(path or _DEFAULT_SETTINGS_FILE, environ)


__all__ = [
    "PayrollSettings",
    "RuleSetDef",
    "build_resolver",
    "get_active_rules",
    "get_settings",
]
