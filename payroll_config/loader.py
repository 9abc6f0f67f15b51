"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed ``payroll_config.schema``
objects and engine ``RuleTable`` instances.  Callers at runtime go through
``payroll_config.get_active_rules()`` and ``payroll_config.get_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid date or number  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from payroll_config.schema import PayrollSettings, RuleSetDef
from payroll_engines.rules import RuleInterval, RuleTable

ENV_PREFIX = "PAYROLL_"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date | None:
    """Parse an optional date from YAML (string or date object)."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any) -> Decimal | None:
    """Parse an optional Decimal.  Floats are refused to keep precision."""
    if value is None:
        return None
    if isinstance(value, float):
        raise ValueError(f"Quote decimal values in YAML, got float {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Cannot parse decimal from {value!r}") from None


def parse_interval(data: dict[str, Any]) -> RuleInterval:
    return RuleInterval(
        effective_from=parse_date(data.get("from")),
        effective_to=parse_date(data.get("to")),
        factor=parse_decimal(data.get("factor")),
        coverage=parse_decimal(data.get("coverage")),
        threshold_days=int(data.get("threshold_days", 0)),
        monthly_hours=parse_decimal(data.get("monthly_hours")),
        legal_reference=str(data.get("legal_reference", "")),
    )


def parse_table(key: str, data: Any) -> RuleTable:
    """
    Parse one table.  ``data`` is either a list of intervals or a mapping
    with ``intervals`` and an optional ``divisor``.
    """
    if isinstance(data, list):
        return RuleTable(key=key, intervals=tuple(parse_interval(i) for i in data))
    return RuleTable(
        key=key,
        intervals=tuple(parse_interval(i) for i in data["intervals"]),
        divisor=data.get("divisor"),
    )


def parse_rule_set(data: dict[str, Any]) -> RuleSetDef:
    return RuleSetDef(
        rule_set_id=data["rule_set_id"],
        version=str(data["version"]),
        jurisdiction=data["jurisdiction"],
        currency=data.get("currency", "COP"),
        tables={k: parse_table(k, v) for k, v in (data.get("tables") or {}).items()},
        divisors={k: parse_table(k, v) for k, v in (data.get("divisors") or {}).items()},
        default_subtypes=dict(data.get("default_subtypes") or {}),
        checksum=compute_checksum(data),
    )


def load_rule_set(path: Path) -> RuleSetDef:
    return parse_rule_set(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed YAML document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _coerce(value: str, current: Any) -> Any:
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes")
    if isinstance(current, float):
        return float(value)
    if isinstance(current, Decimal):
        return Decimal(value)
    return value


def load_settings(
    path: Path | None,
    environ: Mapping[str, str] | None = None,
) -> PayrollSettings:
    """
    Build ``PayrollSettings`` from an optional YAML file plus
    ``PAYROLL_*`` environment overrides.
    """
    defaults = PayrollSettings()
    values: dict[str, Any] = {
        name: getattr(defaults, name) for name in PayrollSettings.__dataclass_fields__
    }
    if path is not None and path.exists():
        for key, val in load_yaml_file(path).items():
            if key not in values:
                raise KeyError(f"Unknown setting {key!r} in {path}")
            values[key] = val

    env = os.environ if environ is None else environ
    for name in list(values):
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = _coerce(raw, getattr(defaults, name))

    values["calculation_timeout_seconds"] = float(values["calculation_timeout_seconds"])
    values["preview_debounce_seconds"] = float(values["preview_debounce_seconds"])
    values["rounding_quantum"] = Decimal(str(values["rounding_quantum"]))
    values["calculation_service_url"] = values["calculation_service_url"] or None
    return PayrollSettings(**values)
