"""
PAYROLL_ENGINE_TRACE emission for pure engine calls.

Decorating an engine method with ``@traced_engine`` logs one record per
call: engine name and version, the qualified function name, how long the
call took, and a short fingerprint of the keyword arguments named in
``fingerprint_fields``.  Two calls with the same inputs log the same
fingerprint, which is how a recomputed novelty is matched to the original
calculation in the logs.

    @traced_engine("novelty_calculator", "1.0", fingerprint_fields=("salary", "days"))
    def compute(self, *, salary, days, ...):
        ...

The decorator only reads keyword arguments; positional ones are not
fingerprinted.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "PAYROLL_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16


def _stable(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, Decimal):
        # 4, 4.0 and 4.00 fingerprint alike
        return format(value.normalize(), "f")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        inner = ",".join(f"{k}:{_stable(value[k])}" for k in sorted(value))
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_stable(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex digits of SHA-256 over ``name=value`` pairs; absent names hash as null."""
    canonical = "|".join(f"{name}={_stable(kwargs.get(name))}" for name in fingerprint_fields)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        qualname = func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields
                else ""
            )
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": qualname,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round(elapsed_ms, 2),
                },
            )
            return result

        return wrapper

    return decorator
