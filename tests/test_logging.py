"""
Tests for payroll_kernel.logging_config.

Verifies:
- Each record is one JSON object with the ts/level/logger/message envelope
- Call-site ``extra`` and the bound LogContext both reach the line
- Kernel exceptions contribute their code and constructor fields
- UUIDs and Decimals are written as strings
- LogContext values follow the asyncio task that set them
- configure_logging only installs a handler once
"""

import asyncio
import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from payroll_kernel.exceptions import PeriodClosedError
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)

ROOT = "payroll_kernel"


@pytest.fixture(autouse=True)
def _unconfigured():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def json_lines():
    """Configure logging into a buffer; returns a reader of the parsed lines."""
    buffer = StringIO()

    def _install(level=logging.INFO):
        target = logging.StreamHandler(buffer)
        configure_logging(handler=target, level=level)

    def _read() -> list[dict]:
        return [json.loads(raw) for raw in buffer.getvalue().splitlines() if raw]

    _read.install = _install
    return _read


class TestEnvelope:
    def test_fields(self, json_lines):
        json_lines.install()
        get_logger("services.novelty").info("novelty_created")

        [line] = json_lines()
        assert line["message"] == "novelty_created"
        assert line["level"] == "INFO"
        assert line["logger"] == f"{ROOT}.services.novelty"
        assert line["ts"].endswith("+00:00")

    def test_default_level_drops_debug(self, json_lines):
        json_lines.install()
        log = get_logger("engines")
        log.debug("rule_resolved")
        log.warning("calculation_fallback_local", extra={"reason": "HTTP 500"})

        lines = json_lines()
        assert [l["message"] for l in lines] == ["calculation_fallback_local"]
        assert lines[0]["reason"] == "HTTP 500"

    def test_extra_values_serialized(self, json_lines):
        json_lines.install()
        novelty_id = uuid4()
        get_logger("queue").info(
            "pending_adjustment_applied",
            extra={"novelty_id": novelty_id, "value": Decimal("66700"), "days": 4},
        )

        [line] = json_lines()
        assert line["novelty_id"] == str(novelty_id)
        assert line["value"] == "66700"
        assert line["days"] == 4

    def test_extra_cannot_override_envelope(self, json_lines):
        json_lines.install()
        get_logger("queue").info("drain", extra={"level_hint": "x", "ts_hint": "y"})
        [line] = json_lines()
        assert line["level"] == "INFO"
        assert line["level_hint"] == "x"


class TestContextInLines:
    def test_bound_fields_written(self, json_lines):
        json_lines.install()
        period_id = uuid4()
        with LogContext.bind(period_id=period_id, actor_id="admin"):
            get_logger("period").info("payroll_period_reopened")
        get_logger("period").info("after")

        reopened, after = json_lines()
        assert reopened["period_id"] == str(period_id)
        assert reopened["actor_id"] == "admin"
        assert "period_id" not in after
        assert "actor_id" not in after

    def test_context_wins_over_extra(self, json_lines):
        json_lines.install()
        LogContext.set(employee_id="emp-1")
        get_logger("novelty").info("novelty_created", extra={"employee_id": "emp-2"})
        [line] = json_lines()
        assert line["employee_id"] == "emp-1"


class TestExceptionLines:
    def test_plain_exception(self, json_lines):
        json_lines.install()
        try:
            Decimal("1") / Decimal("0")
        except ArithmeticError:
            get_logger("engines").exception("calculation_crashed")

        [line] = json_lines()
        assert line["level"] == "ERROR"
        assert line["exc_type"] in ("DivisionByZero", "InvalidOperation")
        assert "Traceback" in line["traceback"]
        assert "exc_code" not in line

    def test_kernel_exception_code_and_fields(self, json_lines):
        json_lines.install()
        try:
            raise PeriodClosedError("2025-08", "cerrado")
        except PeriodClosedError:
            get_logger("novelty").error("direct_mutation_refused", exc_info=True)

        [line] = json_lines()
        assert line["exc_code"] == "PERIOD_CLOSED"
        assert line["exc_type"] == "PeriodClosedError"
        assert line["exc_period_id"] == "2025-08"
        assert line["exc_status"] == "cerrado"


class TestLogContext:
    def test_set_accumulates(self):
        LogContext.set(correlation_id="req-1")
        LogContext.set(session_id="edit-7", period_id=None)
        assert LogContext.get_all() == {"correlation_id": "req-1", "session_id": "edit-7"}

    def test_get_all_follows_declaration_order(self):
        LogContext.set(session_id="s", employee_id="e", period_id="p", actor_id="a")
        LogContext.set(correlation_id="c")
        assert list(LogContext.get_all()) == [
            "correlation_id",
            "actor_id",
            "period_id",
            "employee_id",
            "session_id",
        ]

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="liquidation_id"):
            LogContext.set(liquidation_id="x")
        with pytest.raises(TypeError):
            LogContext.bind(liquidation_id="x").__enter__()

    def test_nested_bind_restores_outer_value(self):
        LogContext.set(employee_id="outer")
        with LogContext.bind(employee_id="inner", session_id="edit-1"):
            assert LogContext.get_all()["employee_id"] == "inner"
        assert LogContext.get_all() == {"employee_id": "outer"}

    def test_bind_stringifies_and_skips_none(self):
        actor = uuid4()
        with LogContext.bind(actor_id=actor, period_id=None):
            assert LogContext.get_all() == {"actor_id": str(actor)}
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(correlation_id="x", actor_id="y")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_isolated_per_task(self):
        async def _submit(employee: str) -> str | None:
            with LogContext.bind(employee_id=employee):
                await asyncio.sleep(0)
                return LogContext.get_all().get("employee_id")

        async def _batch():
            return await asyncio.gather(_submit("e1"), _submit("e2"))

        assert asyncio.run(_batch()) == ["e1", "e2"]
        assert LogContext.get_all() == {}

    def test_visible_in_worker_thread(self):
        async def _store_call():
            with LogContext.bind(period_id="per-9"):
                return await asyncio.to_thread(LogContext.get_all)

        assert asyncio.run(_store_call()) == {"period_id": "per-9"}


class TestSetup:
    def test_configure_once(self):
        first = logging.StreamHandler(StringIO())
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=second)

        root = logging.getLogger(ROOT)
        assert root.handlers == [first]
        assert isinstance(first.formatter, StructuredFormatter)
        assert root.propagate is False

    def test_reset_allows_reconfigure(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()
        assert logging.getLogger(ROOT).handlers == []

        replacement = logging.StreamHandler(StringIO())
        configure_logging(handler=replacement)
        assert logging.getLogger(ROOT).handlers == [replacement]

    def test_children_share_root_handler(self, json_lines):
        json_lines.install(level=logging.DEBUG)
        child = get_logger("services.pending_queue")
        assert child.name == f"{ROOT}.services.pending_queue"

        child.debug("pending_drain_started")
        [line] = json_lines()
        assert line["logger"] == f"{ROOT}.services.pending_queue"
