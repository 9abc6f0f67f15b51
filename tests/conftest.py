"""
Pytest fixtures for the payroll novelties test suite.

Provides:
- In-memory SQLite engine with every payroll table, one per test
- Kernel sessions, services and selectors bound to a deterministic clock
- The active Colombian rule tables and a calculator over them
- Captured JSON logs

SQLite runs on one shared connection (StaticPool).  A test either works
through the ``session`` fixture or through ``session_factory`` with
``session_scope``; never both at once, because the second session would
try to BEGIN inside the first one's transaction.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from payroll_config import get_active_rules
from payroll_engines.novelty_calculator import NoveltyCalculator
from payroll_engines.rules import TemporalRuleResolver
from payroll_kernel.db.engine import build_engine, create_tables
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.novelty_types import NoveltyTypeRegistry, default_registry
from payroll_kernel.domain.period_rules import PeriodRole, StaticRoleResolver
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.selectors.novelty_selector import NoveltyReconciler
from payroll_kernel.services.novelty_service import NoveltyService
from payroll_kernel.services.pending_adjustment_queue import PendingAdjustmentQueue
from payroll_kernel.services.period_service import PeriodService

# Test actors for all test operations
TEST_ACTOR_ID = uuid4()
ADMIN_ACTOR_ID = uuid4()

PERIOD_START = date(2025, 8, 1)
PERIOD_END = date(2025, 8, 31)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, queue):
            queue.drain(period_id, actor_id)
            logs = captured_logs()
            assert any(r["message"] == "pending_drain_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Actors, clock, rules
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def admin_actor_id() -> UUID:
    return ADMIN_ACTOR_ID


@pytest.fixture
def role_resolver() -> StaticRoleResolver:
    return StaticRoleResolver({ADMIN_ACTOR_ID: PeriodRole.ADMINISTRATOR})


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture(scope="session")
def resolver() -> TemporalRuleResolver:
    return get_active_rules("colombia")


@pytest.fixture
def registry() -> NoveltyTypeRegistry:
    return default_registry()


@pytest.fixture
def calculator(resolver, registry) -> NoveltyCalculator:
    return NoveltyCalculator(resolver, registry)


# =============================================================================
# Kernel services
# =============================================================================


@pytest.fixture
def period_service(session, deterministic_clock, role_resolver) -> PeriodService:
    return PeriodService(session, deterministic_clock, role_resolver)


@pytest.fixture
def novelty_service(session, deterministic_clock, registry) -> NoveltyService:
    return NoveltyService(session, deterministic_clock, registry)


@pytest.fixture
def queue(session, deterministic_clock, calculator, registry) -> PendingAdjustmentQueue:
    return PendingAdjustmentQueue(session, deterministic_clock, calculator, registry)


@pytest.fixture
def reconciler(session, registry) -> NoveltyReconciler:
    return NoveltyReconciler(session, registry)


@pytest.fixture
def make_period(period_service, test_actor_id):
    """
    Factory fixture: a borrador period with employees enrolled.

    ``salaries`` maps employee id to base salary.
    """

    def _make(salaries: dict[UUID, Decimal], name: str = "2025-08"):
        period = period_service.create_period(name, PERIOD_START, PERIOD_END, test_actor_id)
        for employee_id, salary in salaries.items():
            period_service.enroll_employee(period.id, employee_id, salary, test_actor_id)
        return period

    return _make


@pytest.fixture
def close_period(period_service, test_actor_id, deterministic_clock):
    """Factory fixture: liquidate every enrolled employee and close."""

    def _close(period_id: UUID):
        for liquidation in period_service.list_liquidations(period_id):
            period_service.mark_liquidated(period_id, liquidation.employee_id, test_actor_id)
        deterministic_clock.advance(60)
        return period_service.close(period_id, test_actor_id)

    return _close
