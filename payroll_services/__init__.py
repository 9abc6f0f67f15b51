"""
Async submission layer for payroll novelties.

``build_submission_service`` wires the pieces from ``PayrollSettings``:
the calculation client (only when a service URL is configured), the
local calculator over the active rule tables, and the SQL-backed store.
Without an explicit session factory it installs the process-wide engine
for ``settings.database_url`` and creates the tables.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from payroll_config import PayrollSettings, get_active_rules
from payroll_engines.novelty_calculator import NoveltyCalculator
from payroll_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from payroll_kernel.domain.clock import Clock
from payroll_kernel.domain.novelty_types import NoveltyTypeRegistry, default_registry
from payroll_kernel.domain.period_rules import PeriodRoleResolver
from payroll_services.calculation_client import (
    CalculationReply,
    CalculationRequest,
    CalculationServiceClient,
)
from payroll_services.preview import PreviewResult, PreviewScheduler
from payroll_services.session import EditSession
from payroll_services.store import NoveltyStore, PeriodCloseResult, SqlNoveltyStore
from payroll_services.submission import (
    BatchFailure,
    BatchSubmissionResult,
    NoveltySubmissionService,
    SubmissionEvent,
    SubmissionEventKind,
    SubmissionResult,
)
from payroll_services.valuation import NoveltyValuator


def build_submission_service(
    settings: PayrollSettings,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
    role_resolver: PeriodRoleResolver | None = None,
    registry: NoveltyTypeRegistry | None = None,
) -> NoveltySubmissionService:
    if session_factory is None:
        init_engine_from_url(settings.database_url)
        create_tables()
        session_factory = get_session_factory()
    registry = registry or default_registry()
    calculator = NoveltyCalculator(
        get_active_rules(settings.rule_set), registry, quantum=settings.rounding_quantum
    )
    client = None
    if settings.has_calculation_service:
        client = CalculationServiceClient(
            settings.calculation_service_url, settings.calculation_timeout_seconds
        )
    store = SqlNoveltyStore(session_factory, clock, role_resolver, calculator, registry)
    return NoveltySubmissionService(store, NoveltyValuator(calculator, client, registry), registry)


__all__ = [
    "BatchFailure",
    "BatchSubmissionResult",
    "CalculationReply",
    "CalculationRequest",
    "CalculationServiceClient",
    "EditSession",
    "NoveltyStore",
    "NoveltySubmissionService",
    "NoveltyValuator",
    "PeriodCloseResult",
    "PreviewResult",
    "PreviewScheduler",
    "SqlNoveltyStore",
    "SubmissionEvent",
    "SubmissionEventKind",
    "SubmissionResult",
    "build_submission_service",
]
