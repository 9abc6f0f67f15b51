"""
Module: payroll_kernel.db.engine
Responsibility: Engine construction, the process-wide session factory and
    the commit-or-rollback scope used by the store.
Architecture position: Kernel > DB.  May import from db/base.py.  Only
    create_tables() reaches into models/ so that metadata is populated.

Invariants enforced:
    - PostgreSQL runs with a QueuePool and READ COMMITTED isolation.
    - SQLite (tests, single-user installs) runs on one shared connection
      with explicit BEGIN, so the SAVEPOINT taken for every drained
      adjustment is a real one.

Failure modes:
    - RuntimeError if the process-wide factory is asked for before
      init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from payroll_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def _sqlite_engine(database_url: str, echo: bool) -> Engine:
    engine = create_engine(
        database_url,
        echo=echo,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite opens transactions lazily and ignores SAVEPOINT nesting;
    # hand transaction control back to SQLAlchemy.
    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """Engine for ``database_url``; module state is left alone."""
    if database_url.startswith("sqlite"):
        return _sqlite_engine(database_url, echo)
    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    Install the process-wide engine and session factory.

    Replaces (and disposes) whatever a previous call installed.
    """
    global _engine, _factory

    reset_engine()
    _engine = build_engine(database_url, echo=echo)
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _factory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    One unit of work: commit on normal exit, roll back and re-raise
    otherwise.  Without ``factory`` the process-wide one is used::

        with session_scope() as session:
            PeriodService(session).close(period_id, actor_id)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every payroll table on ``engine`` (default: the process-wide one)."""
    from payroll_kernel.db.base import Base
    from payroll_kernel import models  # noqa: F401

    if engine is None:
        get_session_factory()
        engine = _engine
    Base.metadata.create_all(engine)


def reset_engine() -> None:
    """Dispose the process-wide engine, if any.  Mostly for tests."""
    global _engine, _factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _factory = None
