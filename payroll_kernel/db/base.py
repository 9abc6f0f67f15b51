"""
Module: payroll_kernel.db.base
Responsibility: Declarative base for the payroll tables: UUID keys, column
    type mapping, constraint naming and the audit columns shared by every
    row that a person creates or changes.
Architecture position: Kernel > DB.  Imported by every model; imports
    nothing from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Primary keys are uuid4, stored as 36-character strings so the same
      schema runs on SQLite and PostgreSQL.
    - Salaries, hours and novelty values map to Numeric(38, 9); float never
      reaches a column.
    - Constraint and index names are deterministic, so migrations diff
      cleanly across databases.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID <-> its canonical 36-character string."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


# Column shorthands for the audit fields.
ActorId = Annotated[PyUUID, mapped_column(UUIDString(), nullable=False)]
OptionalActorId = Annotated[PyUUID | None, mapped_column(UUIDString(), nullable=True)]
DbTimestamp = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False),
]


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows with an author.

    ``created_at`` and ``updated_at`` come from the database clock; the
    business timestamps (closed_at, applied_at...) come from the kernel
    Clock and live on the models themselves.
    """

    __abstract__ = True

    created_at: Mapped[DbTimestamp]
    updated_at: Mapped[DbTimestamp] = mapped_column(onupdate=func.now())
    created_by_id: Mapped[ActorId]
    updated_by_id: Mapped[OptionalActorId]


UUID = PyUUID
