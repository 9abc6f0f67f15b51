"""
BaseService -- abstract base for kernel services that write.

Services receive a SQLAlchemy ``Session`` from the caller and persist with
``session.flush()`` only.  The caller (``session_scope()`` in the store
adapter, or a test fixture) owns commit and rollback, so a multi-step
operation such as "drain the queue, then close" can be made atomic or
split into separate transactions as the caller sees fit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from payroll_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT call ``session.commit()`` or ``session.rollback()``.
        - Does NOT provide read-only queries; those live in ``selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
