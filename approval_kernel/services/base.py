"""
BaseService -- abstract base for the approval kernel's write-side services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Concrete services receive a
    SQLAlchemy ``Session`` that they use via ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The caller
      (``session_scope()``, a script, or the test harness) owns
      commit/rollback.
    - Store failures surface as ``StorageError``, never as a raw
      ``SQLAlchemyError``.

Failure modes:
    - StorageError from ``_flush`` when the database refuses the write.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from approval_kernel.db.base import Base
from approval_kernel.exceptions import StorageError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only helpers; those belong in
          ``approval_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _flush(self, operation: str) -> None:
        """Flush pending changes, wrapping store failures.

        ``ImmutabilityViolationError`` raised by ORM listeners is not a
        ``SQLAlchemyError`` and propagates unchanged.
        """
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(exc.__class__.__name__)) from exc
