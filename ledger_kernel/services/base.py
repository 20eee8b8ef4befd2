"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    service in the kernel.  Services receive a SQLAlchemy ``Session`` and a
    ``Clock``; they flush, never commit.

Architecture position:
    Kernel > Services -- imperative shell over the models.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or roll back themselves.  LedgerDatabase owns
      commit/rollback.
    - Dirty tracking: every successful mutation sets ``session.info["dirty"]``
      so the boundary knows a backup is due after commit.
    - Database constraint failures surface as ConstraintViolation, never as
      a raw SQLAlchemy error.
"""

from abc import ABC
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import ConstraintViolation, NotFoundError, ValidationError
from ledger_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

DIRTY_KEY = "dirty"

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all ledger services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide aggregate reads -- those belong in selectors/.
    """

    model: type[ModelType]
    entity_name: str = "entity"

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _get(self, entity_id: int) -> ModelType:
        entity = self.session.get(self.model, entity_id)
        if entity is None:
            raise NotFoundError(self.entity_name, entity_id)
        return entity

    def _mark_dirty(self) -> None:
        self.session.info[DIRTY_KEY] = True

    def _flush(self) -> None:
        """Flush pending changes, translating database constraint failures."""
        try:
            self.session.flush()
        except SAIntegrityError as exc:
            logger.warning(
                "database_constraint_rejected",
                extra={"entity_type": self.entity_name, "detail": str(exc.orig)},
            )
            raise ConstraintViolation(
                f"{self.entity_name} violates a database constraint",
                invariant="database_constraint",
            ) from exc

    @staticmethod
    def _reject_unknown_fields(fields: dict[str, Any], allowed: frozenset[str]) -> None:
        unknown = set(fields) - allowed
        if unknown:
            name = sorted(unknown)[0]
            raise ValidationError(f"Unknown or read-only field: {name}", field=name)

    @staticmethod
    def _enum_value(enum_cls, value: Any, field: str) -> str:
        try:
            return enum_cls(value).value
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ValidationError(
                f"{field} must be one of {allowed}", field=field
            ) from None
