"""
Module: ledger_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the integer primary key convention, the type annotation map for
    consistent column types, and the TimestampMixin.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST
    NOT import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Integer primary keys assigned in insertion order.  Tables declare
      ``sqlite_autoincrement`` so an id freed by a delete is never handed
      out again; a trashed row can always be restored under its own id.
    - Money precision: type_annotation_map maps Decimal to the scaled
      integer Money type.  Columns with another scale (exchange rates)
      name their ScaledDecimal explicitly.  NEVER use float for amounts.
    - Timestamps are set from the injected Clock by the services, never by
      the database server, so snapshots are reproducible.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, ScaledDecimal, UTCDateTime

# Table options shared by every ledger table.
TABLE_OPTIONS = {"sqlite_autoincrement": True}


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is an autoincrementing integer.
        - Decimal maps to Money (2 decimal places, stored as minor units).
        - datetime maps to UTCDateTime -- always timezone-aware on load.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: ScaledDecimal(MONEY_DECIMAL_PLACES),
        datetime: UTCDateTime(),
        date: Date(),
        str: String(255),
    }

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    """created_at / updated_at pair for mutable entities."""

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
