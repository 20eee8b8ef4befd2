"""
Module: ledger_kernel.models.category
Responsibility: ORM persistence for transaction categories.
Architecture position: Kernel > Models.

Invariants enforced:
    - type is one of CategoryType (ck_category_type).
    - Default categories (is_default = True) are immutable and non-deletable.
      Enforced by the ORM listeners in db/guards.py and by CategoryService.
"""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TABLE_OPTIONS, Base

DEFAULT_COLOR = "#6366f1"


class Category(Base):
    """Label applied to transactions; its type must match the transaction's group."""

    __tablename__ = "categories"

    __table_args__ = (
        CheckConstraint(
            "type IN ('invoice_out', 'invoice_in', 'payment')", name="ck_category_type"
        ),
        Index("idx_category_type", "type"),
        TABLE_OPTIONS,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_COLOR)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.id} {self.name!r} ({self.type})>"
