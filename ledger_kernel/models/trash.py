"""
Module: ledger_kernel.models.trash
Responsibility: Soft-delete staging area.  One TrashEntry holds the JSON
    bundle of every row removed by a single delete (the root entity plus
    whatever cascaded from it), so restore can put all of it back.
Architecture position: Kernel > Models.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TABLE_OPTIONS, Base


class TrashEntry(Base):
    """
    Serialized bundle of deleted rows.

    ``data`` layout::

        {"root": {"table": "companies", "id": 7},
         "rows": {"companies": [...], "projects": [...],
                  "transactions": [...], "payment_allocations": [...]}}
    """

    __tablename__ = "trash"

    __table_args__ = (
        CheckConstraint(
            "entry_type IN ('company', 'project', 'transaction')", name="ck_trash_entry_type"
        ),
        Index("idx_trash_deleted_at", "deleted_at"),
        TABLE_OPTIONS,
    )

    entry_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<TrashEntry {self.id} {self.entry_type}:{self.entity_id}>"
