"""
Module: ledger_kernel.models.schema_version
Responsibility: Applied-migrations log.  One row per migration, written in
    the same database transaction as the migration itself, so a migration
    is applied at most once per ledger.
Architecture position: Kernel > Models.
"""

from datetime import datetime

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TABLE_OPTIONS, Base


class SchemaVersion(Base):
    __tablename__ = "schema_versions"

    __table_args__ = (
        UniqueConstraint("version", name="uq_schema_version"),
        TABLE_OPTIONS,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<SchemaVersion {self.version} {self.name}>"
