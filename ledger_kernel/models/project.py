"""
Module: ledger_kernel.models.project
Responsibility: ORM persistence for construction projects, either the
    firm's own developments or work done for a client company.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique (uq_project_code).
    - client_company_id is required iff ownership = 'client' and forbidden
      otherwise (ck_project_client).  ProjectService re-asserts this with a
      readable error before the flush.
    - status and project_kind are closed sets.

Failure modes:
    - IntegrityError on duplicate code or an ownership/client mismatch.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TABLE_OPTIONS, Base, TimestampMixin


class ProjectOwnership(str, Enum):
    OWN = "own"  # Firm's own development
    CLIENT = "client"  # Contracted work for a client company


class ProjectStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProjectKind(str, Enum):
    RESIDENTIAL = "residential"
    VILLA = "villa"
    COMMERCIAL = "commercial"
    MIXED = "mixed"
    INFRASTRUCTURE = "infrastructure"
    RENOVATION = "renovation"


class Project(TimestampMixin, Base):
    """
    Construction project.

    Contract:
        A client project always names its client company; an own project
        never does.  estimated_budget drives budget_used_pct in the project
        ledger when set.
    """

    __tablename__ = "projects"

    __table_args__ = (
        UniqueConstraint("code", name="uq_project_code"),
        CheckConstraint("ownership IN ('own', 'client')", name="ck_project_ownership"),
        CheckConstraint(
            "(ownership = 'client' AND client_company_id IS NOT NULL) OR "
            "(ownership = 'own' AND client_company_id IS NULL)",
            name="ck_project_client",
        ),
        CheckConstraint(
            "status IN ('planned', 'active', 'completed', 'cancelled')",
            name="ck_project_status",
        ),
        CheckConstraint(
            "project_kind IS NULL OR project_kind IN "
            "('residential', 'villa', 'commercial', 'mixed', 'infrastructure', 'renovation')",
            name="ck_project_kind",
        ),
        Index("idx_project_status", "status"),
        Index("idx_project_client", "client_company_id"),
        TABLE_OPTIONS,
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    ownership: Mapped[str] = mapped_column(String(10), nullable=False)
    client_company_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("companies.id")
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.PLANNED.value
    )
    project_kind: Mapped[str | None] = mapped_column(String(20))
    location: Mapped[str | None] = mapped_column(String(255))
    total_area: Mapped[Decimal | None] = mapped_column()
    unit_count: Mapped[int | None] = mapped_column(Integer)
    estimated_budget: Mapped[Decimal | None] = mapped_column()

    planned_start: Mapped[date | None] = mapped_column(Date)
    planned_end: Mapped[date | None] = mapped_column(Date)
    actual_start: Mapped[date | None] = mapped_column(Date)
    actual_end: Mapped[date | None] = mapped_column(Date)

    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_client_project(self) -> bool:
        return self.ownership == ProjectOwnership.CLIENT.value

    def __repr__(self) -> str:
        return f"<Project {self.id} {self.code} ({self.ownership})>"
