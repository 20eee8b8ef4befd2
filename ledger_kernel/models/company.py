"""
Module: ledger_kernel.models.company
Responsibility: ORM persistence for counterparties -- customers, suppliers,
    subcontractors and investors -- that the firm keeps a running (cari)
    account with.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - kind and role are closed sets (CHECK constraints).
    - An inactive company cannot receive new or updated transactions
      (enforced by TransactionService; this model is the data source).

Failure modes:
    - IntegrityError on an out-of-range kind/role value.
"""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TABLE_OPTIONS, Base, TimestampMixin


class CompanyKind(str, Enum):
    PERSON = "person"
    ORGANIZATION = "organization"


class CompanyRole(str, Enum):
    """Relationship of the counterparty to the firm."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    SUBCONTRACTOR = "subcontractor"
    INVESTOR = "investor"


class Company(TimestampMixin, Base):
    """
    Counterparty with a running account.

    Guarantees:
        - kind is one of CompanyKind, role is one of CompanyRole.
        - Identity fields are free text; the input validator owns their format.
    """

    __tablename__ = "companies"

    __table_args__ = (
        CheckConstraint("kind IN ('person', 'organization')", name="ck_company_kind"),
        CheckConstraint(
            "role IN ('customer', 'supplier', 'subcontractor', 'investor')",
            name="ck_company_role",
        ),
        Index("idx_company_role", "role"),
        Index("idx_company_name", "name"),
        TABLE_OPTIONS,
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Identity: persons carry national_id/profession, organizations the tax fields
    national_id: Mapped[str | None] = mapped_column(String(20))
    profession: Mapped[str | None] = mapped_column(String(100))
    tax_office: Mapped[str | None] = mapped_column(String(100))
    tax_number: Mapped[str | None] = mapped_column(String(20))
    trade_registry_no: Mapped[str | None] = mapped_column(String(50))

    contact_person: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)
    bank_name: Mapped[str | None] = mapped_column(String(100))
    iban: Mapped[str | None] = mapped_column(String(34))
    notes: Mapped[str | None] = mapped_column(Text)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Company {self.id} {self.name!r} ({self.role})>"
