"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions -- invoices issued
    and received, payments collected and made.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced (SQL layer; TransactionService re-asserts each with a
typed error before the flush):
    - amount, exchange_rate and amount_in_base are > 0.
    - scope = 'project' rows carry project_id; scope = 'cari' rows carry
      company_id and no project_id; scope = 'company' rows carry no
      project_id (ck_transaction_scope).
    - amount_in_base = round2(amount * exchange_rate), fixed at write time.
      The exchange rate is locked at creation; later rate moves never touch
      stored rows.

Legacy:
    legacy_invoice_id is the single-invoice link that predates
    payment_allocations.  It is read only by the backfill migration and is
    never consulted by balances.

Failure modes:
    - IntegrityError on a CHECK breach or a dangling foreign key.
"""

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TABLE_OPTIONS, Base, TimestampMixin
from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, RATE_DECIMAL_PLACES, ScaledDecimal
from ledger_kernel.domain.transaction_types import TransactionType, traits_of


class TransactionScope:
    """Which view a transaction belongs to primarily."""

    CARI = "cari"  # Counterparty running account
    PROJECT = "project"
    COMPANY = "company"  # Firm-level, e.g. general overhead

    ALL = (CARI, PROJECT, COMPANY)


class Transaction(TimestampMixin, Base):
    """
    One invoice or payment.

    Guarantees:
        - type is one of TransactionType; all type-dependent behaviour is
          looked up through ``traits``.
        - created_at never changes; updated_at moves on every update.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("scope IN ('cari', 'project', 'company')", name="ck_transaction_scope_value"),
        CheckConstraint(
            "type IN ('invoice_out', 'payment_in', 'invoice_in', 'payment_out')",
            name="ck_transaction_type",
        ),
        CheckConstraint(
            "(scope = 'project' AND project_id IS NOT NULL) OR "
            "(scope = 'cari' AND company_id IS NOT NULL AND project_id IS NULL) OR "
            "(scope = 'company' AND project_id IS NULL)",
            name="ck_transaction_scope",
        ),
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        CheckConstraint("exchange_rate > 0", name="ck_transaction_rate_positive"),
        CheckConstraint("amount_in_base > 0", name="ck_transaction_base_positive"),
        Index("idx_transaction_company", "company_id"),
        Index("idx_transaction_project", "project_id"),
        Index("idx_transaction_date", "date"),
        Index("idx_transaction_type", "type"),
        TABLE_OPTIONS,
    )

    scope: Mapped[str] = mapped_column(String(10), nullable=False)
    company_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("companies.id", ondelete="CASCADE")
    )
    project_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE")
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL")
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Original currency amount and the locked conversion to base currency
    amount: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_DECIMAL_PLACES), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(
        ScaledDecimal(RATE_DECIMAL_PLACES), nullable=False
    )
    amount_in_base: Mapped[Decimal] = mapped_column(
        ScaledDecimal(MONEY_DECIMAL_PLACES), nullable=False
    )

    document_no: Mapped[str | None] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(Text)

    legacy_invoice_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="SET NULL")
    )

    @property
    def tx_type(self) -> TransactionType:
        return TransactionType(self.type)

    @property
    def traits(self):
        return traits_of(self.type)

    @property
    def is_invoice(self) -> bool:
        return self.traits.is_invoice

    @property
    def is_payment(self) -> bool:
        return self.traits.is_payment

    def __repr__(self) -> str:
        return f"<Transaction {self.id} {self.type} {self.amount_in_base} on {self.date}>"

