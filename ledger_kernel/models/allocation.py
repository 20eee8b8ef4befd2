"""
Module: ledger_kernel.models.allocation
Responsibility: ORM persistence for payment-to-invoice allocations.
Architecture position: Kernel > Models.

Invariants enforced:
    - amount (base currency) > 0 (ck_allocation_amount_positive).
    - At most one row per (payment, invoice) pair (uq_allocation_pair).
    - Deleting either transaction deletes its allocations (ON DELETE CASCADE).
    - Rows are only ever written by AllocationService.set_allocations_for_payment,
      which replaces the whole set for one payment.  The sum limits
      (per invoice and per payment) are checked there, since a CHECK
      constraint cannot see other rows.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TABLE_OPTIONS, Base


class PaymentAllocation(Base):
    """A matched amount linking one payment to one invoice."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "invoice_id", name="uq_allocation_pair"),
        CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
        Index("idx_allocation_payment", "payment_id"),
        Index("idx_allocation_invoice", "invoice_id"),
        TABLE_OPTIONS,
    )

    payment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentAllocation {self.payment_id}->{self.invoice_id} {self.amount}>"
