"""
Module: ledger_kernel.selectors.allocation_selector
Responsibility: Read-only allocation queries -- allocated sums per payment
    and per invoice, and allocation rows joined with both transactions.
Architecture position: Kernel > Selectors.
"""

from collections.abc import Iterable
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import aliased

from ledger_kernel.domain.dtos import AllocationInfo
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.selectors.base import BaseSelector


class AllocationSelector(BaseSelector):
    """Allocation sums and rows."""

    def _sum_by(
        self,
        column,
        ids: Iterable[int] | None,
        exclude_payment_id: int | None = None,
    ) -> dict[int, Decimal]:
        stmt = select(column, func.sum(PaymentAllocation.amount)).group_by(column)
        if exclude_payment_id is not None:
            stmt = stmt.where(PaymentAllocation.payment_id != exclude_payment_id)
        if ids is not None:
            ids = list(ids)
            if not ids:
                return {}
            stmt = stmt.where(column.in_(ids))
        return {key: total for key, total in self.session.execute(stmt)}

    def allocated_by_payment(self, ids: Iterable[int] | None = None) -> dict[int, Decimal]:
        """payment_id -> total allocated from that payment."""
        return self._sum_by(PaymentAllocation.payment_id, ids)

    def allocated_by_invoice(
        self,
        ids: Iterable[int] | None = None,
        exclude_payment_id: int | None = None,
    ) -> dict[int, Decimal]:
        """
        invoice_id -> total allocated to that invoice.

        ``exclude_payment_id`` leaves one payment's rows out, which is what
        an invoice has available while that payment's set is being replaced.
        """
        return self._sum_by(PaymentAllocation.invoice_id, ids, exclude_payment_id)

    def _rows(self, where) -> list[AllocationInfo]:
        invoice = aliased(Transaction, name="invoice")
        payment = aliased(Transaction, name="payment")
        stmt = (
            select(PaymentAllocation, invoice, payment)
            .join(invoice, invoice.id == PaymentAllocation.invoice_id)
            .join(payment, payment.id == PaymentAllocation.payment_id)
            .where(where)
        )
        rows = [
            AllocationInfo(
                id=alloc.id,
                payment_id=alloc.payment_id,
                invoice_id=alloc.invoice_id,
                amount=alloc.amount,
                created_at=alloc.created_at,
                invoice_date=inv.date,
                invoice_description=inv.description,
                invoice_document_no=inv.document_no,
                invoice_amount_in_base=inv.amount_in_base,
                payment_date=pay.date,
                payment_description=pay.description,
                payment_document_no=pay.document_no,
                payment_amount_in_base=pay.amount_in_base,
            )
            for alloc, inv, pay in self.session.execute(stmt)
        ]
        return rows

    def for_payment(self, payment_id: int) -> list[AllocationInfo]:
        """Allocations of one payment, oldest invoice first."""
        rows = self._rows(PaymentAllocation.payment_id == payment_id)
        return sorted(rows, key=lambda r: (r.invoice_date, r.invoice_id))

    def for_invoice(self, invoice_id: int) -> list[AllocationInfo]:
        """Payments that settle one invoice, oldest payment first."""
        rows = self._rows(PaymentAllocation.invoice_id == invoice_id)
        return sorted(rows, key=lambda r: (r.payment_date, r.payment_id))
