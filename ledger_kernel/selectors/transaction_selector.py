"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Filtered transaction listing with display names and the
    allocated sum of each row.  Feeds TransactionService reads and every
    balance rollup.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Ordering is date descending, then id descending (newest entry first
      among same-day rows).
    - allocated_amount is read from payment_allocations on the side the row
      sits: payments by payment_id, invoices by invoice_id.
"""

from __future__ import annotations

from sqlalchemy import or_, select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import TransactionFilters, TransactionInfo
from ledger_kernel.domain.transaction_types import PAYMENT_TYPES
from ledger_kernel.exceptions import NotFoundError
from ledger_kernel.models.category import Category
from ledger_kernel.models.company import Company
from ledger_kernel.models.project import Project
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.selectors.allocation_selector import AllocationSelector
from ledger_kernel.selectors.base import BaseSelector

_PAYMENT_VALUES = frozenset(t.value for t in PAYMENT_TYPES)


def transaction_info(
    tx: Transaction,
    allocated=ZERO,
    company_name=None,
    project_name=None,
    category_name=None,
    category_color=None,
) -> TransactionInfo:
    """Build the DTO for one ORM row."""
    return TransactionInfo(
        id=tx.id,
        scope=tx.scope,
        company_id=tx.company_id,
        project_id=tx.project_id,
        type=tx.type,
        category_id=tx.category_id,
        date=tx.date,
        description=tx.description,
        amount=tx.amount,
        currency=tx.currency,
        exchange_rate=tx.exchange_rate,
        amount_in_base=tx.amount_in_base,
        document_no=tx.document_no,
        notes=tx.notes,
        created_at=tx.created_at,
        updated_at=tx.updated_at,
        allocated_amount=allocated,
        company_name=company_name,
        project_name=project_name,
        category_name=category_name,
        category_color=category_color,
    )


class TransactionSelector(BaseSelector):
    """Read-only transaction queries returning TransactionInfo DTOs."""

    def _base_query(self):
        return (
            select(Transaction, Company.name, Project.name, Category.name, Category.color)
            .outerjoin(Company, Company.id == Transaction.company_id)
            .outerjoin(Project, Project.id == Transaction.project_id)
            .outerjoin(Category, Category.id == Transaction.category_id)
        )

    def _with_allocations(self, rows) -> list[TransactionInfo]:
        rows = list(rows)
        payment_ids = [r[0].id for r in rows if r[0].type in _PAYMENT_VALUES]
        invoice_ids = [r[0].id for r in rows if r[0].type not in _PAYMENT_VALUES]
        allocations = AllocationSelector(self.session)
        by_payment = allocations.allocated_by_payment(payment_ids)
        by_invoice = allocations.allocated_by_invoice(invoice_ids)
        result = []
        for tx, company_name, project_name, category_name, category_color in rows:
            sums = by_payment if tx.type in _PAYMENT_VALUES else by_invoice
            result.append(
                transaction_info(
                    tx,
                    allocated=sums.get(tx.id, ZERO),
                    company_name=company_name,
                    project_name=project_name,
                    category_name=category_name,
                    category_color=category_color,
                )
            )
        return result

    def list(self, filters: TransactionFilters | None = None) -> list[TransactionInfo]:
        """Transactions matching every given filter, newest first."""
        f = filters or TransactionFilters()
        stmt = self._base_query()
        if f.scope is not None:
            stmt = stmt.where(Transaction.scope == f.scope)
        if f.type is not None:
            stmt = stmt.where(Transaction.type == f.type)
        if f.company_id is not None:
            stmt = stmt.where(Transaction.company_id == f.company_id)
        if f.project_id is not None:
            stmt = stmt.where(Transaction.project_id == f.project_id)
        if f.start_date is not None:
            stmt = stmt.where(Transaction.date >= f.start_date)
        if f.end_date is not None:
            stmt = stmt.where(Transaction.date <= f.end_date)
        if f.search:
            pattern = f"%{f.search}%"
            stmt = stmt.where(
                or_(
                    Transaction.description.ilike(pattern),
                    Transaction.document_no.ilike(pattern),
                    Company.name.ilike(pattern),
                )
            )
        stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
        if f.limit:
            stmt = stmt.limit(f.limit)
        return self._with_allocations(self.session.execute(stmt))

    def get(self, transaction_id: int) -> TransactionInfo:
        rows = self._with_allocations(
            self.session.execute(self._base_query().where(Transaction.id == transaction_id))
        )
        if not rows:
            raise NotFoundError("transaction", transaction_id)
        return rows[0]

    def for_company(self, company_id: int) -> list[TransactionInfo]:
        return self.list(TransactionFilters(company_id=company_id))

    def for_project(self, project_id: int) -> list[TransactionInfo]:
        return self.list(TransactionFilters(project_id=project_id))
